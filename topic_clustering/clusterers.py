import time
from dataclasses import dataclass
from typing import List, Optional

import hdbscan
import numpy as np

from .distance import cosine_distances, distance_matrix, euclidean_distance
from .evaluation import analyze_distance_matrix, silhouette_score
from .exceptions import ClusteringError, InvalidClusterCountError, NoDocumentsError, NoEmbeddingsError
from .labeling import ClusterLabeler
from .models import ClusteringResult, Document, TopicCluster
from .themes import ALL_LABEL, ThemePartitioner

NOISE_LABEL = -1


class BaseClusterer:
    """
    Shared plumbing for every clustering algorithm.

    Subclasses set ``algorithm`` (used in cluster ids) and ``config_section``
    (the configuration block holding their parameters) and implement
    ``cluster_documents``.
    """

    algorithm = 'base'
    config_section = None

    def __init__(self, config, logger, params=None, random_state=None):
        """
        Initializes the base clusterer.

        Args:
            config: Configuration manager
            logger: Logger instance
            params (dict, optional): Overrides for the algorithm's configuration block
            random_state (int, optional): Seed for this clusterer's random generators
        """
        self.config = config
        self.logger = logger
        self.options = config.get_options()
        self.seed = self.options.get('seed')

        self.params = dict(config.get_config_value(self.config_section, {}) or {}) if self.config_section else {}
        if params:
            self.params.update(params)

        self.random_state = random_state if random_state is not None else self.params.get('random_state', self.seed)
        self.tag_aware = self.params.get('tag_aware', False)
        self.labeler = ClusterLabeler(config, logger)

    def make_rng(self):
        """A fresh generator per run; no process-wide random state is used."""
        return np.random.default_rng(self.random_state)

    def prepare_documents(self, documents: List[Document]) -> List[Document]:
        """
        Validates input and returns the documents that can be clustered.

        Raises:
            NoDocumentsError: If no documents were given
            NoEmbeddingsError: If none of them has an embedding
        """
        if not documents:
            raise NoDocumentsError()

        embedded = [d for d in documents if d.has_embedding]
        if not embedded:
            raise NoEmbeddingsError()

        skipped = len(documents) - len(embedded)
        if skipped:
            self.logger.warning(f"Skipping {skipped} documents without embeddings")

        dimension = len(embedded[0].embedding)
        usable = [d for d in embedded if len(d.embedding) == dimension]
        if len(usable) < len(embedded):
            self.logger.warning(
                f"Dropping {len(embedded) - len(usable)} documents whose embedding "
                f"dimensionality differs from {dimension}"
            )
        return usable

    def dispatch(self, documents, cluster_fn, min_cluster_size=None):
        """Runs ``cluster_fn`` directly or once per theme partition."""
        if self.tag_aware:
            partitioner = ThemePartitioner(self.config, self.logger)
            return partitioner.cluster(documents, cluster_fn, self.algorithm, min_cluster_size)
        return cluster_fn(documents)

    def single_cluster(self, documents, label=ALL_LABEL):
        return self.labeler.build_cluster(f"{self.algorithm}_cluster_0", documents, 0, label=label)

    def cluster_documents(self, documents: List[Document]) -> ClusteringResult:
        raise NotImplementedError


class KMeansClusterer(BaseClusterer):
    """K-means over cosine distance with K-means++ seeding.

    Convergence means the assignments stopped changing; ``tolerance`` is kept
    in the configuration but not used numerically.

    Attributes:
        min_k (int): Smallest K tried by the automatic search
        max_k (int): Largest K tried by the automatic search
        max_iterations (int): Iteration cap for one run
        min_silhouette (float): Score below which a result is flagged
        use_optimal_k (bool): Search K by silhouette, or use the middle of the range
    """

    algorithm = 'kmeans'
    config_section = 'kmeans'

    def __init__(self, config, logger, params=None, random_state=None):
        super().__init__(config, logger, params, random_state)
        self.max_iterations = self.params.get('max_iterations', 100)
        self.tolerance = self.params.get('tolerance', 1e-6)
        self.min_k = self.params.get('min_k', 2)
        self.max_k = self.params.get('max_k', 8)
        self.min_silhouette = self.params.get('min_silhouette', 0.3)
        self.use_optimal_k = self.params.get('use_optimal_k', True)

        self.logger.info(
            f"Initialized KMeansClusterer with k range [{self.min_k}, {self.max_k}], "
            f"max_iterations={self.max_iterations}"
        )

    def cluster(self, documents: List[Document], k: int) -> List[TopicCluster]:
        """
        Clusters documents into at most ``k`` groups.

        A ``k`` larger than the number of embedded documents is reduced to
        that number.

        Raises:
            NoDocumentsError, InvalidClusterCountError, NoEmbeddingsError
        """
        if not documents:
            raise NoDocumentsError()
        if k <= 0:
            raise InvalidClusterCountError(k)

        usable = self.prepare_documents(documents)
        if k > len(usable):
            self.logger.info(f"Reducing k from {k} to {len(usable)} (number of embedded documents)")
            k = len(usable)

        return self.dispatch(usable, lambda docs: self._cluster_fixed_k(docs, k)).clusters

    def cluster_with_optimal_k(self, documents: List[Document]):
        """
        Clusters documents with K chosen by silhouette score.

        Returns:
            tuple: (clusters, SilhouetteAnalysis)
        """
        result = self.cluster_documents(documents)
        return result.clusters, result.analysis

    def cluster_documents(self, documents):
        usable = self.prepare_documents(documents)
        result = self.dispatch(usable, self._cluster_optimal_k)
        if result.analysis is None:
            result.analysis = self._analyze(result.clusters, usable)
        return result

    def _analyze(self, clusters, documents):
        embeddings_by_id = {d.id: d.embedding for d in documents}
        embeddings = []
        assignments = []
        for label, cluster in enumerate(clusters):
            for document_id in cluster.document_ids:
                embeddings.append(embeddings_by_id[document_id])
                assignments.append(label)
        analysis = analyze_distance_matrix(distance_matrix(embeddings), assignments, self.min_silhouette)
        if analysis.below_threshold:
            self.logger.warning(
                f"Silhouette score {analysis.overall_score:.3f} is below the minimum "
                f"{self.min_silhouette:.2f}"
            )
        return analysis

    def _cluster_fixed_k(self, documents, k):
        k = min(k, len(documents))
        X = np.vstack([d.embedding for d in documents])
        start_time = time.time()
        try:
            assignments, centroids, iterations = self.run_kmeans(X, k, self.make_rng())
        except Exception as e:
            self.logger.error(f"Error during K-Means clustering: {str(e)}")
            raise ClusteringError(f"K-Means clustering failed: {str(e)}") from e

        self.logger.info(
            f"K-Means with k={k} converged after {iterations} iterations "
            f"in {time.time() - start_time:.2f} seconds"
        )
        clusters = self.build_clusters(documents, assignments, centroids)
        return ClusteringResult(clusters=clusters, algorithm=self.algorithm)

    def _cluster_optimal_k(self, documents):
        n = len(documents)
        X = np.vstack([d.embedding for d in documents])
        distances = distance_matrix(X)
        rng = self.make_rng()

        if self.use_optimal_k:
            best_k, best_score, best_run, scores = self.determine_optimal_k(X, distances, rng)
        else:
            best_k = min(max((self.min_k + self.max_k) // 2, 1), n)
            best_run = self.run_kmeans(X, best_k, rng)
            self.logger.info(f"Using fixed k={best_k}")

        assignments, centroids, _ = best_run
        analysis = analyze_distance_matrix(distances, assignments, self.min_silhouette)
        if analysis.below_threshold:
            self.logger.warning(
                f"Best silhouette score {analysis.overall_score:.3f} is below the minimum "
                f"{self.min_silhouette:.2f}; consider density clustering (HDBSCAN) for this dataset"
            )

        clusters = self.build_clusters(documents, assignments, centroids)
        return ClusteringResult(clusters=clusters, algorithm=self.algorithm, analysis=analysis)

    def determine_optimal_k(self, X, distances, rng):
        """Determines the number of clusters with the highest silhouette score.

        Every candidate K in ``[min_k, max_k]`` (clamped to the number of
        points) is scored against the same precomputed distance matrix.

        Args:
            X (numpy.ndarray): Embeddings, one row per document
            distances (numpy.ndarray): Cosine distance matrix of X
            rng (numpy.random.Generator): Random source for this search

        Returns:
            tuple: (best_k, best_score, best_run, scores) where best_run is the
            (assignments, centroids, iterations) of the winning K
        """
        n = X.shape[0]
        max_k = min(self.max_k, n)
        min_k = max(min(self.min_k, max_k), 1)
        self.logger.info(f"Determining optimal k in range {min_k} to {max_k}")

        best_k = min_k
        best_score = -2.0
        best_run = None
        scores = {}
        for k in range(min_k, max_k + 1):
            run = self.run_kmeans(X, k, rng)
            score = silhouette_score(distances, run[0])
            scores[k] = score
            self.logger.debug(f"K={k}, Silhouette Score: {score:.4f}")
            if score > best_score:
                best_k, best_score, best_run = k, score, run

        self.logger.info(f"Optimal number of clusters: {best_k} (Silhouette Score: {best_score:.4f})")
        return best_k, best_score, best_run, scores

    def run_kmeans(self, X, k, rng):
        """
        One K-means run.

        Returns:
            tuple: (assignments, centroids, iterations)
        """
        centroids = self.initialize_centroids(X, k, rng)
        assignments = np.full(X.shape[0], -1)
        iterations = 0
        for iterations in range(1, self.max_iterations + 1):
            # argmin keeps the first centroid on ties
            new_assignments = np.argmin(cosine_distances(X, centroids), axis=1)
            if np.array_equal(new_assignments, assignments):
                break
            assignments = new_assignments
            centroids = self.update_centroids(X, assignments, k)
        return assignments, centroids, iterations

    def initialize_centroids(self, X, k, rng):
        """K-means++ seeding with squared cosine distance weights."""
        n = X.shape[0]
        chosen = [int(rng.integers(n))]
        for _ in range(1, k):
            nearest = cosine_distances(X, X[chosen]).min(axis=1)
            weights = nearest * nearest
            total = weights.sum()
            if total <= 0.0:
                chosen.append(int(rng.integers(n)))
                continue
            target = rng.random() * total
            idx = int(np.searchsorted(np.cumsum(weights), target, side='left'))
            chosen.append(min(idx, n - 1))
        return X[chosen].copy()

    @staticmethod
    def update_centroids(X, assignments, k):
        """Mean of each cluster's members; an empty cluster gets the zero vector."""
        centroids = np.zeros((k, X.shape[1]))
        for label in range(k):
            members = X[assignments == label]
            if len(members):
                centroids[label] = members.mean(axis=0)
        return centroids

    def build_clusters(self, documents, assignments, centroids):
        """Turns an assignment vector into TopicClusters, dropping empty clusters."""
        clusters = []
        for label in range(len(centroids)):
            members = [documents[i] for i in np.flatnonzero(assignments == label)]
            if not members:
                continue
            idx = len(clusters)
            clusters.append(self.labeler.build_cluster(f"kmeans_cluster_{idx}", members, idx, centroid=centroids[label]))

        sizes = {c.id: len(c.document_ids) for c in clusters}
        self.logger.info(f"K-Means cluster distribution: {sizes}")
        return clusters

    def auto_detect_optimal_clusters(self, documents: List[Document], max_clusters: int) -> int:
        """
        Elbow method over the within-cluster sum of squares.

        Args:
            documents: Documents to cluster
            max_clusters (int): Largest K to evaluate

        Returns:
            int: Number of clusters at the elbow
        """
        usable = self.prepare_documents(documents)
        if len(usable) < 2:
            return 1
        max_clusters = min(max_clusters, len(usable))

        embeddings_by_id = {d.id: d.embedding for d in usable}
        wcss = []
        for k in range(1, max_clusters + 1):
            clusters = self._cluster_fixed_k(usable, k).clusters
            total = 0.0
            for cluster in clusters:
                for document_id in cluster.document_ids:
                    distance = euclidean_distance(embeddings_by_id[document_id], cluster.centroid)
                    total += distance * distance
            wcss.append(total)

        if len(wcss) < 3:
            return len(wcss)

        optimal_k = 1
        max_improvement = 0.0
        for i in range(1, len(wcss) - 1):
            improvement = wcss[i - 1] - wcss[i]
            diminishing_return = wcss[i] - wcss[i + 1]
            if improvement > max_improvement and improvement > 2 * diminishing_return:
                max_improvement = improvement
                optimal_k = i + 1

        self.logger.info(f"Elbow method selected k={optimal_k} from WCSS {[round(w, 3) for w in wcss]}")
        return optimal_k


@dataclass
class DensityRegion:
    """One dense region found by density clustering."""

    member_indices: List[int]
    centroid: Optional[np.ndarray] = None


class HDBSCANClusterer(BaseClusterer):
    """HDBSCAN over a precomputed cosine distance matrix, with noise detection."""

    algorithm = 'hdbscan'
    config_section = 'hdbscan'

    def __init__(self, config, logger, params=None, random_state=None):
        """
        Initializes the HDBSCAN clusterer.

        Args:
            config: Configuration manager
            logger: Logger instance
            params (dict, optional): Overrides for the ``hdbscan`` configuration block
            random_state (int, optional): Unused by HDBSCAN, accepted for a uniform signature
        """
        super().__init__(config, logger, params, random_state)
        self.min_cluster_size = max(self.params.get('min_cluster_size', 3), 2)
        self.min_samples = self.params.get('min_samples', 1)
        self.max_clusters = self.params.get('max_clusters', 50)
        self.cluster_selection_method = self.params.get('cluster_selection_method', 'eom')
        self.cluster_selection_epsilon = self.params.get('cluster_selection_epsilon', 0.0)
        self.allow_single_cluster = self.params.get('allow_single_cluster', False)
        self.min_silhouette = config.get_quality_config().get('min_silhouette', 0.3)

        self.logger.info(
            f"Initialized HDBSCANClusterer with min_cluster_size={self.min_cluster_size}, "
            f"min_samples={self.min_samples}, metric=cosine, max_clusters={self.max_clusters}"
        )

    def cluster(self, documents: List[Document]) -> List[TopicCluster]:
        return self.cluster_documents(documents).clusters

    def cluster_with_noise(self, documents: List[Document]):
        """
        Clusters documents and reports the ones left as noise.

        Returns:
            tuple: (clusters, noise document ids)
        """
        result = self.cluster_documents(documents)
        return result.clusters, result.noise_ids

    def cluster_documents(self, documents):
        usable = self.prepare_documents(documents)
        return self.dispatch(usable, self._cluster_partition)

    def _cluster_partition(self, documents):
        if len(documents) < self.min_cluster_size:
            self.logger.info(
                f"Only {len(documents)} documents (min cluster size {self.min_cluster_size}), "
                f"returning a single cluster"
            )
            return ClusteringResult(clusters=[self.single_cluster(documents)], algorithm=self.algorithm)

        X = np.vstack([d.embedding for d in documents])
        regions, noise_indices = self.find_dense_regions(X)

        if not regions:
            self.logger.warning("No valid clusters formed. Creating a single cluster with all documents.")
            return ClusteringResult(clusters=[self.single_cluster(documents)], algorithm=self.algorithm)

        clusters = []
        for idx, region in enumerate(regions):
            members = [documents[i] for i in region.member_indices]
            clusters.append(self.labeler.build_cluster(
                f"hdbscan_cluster_{idx}", members, idx, centroid=region.centroid))

        noise_ids = [documents[i].id for i in noise_indices]
        self.logger.info(
            f"HDBSCAN found {len(clusters)} clusters, {len(noise_ids)} noise documents dropped"
        )
        return ClusteringResult(clusters=clusters, algorithm=self.algorithm, noise_ids=noise_ids)

    def find_dense_regions(self, X):
        """
        Runs HDBSCAN and extracts its regions through the public ``labels_``.

        Returns:
            tuple: (list of DensityRegion, list of noise point indices)
        """
        distances = distance_matrix(X)
        start_time = time.time()
        min_cluster_size = self.min_cluster_size
        try:
            labels = self._fit_labels(distances, min_cluster_size)
            n_clusters = len(set(labels) - {NOISE_LABEL})

            refits = 0
            max_refits = 3
            while n_clusters > self.max_clusters and refits < max_refits:
                refits += 1
                min_cluster_size = int(min_cluster_size * 1.5)
                self.logger.warning(
                    f"Too many clusters ({n_clusters}). Increasing min_cluster_size to "
                    f"{min_cluster_size} and refitting (attempt {refits}/{max_refits})"
                )
                labels = self._fit_labels(distances, min_cluster_size)
                n_clusters = len(set(labels) - {NOISE_LABEL})
        except Exception as e:
            self.logger.error(f"Error during HDBSCAN clustering: {str(e)}")
            raise ClusteringError(f"HDBSCAN clustering failed: {str(e)}") from e

        regions = []
        for label in sorted(set(labels) - {NOISE_LABEL}):
            member_indices = [int(i) for i in np.flatnonzero(labels == label)]
            regions.append(DensityRegion(member_indices=member_indices,
                                         centroid=X[member_indices].mean(axis=0)))
        noise_indices = [int(i) for i in np.flatnonzero(labels == NOISE_LABEL)]

        self.logger.info(f"HDBSCAN clustering completed in {time.time() - start_time:.2f} seconds")
        return regions, noise_indices

    def _fit_labels(self, distances, min_cluster_size):
        model = hdbscan.HDBSCAN(
            min_cluster_size=min_cluster_size,
            min_samples=self.min_samples,
            metric='precomputed',
            cluster_selection_method=self.cluster_selection_method,
            cluster_selection_epsilon=self.cluster_selection_epsilon,
            allow_single_cluster=self.allow_single_cluster,
        )
        model.fit(distances)
        return np.asarray(model.labels_)
