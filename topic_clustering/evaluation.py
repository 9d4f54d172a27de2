import json
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

import numpy as np

from .distance import cosine_distance, cosine_similarity, distance_matrix
from .exceptions import ClusteringQualityError

# b(i) when no other cluster exists. silhouette_scores never reaches it, since a
# single-cluster assignment scores 0 first; it applies to point_silhouette and
# the coherence evaluator.
NO_OTHER_CLUSTER_DISTANCE = 1.0

QUALITY_BANDS = [
    (0.71, "Excellent - Strong cluster structure"),
    (0.51, "Good - Reasonable cluster structure"),
    (0.26, "Fair - Weak cluster structure"),
    (0.0, "Poor - No substantial cluster structure"),
]
VERY_POOR_QUALITY = "Very Poor - Artificial/forced clustering"


def interpret_silhouette_score(score):
    """Maps a silhouette score to its qualitative band."""
    for lower_bound, description in QUALITY_BANDS:
        if score >= lower_bound:
            return description
    return VERY_POOR_QUALITY


def mean_intra_cluster_distance(point_idx, assignments, distances):
    """a(i): mean distance to the other members of the point's cluster, 0 for a singleton."""
    assignments = np.asarray(assignments)
    same = assignments == assignments[point_idx]
    same[point_idx] = False
    count = int(same.sum())
    if count == 0:
        return 0.0
    return float(distances[point_idx, same].sum() / count)


def nearest_cluster_distance(point_idx, assignments, distances):
    """b(i): minimum mean distance to another cluster, 1.0 if there is none."""
    assignments = np.asarray(assignments)
    own = assignments[point_idx]
    best = None
    for label in np.unique(assignments):
        if label == own:
            continue
        members = assignments == label
        mean_distance = float(distances[point_idx, members].mean())
        if best is None or mean_distance < best:
            best = mean_distance
    return NO_OTHER_CLUSTER_DISTANCE if best is None else best


def point_silhouette(point_idx, assignments, distances):
    """Silhouette of a single point from a(i) and b(i)."""
    a = mean_intra_cluster_distance(point_idx, assignments, distances)
    b = nearest_cluster_distance(point_idx, assignments, distances)
    if a < b:
        return 1.0 - a / b
    if a > b:
        return b / a - 1.0
    return 0.0


def silhouette_scores(distances, assignments):
    """
    Per-point silhouette scores.

    An assignment with a single cluster has no separation to measure and
    scores 0 for every point.

    Args:
        distances (numpy.ndarray): N x N distance matrix
        assignments: Cluster label per point

    Returns:
        numpy.ndarray: Score per point
    """
    distances = np.asarray(distances, dtype=np.float64)
    assignments = np.asarray(assignments)
    n = len(assignments)
    if n == 0 or len(np.unique(assignments)) < 2:
        return np.zeros(n)
    return np.array([point_silhouette(i, assignments, distances) for i in range(n)])


def silhouette_score(distances, assignments):
    """Mean silhouette over all points (0.0 for no points)."""
    scores = silhouette_scores(distances, assignments)
    if scores.size == 0:
        return 0.0
    return float(scores.mean())


@dataclass
class SilhouetteAnalysis:
    """Silhouette quality report for one clustering run."""

    overall_score: float
    cluster_scores: Dict[int, float]
    point_scores: List[float]
    assignments: List[int]
    num_clusters: int
    num_points: int
    quality: str
    min_silhouette: Optional[float] = None

    @property
    def below_threshold(self):
        return self.min_silhouette is not None and self.overall_score < self.min_silhouette

    def to_dict(self):
        return {
            'overall_score': self.overall_score,
            'cluster_scores': {str(k): v for k, v in self.cluster_scores.items()},
            'num_clusters': self.num_clusters,
            'num_points': self.num_points,
            'quality': self.quality,
            'min_silhouette': self.min_silhouette,
            'below_threshold': self.below_threshold,
        }


def analyze_distance_matrix(distances, assignments, min_silhouette=None):
    """Builds a SilhouetteAnalysis from an already computed distance matrix."""
    assignments = np.asarray(assignments)
    point_scores = silhouette_scores(distances, assignments)
    overall = float(point_scores.mean()) if point_scores.size else 0.0
    cluster_scores = {
        int(label): float(point_scores[assignments == label].mean())
        for label in np.unique(assignments)
    }
    return SilhouetteAnalysis(
        overall_score=overall,
        cluster_scores=cluster_scores,
        point_scores=point_scores.tolist(),
        assignments=[int(label) for label in assignments],
        num_clusters=len(cluster_scores),
        num_points=len(assignments),
        quality=interpret_silhouette_score(overall),
        min_silhouette=min_silhouette,
    )


def perform_silhouette_analysis(embeddings, assignments, min_silhouette=None):
    """
    Full silhouette analysis of an assignment over embeddings.

    The cosine distance matrix is built once and shared by every score.
    """
    distances = distance_matrix(list(embeddings), metric='cosine')
    return analyze_distance_matrix(distances, assignments, min_silhouette)


class ClusteringEvaluator:
    """Rebuilds quality reports from returned cluster sets."""

    def __init__(self, config, logger):
        self.config = config
        self.logger = logger
        self.min_silhouette = config.get_quality_config().get('min_silhouette', 0.3)

    def analyze_clusters(self, clusters, documents):
        """
        Silhouette analysis of a cluster set over the documents it covers.

        Documents that ended up in no cluster (density noise) are excluded.

        Args:
            clusters: List of TopicCluster
            documents: Documents the clusters were built from

        Returns:
            SilhouetteAnalysis or None when no embedded document is covered
        """
        embeddings_by_id = {doc.id: doc.embedding for doc in documents if doc.has_embedding}

        embeddings = []
        assignments = []
        for label, cluster in enumerate(clusters):
            for document_id in cluster.document_ids:
                if document_id in embeddings_by_id:
                    embeddings.append(embeddings_by_id[document_id])
                    assignments.append(label)

        if not embeddings:
            self.logger.warning("No clustered documents with embeddings to analyze")
            return None

        analysis = perform_silhouette_analysis(embeddings, assignments, self.min_silhouette)
        self.logger.info(
            f"Silhouette analysis: {analysis.overall_score:.3f} ({analysis.quality}) "
            f"over {analysis.num_points} documents in {analysis.num_clusters} clusters"
        )
        return analysis


@dataclass
class ClusterCoherenceMetrics:
    """Cohesion, separation and silhouette metrics for a cluster set."""

    num_clusters: int = 0
    num_articles: int = 0
    avg_cluster_size: float = 0.0
    avg_silhouette: float = 0.0
    cluster_silhouettes: List[float] = field(default_factory=list)
    avg_intra_cluster_similarity: float = 0.0
    intra_cluster_similarities: List[float] = field(default_factory=list)
    avg_inter_cluster_distance: float = 0.0
    coherence_grade: str = ''
    issues: List[str] = field(default_factory=list)
    passed: bool = False

    def to_dict(self):
        return dict(self.__dict__)


class ClusterCoherenceEvaluator:
    """
    Grades a cluster set by cohesion (intra-cluster similarity), separation
    (centroid distance) and per-cluster silhouette.
    """

    def __init__(self, config, logger):
        self.config = config
        self.logger = logger
        quality_config = config.get_quality_config()
        self.min_silhouette = quality_config.get('min_silhouette', 0.3)
        self.min_intra_cluster_similarity = quality_config.get('min_intra_cluster_similarity', 0.5)
        self.min_inter_cluster_distance = quality_config.get('min_inter_cluster_distance', 0.3)
        self.grade_thresholds = quality_config.get('grade_thresholds', {'A': 0.5, 'B': 0.4, 'C': 0.3})

    def evaluate(self, clusters, embeddings_by_id):
        """
        Evaluates cluster coherence.

        Args:
            clusters: List of TopicCluster
            embeddings_by_id (dict): Document id to embedding

        Returns:
            ClusterCoherenceMetrics
        """
        metrics = ClusterCoherenceMetrics(num_clusters=len(clusters))
        metrics.num_articles = sum(len(c.document_ids) for c in clusters)
        if metrics.num_articles > 0:
            metrics.avg_cluster_size = metrics.num_articles / metrics.num_clusters

        for idx, cluster in enumerate(clusters):
            if not cluster.document_ids:
                metrics.issues.append(f"Cluster {idx} ({cluster.label}) is empty")
                continue

            intra = self._intra_cluster_similarity(cluster, embeddings_by_id)
            metrics.intra_cluster_similarities.append(intra)
            if intra < self.min_intra_cluster_similarity:
                metrics.issues.append(
                    f"Cluster {idx} ({cluster.label}) has low cohesion: "
                    f"{intra:.2f} (min: {self.min_intra_cluster_similarity:.2f})"
                )

            silhouette = self._cluster_silhouette(idx, clusters, embeddings_by_id)
            metrics.cluster_silhouettes.append(silhouette)
            if silhouette < self.min_silhouette:
                metrics.issues.append(
                    f"Cluster {idx} ({cluster.label}) has low silhouette score: "
                    f"{silhouette:.2f} (min: {self.min_silhouette:.2f})"
                )

        if clusters:
            metrics.avg_intra_cluster_similarity = sum(metrics.intra_cluster_similarities) / len(clusters)
            metrics.avg_silhouette = sum(metrics.cluster_silhouettes) / len(clusters)

        metrics.avg_inter_cluster_distance = self._inter_cluster_distance(clusters)
        if metrics.avg_inter_cluster_distance < self.min_inter_cluster_distance:
            metrics.issues.append(
                f"Low cluster separation: {metrics.avg_inter_cluster_distance:.2f} "
                f"(min: {self.min_inter_cluster_distance:.2f})"
            )

        metrics.coherence_grade = self.grade(metrics)
        metrics.passed = (
            metrics.avg_silhouette >= self.min_silhouette
            and metrics.avg_intra_cluster_similarity >= self.min_intra_cluster_similarity
            and not metrics.issues
        )
        self.logger.info(
            f"Cluster coherence grade {metrics.coherence_grade}: silhouette={metrics.avg_silhouette:.3f}, "
            f"cohesion={metrics.avg_intra_cluster_similarity:.3f}, "
            f"separation={metrics.avg_inter_cluster_distance:.3f}"
        )
        return metrics

    def grade(self, metrics):
        if (metrics.avg_silhouette >= self.grade_thresholds['A']
                and metrics.avg_intra_cluster_similarity >= self.min_intra_cluster_similarity + 0.1):
            return "A - EXCELLENT"
        if (metrics.avg_silhouette >= self.grade_thresholds['B']
                and metrics.avg_intra_cluster_similarity >= self.min_intra_cluster_similarity):
            return "B - GOOD"
        if metrics.avg_silhouette >= self.grade_thresholds['C']:
            return "C - FAIR"
        return "D - POOR"

    def _intra_cluster_similarity(self, cluster, embeddings_by_id):
        vectors = [embeddings_by_id[i] for i in cluster.document_ids if i in embeddings_by_id]
        if len(vectors) <= 1:
            return 1.0
        total = 0.0
        count = 0
        for i in range(len(vectors)):
            for j in range(i + 1, len(vectors)):
                total += cosine_similarity(vectors[i], vectors[j])
                count += 1
        return total / count

    def _cluster_silhouette(self, cluster_idx, clusters, embeddings_by_id):
        cluster = clusters[cluster_idx]
        total = 0.0
        valid = 0
        for document_id in cluster.document_ids:
            embedding = embeddings_by_id.get(document_id)
            if embedding is None:
                continue

            own = [cosine_distance(embedding, embeddings_by_id[other])
                   for other in cluster.document_ids
                   if other != document_id and other in embeddings_by_id]
            a = sum(own) / len(own) if own else 0.0

            b = None
            for other_idx, other_cluster in enumerate(clusters):
                if other_idx == cluster_idx:
                    continue
                others = [cosine_distance(embedding, embeddings_by_id[other])
                          for other in other_cluster.document_ids if other in embeddings_by_id]
                if others:
                    mean_distance = sum(others) / len(others)
                    if b is None or mean_distance < b:
                        b = mean_distance
            if b is None:
                b = NO_OTHER_CLUSTER_DISTANCE

            if a < b:
                total += 1.0 - a / b
            elif a > b:
                total += b / a - 1.0
            valid += 1

        return total / valid if valid else 0.0

    def _inter_cluster_distance(self, clusters):
        if len(clusters) <= 1:
            return 1.0
        total = 0.0
        count = 0
        for i in range(len(clusters)):
            for j in range(i + 1, len(clusters)):
                a, b = clusters[i].centroid, clusters[j].centroid
                if a is not None and b is not None and len(a) and len(b):
                    total += cosine_distance(a, b)
                    count += 1
        return total / count if count else 0.0


class ClusteringQualityGate:
    """Validation checkpoint between clustering and downstream summarization."""

    def __init__(self, config, logger):
        self.config = config
        self.logger = logger
        quality_config = config.get_quality_config()
        self.enabled = quality_config.get('gate_enabled', True)
        self.min_silhouette = quality_config.get('min_silhouette', 0.3)
        self.block_on_failure = quality_config.get('block_on_failure', False)
        self.coherence_evaluator = ClusterCoherenceEvaluator(config, logger)
        self.last_metrics = None

    def validate(self, clusters, embeddings_by_id):
        """
        Checks a cluster set against the configured minimum silhouette.

        Returns:
            bool: True if quality is acceptable (or the gate is disabled)

        Raises:
            ClusteringQualityError: If the gate is blocking and quality is too low
        """
        if not self.enabled:
            return True

        metrics = self.coherence_evaluator.evaluate(clusters, embeddings_by_id)
        self.last_metrics = metrics

        if metrics.avg_silhouette < self.min_silhouette:
            message = (
                f"clustering quality below threshold: silhouette={metrics.avg_silhouette:.3f} "
                f"(min: {self.min_silhouette:.3f})"
            )
            if self.block_on_failure:
                self.logger.error(f"Quality gate failed: {message}")
                raise ClusteringQualityError(message, metrics)
            self.logger.warning(f"Quality gate warning (non-blocking): {message}")
            return False

        for issue in metrics.issues:
            self.logger.warning(f"Clustering issue: {issue}")
        if metrics.issues and self.block_on_failure and metrics.avg_silhouette < self.min_silhouette * 1.2:
            self.logger.error("Quality gate failed: clustering quality issues detected")
            raise ClusteringQualityError("clustering quality issues detected", metrics)

        self.logger.info("Clustering quality acceptable")
        return True


class EvaluationReporter:
    """Markdown and JSON reports of a clustering run."""

    def __init__(self, config, logger, results_dir):
        self.config = config
        self.logger = logger
        self.results_dir = results_dir

    def generate_report(self, name, clusters, analysis=None, coherence=None, strategy=None, noise_count=0):
        """Writes ``<name>_report.md`` to the results directory and returns its path."""
        lines = [
            f"# {name} Clustering Report",
            f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            "",
        ]
        if strategy:
            lines.append(f"- **Strategy**: {strategy}")
        lines.append(f"- **Clusters**: {len(clusters)}")
        lines.append(f"- **Documents**: {sum(c.size for c in clusters)}")
        if noise_count:
            lines.append(f"- **Noise documents**: {noise_count}")

        lines.extend(self._format_clusters(clusters))
        if analysis is not None:
            lines.extend(self._format_silhouette(analysis))
        if coherence is not None:
            lines.extend(self._format_coherence(coherence))

        os.makedirs(self.results_dir, exist_ok=True)
        report_path = os.path.join(self.results_dir, f"{name}_report.md")
        with open(report_path, 'w', encoding='utf-8') as f:
            f.write('\n'.join(lines) + '\n')

        self.logger.info(f"Report saved: {report_path}")
        return report_path

    def save_clusters(self, name, clusters, analysis=None, strategy=None, noise_ids=None):
        """Writes the cluster set as JSON and returns the file path."""
        payload = {
            'strategy': strategy,
            'generated_at': datetime.now().isoformat(),
            'clusters': [cluster.to_dict() for cluster in clusters],
            'noise_ids': list(noise_ids or []),
            'analysis': analysis.to_dict() if analysis is not None else None,
        }
        os.makedirs(self.results_dir, exist_ok=True)
        output_path = os.path.join(self.results_dir, f"{name}_clusters.json")
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(payload, f, indent=2)

        self.logger.info(f"Clusters saved: {output_path}")
        return output_path

    def _format_clusters(self, clusters):
        lines = [
            "",
            "## Clusters",
            "",
            "| ID | Label | Size | Keywords |",
            "|----|-------|------|----------|",
        ]
        for cluster in sorted(clusters, key=lambda c: c.size, reverse=True):
            lines.append(f"| {cluster.id} | {cluster.label} | {cluster.size} | {', '.join(cluster.keywords)} |")
        return lines

    def _format_silhouette(self, analysis):
        lines = [
            "",
            "## Silhouette Analysis",
            "",
            f"- **Overall Score**: {analysis.overall_score:.4f}",
            f"- **Quality**: {analysis.quality}",
        ]
        if analysis.below_threshold:
            lines.append(f"- **Warning**: below the minimum of {analysis.min_silhouette:.2f}")
        for label, score in sorted(analysis.cluster_scores.items()):
            lines.append(f"- Cluster {label}: {score:.3f}")
        return lines

    def _format_coherence(self, metrics):
        lines = [
            "",
            "## Cluster Coherence",
            "",
            f"- **Grade**: {metrics.coherence_grade}",
            f"- **Avg Silhouette**: {metrics.avg_silhouette:.3f}",
            f"- **Avg Intra-Cluster Similarity**: {metrics.avg_intra_cluster_similarity:.3f}",
            f"- **Avg Inter-Cluster Distance**: {metrics.avg_inter_cluster_distance:.3f}",
        ]
        if metrics.issues:
            lines.extend(["", "### Issues", ""])
            lines.extend(f"- {issue}" for issue in metrics.issues)
        else:
            lines.extend(["", "No clustering issues detected"])
        return lines
