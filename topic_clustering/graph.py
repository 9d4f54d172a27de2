import concurrent.futures
import dataclasses
import time
from typing import Dict, List, Optional

import networkx as nx

from .clusterers import BaseClusterer
from .exceptions import ClusteringError, NoDocumentsError
from .models import ClusteringResult, Document
from .themes import ALL_LABEL, merge_small_clusters


class GraphClusterer(BaseClusterer):
    """
    Community detection over a k-nearest-neighbour similarity graph.

    Neighbour lookups go through the bound similarity searcher, fanned out
    over a thread pool. A failed or late lookup leaves its document isolated.
    Subclasses implement ``find_communities``.
    """

    default_min_similarity = 0.3
    default_max_neighbors = 10

    def __init__(self, config, logger, searcher, params=None, random_state=None):
        super().__init__(config, logger, params, random_state)
        if searcher is None:
            raise ClusteringError(f"{self.__class__.__name__} requires a similarity searcher")
        self.searcher = searcher
        self.min_similarity = self.params.get('min_similarity', self.default_min_similarity)
        self.max_neighbors = self.params.get('max_neighbors', self.default_max_neighbors)
        self.min_cluster_size = self.params.get('min_cluster_size', 2)
        self.search_workers = self.params.get('search_workers', 4)

    def cluster_articles(self, documents: List[Document], embeddings_by_id: Optional[Dict] = None,
                         timeout: Optional[float] = None):
        """
        Clusters documents by graph community detection.

        Args:
            documents: Documents to cluster
            embeddings_by_id (dict, optional): Document id to embedding; the
                documents' own embeddings are used when omitted
            timeout (float, optional): Seconds allowed for all similarity searches

        Returns:
            list: TopicClusters
        """
        return self.cluster_documents(documents, embeddings_by_id, timeout).clusters

    def cluster_documents(self, documents, embeddings_by_id=None, timeout=None):
        if not documents:
            raise NoDocumentsError()
        if embeddings_by_id is not None:
            documents = [dataclasses.replace(d, embedding=embeddings_by_id.get(d.id)) for d in documents]
        usable = self.prepare_documents(documents)

        deadline = time.monotonic() + timeout if timeout is not None else None
        if self.tag_aware:
            return self.dispatch(usable, lambda docs: self._detect(docs, deadline), self.min_cluster_size)

        result = self._detect(usable, deadline)
        result.clusters = merge_small_clusters(result.clusters, usable, self.min_cluster_size,
                                               self.algorithm, self.labeler)
        self.logger.info(f"{self.algorithm} clustering produced {len(result.clusters)} clusters")
        return result

    def _detect(self, documents, deadline):
        graph = self.build_graph(documents, deadline)
        if graph.number_of_edges() == 0:
            self.logger.info("Similarity graph has no edges, returning a single cluster")
            cluster = self.labeler.build_cluster(f"{self.algorithm}_cluster_all", documents, 0, label=ALL_LABEL)
            return ClusteringResult(clusters=[cluster], algorithm=self.algorithm)

        order = {d.id: i for i, d in enumerate(documents)}
        communities = self.find_communities(graph, [d.id for d in documents])
        communities = sorted((sorted(c, key=order.get) for c in communities), key=lambda c: order[c[0]])

        documents_by_id = {d.id: d for d in documents}
        clusters = []
        for idx, members in enumerate(communities):
            clusters.append(self.labeler.build_cluster(
                f"{self.algorithm}_cluster_{idx}", [documents_by_id[m] for m in members], idx))
        return ClusteringResult(clusters=clusters, algorithm=self.algorithm)

    def find_communities(self, graph, node_order):
        raise NotImplementedError

    def build_graph(self, documents, deadline=None):
        """
        Builds the weighted similarity graph.

        Edges are added by the calling thread in document order, so the graph
        does not depend on the order in which searches complete.
        """
        graph = nx.Graph()
        graph.add_nodes_from(d.id for d in documents)
        member_ids = set(graph.nodes)

        neighbours = self._search_neighbours(documents, deadline)
        for document, results in zip(documents, neighbours):
            for result in results or []:
                other = result.document_id
                if other == document.id or other not in member_ids:
                    continue
                if result.similarity < self.min_similarity or graph.has_edge(document.id, other):
                    continue
                graph.add_edge(document.id, other, weight=float(result.similarity))

        self.logger.info(
            f"Built similarity graph with {graph.number_of_nodes()} nodes and "
            f"{graph.number_of_edges()} edges (min similarity {self.min_similarity})"
        )
        return graph

    def _search(self, document):
        return self.searcher.search_similar(document.embedding, self.max_neighbors,
                                            self.min_similarity, [document.id])

    def _search_neighbours(self, documents, deadline):
        results = [None] * len(documents)

        if self.search_workers <= 1:
            for idx, document in enumerate(documents):
                if deadline is not None and time.monotonic() >= deadline:
                    self.logger.warning(
                        f"Similarity search deadline reached, {len(documents) - idx} documents left without edges"
                    )
                    break
                try:
                    results[idx] = self._search(document)
                except Exception as e:
                    self.logger.warning(f"Similarity search failed for {document.id}: {e}")
            return results

        executor = concurrent.futures.ThreadPoolExecutor(max_workers=self.search_workers)
        try:
            future_to_index = {executor.submit(self._search, d): i for i, d in enumerate(documents)}
            remaining = None if deadline is None else max(deadline - time.monotonic(), 0.0)
            try:
                for future in concurrent.futures.as_completed(future_to_index, timeout=remaining):
                    idx = future_to_index[future]
                    try:
                        results[idx] = future.result()
                    except Exception as e:
                        self.logger.warning(f"Similarity search failed for {documents[idx].id}: {e}")
            except concurrent.futures.TimeoutError:
                pending = sum(1 for f in future_to_index if not f.done())
                self.logger.warning(f"Similarity search deadline reached, {pending} documents left without edges")
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return results


class LouvainClusterer(GraphClusterer):
    """Louvain modularity optimisation over the weighted similarity graph.

    A resolution above 1.0 favours more, smaller communities; below 1.0
    fewer, larger ones.
    """

    algorithm = 'louvain'
    config_section = 'louvain'

    def __init__(self, config, logger, searcher, params=None, random_state=None):
        super().__init__(config, logger, searcher, params, random_state)
        self.resolution = self.params.get('resolution', 1.0)
        self.logger.info(
            f"Initialized LouvainClusterer with resolution={self.resolution}, "
            f"min_similarity={self.min_similarity}, max_neighbors={self.max_neighbors}"
        )

    def find_communities(self, graph, node_order):
        # networkx falls back to the global random module for seed=None
        seed = int(self.make_rng().integers(2 ** 32))
        communities = nx.community.louvain_communities(
            graph, weight='weight', resolution=self.resolution, seed=seed)
        modularity = nx.community.modularity(graph, communities, weight='weight', resolution=self.resolution)
        self.logger.info(f"Louvain found {len(communities)} communities (modularity Q={modularity:.4f})")
        return communities


class SemanticClusterer(GraphClusterer):
    """Connected components of a thresholded similarity graph."""

    algorithm = 'semantic'
    config_section = 'semantic'
    default_min_similarity = 0.7
    default_max_neighbors = 5

    def find_communities(self, graph, node_order):
        visited = set()
        components = []
        for start in node_order:
            if start in visited:
                continue
            visited.add(start)
            stack = [start]
            component = []
            while stack:
                node = stack.pop()
                component.append(node)
                for neighbour in graph.neighbors(node):
                    if neighbour not in visited:
                        visited.add(neighbour)
                        stack.append(neighbour)
            components.append(component)

        self.logger.info(f"Found {len(components)} connected components")
        return components
