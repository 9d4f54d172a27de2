"""
Similarity search used to build the document graph.

The production vector index lives outside this package; anything that
implements ``SimilaritySearcher`` can be bound to the graph clusterers.
"""

from typing import Iterable, List, Optional, Protocol, Sequence

import numpy as np

from .distance import cosine_distances
from .models import SearchResult


class SimilaritySearcher(Protocol):
    """Nearest-neighbour lookup over document embeddings."""

    def search_similar(self, embedding: Sequence[float], limit: int, threshold: float,
                       exclude_ids: Optional[Iterable[str]] = None) -> List[SearchResult]:
        """
        Finds the documents most similar to ``embedding``.

        Args:
            embedding: Query vector
            limit: Maximum number of results
            threshold: Minimum cosine similarity of a result
            exclude_ids: Document ids that must not be returned

        Returns:
            list: SearchResult items, most similar first
        """
        ...


class InMemorySimilaritySearcher:
    """Brute-force cosine search over a fixed set of documents."""

    def __init__(self, documents):
        embedded = [d for d in documents if d.has_embedding]
        self.ids = [d.id for d in embedded]
        self.matrix = np.vstack([d.embedding for d in embedded]) if embedded else np.zeros((0, 0))

    def search_similar(self, embedding, limit, threshold, exclude_ids=None):
        if not self.ids or limit <= 0:
            return []
        query = np.asarray(embedding, dtype=np.float64).reshape(1, -1)
        if query.shape[1] != self.matrix.shape[1]:
            return []

        similarities = 1.0 - cosine_distances(query, self.matrix)[0]
        excluded = set(exclude_ids or [])

        results = []
        # stable sort keeps insertion order among equal scores
        for idx in np.argsort(-similarities, kind='stable'):
            document_id = self.ids[idx]
            if document_id in excluded or similarities[idx] < threshold:
                continue
            results.append(SearchResult(document_id=document_id, similarity=float(similarities[idx])))
            if len(results) >= limit:
                break
        return results
