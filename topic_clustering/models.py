"""
Data model shared by every clusterer.

Documents are read-only inputs; TopicCluster and ClusteringResult are created
per clustering run and handed back to the caller.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import numpy as np


@dataclass
class Document:
    """A document to cluster: identifier, text metadata and its embedding."""

    id: str
    title: str = ''
    body: str = ''
    embedding: Optional[np.ndarray] = None
    theme: Optional[str] = None

    def __post_init__(self):
        if self.embedding is not None:
            self.embedding = np.asarray(self.embedding, dtype=np.float64)

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None and self.embedding.size > 0

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> 'Document':
        """Builds a document from a plain record (JSON row, DataFrame row)."""
        def text(key):
            value = record.get(key)
            # missing cells arrive as NaN from DataFrame rows
            if value is None or (isinstance(value, float) and np.isnan(value)):
                return None
            return str(value)

        return cls(
            id=str(record['id']),
            title=text('title') or '',
            body=text('body') or text('cleaned_text') or '',
            embedding=record.get('embedding'),
            theme=text('theme') or None,
        )


@dataclass
class TopicCluster:
    """
    A labelled group of documents.

    Attributes:
        id: Identifier unique within a run (e.g. ``kmeans_cluster_3``)
        label: Human readable label
        keywords: Up to five extracted keywords
        document_ids: Member document identifiers
        centroid: Mean embedding of the members
        created_at: Creation timestamp
    """

    id: str
    label: str
    keywords: List[str] = field(default_factory=list)
    document_ids: List[str] = field(default_factory=list)
    centroid: Optional[np.ndarray] = None
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def size(self) -> int:
        return len(self.document_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'label': self.label,
            'keywords': list(self.keywords),
            'document_ids': list(self.document_ids),
            'centroid': self.centroid.tolist() if self.centroid is not None else [],
            'created_at': self.created_at.isoformat(),
        }


@dataclass
class SearchResult:
    """One neighbour returned by a similarity search."""

    document_id: str
    similarity: float


@dataclass
class ClusteringResult:
    """
    Output of one clustering run over a set of documents.

    ``analysis`` is the silhouette quality report when the algorithm produced
    one; ``noise_ids`` lists documents a density run left unassigned.
    """

    clusters: List[TopicCluster]
    algorithm: str
    analysis: Optional[Any] = None
    noise_ids: List[str] = field(default_factory=list)
