import re
from collections import Counter
from datetime import datetime

import numpy as np

from .models import TopicCluster

WORD_PATTERN = re.compile(r'[A-Za-z]+')
MIN_WORD_LENGTH = 4
CONTENT_PREVIEW_CHARS = 200


def extract_words(text):
    """Splits text into runs of ASCII letters, keeping case."""
    if not text:
        return []
    return WORD_PATTERN.findall(text)


class ClusterLabeler:
    """Word-frequency labels, keywords and centroids for clusters."""

    def __init__(self, config=None, logger=None, max_keywords=5):
        self.config = config
        self.logger = logger
        self.max_keywords = max_keywords

    def generate_label(self, documents, index):
        """
        Labels a cluster after the most frequent admissible title word.

        Ties go to the word encountered first; a cluster without admissible
        words becomes ``Topic <index + 1>``.
        """
        counts = Counter()
        for document in documents:
            counts.update(w for w in extract_words(document.title) if len(w) >= MIN_WORD_LENGTH)

        if not counts:
            return f"Topic {index + 1}"
        word, _ = counts.most_common(1)[0]
        return f"{word} & Related"

    def extract_keywords(self, documents):
        """Top words over titles and the first characters of each body."""
        counts = Counter()
        for document in documents:
            words = extract_words(document.title)
            words += extract_words((document.body or '')[:CONTENT_PREVIEW_CHARS])
            counts.update(w for w in words if len(w) >= MIN_WORD_LENGTH)
        return [word for word, _ in counts.most_common(self.max_keywords)]

    @staticmethod
    def calculate_centroid(documents):
        embeddings = [d.embedding for d in documents if d.has_embedding]
        if not embeddings:
            return np.zeros(0)
        return np.mean(np.vstack(embeddings), axis=0)

    def build_cluster(self, cluster_id, documents, index, centroid=None, label=None):
        """
        Creates a TopicCluster from its member documents.

        Args:
            cluster_id (str): Identifier of the cluster
            documents (list): Member documents
            index (int): Position of the cluster, used for fallback labels
            centroid (numpy.ndarray, optional): Precomputed centroid
            label (str, optional): Fixed label instead of the word heuristic

        Returns:
            TopicCluster
        """
        if centroid is None:
            centroid = self.calculate_centroid(documents)
        return TopicCluster(
            id=cluster_id,
            label=label or self.generate_label(documents, index),
            keywords=self.extract_keywords(documents),
            document_ids=[d.id for d in documents],
            centroid=np.asarray(centroid, dtype=np.float64),
            created_at=datetime.now(),
        )
