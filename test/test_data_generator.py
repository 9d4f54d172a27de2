#!/usr/bin/env python3
"""
Test Data Generator for the Topic Clustering Engine
Creates news articles with synthetic embeddings grouped around known topics.
"""

import json
import os
import sys
import time

import numpy as np
from sklearn.datasets import make_blobs

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from topic_clustering.models import Document, SearchResult

# Three topic centres 120 degrees apart on a circle of radius 10
BLOB_CENTERS = [[10.0, 0.0], [-5.0, 8.660254], [-5.0, -8.660254]]


class ArticleDataGenerator:
    """Generate news articles whose embeddings cluster by topic."""

    def __init__(self, random_state=42):
        self.random_state = random_state
        self.topic_titles = [
            ["Bitcoin price rally continues", "Bitcoin miners expand capacity",
             "Crypto exchange lists Bitcoin futures"],
            ["Election polls tighten ahead of vote", "Senate passes election reform",
             "Election turnout reaches record"],
            ["Football season opens with upset", "Football transfer window closes",
             "Coach praises football academy"],
        ]

    def generate_documents(self, n_samples=30, cluster_std=0.5, theme=None, id_prefix="doc"):
        """
        Generates documents around the three topic centres.

        Returns:
            tuple: (documents, true topic label per document)
        """
        X, y = make_blobs(n_samples=n_samples, centers=BLOB_CENTERS, cluster_std=cluster_std,
                          random_state=self.random_state)
        documents = []
        for i, (embedding, label) in enumerate(zip(X, y)):
            titles = self.topic_titles[label]
            title = titles[i % len(titles)]
            documents.append(Document(
                id=f"{id_prefix}_{i}",
                title=title,
                body=f"{title}. Analysts expect further developments this week.",
                embedding=embedding,
                theme=theme,
            ))
        return documents, y

    def save_to_jsonl(self, documents, filename):
        """Writes documents as JSON Lines, one record per article."""
        directory = os.path.dirname(filename)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(filename, 'w', encoding='utf-8') as f:
            for document in documents:
                record = {
                    'id': document.id,
                    'title': document.title,
                    'body': document.body,
                    'embedding': document.embedding.tolist() if document.embedding is not None else None,
                    'theme': document.theme,
                }
                f.write(json.dumps(record) + '\n')
        print(f"✅ Saved {len(documents)} articles to {filename}")
        return filename


def make_blob_documents(n_samples=30, cluster_std=0.5, random_state=42, theme=None, id_prefix="doc"):
    return ArticleDataGenerator(random_state).generate_documents(n_samples, cluster_std, theme, id_prefix)


def make_graph_documents(n):
    """Documents with distinct embeddings so a MockSearcher can recognise them."""
    return [Document(id=str(i), title=f"Story number {i}", embedding=[float(i), 1.0, 0.5])
            for i in range(1, n + 1)]


class MockSearcher:
    """Similarity searcher answering from a fixed neighbour table.

    ``neighbours`` maps a document id to ``(other_id, similarity)`` pairs.
    Documents in ``failing_ids`` raise on lookup; ``delay`` slows every call.
    """

    def __init__(self, documents, neighbours=None, failing_ids=None, delay=0.0):
        self.neighbours = neighbours or {}
        self.failing_ids = set(failing_ids or [])
        self.delay = delay
        self.calls = []
        self.embedding_to_id = {tuple(np.asarray(d.embedding).tolist()): d.id for d in documents}

    def search_similar(self, embedding, limit, threshold, exclude_ids=None):
        if self.delay:
            time.sleep(self.delay)
        document_id = self.embedding_to_id.get(tuple(np.asarray(embedding).tolist()))
        excluded = list(exclude_ids or [])
        self.calls.append((document_id, limit, threshold, excluded))
        if document_id in self.failing_ids:
            raise ConnectionError(f"vector index unavailable for {document_id}")
        results = [SearchResult(other, similarity)
                   for other, similarity in self.neighbours.get(document_id, [])
                   if similarity >= threshold and other not in excluded]
        return results[:limit]


def main():
    generator = ArticleDataGenerator()
    documents, labels = generator.generate_documents(n_samples=60)

    print("\n📊 Topic distribution:")
    for label, count in zip(*np.unique(labels, return_counts=True)):
        print(f"  Topic {label}: {count} ({count / len(labels) * 100:.1f}%)")

    generator.save_to_jsonl(documents, "test/data/test_articles.jsonl")
    print("\n✅ Test data generation complete!")


if __name__ == "__main__":
    main()
