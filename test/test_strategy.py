#!/usr/bin/env python3
"""
test/test_strategy.py
Strategy Selection and Adaptive Clustering Tests
"""

import os
import sys
import time
from unittest.mock import Mock, patch

import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from config import ConfigManager
from topic_clustering.clusterers import HDBSCANClusterer
from topic_clustering.exceptions import (
    ClusteringError,
    NoDocumentsError,
    NoEmbeddingsError,
    UnknownStrategyError,
)
from topic_clustering.models import Document
from topic_clustering.search import InMemorySimilaritySearcher
from topic_clustering.strategy import (
    AdaptiveClusterer,
    AlgorithmOutcome,
    ClusteringStrategy,
    StrategyComparison,
    StrategySelector,
)
from test_data_generator import make_blob_documents


def random_documents(n, dimension=8, seed=0):
    rng = np.random.default_rng(seed)
    return [Document(id=str(i), title=f"Article {i}", embedding=rng.normal(size=dimension)) for i in range(n)]


class TestStrategySelector:
    """Test suite for StrategySelector class."""

    def setup_method(self):
        self.start_time = time.time()
        self.config = ConfigManager()
        self.mock_logger = Mock()
        self.selector = StrategySelector(self.config, self.mock_logger)

    def teardown_method(self):
        execution_time = time.time() - self.start_time
        print(f"\n⏱️  Test execution time: {execution_time:.3f}s")

    def test_small_datasets_use_kmeans(self):
        print("\n🧪 Testing small dataset selection...")

        for n in range(1, 8):
            assert self.selector.select_strategy(random_documents(n)) is ClusteringStrategy.KMEANS

        print("✅ Fewer than 8 documents select K-means")

    def test_large_datasets_use_hdbscan(self):
        for n in (15, 20, 40):
            assert self.selector.select_strategy(random_documents(n)) is ClusteringStrategy.HDBSCAN

    def test_medium_datasets_decide_by_diversity(self):
        print("\n🧪 Testing diversity-based selection...")

        documents = random_documents(10)
        with patch.object(StrategySelector, 'calculate_dataset_diversity', return_value=0.61):
            assert self.selector.select_strategy(documents) is ClusteringStrategy.HDBSCAN
        with patch.object(StrategySelector, 'calculate_dataset_diversity', return_value=0.6):
            assert self.selector.select_strategy(documents) is ClusteringStrategy.KMEANS

        print("✅ Diversity threshold is strict")

    def test_medium_dataset_diversity_end_to_end(self):
        """Real diversity of 10 vectors drives the medium-size decision."""
        print("\n🧪 Testing unpatched diversity selection...")

        clustered = [Document(id=str(i), embedding=[1.0, 0.01 * i]) for i in range(10)]
        opposed = ([Document(id=f"east_{i}", embedding=[1.0, 0.01 * i]) for i in range(5)]
                   + [Document(id=f"west_{i}", embedding=[-1.0, 0.01 * i]) for i in range(5)])

        assert self.selector.calculate_dataset_diversity(clustered) < 0.01
        # 25 of the 45 pairs sit at distance ~2, the most 10 vectors can spread
        opposed_diversity = self.selector.calculate_dataset_diversity(opposed)
        assert opposed_diversity == pytest.approx(50 / 45 / 2, abs=5e-3)

        assert self.selector.select_strategy(clustered) is ClusteringStrategy.KMEANS
        assert self.selector.select_strategy(opposed) is ClusteringStrategy.KMEANS

        lowered = StrategySelector(ConfigManager(cli_args={'strategy.diversity_threshold': 0.5}), self.mock_logger)
        assert lowered.select_strategy(opposed) is ClusteringStrategy.HDBSCAN
        assert lowered.select_strategy(clustered) is ClusteringStrategy.KMEANS

        print(f"✅ Opposed diversity {opposed_diversity:.3f} decides the strategy")

    def test_only_embedded_documents_count(self):
        documents = random_documents(6) + [Document(id=f"bare_{i}", title="No vector") for i in range(10)]
        assert self.selector.select_strategy(documents) is ClusteringStrategy.KMEANS

    def test_dataset_diversity(self):
        print("\n🧪 Testing dataset diversity...")

        identical = [Document(id=str(i), embedding=[1.0, 2.0]) for i in range(5)]
        opposite = [Document(id='a', embedding=[1.0, 0.0]), Document(id='b', embedding=[-1.0, 0.0])]
        orthogonal = [Document(id=str(i), embedding=np.eye(3)[i]) for i in range(3)]

        assert self.selector.calculate_dataset_diversity(identical) == pytest.approx(0.0, abs=1e-12)
        assert self.selector.calculate_dataset_diversity(opposite) == pytest.approx(1.0)
        assert self.selector.calculate_dataset_diversity(orthogonal) == pytest.approx(0.5)
        assert self.selector.calculate_dataset_diversity(identical[:1]) == 0.0

        print("✅ Diversity normalised to [0, 1]")

    def test_strategy_parsing(self):
        assert ClusteringStrategy.parse('KMeans') is ClusteringStrategy.KMEANS
        assert ClusteringStrategy.parse(ClusteringStrategy.AUTO) is ClusteringStrategy.AUTO
        with pytest.raises(UnknownStrategyError):
            ClusteringStrategy.parse('spectral')


class TestAdaptiveClusterer:
    """Test suite for AdaptiveClusterer class."""

    def setup_method(self):
        self.start_time = time.time()
        self.config = ConfigManager()
        self.mock_logger = Mock()
        self.documents, self.labels = make_blob_documents()

    def teardown_method(self):
        execution_time = time.time() - self.start_time
        print(f"\n⏱️  Test execution time: {execution_time:.3f}s")

    def test_large_dataset_runs_hdbscan(self):
        print("\n🧪 Testing adaptive clustering on 30 documents...")

        clusters, analysis, strategy = AdaptiveClusterer(self.config, self.mock_logger).cluster(self.documents)

        assert strategy is ClusteringStrategy.HDBSCAN
        assert clusters
        assert analysis is not None
        assert all(c.id.startswith('hdbscan_cluster_') for c in clusters)

        print(f"✅ {strategy.value}: {len(clusters)} clusters, silhouette {analysis.overall_score:.3f}")

    def test_small_dataset_runs_kmeans(self):
        documents, labels = make_blob_documents(n_samples=6)
        clusters, analysis, strategy = AdaptiveClusterer(self.config, self.mock_logger).cluster(documents)

        assert strategy is ClusteringStrategy.KMEANS
        assert len(clusters) >= 3
        assert analysis.overall_score > 0.7
        label_by_id = {d.id: l for d, l in zip(documents, labels)}
        for cluster in clusters:
            assert len({label_by_id[i] for i in cluster.document_ids}) == 1

    def test_explicit_strategies(self):
        print("\n🧪 Testing explicit strategies...")

        searcher = InMemorySimilaritySearcher(self.documents)
        clusterer = AdaptiveClusterer(self.config, self.mock_logger, searcher=searcher)

        clusters, _, strategy = clusterer.cluster_with_strategy(self.documents, 'kmeans')
        assert strategy is ClusteringStrategy.KMEANS
        assert len(clusters) == 3

        clusters, analysis, strategy = clusterer.cluster_with_strategy(self.documents, 'semantic')
        assert strategy is ClusteringStrategy.SEMANTIC
        assert all(c.id.startswith('semantic_cluster_') for c in clusters)
        assert analysis is not None

        _, _, strategy = clusterer.cluster_with_strategy(self.documents, 'auto')
        assert strategy is ClusteringStrategy.HDBSCAN

        print("✅ Explicit strategies honoured")

    def test_semantic_strategy_separates_topics(self):
        searcher = InMemorySimilaritySearcher(self.documents)
        clusterer = AdaptiveClusterer(self.config, self.mock_logger, searcher=searcher)
        clusters, _, _ = clusterer.cluster_with_strategy(self.documents, ClusteringStrategy.SEMANTIC)

        label_by_id = {d.id: l for d, l in zip(self.documents, self.labels)}
        for cluster in clusters:
            assert len({label_by_id[i] for i in cluster.document_ids}) == 1

    def test_graph_strategy_without_searcher(self):
        clusterer = AdaptiveClusterer(self.config, self.mock_logger)
        with pytest.raises(UnknownStrategyError):
            clusterer.cluster_with_strategy(self.documents, 'louvain')
        with pytest.raises(UnknownStrategyError):
            clusterer.cluster_with_strategy(self.documents, 'spectral')

    def test_error_conditions(self):
        clusterer = AdaptiveClusterer(self.config, self.mock_logger)
        with pytest.raises(NoDocumentsError):
            clusterer.cluster([])
        with pytest.raises(NoEmbeddingsError):
            clusterer.cluster([Document(id='x', title='No vector')])

    def test_compare_strategies(self):
        print("\n🧪 Testing strategy comparison...")

        comparison = AdaptiveClusterer(self.config, self.mock_logger).compare_strategies(self.documents)

        assert comparison.num_articles == 30
        assert set(comparison.outcomes) == {ClusteringStrategy.KMEANS, ClusteringStrategy.HDBSCAN}
        assert all(o.succeeded for o in comparison.outcomes.values())
        assert comparison.winner in (ClusteringStrategy.KMEANS, ClusteringStrategy.HDBSCAN)
        kmeans = comparison.outcomes[ClusteringStrategy.KMEANS]
        density = comparison.outcomes[ClusteringStrategy.HDBSCAN]
        assert comparison.margin == pytest.approx(abs(kmeans.silhouette - density.silhouette))

        report = comparison.format_report()
        assert "CLUSTERING STRATEGY COMPARISON (30 articles)" in report
        assert "K-means:" in report and "HDBSCAN:" in report

        print(report)

    def test_compare_with_failing_algorithm(self):
        clusterer = AdaptiveClusterer(self.config, self.mock_logger)
        with patch.object(HDBSCANClusterer, 'cluster_documents', side_effect=ClusteringError("boom")):
            comparison = clusterer.compare_strategies(self.documents)

        assert comparison.winner is ClusteringStrategy.KMEANS
        assert comparison.outcomes[ClusteringStrategy.HDBSCAN].error == "boom"
        assert not comparison.is_draw
        assert "Error: boom" in comparison.format_report()


class TestStrategyComparison:
    """Test suite for comparison reporting."""

    def test_draw_within_margin(self):
        comparison = StrategyComparison(
            num_articles=20,
            outcomes={
                ClusteringStrategy.KMEANS: AlgorithmOutcome(clusters=3, silhouette=0.80, quality='Excellent'),
                ClusteringStrategy.HDBSCAN: AlgorithmOutcome(clusters=4, silhouette=0.78, quality='Excellent'),
            },
            winner=ClusteringStrategy.KMEANS,
            margin=0.02,
        )
        assert comparison.is_draw
        assert "DRAW" in comparison.format_report()

    def test_clear_winner(self):
        comparison = StrategyComparison(
            num_articles=20,
            outcomes={
                ClusteringStrategy.KMEANS: AlgorithmOutcome(clusters=3, silhouette=0.50, quality='Fair'),
                ClusteringStrategy.HDBSCAN: AlgorithmOutcome(clusters=4, silhouette=0.80, quality='Excellent'),
            },
            winner=ClusteringStrategy.HDBSCAN,
            margin=0.30,
        )
        assert not comparison.is_draw
        assert "WINNER: HDBSCAN (margin: 0.300)" in comparison.format_report()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
