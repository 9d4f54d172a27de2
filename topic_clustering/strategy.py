"""
Strategy selection between the clustering algorithms.

``StrategySelector`` picks K-means or HDBSCAN from dataset size and embedding
diversity; ``AdaptiveClusterer`` runs the chosen (or an explicitly requested)
algorithm and returns clusters with a silhouette quality report.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

import numpy as np

from .clusterers import HDBSCANClusterer, KMeansClusterer
from .distance import distance_matrix
from .evaluation import ClusteringEvaluator
from .exceptions import ClusteringError, NoDocumentsError, NoEmbeddingsError, UnknownStrategyError
from .graph import LouvainClusterer, SemanticClusterer


class ClusteringStrategy(str, Enum):
    KMEANS = 'kmeans'
    HDBSCAN = 'hdbscan'
    LOUVAIN = 'louvain'
    SEMANTIC = 'semantic'
    AUTO = 'auto'

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise UnknownStrategyError(f"unknown clustering strategy: {value}") from None


class StrategySelector:
    """Chooses a clustering algorithm from dataset size and diversity."""

    def __init__(self, config, logger):
        self.config = config
        self.logger = logger
        strategy_config = config.get_strategy_config()
        self.small_dataset_threshold = strategy_config.get('small_dataset_threshold', 8)
        self.large_dataset_threshold = strategy_config.get('large_dataset_threshold', 15)
        self.diversity_threshold = strategy_config.get('diversity_threshold', 0.6)

    @staticmethod
    def usable_embeddings(documents):
        embeddings = [d.embedding for d in documents if d.has_embedding]
        if not embeddings:
            return []
        dimension = len(embeddings[0])
        return [e for e in embeddings if len(e) == dimension]

    def calculate_dataset_diversity(self, documents):
        """Mean pairwise cosine distance of the embeddings, scaled to [0, 1]."""
        embeddings = self.usable_embeddings(documents)
        n = len(embeddings)
        if n < 2:
            return 0.0
        distances = distance_matrix(embeddings)
        upper = distances[np.triu_indices(n, k=1)]
        return float(upper.mean() / 2.0)

    def select_strategy(self, documents):
        """
        Picks K-means for small datasets, HDBSCAN for large ones, and decides
        by diversity in between.

        Returns:
            ClusteringStrategy
        """
        n = len(self.usable_embeddings(documents))

        if n < self.small_dataset_threshold:
            self.logger.info(f"Selected K-means: small dataset ({n} documents)")
            return ClusteringStrategy.KMEANS

        if n >= self.large_dataset_threshold:
            self.logger.info(f"Selected HDBSCAN: large dataset ({n} documents)")
            return ClusteringStrategy.HDBSCAN

        diversity = self.calculate_dataset_diversity(documents)
        if diversity > self.diversity_threshold:
            self.logger.info(f"Selected HDBSCAN: high diversity ({diversity:.3f}) in {n} documents")
            return ClusteringStrategy.HDBSCAN

        self.logger.info(f"Selected K-means: low diversity ({diversity:.3f}) in {n} documents")
        return ClusteringStrategy.KMEANS


@dataclass
class AlgorithmOutcome:
    clusters: int = 0
    silhouette: float = 0.0
    quality: str = ''
    error: str = ''

    @property
    def succeeded(self):
        return not self.error


DISPLAY_NAMES = {
    ClusteringStrategy.KMEANS: 'K-means',
    ClusteringStrategy.HDBSCAN: 'HDBSCAN',
}


@dataclass
class StrategyComparison:
    """Side-by-side result of running K-means and HDBSCAN on one dataset."""

    num_articles: int
    outcomes: Dict[ClusteringStrategy, AlgorithmOutcome] = field(default_factory=dict)
    winner: Optional[ClusteringStrategy] = None
    margin: float = 0.0
    draw_margin: float = 0.05

    @property
    def is_draw(self):
        return (
            len(self.outcomes) == 2
            and all(o.succeeded for o in self.outcomes.values())
            and self.margin < self.draw_margin
        )

    def format_report(self):
        rule = "=" * 67
        lines = [rule, f"CLUSTERING STRATEGY COMPARISON ({self.num_articles} articles)", rule]
        for strategy, outcome in self.outcomes.items():
            lines.append(f"{DISPLAY_NAMES.get(strategy, strategy.value)}:")
            if outcome.error:
                lines.append(f"  Error: {outcome.error}")
            else:
                lines.append(f"  Clusters: {outcome.clusters}")
                lines.append(f"  Silhouette: {outcome.silhouette:.3f}")
                lines.append(f"  Quality: {outcome.quality}")
            lines.append("")

        if self.is_draw:
            lines.append(f"DRAW: scores within {self.draw_margin:.2f} (margin: {self.margin:.3f})")
        elif self.winner is not None:
            lines.append(f"WINNER: {DISPLAY_NAMES[self.winner]} (margin: {self.margin:.3f})")
        else:
            lines.append("No algorithm succeeded")
        lines.append(rule)
        return '\n'.join(lines)


class AdaptiveClusterer:
    """
    Runs the algorithm chosen by the strategy selector, or one requested
    explicitly.

    Graph strategies (``louvain``, ``semantic``) are only available when a
    similarity searcher is bound and are never chosen automatically.
    """

    def __init__(self, config, logger, searcher=None, random_state=None):
        self.config = config
        self.logger = logger
        self.searcher = searcher
        self.random_state = random_state
        self.selector = StrategySelector(config, logger)
        self.evaluator = ClusteringEvaluator(config, logger)
        self.draw_margin = config.get_strategy_config().get('draw_margin', 0.05)

    def select_strategy(self, documents):
        return self.selector.select_strategy(documents)

    def cluster(self, documents):
        """
        Selects a strategy and clusters the documents with it.

        Returns:
            tuple: (clusters, SilhouetteAnalysis, ClusteringStrategy)
        """
        self._validate(documents)
        strategy = self.selector.select_strategy(documents)
        return self.cluster_with_strategy(documents, strategy)

    def cluster_with_strategy(self, documents, strategy):
        """
        Clusters with an explicit strategy; ``auto`` defers to the selector.

        Returns:
            tuple: (clusters, SilhouetteAnalysis, ClusteringStrategy)
        """
        strategy = ClusteringStrategy.parse(strategy)
        self._validate(documents)
        if strategy is ClusteringStrategy.AUTO:
            strategy = self.selector.select_strategy(documents)

        self.logger.info(f"Clustering {len(documents)} documents with strategy '{strategy.value}'")

        if strategy is ClusteringStrategy.KMEANS:
            clusterer = KMeansClusterer(self.config, self.logger, random_state=self.random_state)
            clusters, analysis = clusterer.cluster_with_optimal_k(documents)
            return clusters, analysis, strategy

        if strategy is ClusteringStrategy.HDBSCAN:
            clusterer = HDBSCANClusterer(self.config, self.logger, random_state=self.random_state)
            result = clusterer.cluster_documents(documents)
        elif strategy in (ClusteringStrategy.LOUVAIN, ClusteringStrategy.SEMANTIC):
            if self.searcher is None:
                raise UnknownStrategyError(f"strategy '{strategy.value}' requires a similarity searcher")
            graph_class = LouvainClusterer if strategy is ClusteringStrategy.LOUVAIN else SemanticClusterer
            clusterer = graph_class(self.config, self.logger, self.searcher, random_state=self.random_state)
            timeout = self.config.get_config_value(f"{strategy.value}.search_timeout")
            result = clusterer.cluster_documents(documents, timeout=timeout)
        else:
            raise UnknownStrategyError(f"unsupported clustering strategy: {strategy.value}")

        analysis = self.evaluator.analyze_clusters(result.clusters, documents)
        return result.clusters, analysis, strategy

    def compare_strategies(self, documents):
        """
        Runs K-means and HDBSCAN on the same documents and compares silhouettes.

        Returns:
            StrategyComparison
        """
        comparison = StrategyComparison(num_articles=len(documents), draw_margin=self.draw_margin)

        for strategy in (ClusteringStrategy.KMEANS, ClusteringStrategy.HDBSCAN):
            self.logger.info(f"Running {DISPLAY_NAMES[strategy]} for comparison...")
            outcome = AlgorithmOutcome()
            try:
                clusters, analysis, _ = self.cluster_with_strategy(documents, strategy)
                outcome.clusters = len(clusters)
                if analysis is not None:
                    outcome.silhouette = analysis.overall_score
                    outcome.quality = analysis.quality
            except ClusteringError as e:
                self.logger.warning(f"{DISPLAY_NAMES[strategy]} failed during comparison: {e}")
                outcome.error = str(e)
            comparison.outcomes[strategy] = outcome

        kmeans = comparison.outcomes[ClusteringStrategy.KMEANS]
        density = comparison.outcomes[ClusteringStrategy.HDBSCAN]
        if kmeans.succeeded and density.succeeded:
            if kmeans.silhouette > density.silhouette:
                comparison.winner = ClusteringStrategy.KMEANS
            else:
                comparison.winner = ClusteringStrategy.HDBSCAN
            comparison.margin = abs(kmeans.silhouette - density.silhouette)
        elif kmeans.succeeded:
            comparison.winner = ClusteringStrategy.KMEANS
        elif density.succeeded:
            comparison.winner = ClusteringStrategy.HDBSCAN

        if comparison.is_draw:
            self.logger.info(f"Strategy comparison is a draw (margin {comparison.margin:.3f})")
        elif comparison.winner is not None:
            self.logger.info(f"Strategy comparison winner: {DISPLAY_NAMES[comparison.winner]}")
        return comparison

    @staticmethod
    def _validate(documents):
        if not documents:
            raise NoDocumentsError()
        if not any(d.has_embedding for d in documents):
            raise NoEmbeddingsError()
