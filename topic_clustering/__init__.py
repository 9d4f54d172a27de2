from .models import Document, TopicCluster, SearchResult, ClusteringResult
from .exceptions import (
    ClusteringError,
    NoDocumentsError,
    NoEmbeddingsError,
    InvalidClusterCountError,
    UnknownStrategyError,
    ClusteringQualityError,
)
from .distance import cosine_distance, cosine_similarity, euclidean_distance, distance_matrix
from .evaluation import (
    SilhouetteAnalysis,
    perform_silhouette_analysis,
    ClusteringEvaluator,
    ClusterCoherenceEvaluator,
    ClusteringQualityGate,
    EvaluationReporter,
)
from .labeling import ClusterLabeler
from .clusterers import BaseClusterer, KMeansClusterer, HDBSCANClusterer, DensityRegion
from .search import SimilaritySearcher, InMemorySimilaritySearcher
from .graph import GraphClusterer, LouvainClusterer, SemanticClusterer
from .themes import ThemePartitioner
from .strategy import ClusteringStrategy, StrategySelector, AdaptiveClusterer, StrategyComparison
from .utilities import Logger, FileOperationUtilities, PerformanceMonitor

__all__ = [
    'Document',
    'TopicCluster',
    'SearchResult',
    'ClusteringResult',
    'ClusteringError',
    'NoDocumentsError',
    'NoEmbeddingsError',
    'InvalidClusterCountError',
    'UnknownStrategyError',
    'ClusteringQualityError',
    'cosine_distance',
    'cosine_similarity',
    'euclidean_distance',
    'distance_matrix',
    'SilhouetteAnalysis',
    'perform_silhouette_analysis',
    'ClusteringEvaluator',
    'ClusterCoherenceEvaluator',
    'ClusteringQualityGate',
    'EvaluationReporter',
    'ClusterLabeler',
    'BaseClusterer',
    'KMeansClusterer',
    'HDBSCANClusterer',
    'DensityRegion',
    'SimilaritySearcher',
    'InMemorySimilaritySearcher',
    'GraphClusterer',
    'LouvainClusterer',
    'SemanticClusterer',
    'ThemePartitioner',
    'ClusteringStrategy',
    'StrategySelector',
    'AdaptiveClusterer',
    'StrategyComparison',
    'Logger',
    'FileOperationUtilities',
    'PerformanceMonitor',
]
