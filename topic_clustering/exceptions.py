"""Error taxonomy for clustering runs."""


class ClusteringError(Exception):
    """Base exception for clustering failures."""
    pass


class NoDocumentsError(ClusteringError):
    """Raised when a clustering call receives no documents."""

    def __init__(self, message="no articles to cluster"):
        super().__init__(message)


class NoEmbeddingsError(ClusteringError):
    """Raised when none of the input documents carries an embedding."""

    def __init__(self, message="no articles have embeddings"):
        super().__init__(message)


class InvalidClusterCountError(ClusteringError):
    """Raised for a non-positive requested cluster count."""

    def __init__(self, k):
        self.k = k
        super().__init__(f"number of clusters must be positive, got {k}")


class UnknownStrategyError(ClusteringError):
    """Raised when a strategy name cannot be resolved or run."""
    pass


class ClusteringQualityError(ClusteringError):
    """Raised by a blocking quality gate when clustering quality is too low."""

    def __init__(self, message, metrics=None):
        self.metrics = metrics
        super().__init__(message)
