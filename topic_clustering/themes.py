"""
Theme-aware clustering and the small-cluster merge pass.

Documents are split by their theme tag, each partition is clustered on its
own, and the combined result is relabelled with the theme before a single
merge-small-clusters pass runs over everything.
"""

import re
from typing import Callable, Dict, Iterable, List, Optional

from .labeling import ClusterLabeler
from .models import ClusteringResult, Document, TopicCluster

MISC_LABEL = "Miscellaneous Topics"
ALL_LABEL = "All Articles"
UNTAGGED = None


def theme_slug(theme):
    """Identifier-safe form of a theme name: lowercase letters, digits and underscores."""
    slug = re.sub(r'[^a-z0-9]+', '_', str(theme).strip().lower()).strip('_')
    return slug or 'theme'


def unique_slugs(themes: Iterable[Optional[str]]) -> Dict[str, str]:
    """
    Maps each theme to a slug no other theme shares.

    Themes that collapse to the same slug ('AI' and 'ai') get a numeric
    suffix in first-seen order. The untagged partition has no slug.
    """
    slugs = {}
    taken = set()
    for theme in themes:
        if theme is UNTAGGED or theme in slugs:
            continue
        base = theme_slug(theme)
        slug, suffix = base, 2
        while slug in taken:
            slug = f"{base}_{suffix}"
            suffix += 1
        taken.add(slug)
        slugs[theme] = slug
    return slugs


def prefix_for(theme, algorithm, slug=None):
    """Cluster id prefix and label prefix for a partition."""
    if theme is UNTAGGED:
        return f"untagged_{algorithm}", "Untagged"
    return f"theme_{slug or theme_slug(theme)}_{algorithm}", str(theme)


def merge_small_clusters(clusters: List[TopicCluster], documents: List[Document], min_cluster_size: int,
                         algorithm: str, labeler: ClusterLabeler,
                         cluster_themes: Optional[Dict[str, Optional[str]]] = None,
                         theme_slugs: Optional[Dict[str, str]] = None) -> List[TopicCluster]:
    """
    Folds clusters below ``min_cluster_size`` into one miscellaneous cluster.

    When no cluster reaches the minimum size, everything becomes a single
    all-in-one cluster. If every folded cluster came from the same theme, the
    catch-all cluster carries that theme's prefix.

    Args:
        clusters: Clusters to filter
        documents: Documents the clusters were built from
        min_cluster_size (int): Smallest cluster kept as is
        algorithm (str): Algorithm name used in catch-all ids
        labeler: ClusterLabeler used to build the catch-all cluster
        cluster_themes (dict, optional): Cluster id to originating theme
        theme_slugs (dict, optional): Theme to the slug used in its cluster ids

    Returns:
        list: Filtered clusters, possibly with a trailing catch-all cluster
    """
    if not clusters:
        return []

    documents_by_id = {d.id: d for d in documents}
    kept = [c for c in clusters if len(c.document_ids) >= min_cluster_size]
    small = [c for c in clusters if len(c.document_ids) < min_cluster_size]
    if not small:
        return kept

    if not kept:
        members = [documents_by_id[i] for c in clusters for i in c.document_ids if i in documents_by_id]
        id_base, label = _catch_all_names(clusters, algorithm, 'all', ALL_LABEL, cluster_themes, theme_slugs)
        return [labeler.build_cluster(id_base, members, 0, label=label)]

    members = [documents_by_id[i] for c in small for i in c.document_ids if i in documents_by_id]
    cluster_id, label = _catch_all_names(small, algorithm, 'misc', MISC_LABEL, cluster_themes, theme_slugs)
    kept.append(labeler.build_cluster(cluster_id, members, len(kept), label=label))
    return kept


def _catch_all_names(source_clusters, algorithm, suffix, base_label, cluster_themes, theme_slugs=None):
    if cluster_themes:
        themes = {cluster_themes.get(c.id, UNTAGGED) for c in source_clusters}
        if len(themes) == 1:
            theme = themes.pop()
            id_prefix, label_prefix = prefix_for(theme, algorithm, (theme_slugs or {}).get(theme))
            return f"{id_prefix}_{suffix}", f"{label_prefix} - {base_label}"
    return f"{algorithm}_cluster_{suffix}", base_label


class ThemePartitioner:
    """Runs a clustering function independently within each theme partition."""

    def __init__(self, config, logger):
        self.config = config
        self.logger = logger
        self.theme_config = config.get_themes_config()
        self.min_cluster_size = self.theme_config.get('min_cluster_size', 2)
        self.labeler = ClusterLabeler(config, logger)

    def partition(self, documents):
        """Groups documents by theme in first-seen order; untagged documents share one group."""
        partitions = {}
        for document in documents:
            theme = document.theme if document.theme else UNTAGGED
            partitions.setdefault(theme, []).append(document)
        return partitions

    def cluster(self, documents: List[Document], cluster_fn: Callable[[List[Document]], ClusteringResult],
                algorithm: str, min_cluster_size: Optional[int] = None) -> ClusteringResult:
        """
        Clusters each theme partition and relabels the combined result.

        Args:
            documents: Documents with embeddings
            cluster_fn: Clusters one partition and returns a ClusteringResult
            algorithm (str): Algorithm name used in the cluster ids
            min_cluster_size (int, optional): Threshold for the final merge pass

        Returns:
            ClusteringResult: Prefixed and merged clusters, without analysis
        """
        if min_cluster_size is None:
            min_cluster_size = self.min_cluster_size

        partitions = self.partition(documents)
        slugs = unique_slugs(partitions)
        self.logger.info(
            f"Theme-aware {algorithm} clustering over {len(partitions)} partitions: "
            + ', '.join(f"{theme or 'untagged'}={len(docs)}" for theme, docs in partitions.items())
        )

        combined = []
        cluster_themes = {}
        noise_ids = []
        for theme, partition_docs in partitions.items():
            result = cluster_fn(partition_docs)
            id_prefix, label_prefix = prefix_for(theme, algorithm, slugs.get(theme))
            for idx, cluster in enumerate(result.clusters):
                cluster.id = f"{id_prefix}_{idx}"
                cluster.label = f"{label_prefix} - {cluster.label}"
                cluster_themes[cluster.id] = theme
                combined.append(cluster)
            noise_ids.extend(result.noise_ids)

        merged = merge_small_clusters(combined, documents, min_cluster_size, algorithm,
                                      self.labeler, cluster_themes, slugs)
        self.logger.info(f"Theme-aware {algorithm} clustering produced {len(merged)} clusters")
        return ClusteringResult(clusters=merged, algorithm=algorithm, noise_ids=noise_ids)
