"""
dclusters: distance-threshold clustering of aligned DNA sequences

A Python package for grouping DNA barcode sequences into putative species by
single-linkage clustering on pairwise genetic distances.
"""

__version__ = "0.1.0"

from .sequence import Sequence, SequenceError
from .distances import (
    DistanceMethod,
    DistanceSettings,
    INSUFFICIENT_OVERLAP,
    is_valid_distance,
    pairwise_distance
)
from .cache import DistanceCache
from .distance_providers import (
    DistanceProvider,
    CachedDistanceProvider,
    PrecomputedDistanceProvider,
    build_distance_matrix
)
from .linkage import Linkage, SingleLinkage, CompleteLinkage, AverageLinkage
from .progress import DelayCallback, Cancelled, NullProgress, TqdmProgress, PercentProgress
from .core import (
    Cluster,
    ClusterKind,
    ClusterJob,
    ClusterJobStateError,
    InconsistentClusteringError,
    sort_clusters
)
from .species import SpeciesDetail, SpeciesDetails
from .utils import (
    load_sequences_from_fasta,
    save_clusters_to_file,
    format_cluster_output,
    validate_sequences
)
from .analyze import (
    analyze_clusters,
    describe_cluster,
    calculate_percentiles,
    create_histogram,
    create_combined_histogram,
    format_analysis_report
)

__all__ = [
    "Sequence",
    "SequenceError",
    "DistanceMethod",
    "DistanceSettings",
    "INSUFFICIENT_OVERLAP",
    "is_valid_distance",
    "pairwise_distance",
    "DistanceCache",
    "DistanceProvider",
    "CachedDistanceProvider",
    "PrecomputedDistanceProvider",
    "build_distance_matrix",
    "Linkage",
    "SingleLinkage",
    "CompleteLinkage",
    "AverageLinkage",
    "DelayCallback",
    "Cancelled",
    "NullProgress",
    "TqdmProgress",
    "PercentProgress",
    "Cluster",
    "ClusterKind",
    "ClusterJob",
    "ClusterJobStateError",
    "InconsistentClusteringError",
    "sort_clusters",
    "SpeciesDetail",
    "SpeciesDetails",
    "load_sequences_from_fasta",
    "save_clusters_to_file",
    "format_cluster_output",
    "validate_sequences",
    "analyze_clusters",
    "describe_cluster",
    "calculate_percentiles",
    "create_histogram",
    "create_combined_histogram",
    "format_analysis_report"
]
