"""
Reporting helpers for clustering results.

This module summarizes finished clusters: per-cluster status against the
species in the dataset, per-species spread across clusters, distance
percentiles and histograms.
"""

import numpy as np
import matplotlib.pyplot as plt
from functools import reduce
from typing import List, Dict, Tuple, Optional
import logging

from .core import Cluster, ClusterKind, sort_clusters
from .distance_providers import DistanceProvider
from .distances import is_valid_distance
from .sequence import Sequence
from .species import SpeciesDetails

STATUS_LABELS = {
    'perfect': "Perfect (contains all sequences of one species)",
    'split': "Split only",
    'lumped': "Lumped only (contains multiple species)",
    'lumped_split': "Lumped/Split (contains multiple species)",
}


def calculate_intra_cluster_distances(cluster: Cluster, distances: DistanceProvider) -> np.ndarray:
    """
    Calculate all valid pairwise distances within a cluster.

    Args:
        cluster: Cluster to examine
        distances: Distance provider

    Returns:
        1D array of distances; pairs with insufficient overlap are left out
    """
    members = cluster.sequences()
    values = []
    for i in range(len(members)):
        for j in range(i + 1, len(members)):
            d = distances.get_distance(members[i], members[j])
            if is_valid_distance(d):
                values.append(d)
    return np.array(values, dtype=float)


def calculate_inter_cluster_distances(clusters: List[Cluster], distances: DistanceProvider) -> np.ndarray:
    """
    Calculate all valid pairwise distances between members of different clusters.

    Args:
        clusters: Clusters to compare
        distances: Distance provider

    Returns:
        1D array of distances
    """
    values = []
    member_lists = [c.sequences() for c in clusters]
    for i in range(len(member_lists)):
        for j in range(i + 1, len(member_lists)):
            for a in member_lists[i]:
                for b in member_lists[j]:
                    d = distances.get_distance(a, b)
                    if is_valid_distance(d):
                        values.append(d)
    return np.array(values, dtype=float)


def calculate_percentiles(distances: np.ndarray,
                          percentiles: List[float] = [5, 25, 50, 75, 95, 100]) -> Dict[str, float]:
    """
    Calculate key percentile values for a set of distances.

    Args:
        distances: Array of distance values
        percentiles: List of percentiles to calculate

    Returns:
        Dictionary mapping percentile names to values
    """
    if len(distances) == 0:
        return {f"P{int(p)}": np.nan for p in percentiles}

    values = np.percentile(distances, percentiles)
    return {f"P{int(p)}": float(v) for p, v in zip(percentiles, values)}


def cluster_distance_summary(cluster: Cluster,
                             distances: DistanceProvider) -> Optional[Tuple[float, float, float]]:
    """(min, mean, max) of valid intra-cluster distances, or None if there are none."""
    values = calculate_intra_cluster_distances(cluster, distances)
    if len(values) == 0:
        return None
    return float(values.min()), float(values.mean()), float(values.max())


def cluster_status(cluster: Cluster, species_counts: Dict[str, int]) -> str:
    """
    Status key of a cluster: 'perfect', 'split', 'lumped' or 'lumped_split'.

    Args:
        cluster: Cluster to classify
        species_counts: Sequences per species key across the whole dataset
    """
    kind = cluster.summary_kind(species_counts)
    if kind is ClusterKind.COMPLETE:
        return 'perfect'
    if kind is ClusterKind.INCOMPLETE:
        return 'split'
    own = cluster.species_counts()
    if all(count >= species_counts.get(key, 0) for key, count in own.items()):
        return 'lumped'
    return 'lumped_split'


def cluster_consensus(cluster: Cluster) -> Sequence:
    """Consensus of all members, padded with external gaps to a common length."""
    members = cluster.sequences()
    width = max(seq.length for seq in members)
    padded = [seq.expanded(0, width) for seq in members]
    return reduce(lambda a, b: a.consensus(b), padded)


def describe_cluster(cluster: Cluster, distances: DistanceProvider) -> str:
    counts = cluster.species_counts()
    if len(counts) == 1:
        origin = next(iter(counts))
    else:
        origin = f"{len(counts)} species"

    summary = cluster_distance_summary(cluster, distances)
    if summary is None:
        spread = "no valid pairwise distances"
    else:
        low, mean, high = summary
        spread = f"distances: {low:.2%} | {mean:.2%} | {high:.2%}"

    noun = "sequence" if len(cluster) == 1 else "sequences"
    return f"A cluster of {len(cluster)} {noun} from {origin} ({spread})"


def analyze_clusters(clusters: List[Cluster],
                     distances: DistanceProvider,
                     species: SpeciesDetails,
                     threshold: float) -> Tuple[List[Dict], Dict]:
    """
    Build per-cluster statistics and global statistics for a clustering.

    Args:
        clusters: Clusters from a finished ClusterJob
        distances: Distance provider used for the clustering
        species: Species summary of the clustered sequences
        threshold: Clustering threshold, used to count threshold violations

    Returns:
        Tuple of (cluster_stats, global_stats)
    """
    species_counts = species.species_counts()
    cluster_stats = []

    for number, cluster in enumerate(sort_clusters(clusters), start=1):
        intra = calculate_intra_cluster_distances(cluster, distances)
        largest = float(intra.max()) if len(intra) else 0.0
        status = cluster_status(cluster, species_counts)
        cluster_stats.append({
            'number': number,
            'n_sequences': len(cluster),
            'n_species': cluster.species_count(),
            'species': sorted(cluster.species_counts()),
            'status': status,
            'largest_distance': largest,
            'n_distances': len(intra),
            'percentiles': calculate_percentiles(intra),
            'threshold_violation': largest > threshold,
            'members': [seq.display_name for seq in cluster.sequences()],
        })

    all_intra = np.concatenate([calculate_intra_cluster_distances(c, distances) for c in clusters]) \
        if clusters else np.array([])
    inter = calculate_inter_cluster_distances(clusters, distances)

    global_stats = {
        'threshold': threshold,
        'n_clusters': len(clusters),
        'total_sequences': sum(len(c) for c in clusters),
        'n_species': species.species_count,
        'n_without_name': species.without_name,
        'n_single_species': sum(1 for s in cluster_stats if s['n_species'] == 1),
        'n_perfect': sum(1 for s in cluster_stats if s['status'] == 'perfect'),
        'n_threshold_violations': sum(1 for s in cluster_stats if s['threshold_violation']),
        'largest_distance': max((s['largest_distance'] for s in cluster_stats), default=0.0),
        'max_species_in_cluster': max((s['n_species'] for s in cluster_stats), default=0),
        'n_intra': len(all_intra),
        'n_inter': len(inter),
        'intra_percentiles': calculate_percentiles(all_intra),
        'inter_percentiles': calculate_percentiles(inter),
    }
    return cluster_stats, global_stats


def species_report(clusters: List[Cluster], species: SpeciesDetails) -> List[Dict]:
    """
    Per-species rows: how many clusters each species is spread over and
    which species it shares clusters with.
    """
    found_in: Dict[str, List[int]] = {}
    partners: Dict[str, set] = {}

    for number, cluster in enumerate(sort_clusters(clusters), start=1):
        keys = set(cluster.species_counts())
        for key in keys:
            found_in.setdefault(key, []).append(number)
            partners.setdefault(key, set()).update(keys - {key})

    rows = []
    for name in species.species_names():
        rows.append({
            'species': name,
            'n_sequences': species.details[name].count,
            'clusters': found_in.get(name, []),
            'split': len(found_in.get(name, [])) > 1,
            'lumped_with': sorted(partners.get(name, set())),
        })
    return rows


def create_histogram(distances: np.ndarray,
                     title: str,
                     xlabel: str = "Distance",
                     bins: int = 50,
                     save_path: Optional[str] = None,
                     threshold: Optional[float] = None) -> plt.Figure:
    """
    Create a histogram of distances with an optional threshold marker.

    Args:
        distances: Array of distance values
        title: Title for the histogram
        xlabel: Label for x-axis
        bins: Number of histogram bins
        save_path: Optional path to save the figure
        threshold: Clustering threshold to mark, if any

    Returns:
        matplotlib Figure object
    """
    fig, ax = plt.subplots(figsize=(10, 6))
    ax.set_title(title)
    ax.set_xlabel(xlabel)
    ax.set_ylabel("Frequency")

    if len(distances) == 0:
        ax.text(0.5, 0.5, 'No distances available',
                ha='center', va='center', transform=ax.transAxes)
        return fig

    ax.hist(distances, bins=bins, alpha=0.7, edgecolor='black')
    if threshold is not None:
        ax.axvline(threshold, color='red', linestyle='--', alpha=0.8,
                   label=f'Threshold: {threshold:.4f}')
        ax.legend()
    ax.grid(True, alpha=0.3)

    stats_text = f"n={len(distances):,}\nMean: {np.mean(distances):.4f}\nStd: {np.std(distances):.4f}"
    ax.text(0.02, 0.98, stats_text, transform=ax.transAxes,
            verticalalignment='top', bbox=dict(boxstyle='round', facecolor='wheat', alpha=0.8))

    plt.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=300, bbox_inches='tight')
        logging.info(f"Histogram saved to {save_path}")

    return fig


def create_combined_histogram(intra_distances: np.ndarray,
                              inter_distances: np.ndarray,
                              title: str = "Distance Distribution",
                              bins: int = 50,
                              save_path: Optional[str] = None,
                              threshold: Optional[float] = None) -> plt.Figure:
    """
    Create a combined histogram showing both intra and inter-cluster distances.

    Returns:
        matplotlib Figure object
    """
    fig, ax = plt.subplots(figsize=(12, 8))
    ax.set_title(title)

    parts = [d for d in (intra_distances, inter_distances) if len(d) > 0]
    if not parts:
        ax.text(0.5, 0.5, 'No distances available',
                ha='center', va='center', transform=ax.transAxes)
        return fig

    all_distances = np.concatenate(parts)
    bin_range = (all_distances.min(), all_distances.max())

    if len(intra_distances) > 0:
        ax.hist(intra_distances, bins=bins, alpha=0.6, label=f'Intra-cluster (n={len(intra_distances):,})',
                color='blue', range=bin_range)
    if len(inter_distances) > 0:
        ax.hist(inter_distances, bins=bins, alpha=0.6, label=f'Inter-cluster (n={len(inter_distances):,})',
                color='red', range=bin_range)
    if threshold is not None:
        ax.axvline(threshold, color='black', linestyle='--', label=f'Threshold: {threshold:.4f}')

    ax.set_xlabel("Distance")
    ax.set_ylabel("Frequency")
    ax.grid(True, alpha=0.3)
    ax.legend()

    plt.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=300, bbox_inches='tight')
        logging.info(f"Combined histogram saved to {save_path}")

    return fig


def format_analysis_report(cluster_stats: List[Dict], global_stats: Dict,
                           species_rows: Optional[List[Dict]] = None) -> str:
    """
    Format analysis results into a readable text report.

    Args:
        cluster_stats: Per-cluster statistics from analyze_clusters
        global_stats: Global statistics from analyze_clusters
        species_rows: Optional per-species rows from species_report

    Returns:
        Formatted report string
    """
    lines = []
    lines.append("=" * 80)
    lines.append("DCLUSTERS CLUSTER REPORT")
    lines.append("=" * 80)
    lines.append("")

    lines.append(f"Clustering at: {global_stats['threshold']:.2%}")
    lines.append(f"Number of clusters: {global_stats['n_clusters']:,}")
    n_clusters = global_stats['n_clusters']
    violations = global_stats['n_threshold_violations']
    share = violations / n_clusters if n_clusters else 0.0
    lines.append(f"Clusters with threshold violations: {violations} ({share:.1%})")
    lines.append(f"Largest pairwise distance: {global_stats['largest_distance']:.2%}")
    lines.append(f"Clusters with only one species: {global_stats['n_single_species']}")
    lines.append(f"Clusters matching species: {global_stats['n_perfect']}")
    lines.append(f"Largest number of species in a cluster: {global_stats['max_species_in_cluster']}")
    if global_stats.get('n_without_name'):
        lines.append(f"Sequences without a species name: {global_stats['n_without_name']}")
    lines.append("")

    lines.append("CLUSTERS")
    lines.append("-" * 40)
    for stats in cluster_stats:
        lines.append(f"\nCluster {stats['number']}: {STATUS_LABELS[stats['status']]}")
        lines.append(f"  Sequences: {stats['n_sequences']:,}")
        lines.append(f"  Species: {stats['n_species']} ({', '.join(stats['species'])})")
        if stats['n_distances'] > 0:
            lines.append(f"  Largest pairwise distance: {stats['largest_distance']:.2%}")
        else:
            lines.append("  No valid pairwise distances")
    lines.append("")

    if species_rows:
        n_split = sum(1 for row in species_rows if row['split'])
        n_lumped = sum(1 for row in species_rows if row['lumped_with'])
        lines.append("SPECIES")
        lines.append("-" * 40)
        lines.append(f"Species split across clusters: {n_split} of {len(species_rows)}")
        lines.append(f"Species sharing a cluster with another species: {n_lumped}")
        for row in species_rows:
            found = ', '.join(str(n) for n in row['clusters'])
            lines.append(f"\n{row['species']} ({row['n_sequences']} sequences)")
            lines.append(f"  Found in clusters: {found}")
            if row['lumped_with']:
                lines.append(f"  Shares clusters with: {', '.join(row['lumped_with'])}")
        lines.append("")

    lines.append("DISTANCES")
    lines.append("-" * 40)
    lines.append(f"Intra-cluster distances: {global_stats['n_intra']:,}")
    lines.append(f"Inter-cluster distances: {global_stats['n_inter']:,}")
    if global_stats['n_intra'] > 0:
        lines.append("Intra-cluster distance percentiles:")
        for key, value in global_stats['intra_percentiles'].items():
            lines.append(f"  {key}: {value:.6f}")
    if global_stats['n_inter'] > 0:
        lines.append("Inter-cluster distance percentiles:")
        for key, value in global_stats['inter_percentiles'].items():
            lines.append(f"  {key}: {value:.6f}")
    lines.append("")
    lines.append("=" * 80)

    return "\n".join(lines)
