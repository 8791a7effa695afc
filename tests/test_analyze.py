"""
Tests for analysis and reporting functions.
"""

import pytest
import numpy as np
import matplotlib
matplotlib.use('Agg')  # Use non-interactive backend for testing
import matplotlib.pyplot as plt

from dclusters.analyze import (
    analyze_clusters,
    calculate_inter_cluster_distances,
    calculate_intra_cluster_distances,
    calculate_percentiles,
    cluster_consensus,
    cluster_distance_summary,
    cluster_status,
    create_combined_histogram,
    create_histogram,
    describe_cluster,
    format_analysis_report,
    species_report,
)
from dclusters.core import Cluster
from dclusters.distance_providers import PrecomputedDistanceProvider
from dclusters.sequence import Sequence
from dclusters.species import SpeciesDetails


class TestDistanceAnalysis:
    """Test distance collection over clusters."""

    def setup_method(self):
        """Set up test fixtures."""
        self.arena = tuple(Sequence(f"Genus species{i}", "ACGT") for i in range(4))
        matrix = np.array([
            [0.0,  0.01, 0.2,  0.3],
            [0.01, 0.0,  0.25, np.nan],
            [0.2,  0.25, 0.0,  0.02],
            [0.3,  np.nan, 0.02, 0.0],
        ])
        self.provider = PrecomputedDistanceProvider(self.arena, matrix)
        self.first = Cluster(self.arena, [0, 1])
        self.second = Cluster(self.arena, [2, 3])

    def test_intra_cluster_distances(self):
        """Test pairwise distances within a cluster."""
        distances = calculate_intra_cluster_distances(self.first, self.provider)
        assert distances.tolist() == pytest.approx([0.01])

    def test_intra_cluster_single_sequence(self):
        """Test a singleton has no distances."""
        distances = calculate_intra_cluster_distances(Cluster(self.arena, [0]), self.provider)
        assert len(distances) == 0

    def test_inter_cluster_skips_insufficient(self):
        """Test distances between clusters leave out incomparable pairs."""
        distances = calculate_inter_cluster_distances([self.first, self.second], self.provider)
        assert sorted(distances.tolist()) == pytest.approx([0.2, 0.25, 0.3])

    def test_percentiles(self):
        """Test percentile calculation."""
        result = calculate_percentiles(np.array([0.0, 0.1, 0.2, 0.3, 0.4]), [50, 100])
        assert result == {"P50": pytest.approx(0.2), "P100": pytest.approx(0.4)}

    def test_percentiles_empty(self):
        """Test empty input gives NaN percentiles."""
        result = calculate_percentiles(np.array([]), [50])
        assert np.isnan(result["P50"])

    def test_distance_summary(self):
        """Test min, mean and max of a cluster."""
        cluster = Cluster(self.arena, [0, 1, 2])
        low, mean, high = cluster_distance_summary(cluster, self.provider)
        assert low == pytest.approx(0.01)
        assert mean == pytest.approx((0.01 + 0.2 + 0.25) / 3)
        assert high == pytest.approx(0.25)
        assert cluster_distance_summary(Cluster(self.arena, [0]), self.provider) is None


class TestClusterReports:
    """Test per-cluster and per-species reporting."""

    def setup_method(self):
        """Set up test fixtures."""
        self.arena = (
            Sequence("Apis mellifera 1", "ACGTACGTAC"),
            Sequence("Apis mellifera 2", "ACGTACGTAA"),
            Sequence("Bombus terrestris 1", "TTGGCCAATT"),
            Sequence("Bombus terrestris 2", "TTGGCCAATC"),
            Sequence("Vespa crabro 1", "GGGGGGGGGG"),
        )
        n = len(self.arena)
        matrix = np.full((n, n), 0.5)
        np.fill_diagonal(matrix, 0.0)
        matrix[0, 1] = matrix[1, 0] = 0.1
        matrix[2, 3] = matrix[3, 2] = 0.1
        matrix[3, 4] = matrix[4, 3] = 0.02
        self.provider = PrecomputedDistanceProvider(self.arena, matrix)
        self.species = SpeciesDetails(self.arena)
        self.counts = self.species.species_counts()

    def test_status_perfect(self):
        """Test a cluster holding every sequence of one species."""
        assert cluster_status(Cluster(self.arena, [0, 1]), self.counts) == 'perfect'

    def test_status_split(self):
        """Test a cluster holding some sequences of one species."""
        assert cluster_status(Cluster(self.arena, [0]), self.counts) == 'split'

    def test_status_lumped(self):
        """Test a cluster holding several complete species."""
        cluster = Cluster(self.arena, [2, 3, 4])
        assert cluster_status(cluster, self.counts) == 'lumped'

    def test_status_lumped_split(self):
        """Test a mixed cluster missing some sequences of a species."""
        cluster = Cluster(self.arena, [3, 4])
        assert cluster_status(cluster, self.counts) == 'lumped_split'

    def test_describe_cluster(self):
        """Test the one-line description."""
        text = describe_cluster(Cluster(self.arena, [0, 1]), self.provider)
        assert text == "A cluster of 2 sequences from Apis mellifera (distances: 10.00% | 10.00% | 10.00%)"

    def test_describe_singleton(self):
        """Test the description of a single sequence."""
        text = describe_cluster(Cluster(self.arena, [4]), self.provider)
        assert text == "A cluster of 1 sequence from Vespa crabro (no valid pairwise distances)"

    def test_describe_mixed(self):
        """Test mixed clusters name the species count."""
        text = describe_cluster(Cluster(self.arena, [3, 4]), self.provider)
        assert "from 2 species" in text

    def test_consensus(self):
        """Test the consensus of a cluster."""
        consensus = cluster_consensus(Cluster(self.arena, [0, 1]))
        assert consensus.symbols == "ACGTACGTAM"

    def test_consensus_pads_lengths(self):
        """Test members of different lengths are padded before combining."""
        arena = (Sequence("a", "ACGT"), Sequence("b", "ACGTAA"))
        assert cluster_consensus(Cluster(arena, [0, 1])).symbols == "ACGTAA"

    def test_analyze_clusters(self):
        """Test per-cluster and global statistics."""
        clusters = [
            Cluster(self.arena, [0, 1]),
            Cluster(self.arena, [2, 3, 4]),
        ]
        cluster_stats, global_stats = analyze_clusters(clusters, self.provider, self.species, 0.03)

        # Sorted by species count first
        assert cluster_stats[0]['n_species'] == 2
        assert cluster_stats[0]['status'] == 'lumped'
        assert cluster_stats[0]['largest_distance'] == pytest.approx(0.5)
        assert cluster_stats[0]['threshold_violation']
        assert cluster_stats[1]['status'] == 'perfect'

        assert global_stats['n_clusters'] == 2
        assert global_stats['total_sequences'] == 5
        assert global_stats['n_perfect'] == 1
        assert global_stats['n_single_species'] == 1
        assert global_stats['n_threshold_violations'] == 2
        assert global_stats['max_species_in_cluster'] == 2
        assert global_stats['n_intra'] == 4
        assert global_stats['n_inter'] == 6

    def test_species_report(self):
        """Test species spread across clusters."""
        clusters = [
            Cluster(self.arena, [0]),
            Cluster(self.arena, [1]),
            Cluster(self.arena, [2, 3, 4]),
        ]
        rows = {row['species']: row for row in species_report(clusters, self.species)}
        assert rows['Apis mellifera']['split']
        assert len(rows['Apis mellifera']['clusters']) == 2
        assert rows['Bombus terrestris']['lumped_with'] == ['Vespa crabro']
        assert not rows['Vespa crabro']['split']

    def test_format_report(self):
        """Test the text report contains the main sections."""
        clusters = [Cluster(self.arena, [0, 1]), Cluster(self.arena, [2, 3, 4])]
        cluster_stats, global_stats = analyze_clusters(clusters, self.provider, self.species, 0.03)
        report = format_analysis_report(cluster_stats, global_stats)
        assert "DCLUSTERS CLUSTER REPORT" in report
        assert "Number of clusters: 2" in report
        assert "Lumped only" in report
        assert "Perfect" in report
        assert "Intra-cluster distance percentiles:" in report
        assert "SPECIES" not in report

    def test_format_report_species_section(self):
        """Test the species section lists spread and co-occurring species."""
        clusters = [
            Cluster(self.arena, [0]),
            Cluster(self.arena, [1]),
            Cluster(self.arena, [2, 3, 4]),
        ]
        cluster_stats, global_stats = analyze_clusters(clusters, self.provider, self.species, 0.03)
        rows = species_report(clusters, self.species)
        report = format_analysis_report(cluster_stats, global_stats, rows)

        assert "SPECIES" in report
        assert "Species split across clusters: 1 of 3" in report
        assert "Species sharing a cluster with another species: 2" in report
        assert "Apis mellifera (2 sequences)" in report
        assert "  Found in clusters: 2, 3" in report
        assert "  Shares clusters with: Vespa crabro" in report


class TestHistograms:
    """Test histogram creation."""

    def test_create_histogram(self, tmp_path):
        """Test a histogram is created and saved."""
        path = tmp_path / "hist.png"
        fig = create_histogram(np.array([0.01, 0.02, 0.05]), "Intra", save_path=str(path), threshold=0.03)
        assert isinstance(fig, plt.Figure)
        assert path.exists()
        plt.close(fig)

    def test_create_histogram_empty(self):
        """Test an empty histogram shows a placeholder."""
        fig = create_histogram(np.array([]), "Empty")
        assert isinstance(fig, plt.Figure)
        plt.close(fig)

    def test_create_combined_histogram(self, tmp_path):
        """Test a combined histogram is created and saved."""
        path = tmp_path / "combined.png"
        fig = create_combined_histogram(np.array([0.01, 0.02]), np.array([0.2, 0.3]),
                                        save_path=str(path), threshold=0.03)
        assert path.exists()
        plt.close(fig)

    def test_create_combined_histogram_one_side(self):
        """Test a combined histogram with only intra-cluster distances."""
        fig = create_combined_histogram(np.array([0.01, 0.02]), np.array([]))
        assert isinstance(fig, plt.Figure)
        plt.close(fig)
