"""
Tests for distance provider architecture.
"""

import numpy as np
import pytest
from unittest.mock import patch

from dclusters.cache import DistanceCache
from dclusters.distance_providers import (
    CachedDistanceProvider,
    DistanceProvider,
    PrecomputedDistanceProvider,
    build_distance_matrix,
)
from dclusters.distances import DistanceMethod, DistanceSettings, INSUFFICIENT_OVERLAP
from dclusters.sequence import Sequence


class TestDistanceProviderABC:
    """Test suite for DistanceProvider abstract base class."""

    def test_abstract_methods(self):
        """Test that DistanceProvider cannot be instantiated directly."""
        with pytest.raises(TypeError):
            DistanceProvider()


class TestCachedDistanceProvider:
    """Test suite for CachedDistanceProvider."""

    def setup_method(self):
        """Set up test fixtures."""
        self.sequences = [
            Sequence("s0", "ACGTACGTAC"),
            Sequence("s1", "ACGTACGTAA"),
            Sequence("s2", "TTTTGGGGCC"),
        ]
        self.settings = DistanceSettings(min_overlap=5)

    def test_self_distance_zero(self):
        """Test a sequence is at distance zero from itself."""
        provider = CachedDistanceProvider(self.settings)
        assert provider.get_distance(self.sequences[0], self.sequences[0]) == 0.0

    def test_self_distance_respects_overlap(self):
        """Test a sequence without data is not comparable even with itself."""
        provider = CachedDistanceProvider(self.settings)
        empty = Sequence("empty", "??????????")
        assert provider.get_distance(empty, empty) is INSUFFICIENT_OVERLAP
        assert provider.get_distance(empty, empty.with_name("renamed")) is INSUFFICIENT_OVERLAP

    def test_distance_computed_once(self):
        """Test repeated and reversed lookups are served from the cache."""
        provider = CachedDistanceProvider(self.settings)
        first = provider.get_distance(self.sequences[0], self.sequences[1])
        second = provider.get_distance(self.sequences[1], self.sequences[0])
        assert first == pytest.approx(0.1)
        assert second == first
        assert provider.computed == 1

    def test_insufficient_overlap_cached(self):
        """Test insufficient overlap is cached and not recomputed."""
        provider = CachedDistanceProvider(DistanceSettings(min_overlap=50))
        with patch('dclusters.distance_providers.pairwise_distance',
                   return_value=INSUFFICIENT_OVERLAP) as mock_distance:
            provider.get_distance(self.sequences[0], self.sequences[1])
            result = provider.get_distance(self.sequences[0], self.sequences[1])
        assert result is INSUFFICIENT_OVERLAP
        assert mock_distance.call_count == 1

    def test_shared_cache_cleared_by_other_settings(self):
        """Test providers with different settings never see each other's values."""
        cache = DistanceCache()
        uncorrected = CachedDistanceProvider(self.settings, cache)
        k2p = CachedDistanceProvider(DistanceSettings(min_overlap=5, method=DistanceMethod.K2P), cache)
        a, b = self.sequences[0], self.sequences[1]

        uncorrected.get_distance(a, b)
        assert len(cache) == 1
        k2p.get_distance(a, b)
        assert k2p.computed == 1

    def test_get_distances_from_sequence(self):
        """Test distances to several targets keyed by target id."""
        provider = CachedDistanceProvider(self.settings)
        result = provider.get_distances_from_sequence(self.sequences[0], self.sequences[1:])
        assert set(result) == {self.sequences[1].id, self.sequences[2].id}

    def test_ensure_distances_computed(self):
        """Test all pairs are computed up front."""
        provider = CachedDistanceProvider(self.settings)
        provider.ensure_distances_computed(self.sequences)
        assert provider.computed == 3
        assert len(provider.cache) == 3


class TestPrecomputedDistanceProvider:
    """Test suite for PrecomputedDistanceProvider."""

    def setup_method(self):
        """Set up test fixtures."""
        self.sequences = [Sequence(f"s{i}", "ACGT") for i in range(3)]
        self.matrix = np.array([
            [0.0, 0.02, np.nan],
            [0.02, 0.0, 0.1],
            [np.nan, 0.1, 0.0],
        ])

    def test_lookup(self):
        """Test values come from the matrix."""
        provider = PrecomputedDistanceProvider(self.sequences, self.matrix)
        assert provider.get_distance(self.sequences[0], self.sequences[1]) == pytest.approx(0.02)
        assert provider.get_distance(self.sequences[2], self.sequences[1]) == pytest.approx(0.1)

    def test_nan_is_insufficient_overlap(self):
        """Test NaN entries stand for insufficient overlap."""
        provider = PrecomputedDistanceProvider(self.sequences, self.matrix)
        assert provider.get_distance(self.sequences[0], self.sequences[2]) is INSUFFICIENT_OVERLAP

    def test_unknown_sequence(self):
        """Test sequences outside the matrix raise KeyError."""
        provider = PrecomputedDistanceProvider(self.sequences, self.matrix)
        with pytest.raises(KeyError):
            provider.get_distance(self.sequences[0], Sequence("other", "ACGT"))

    def test_shape_mismatch(self):
        """Test the matrix must match the number of sequences."""
        with pytest.raises(ValueError):
            PrecomputedDistanceProvider(self.sequences[:2], self.matrix)

    def test_asymmetric_matrix(self):
        """Test the matrix must be symmetric."""
        matrix = np.array([[0.0, 0.1], [0.2, 0.0]])
        with pytest.raises(ValueError):
            PrecomputedDistanceProvider(self.sequences[:2], matrix)


class TestBuildDistanceMatrix:
    """Test full matrix construction."""

    def test_matrix_from_provider(self):
        """Test the matrix mirrors provider distances with NaN for the sentinel."""
        sequences = [Sequence(f"s{i}", "ACGT") for i in range(3)]
        source = np.array([
            [0.0, 0.02, np.nan],
            [0.02, 0.0, 0.1],
            [np.nan, 0.1, 0.0],
        ])
        provider = PrecomputedDistanceProvider(sequences, source)
        matrix = build_distance_matrix(sequences, provider)
        assert matrix.shape == (3, 3)
        assert matrix[0, 1] == pytest.approx(0.02)
        assert matrix[1, 0] == pytest.approx(0.02)
        assert np.isnan(matrix[0, 2])
        assert matrix[1, 1] == 0.0

    def test_progress_bar(self):
        """Test the progress bar is created and closed when requested."""
        sequences = [Sequence(f"s{i}", "ACGTACGTAC") for i in range(3)]
        provider = CachedDistanceProvider(DistanceSettings(min_overlap=1))
        with patch('dclusters.distance_providers.tqdm') as mock_tqdm:
            build_distance_matrix(sequences, provider, show_progress=True)
        mock_tqdm.assert_called_once()
        assert mock_tqdm.return_value.update.call_count == 3
        mock_tqdm.return_value.close.assert_called_once()
