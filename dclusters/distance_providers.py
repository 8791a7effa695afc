"""Distance providers consulted by linkage rules."""

import logging
import math
import uuid
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Sequence as SequenceType

import numpy as np
from tqdm import tqdm

from .cache import DistanceCache
from .distances import (
    DistanceResult, DistanceSettings, INSUFFICIENT_OVERLAP, is_valid_distance, pairwise_distance,
)
from .sequence import Sequence

logger = logging.getLogger(__name__)


class DistanceProvider(ABC):
    """Abstract base class for distance providers."""

    @abstractmethod
    def get_distance(self, a: Sequence, b: Sequence) -> DistanceResult:
        """Get distance between two sequences."""
        pass

    def get_distances_from_sequence(self, seq: Sequence,
                                    targets: Iterable[Sequence]) -> Dict[uuid.UUID, DistanceResult]:
        """Get distances from one sequence to several targets, keyed by target id."""
        return {target.id: self.get_distance(seq, target) for target in targets}

    def ensure_distances_computed(self, sequences: Iterable[Sequence]) -> None:
        """Ensure all pairwise distances within a set are available."""
        pass


class CachedDistanceProvider(DistanceProvider):
    """Computes distances on demand under fixed settings, memoized in a DistanceCache.

    Several providers may share one cache; the cache drops its contents when
    it is consulted with different settings.
    """

    def __init__(self, settings: Optional[DistanceSettings] = None,
                 cache: Optional[DistanceCache] = None):
        self.settings = settings or DistanceSettings()
        self.cache = cache if cache is not None else DistanceCache()
        self.computed = 0

    def get_distance(self, a: Sequence, b: Sequence) -> DistanceResult:
        # Entries computed under other settings must be dropped before lookup
        self.cache.check(self.settings)
        cached = self.cache.get(a.id, b.id)
        if cached is not None:
            return cached

        result = pairwise_distance(a, b, self.settings)
        self.computed += 1
        self.cache.put(a.id, b.id, result)
        return result

    def ensure_distances_computed(self, sequences: Iterable[Sequence]) -> None:
        seqs = list(sequences)
        for i in range(len(seqs)):
            for j in range(i + 1, len(seqs)):
                self.get_distance(seqs[i], seqs[j])


class PrecomputedDistanceProvider(DistanceProvider):
    """Distance provider that wraps a precomputed distance matrix.

    Matrix entries are indexed by the position of each sequence in
    ``sequences``. NaN entries stand for insufficient overlap.
    """

    def __init__(self, sequences: SequenceType[Sequence], distance_matrix: np.ndarray):
        """Initialize with sequences and their distance matrix.

        Args:
            sequences: Sequences in matrix order
            distance_matrix: Symmetric (n x n) matrix of pairwise distances
        """
        distance_matrix = np.asarray(distance_matrix, dtype=float)
        n = len(sequences)
        if distance_matrix.shape != (n, n):
            raise ValueError(
                f"Distance matrix shape {distance_matrix.shape} does not match {n} sequences"
            )
        if not np.allclose(distance_matrix, distance_matrix.T, equal_nan=True):
            raise ValueError("Distance matrix must be symmetric")

        self.distance_matrix = distance_matrix
        self._index: Dict[uuid.UUID, int] = {seq.id: i for i, seq in enumerate(sequences)}

    def get_distance(self, a: Sequence, b: Sequence) -> DistanceResult:
        try:
            value = self.distance_matrix[self._index[a.id], self._index[b.id]]
        except KeyError as e:
            raise KeyError(f"Sequence not in precomputed matrix: {e}") from None
        if math.isnan(value):
            return INSUFFICIENT_OVERLAP
        return float(value)


def build_distance_matrix(sequences: List[Sequence], provider: DistanceProvider,
                          show_progress: bool = False) -> np.ndarray:
    """
    Full pairwise distance matrix, with NaN for insufficient overlap.

    Args:
        sequences: Sequences to compare
        provider: Distance provider to query
        show_progress: Whether to show a tqdm progress bar

    Returns:
        Symmetric (n x n) numpy array
    """
    n = len(sequences)
    matrix = np.zeros((n, n))
    total_comparisons = (n * (n - 1)) // 2

    pbar = None
    if show_progress and total_comparisons > 0:
        pbar = tqdm(total=total_comparisons,
                    desc="Calculating pairwise distances",
                    unit=" comparisons")

    for i in range(n):
        for j in range(i + 1, n):
            result = provider.get_distance(sequences[i], sequences[j])
            value = result if is_valid_distance(result) else np.nan
            matrix[i, j] = value
            matrix[j, i] = value
            if pbar:
                pbar.update(1)

    if pbar:
        pbar.close()

    return matrix
