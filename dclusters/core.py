"""
Core clustering algorithm for dclusters.

This module implements agglomerative clustering of DNA sequences in a single
streaming pass. Each sequence joins the first cluster it links to, and fuses
every further cluster it also links to ("bridging"). A second pass verifies
that no two resulting clusters could still be merged.
"""

import logging
import uuid
from enum import Enum
from functools import cmp_to_key
from itertools import combinations
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple

from .distances import DistanceResult
from .linkage import Linkage
from .progress import DelayCallback, NullProgress
from .sequence import Sequence
from .species import species_key


class ClusterJobStateError(RuntimeError):
    """Raised when a ClusterJob is used outside its execute-once lifecycle."""
    pass


class InconsistentClusteringError(RuntimeError):
    """Raised when verification finds two clusters that should have merged."""

    def __init__(self, first: 'Cluster', second: 'Cluster', distance: DistanceResult):
        self.first = first
        self.second = second
        self.distance = distance
        super().__init__(
            f"Clusters of {len(first)} and {len(second)} sequences remain linkable "
            f"(distance {distance!r}) after clustering"
        )


class ClusterKind(Enum):
    COMPLETE = "complete"      # one species, every known sequence of it
    INCOMPLETE = "incomplete"  # one species, some of its sequences elsewhere
    MIXED = "mixed"            # several species


class Cluster:
    """A set of sequences, stored as indices into the owning job's input."""

    def __init__(self, arena: Tuple[Sequence, ...], indices: Iterable[int]):
        self._arena = arena
        self._indices = set(indices)
        if not self._indices:
            raise ValueError("A cluster needs at least one member")

    def _add(self, index: int) -> None:
        self._indices.add(index)

    def _absorb(self, other: 'Cluster') -> None:
        self._indices |= other._indices

    @property
    def indices(self) -> FrozenSet[int]:
        return frozenset(self._indices)

    @property
    def first_index(self) -> int:
        return min(self._indices)

    def ids(self) -> FrozenSet[uuid.UUID]:
        return frozenset(self._arena[i].id for i in self._indices)

    def sequences(self) -> List[Sequence]:
        """Member sequences in input order."""
        return [self._arena[i] for i in sorted(self._indices)]

    def __iter__(self) -> Iterator[uuid.UUID]:
        for i in sorted(self._indices):
            yield self._arena[i].id

    def __len__(self) -> int:
        return len(self._indices)

    def __contains__(self, item) -> bool:
        if isinstance(item, Sequence):
            item = item.id
        return any(self._arena[i].id == item for i in self._indices)

    def species_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for seq in self.sequences():
            key = species_key(seq)
            counts[key] = counts.get(key, 0) + 1
        return counts

    def species_count(self) -> int:
        """Number of distinct species; each unnamed sequence counts as its own."""
        return len(self.species_counts())

    def summary_kind(self, species_counts: Dict[str, int]) -> ClusterKind:
        """
        Classify the cluster against dataset-wide species sizes.

        Args:
            species_counts: Number of sequences per species key in the whole dataset

        Returns:
            MIXED for several species, COMPLETE if the single species has no
            sequences outside this cluster, INCOMPLETE otherwise
        """
        own = self.species_counts()
        if len(own) > 1:
            return ClusterKind.MIXED
        (key, count), = own.items()
        if count >= species_counts.get(key, 0):
            return ClusterKind.COMPLETE
        return ClusterKind.INCOMPLETE

    def sort_key(self) -> Tuple[int, int, int]:
        return (-self.species_count(), -len(self), self.first_index)

    @staticmethod
    def compare(a: 'Cluster', b: 'Cluster') -> int:
        """Order by descending species count, then descending size."""
        ka, kb = a.sort_key(), b.sort_key()
        return (ka > kb) - (ka < kb)

    def __repr__(self) -> str:
        return f"Cluster(size={len(self)}, first={self.first_index})"


def sort_clusters(clusters: Iterable[Cluster]) -> List[Cluster]:
    return sorted(clusters, key=cmp_to_key(Cluster.compare))


class ClusterJob:
    """
    A single clustering run over a frozen snapshot of the input sequences.

    A job executes successfully at most once. A cancelled job keeps no
    partial results and may be executed again.
    """

    def __init__(self,
                 sequences: Iterable[Sequence],
                 linkage: Linkage,
                 threshold: float,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize the clustering job.

        Args:
            sequences: Sequences to cluster, processed in iteration order
            linkage: Rule deciding whether sequences and clusters link
            threshold: Distance below which sequences link
            logger: Optional logger instance for output

        Raises:
            TypeError: If an input item is not a Sequence
            ValueError: If an identity appears twice, or the threshold is
                negative or not a number
        """
        snapshot = tuple(sequences)
        seen: Dict[uuid.UUID, int] = {}
        for position, item in enumerate(snapshot):
            if not isinstance(item, Sequence):
                raise TypeError(
                    f"Item {position} is {type(item).__name__}, expected Sequence"
                )
            if item.id in seen:
                raise ValueError(
                    f"Item {position} ({item.name!r}) has the same identity as item {seen[item.id]}"
                )
            seen[item.id] = position
        if not threshold >= 0:
            raise ValueError(f"Threshold must be a non-negative number, got {threshold}")

        self._sequences = snapshot
        self.linkage = linkage
        self.threshold = threshold
        self.logger = logger or logging.getLogger(__name__)
        self._clusters: Optional[List[Cluster]] = None

    @property
    def sequences(self) -> Tuple[Sequence, ...]:
        return self._sequences

    @property
    def is_executed(self) -> bool:
        return self._clusters is not None

    def execute(self, callback: Optional[DelayCallback] = None) -> None:
        """
        Cluster the snapshot and verify the result.

        Raises:
            Cancelled: If the callback cancels; no results are kept
            InconsistentClusteringError: If verification finds linkable clusters
            ClusterJobStateError: If the job already completed
        """
        if self._clusters is not None:
            raise ClusterJobStateError("ClusterJob has already been executed")
        callback = callback or NullProgress()

        self.logger.info(
            f"Clustering {len(self._sequences)} sequences with {self.linkage.name} linkage "
            f"at threshold {self.threshold:.4f}"
        )
        clusters = self._assign(callback)
        self._verify(clusters, callback)
        self._clusters = clusters
        self.logger.info(f"Clustering complete: {len(clusters)} clusters")

    def _assign(self, callback: DelayCallback) -> List[Cluster]:
        arena = self._sequences
        total = len(arena)
        clusters: List[Cluster] = []
        bridges = 0

        callback.begin()
        try:
            for index, seq in enumerate(arena):
                target: Optional[Cluster] = None
                for cluster in list(clusters):
                    if not self.linkage.can_link_to_cluster(cluster, seq, self.threshold):
                        continue
                    if target is None:
                        cluster._add(index)
                        target = cluster
                    elif self.linkage.can_merge_through(target, cluster, seq, self.threshold):
                        target._absorb(cluster)
                        clusters.remove(cluster)
                        bridges += 1
                        self.logger.debug(
                            f"Sequence {seq.name!r} bridged a cluster into one of {len(target)} members"
                        )

                if target is None:
                    clusters.append(Cluster(arena, [index]))

                callback.delay(index + 1, total)
        finally:
            callback.end()

        self.logger.debug(f"Assignment pass: {len(clusters)} clusters, {bridges} bridging merges")
        return clusters

    def _verify(self, clusters: List[Cluster], callback: DelayCallback) -> None:
        total = len(clusters) * (len(clusters) - 1) // 2
        done = 0

        callback.begin()
        try:
            for a, b in combinations(clusters, 2):
                if self.linkage.can_link_clusters(a, b, self.threshold):
                    distance = self.linkage.pairwise_distance(a, b)
                    self.logger.error(
                        f"Verification failed: clusters {a!r} and {b!r} link at distance {distance!r}"
                    )
                    raise InconsistentClusteringError(a, b, distance)
                done += 1
                callback.delay(done, total)
        finally:
            callback.end()

    def clusters(self) -> List[Cluster]:
        """Resulting clusters; only available after a successful execute()."""
        if self._clusters is None:
            raise ClusterJobStateError("ClusterJob has not been executed successfully")
        return list(self._clusters)

    def count(self) -> int:
        return len(self.clusters())

    def count_shared_clusters(self, other: 'ClusterJob') -> int:
        """Number of clusters with exactly the same membership in both jobs."""
        theirs = {cluster.ids() for cluster in other.clusters()}
        return sum(1 for cluster in self.clusters() if cluster.ids() in theirs)
