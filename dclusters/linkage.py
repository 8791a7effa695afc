"""
Linkage rules deciding when a sequence may join a cluster, or two clusters merge.

All rules are built on a DistanceProvider; the clustering engine only talks to
the Linkage interface, so new rules can be added here without touching it.
"""

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, List

from .distance_providers import DistanceProvider
from .distances import DistanceResult, INSUFFICIENT_OVERLAP, is_valid_distance
from .sequence import Sequence

if TYPE_CHECKING:
    from .core import Cluster

logger = logging.getLogger(__name__)


class Linkage(ABC):
    """Abstract base class for linkage rules."""

    name = "linkage"

    def __init__(self, distances: DistanceProvider):
        self.distances = distances

    def _cross_distances(self, a: 'Cluster', b: 'Cluster') -> List[DistanceResult]:
        b_members = b.sequences()
        return [self.distances.get_distance(x, y) for x in a.sequences() for y in b_members]

    @abstractmethod
    def can_link_to_cluster(self, cluster: 'Cluster', candidate: Sequence, threshold: float) -> bool:
        """Whether ``candidate`` may join ``cluster`` at ``threshold``."""
        pass

    @abstractmethod
    def pairwise_distance(self, a: 'Cluster', b: 'Cluster') -> DistanceResult:
        """Distance between two clusters under this rule."""
        pass

    def can_link_clusters(self, a: 'Cluster', b: 'Cluster', threshold: float) -> bool:
        """Whether clusters ``a`` and ``b`` may merge at ``threshold``."""
        distance = self.pairwise_distance(a, b)
        return is_valid_distance(distance) and distance < threshold

    def can_merge_through(self, target: 'Cluster', other: 'Cluster',
                          candidate: Sequence, threshold: float) -> bool:
        """
        Whether ``other`` may be fused into ``target``, which has just taken
        ``candidate``, because ``candidate`` also links to ``other``.
        """
        return self.can_link_clusters(target, other, threshold)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class SingleLinkage(Linkage):
    """Minimum linkage: the closest valid cross pair decides."""

    name = "single"

    def can_link_to_cluster(self, cluster: 'Cluster', candidate: Sequence, threshold: float) -> bool:
        for member in cluster.sequences():
            distance = self.distances.get_distance(member, candidate)
            if is_valid_distance(distance) and distance < threshold:
                return True
        return False

    def pairwise_distance(self, a: 'Cluster', b: 'Cluster') -> DistanceResult:
        valid = [d for d in self._cross_distances(a, b) if is_valid_distance(d)]
        if not valid:
            return INSUFFICIENT_OVERLAP
        return min(valid)

    def can_merge_through(self, target: 'Cluster', other: 'Cluster',
                          candidate: Sequence, threshold: float) -> bool:
        # candidate is in target and within threshold of a member of other
        return True


class CompleteLinkage(Linkage):
    """Maximum linkage: every cross pair must be valid and within threshold."""

    name = "complete"

    def can_link_to_cluster(self, cluster: 'Cluster', candidate: Sequence, threshold: float) -> bool:
        for member in cluster.sequences():
            distance = self.distances.get_distance(member, candidate)
            if not is_valid_distance(distance) or distance >= threshold:
                return False
        return True

    def pairwise_distance(self, a: 'Cluster', b: 'Cluster') -> DistanceResult:
        distances = self._cross_distances(a, b)
        if not all(is_valid_distance(d) for d in distances):
            return INSUFFICIENT_OVERLAP
        return max(distances)


class AverageLinkage(Linkage):
    """Average linkage: mean of the valid cross-pair distances."""

    name = "average"

    def can_link_to_cluster(self, cluster: 'Cluster', candidate: Sequence, threshold: float) -> bool:
        valid = [d for d in (self.distances.get_distance(m, candidate) for m in cluster.sequences())
                 if is_valid_distance(d)]
        return bool(valid) and sum(valid) / len(valid) < threshold

    def pairwise_distance(self, a: 'Cluster', b: 'Cluster') -> DistanceResult:
        valid = [d for d in self._cross_distances(a, b) if is_valid_distance(d)]
        if not valid:
            return INSUFFICIENT_OVERLAP
        return sum(valid) / len(valid)


LINKAGES = {
    SingleLinkage.name: SingleLinkage,
    CompleteLinkage.name: CompleteLinkage,
    AverageLinkage.name: AverageLinkage,
}


def make_linkage(name: str, distances: DistanceProvider) -> Linkage:
    try:
        return LINKAGES[name](distances)
    except KeyError:
        raise ValueError(f"Unknown linkage {name!r}; choose from {sorted(LINKAGES)}") from None
