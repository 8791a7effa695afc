"""Per-species summaries of a sequence collection."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .distance_providers import DistanceProvider
from .distances import DEFAULT_MIN_OVERLAP, is_valid_distance
from .progress import DelayCallback, NullProgress
from .sequence import Sequence

logger = logging.getLogger(__name__)


def species_key(seq: Sequence) -> str:
    """Species label used for grouping; unnamed sequences are labelled by their full name."""
    return seq.species_name or "{" + seq.name + "}"


@dataclass
class SpeciesDetail:
    """Sequences belonging to one species."""
    name: str
    sequences: List[Sequence] = field(default_factory=list)
    with_valid_conspecifics: int = 0

    def add(self, seq: Sequence) -> None:
        self.sequences.append(seq)

    @property
    def count(self) -> int:
        return len(self.sequences)

    @property
    def without_valid_conspecifics(self) -> int:
        return self.count - self.with_valid_conspecifics

    @property
    def longest_sequence_length(self) -> int:
        return max((seq.actual_length for seq in self.sequences), default=0)

    @property
    def gi_numbers(self) -> List[str]:
        return [seq.gi for seq in self.sequences if seq.gi]


class SpeciesDetails:
    """
    Species-level summary of a sequence collection.

    Sequences without a parsable species name are counted but not assigned
    to any species. When a distance provider is given, each species also
    records how many of its sequences have at least one conspecific they can
    be validly compared with.
    """

    def __init__(self,
                 sequences: Iterable[Sequence],
                 distances: Optional[DistanceProvider] = None,
                 min_overlap: int = DEFAULT_MIN_OVERLAP,
                 callback: Optional[DelayCallback] = None):
        callback = callback or NullProgress()
        self.sequences = list(sequences)
        self.details: Dict[str, SpeciesDetail] = {}
        self.without_name = 0
        self.invalid = 0

        callback.begin()
        try:
            total = len(self.sequences)
            for done, seq in enumerate(self.sequences, start=1):
                name = seq.species_name
                if name is None:
                    self.without_name += 1
                else:
                    self.details.setdefault(name, SpeciesDetail(name)).add(seq)
                if seq.actual_length < min_overlap:
                    self.invalid += 1
                callback.delay(done, total)
        finally:
            callback.end()

        if distances is not None:
            for detail in self.details.values():
                detail.with_valid_conspecifics = self._count_valid_conspecifics(detail, distances)

        logger.debug(f"{len(self.details)} species across {len(self.sequences)} sequences "
                     f"({self.without_name} without a name)")

    @staticmethod
    def _count_valid_conspecifics(detail: SpeciesDetail, distances: DistanceProvider) -> int:
        count = 0
        for seq in detail.sequences:
            if any(other.id != seq.id and is_valid_distance(distances.get_distance(seq, other))
                   for other in detail.sequences):
                count += 1
        return count

    @property
    def sequence_count(self) -> int:
        return len(self.sequences)

    @property
    def species_count(self) -> int:
        return len(self.details)

    @property
    def valid_species_count(self) -> int:
        """Species with at least one validly comparable pair of sequences."""
        return sum(1 for d in self.details.values() if d.with_valid_conspecifics > 0)

    @property
    def sequences_with_valid_conspecifics(self) -> int:
        return sum(d.with_valid_conspecifics for d in self.details.values())

    def species_names(self) -> List[str]:
        return sorted(self.details)

    def get(self, name: str) -> Optional[SpeciesDetail]:
        return self.details.get(name)

    def species_counts(self) -> Dict[str, int]:
        """Sequences per species key, including unnamed sequences under their own keys."""
        counts: Dict[str, int] = {}
        for seq in self.sequences:
            key = species_key(seq)
            counts[key] = counts.get(key, 0) + 1
        return counts
