"""Memoized pairwise distances keyed by sequence identity."""

import logging
import threading
import uuid
from typing import Callable, Dict, Optional, Tuple

import psutil

from .distances import DistanceResult, DistanceSettings

logger = logging.getLogger(__name__)

DEFAULT_MEMORY_LIMIT = 0.9
DEFAULT_CHECK_INTERVAL = 1000

PairKey = Tuple[uuid.UUID, uuid.UUID]


def system_memory_fraction() -> float:
    """Fraction of system memory currently in use (0.0 - 1.0)."""
    return psutil.virtual_memory().percent / 100.0


def pair_key(id_a: uuid.UUID, id_b: uuid.UUID) -> PairKey:
    return (id_a, id_b) if id_a <= id_b else (id_b, id_a)


class DistanceCache:
    """
    Thread-safe cache of distance results for unordered sequence pairs.

    The cache is cleared wholesale, never entry by entry: when memory use
    crosses ``memory_limit`` or when the distance settings it serves change.
    Edited sequences carry new identities, so their old entries are simply
    never looked up again.
    """

    def __init__(self, memory_limit: float = DEFAULT_MEMORY_LIMIT,
                 check_interval: int = DEFAULT_CHECK_INTERVAL,
                 memory_probe: Optional[Callable[[], float]] = None):
        """
        Args:
            memory_limit: Fraction of memory in use above which the cache is dropped
            check_interval: Number of ``check`` calls between memory samples
            memory_probe: Callable returning memory use as a fraction
                (defaults to psutil system memory)
        """
        if not 0.0 < memory_limit <= 1.0:
            raise ValueError(f"memory_limit must be in (0, 1], got {memory_limit}")
        if check_interval < 1:
            raise ValueError(f"check_interval must be positive, got {check_interval}")

        self.memory_limit = memory_limit
        self.check_interval = check_interval
        self._memory_probe = memory_probe or system_memory_fraction
        self._entries: Dict[PairKey, DistanceResult] = {}
        self._lock = threading.Lock()
        self._settings: Optional[DistanceSettings] = None
        self._checks_since_probe = 0

        self.hits = 0
        self.misses = 0
        self.clears = 0

    def get(self, id_a: uuid.UUID, id_b: uuid.UUID) -> Optional[DistanceResult]:
        """Cached result for the pair, or None on a miss."""
        key = pair_key(id_a, id_b)
        with self._lock:
            result = self._entries.get(key)
            if result is None:
                self.misses += 1
            else:
                self.hits += 1
            return result

    def put(self, id_a: uuid.UUID, id_b: uuid.UUID, result: DistanceResult) -> None:
        key = pair_key(id_a, id_b)
        with self._lock:
            self._entries[key] = result

    def clear(self) -> None:
        with self._lock:
            self._clear_locked()

    def _clear_locked(self) -> None:
        if self._entries:
            logger.debug(f"Clearing distance cache ({len(self._entries)} entries)")
        self._entries.clear()
        self.clears += 1

    def check(self, settings: DistanceSettings) -> None:
        """
        Run the invalidation checks before a lookup.

        Clears the cache if ``settings`` differ from the settings seen on the
        previous call, and periodically if memory use exceeds the limit.
        """
        with self._lock:
            if self._settings is not None and self._settings != settings:
                logger.debug("Distance settings changed; clearing distance cache")
                self._clear_locked()
            self._settings = settings

            self._checks_since_probe += 1
            if self._checks_since_probe < self.check_interval:
                return
            self._checks_since_probe = 0

            usage = self._memory_probe()
            if usage > self.memory_limit:
                logger.warning(
                    f"Memory usage {usage:.1%} exceeds limit {self.memory_limit:.1%}; "
                    f"dropping {len(self._entries)} cached distances"
                )
                self._clear_locked()

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                'entries': len(self._entries),
                'hits': self.hits,
                'misses': self.misses,
                'clears': self.clears,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: PairKey) -> bool:
        with self._lock:
            return pair_key(*key) in self._entries
