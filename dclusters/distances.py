"""
Pairwise genetic distances between aligned DNA sequences.

Three methods are supported: uncorrected p-distance, Kimura 2-parameter and
transversion-only. Pairs that share fewer comparable columns than the
configured minimum overlap yield ``INSUFFICIENT_OVERLAP`` instead of a number.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Union

from .sequence import (
    Sequence, base_mask, is_internal_gap, is_purine, is_pyrimidine,
    EXTERNAL_GAP, MISSING, INTERNAL_GAP,
)

logger = logging.getLogger(__name__)

DEFAULT_MIN_OVERLAP = 300


class DistanceMethod(Enum):
    UNCORRECTED = "uncorrected"
    K2P = "k2p"
    TRANSVERSION_ONLY = "transversion"


class _Insufficient(Enum):
    """Marker for pairs without enough shared columns to compare."""

    INSUFFICIENT_OVERLAP = "insufficient_overlap"

    def __lt__(self, other):
        raise TypeError("INSUFFICIENT_OVERLAP cannot be compared with a distance")

    __le__ = __gt__ = __ge__ = __lt__

    def __float__(self):
        raise TypeError("INSUFFICIENT_OVERLAP has no numeric value")

    def __repr__(self) -> str:
        return "INSUFFICIENT_OVERLAP"

    __str__ = __repr__


INSUFFICIENT_OVERLAP = _Insufficient.INSUFFICIENT_OVERLAP

DistanceResult = Union[float, _Insufficient]


def is_valid_distance(result: DistanceResult) -> bool:
    return result is not INSUFFICIENT_OVERLAP


@dataclass(frozen=True)
class DistanceSettings:
    """Caller-owned distance configuration consulted on every distance call."""
    min_overlap: int = DEFAULT_MIN_OVERLAP
    ambiguity_codes: bool = True
    method: DistanceMethod = DistanceMethod.UNCORRECTED

    def __post_init__(self):
        if self.min_overlap < 0:
            raise ValueError(f"min_overlap must be non-negative, got {self.min_overlap}")


def _is_classified(symbol: str) -> bool:
    return is_purine(symbol) or is_pyrimidine(symbol)


def _column_counts(a: str, b: str, method: DistanceMethod) -> bool:
    """Whether a single alignment column contributes to the shared length."""
    if a == MISSING or b == MISSING:
        return False
    if a == EXTERNAL_GAP or b == EXTERNAL_GAP:
        return False
    if a == INTERNAL_GAP or b == INTERNAL_GAP:
        return (is_internal_gap(a) and is_internal_gap(b)
                and method is not DistanceMethod.K2P)
    if method is DistanceMethod.TRANSVERSION_ONLY:
        return _is_classified(a) and _is_classified(b)
    return True


def shared_length(a: Sequence, b: Sequence,
                  method: DistanceMethod = DistanceMethod.UNCORRECTED) -> int:
    """
    Count the columns two sequences can be compared on.

    Only the first min(len(a), len(b)) columns are examined.
    """
    return sum(1 for x, y in zip(a.symbols, b.symbols) if _column_counts(x, y, method))


def _identical(x: str, y: str, ambiguity_codes: bool) -> bool:
    if x == y:
        return True
    if ambiguity_codes:
        return (base_mask(x) & base_mask(y)) != 0
    return False


def _is_transversion(x: str, y: str) -> bool:
    return (is_purine(x) and is_pyrimidine(y)) or (is_pyrimidine(x) and is_purine(y))


def count_identical(a: Sequence, b: Sequence, ambiguity_codes: bool = True) -> int:
    """Number of comparable (uncorrected) columns holding identical symbols."""
    return sum(
        1 for x, y in zip(a.symbols, b.symbols)
        if _column_counts(x, y, DistanceMethod.UNCORRECTED) and _identical(x, y, ambiguity_codes)
    )


def count_transversions(a: Sequence, b: Sequence) -> int:
    return sum(
        1 for x, y in zip(a.symbols, b.symbols)
        if _column_counts(x, y, DistanceMethod.TRANSVERSION_ONLY) and _is_transversion(x, y)
    )


def _k2p_counts(a: Sequence, b: Sequence) -> Tuple[int, int, int]:
    """(compared columns, transitions, transversions) over classified base columns."""
    n = transitions = transversions = 0
    for x, y in zip(a.symbols, b.symbols):
        if not _column_counts(x, y, DistanceMethod.K2P):
            continue
        if not (_is_classified(x) and _is_classified(y)):
            continue
        n += 1
        if x == y:
            continue
        if _is_transversion(x, y):
            transversions += 1
        else:
            transitions += 1
    return n, transitions, transversions


def k2p_distance(n: int, transitions: int, transversions: int) -> float:
    """
    Kimura 2-parameter distance from transition/transversion counts.

    Degenerate input (no columns, saturated divergence) yields 0.0 rather
    than NaN or a negative number.

    Counts come from columns where both symbols are a purine (A, G, R) or a
    pyrimidine (C, T, Y). Only exactly equal symbols are unchanged, so R
    against A is a transition whether or not ambiguity codes are enabled.
    """
    if n == 0:
        return 0.0
    p = transitions / n
    q = transversions / n
    w1 = 1.0 - 2.0 * p - q
    w2 = 1.0 - 2.0 * q
    if w1 <= 0.0 or w2 <= 0.0:
        logger.debug(f"K2P undefined for P={p:.4f}, Q={q:.4f}; clamping to 0.0")
        return 0.0
    d = -0.5 * math.log(w1) - 0.25 * math.log(w2)
    if not math.isfinite(d) or d <= 0.0:
        return 0.0
    return d


def pairwise_distance(a: Sequence, b: Sequence, settings: DistanceSettings) -> DistanceResult:
    """
    Distance between two aligned sequences under ``settings``.

    Returns:
        A non-negative float, or INSUFFICIENT_OVERLAP when the pair shares
        fewer than ``settings.min_overlap`` comparable columns.
    """
    method = settings.method

    shared = shared_length(a, b, method)
    if shared < settings.min_overlap or shared == 0:
        return INSUFFICIENT_OVERLAP

    if method is DistanceMethod.K2P:
        return k2p_distance(*_k2p_counts(a, b))

    if method is DistanceMethod.TRANSVERSION_ONLY:
        return count_transversions(a, b) / shared

    return 1.0 - count_identical(a, b, settings.ambiguity_codes) / shared
