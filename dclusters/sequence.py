"""
DNA sequence values for dclusters.

A Sequence is immutable: renaming keeps its identity, while any change to the
symbols produces a new identity. Distance caches are keyed on identities, so
a stale cached distance can never be served for edited symbols.

Symbols are stored internally as upper-case characters:

    A C T G                 bases
    R Y K M S W B D H V N   IUPAC ambiguity codes
    -                       internal gap
    _                       external gap (leading/trailing gaps)
    ?                       missing data
"""

import logging
import re
import uuid
from typing import Dict, Optional

logger = logging.getLogger(__name__)

INTERNAL_GAP = '-'
EXTERNAL_GAP = '_'
MISSING = '?'

# Four-bit masks: A=1, C=2, T=4, G=8
_MASKS: Dict[str, int] = {
    'A': 1, 'C': 2, 'T': 4, 'G': 8,
    'M': 1 | 2,          # A/C
    'W': 1 | 4,          # A/T
    'R': 1 | 8,          # A/G
    'Y': 2 | 4,          # C/T
    'S': 2 | 8,          # C/G
    'K': 4 | 8,          # T/G
    'H': 1 | 2 | 4,      # not G
    'V': 1 | 2 | 8,      # not T
    'D': 1 | 4 | 8,      # not C
    'B': 2 | 4 | 8,      # not A
    'N': 1 | 2 | 4 | 8,
}

_CODES: Dict[int, str] = {mask: code for code, mask in _MASKS.items()}

_COMPLEMENTS: Dict[str, str] = {
    'A': 'T', 'T': 'A', 'C': 'G', 'G': 'C',
    'R': 'Y', 'Y': 'R', 'K': 'M', 'M': 'K',
    'S': 'S', 'W': 'W', 'N': 'N',
    'B': 'V', 'V': 'B', 'D': 'H', 'H': 'D',
    INTERNAL_GAP: INTERNAL_GAP, EXTERNAL_GAP: EXTERNAL_GAP, MISSING: MISSING,
}

PURINES = frozenset('AGR')
PYRIMIDINES = frozenset('CTY')

_INPUT_SYMBOLS = frozenset(_MASKS) | {INTERNAL_GAP, MISSING}

_TRINOMIAL = re.compile(r"([A-Z][a-z]+) ([a-z]+) ([a-z]+)\b")
_BINOMIAL = re.compile(r"([A-Z][a-z]+) ([a-z]+)\b")
_GI = re.compile(r"gi\|(\d+)[|:]")
_FAMILY = re.compile(r"\(family:\s*([^\W\d_]+)\s*\)")


class SequenceError(ValueError):
    """Raised when a sequence string contains symbols that cannot be interpreted."""
    pass


def base_mask(symbol: str) -> int:
    """Bit mask for a base or ambiguity code, 0 for gaps and missing data."""
    return _MASKS.get(symbol, 0)


def code_for_mask(mask: int) -> str:
    """Decode a non-zero bit mask back to a base or ambiguity code."""
    if mask not in _CODES:
        raise SequenceError(f"No nucleotide code for mask {mask}")
    return _CODES[mask]


def consensus_symbol(a: str, b: str) -> str:
    """Consensus of two symbols.

    Bases are combined by OR-ing their masks. A gap or missing symbol on one
    side yields the other side's symbol.
    """
    mask_a, mask_b = base_mask(a), base_mask(b)
    if mask_a and mask_b:
        return code_for_mask(mask_a | mask_b)
    if mask_a:
        return a
    if mask_b:
        return b
    if a == b:
        return a
    # Mixed gap/missing columns
    if INTERNAL_GAP in (a, b):
        return INTERNAL_GAP
    return MISSING


def complement_symbol(symbol: str) -> str:
    try:
        return _COMPLEMENTS[symbol]
    except KeyError:
        raise SequenceError(f"Cannot complement symbol {symbol!r}") from None


def is_purine(symbol: str) -> bool:
    return symbol in PURINES


def is_pyrimidine(symbol: str) -> bool:
    return symbol in PYRIMIDINES


def is_gap(symbol: str) -> bool:
    return symbol == INTERNAL_GAP or symbol == EXTERNAL_GAP


def is_internal_gap(symbol: str) -> bool:
    return symbol == INTERNAL_GAP


def is_missing(symbol: str) -> bool:
    return symbol == MISSING


def is_ambiguous(symbol: str) -> bool:
    mask = base_mask(symbol)
    return mask != 0 and mask not in (1, 2, 4, 8)


def _collapse_group(group: str) -> str:
    mask = 0
    for symbol in group:
        if symbol not in _MASKS:
            raise SequenceError(f"Invalid symbol {symbol!r} in ambiguity group [{group}]")
        mask |= _MASKS[symbol]
    if mask == 0:
        raise SequenceError("Empty ambiguity group")
    return _CODES[mask]


def normalize_symbols(raw: str) -> str:
    """
    Convert a raw sequence string into the internal symbol representation.

    Whitespace is dropped, bracketed groups such as ``[AG]`` or ``(CT)`` are
    collapsed to a single ambiguity code, and leading and trailing runs of
    ``-`` (looking through ``?``) become external gaps.

    Raises:
        SequenceError: On unknown symbols, U, a literal external gap or
            unbalanced/nested brackets.
    """
    text = raw.upper()
    symbols = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch.isspace():
            i += 1
            continue
        if ch in '[(':
            closing = ']' if ch == '[' else ')'
            end = text.find(closing, i + 1)
            if end < 0:
                raise SequenceError(f"Unterminated ambiguity group at position {i}")
            group = text[i + 1:end]
            if any(c in '[]()' for c in group):
                raise SequenceError(f"Nested ambiguity group at position {i}")
            symbols.append(_collapse_group(group))
            i = end + 1
            continue
        if ch == 'U':
            raise SequenceError("RNA symbol 'U' is not supported; convert to T first")
        if ch not in _INPUT_SYMBOLS:
            raise SequenceError(f"Invalid symbol {ch!r} at position {i}")
        symbols.append(ch)
        i += 1

    # Leading and trailing gaps become external gaps
    for idx in range(len(symbols)):
        if symbols[idx] == INTERNAL_GAP:
            symbols[idx] = EXTERNAL_GAP
        elif symbols[idx] != MISSING:
            break
    for idx in range(len(symbols) - 1, -1, -1):
        if symbols[idx] == INTERNAL_GAP:
            symbols[idx] = EXTERNAL_GAP
        elif symbols[idx] not in (MISSING, EXTERNAL_GAP):
            break

    return ''.join(symbols)


class Sequence:
    """An immutable named DNA sequence with a stable identity."""

    __slots__ = ('_id', '_name', '_symbols', '_genus', '_epithet', '_subspecies',
                 '_gi', '_family', '_warning_flag')

    def __init__(self, name: str, symbols: str, _id: Optional[uuid.UUID] = None):
        self._symbols = normalize_symbols(symbols)
        self._id = _id if _id is not None else uuid.uuid4()
        self._set_name(name)

    def _set_name(self, name: str) -> None:
        name = name.replace('\n', ' ').strip()
        self._name = name
        self._genus = ''
        self._epithet = ''
        self._subspecies = ''
        self._gi = ''
        self._family = ''
        self._warning_flag = False

        match = _TRINOMIAL.search(name) or _BINOMIAL.search(name)
        if match:
            self._genus = match.group(1)
            self._epithet = match.group(2)
            if match.re is _TRINOMIAL:
                self._subspecies = match.group(3)
            if self._epithet == 'sp':
                self._warning_flag = True
        else:
            self._warning_flag = True

        gi_match = _GI.search(name)
        if gi_match:
            self._gi = gi_match.group(1)

        family_match = _FAMILY.search(name)
        if family_match:
            self._family = family_match.group(1)

    @classmethod
    def _with_id(cls, name: str, symbols: str, seq_id: uuid.UUID) -> 'Sequence':
        seq = cls.__new__(cls)
        seq._symbols = symbols
        seq._id = seq_id
        seq._set_name(name)
        return seq

    def with_name(self, name: str) -> 'Sequence':
        """Renamed copy; the identity is kept since the symbols are unchanged."""
        return Sequence._with_id(name, self._symbols, self._id)

    def with_symbols(self, symbols: str) -> 'Sequence':
        """Copy with new symbols and therefore a new identity."""
        return Sequence(self._name, symbols)

    @property
    def id(self) -> uuid.UUID:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    @property
    def symbols(self) -> str:
        return self._symbols

    @property
    def genus(self) -> str:
        return self._genus

    @property
    def epithet(self) -> str:
        return self._epithet

    @property
    def subspecies(self) -> str:
        return self._subspecies

    @property
    def gi(self) -> Optional[str]:
        return self._gi or None

    @property
    def family(self) -> str:
        return self._family

    @property
    def warning_flag(self) -> bool:
        """Set when the name could not be parsed into a complete binomial."""
        return self._warning_flag

    @property
    def species_name(self) -> Optional[str]:
        """'Genus epithet', or None if no species name could be parsed."""
        if not self._genus:
            return None
        return f"{self._genus} {self._epithet}"

    @property
    def display_name(self) -> str:
        if self._warning_flag:
            return "{" + self._name[:80] + "}"
        if self.gi is None or self.species_name is None:
            return self._name
        label = self.species_name
        if self._subspecies:
            label += f" ({self._subspecies})"
        if self._family:
            label += f" (Family {self._family})"
        return label + f" (gi:{self.gi})"

    @property
    def length(self) -> int:
        return len(self._symbols)

    @property
    def actual_length(self) -> int:
        """Number of columns that are neither external gaps nor missing data."""
        return sum(1 for s in self._symbols if s != EXTERNAL_GAP and s != MISSING)

    @property
    def ambiguous_count(self) -> int:
        return sum(1 for s in self._symbols if is_ambiguous(s))

    @property
    def internal_gap_count(self) -> int:
        return self._symbols.count(INTERNAL_GAP)

    @property
    def first_real_index(self) -> int:
        """Index of the first base or ambiguity code, -1 if there is none."""
        for idx, symbol in enumerate(self._symbols):
            if symbol in _MASKS:
                return idx
        return -1

    @property
    def last_real_index(self) -> int:
        for idx in range(len(self._symbols) - 1, -1, -1):
            if self._symbols[idx] in _MASKS:
                return idx
        return -1

    def expanded(self, begin: int, end: int) -> 'Sequence':
        """
        Copy padded with external gaps so that it spans columns [begin, end).

        ``begin`` must be <= 0 and ``end`` >= the current length; columns
        before index 0 are prepended.
        """
        if begin > 0 or end < self.length:
            raise ValueError(f"Cannot shrink sequence of length {self.length} to [{begin}, {end})")
        padded = EXTERNAL_GAP * (-begin) + self._symbols + EXTERNAL_GAP * (end - self.length)
        return Sequence._with_id(self._name, padded, uuid.uuid4())

    def consensus(self, other: 'Sequence') -> 'Sequence':
        """Column-wise consensus of two aligned sequences of equal length."""
        if self.length != other.length:
            raise SequenceError(
                f"Consensus requires equal lengths ({self.length} != {other.length})"
            )
        combined = ''.join(consensus_symbol(a, b) for a, b in zip(self._symbols, other.symbols))
        return Sequence._with_id(f"Consensus of {self._name} and {other.name}",
                                 combined, uuid.uuid4())

    def reverse_complement(self) -> 'Sequence':
        flipped = ''.join(complement_symbol(s) for s in reversed(self._symbols))
        return Sequence._with_id(self._name, flipped, uuid.uuid4())

    def __len__(self) -> int:
        return len(self._symbols)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Sequence):
            return NotImplemented
        return self._id == other._id

    def __hash__(self) -> int:
        return hash(self._id)

    def __repr__(self) -> str:
        return f"Sequence(name={self._name!r}, length={self.length})"
