"""
Catalog of known payment instruments, built from loosely structured offer sheets.

Source sheets are maintained by hand, so the same information shows up under
different headers ("Applicable to Credit cards", "Credit Cards", "Eligible
credit cards") and cells mix delimiters ("HDFC Regalia, SBI Cashback / ICICI
Amazon Pay and Axis Ace"). This module:

    - Resolves the cell for each instrument type through an ordered alias list
    - Classifies "mixed" card columns (a "Cards" column holding both credit and
      debit cards) by row type hints or per-token keywords
    - Splits cells on every delimiter, except inside parentheses, so
      "HDFC Regalia (Visa/Mastercard)" stays one token
    - Reduces each token to a brand-corrected base name + variant
    - Dedupes by (normalized base name, type); the first display spelling wins

Rows arrive as plain {header: value} dicts and never leave this module (or
offer_matcher) in that form; everything downstream sees InstrumentName /
CatalogEntry.
"""

import logging
import re
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from card_matcher import (
    MAX_SUGGESTIONS,
    SUGGESTION_THRESHOLD,
    MatchCandidate,
    _as_text,
    canonicalize_brand,
    extract_base,
    extract_variant,
    normalize_name,
    rank_candidates,
    tidy_name,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Instrument types
# ---------------------------------------------------------------------------
INSTRUMENT_CREDIT = "credit"
INSTRUMENT_DEBIT = "debit"
INSTRUMENT_UPI = "upi"
INSTRUMENT_NETBANKING = "netbanking"

# Fixed order: catalog groups and suggestion groups are always shown like this
INSTRUMENT_TYPES = (INSTRUMENT_CREDIT, INSTRUMENT_DEBIT, INSTRUMENT_UPI, INSTRUMENT_NETBANKING)

INSTRUMENT_LABELS = {
    INSTRUMENT_CREDIT: "Credit Cards",
    INSTRUMENT_DEBIT: "Debit Cards",
    INSTRUMENT_UPI: "UPI",
    INSTRUMENT_NETBANKING: "Net Banking",
}

# ---------------------------------------------------------------------------
# Column aliases
# ---------------------------------------------------------------------------

# Ordered: exact (case-insensitive) header matches are tried for every alias
# before any substring match.
DEFAULT_COLUMN_ALIASES: Dict[str, List[str]] = {
    INSTRUMENT_CREDIT: [
        'Applicable to Credit cards', 'Credit Cards', 'Credit Card',
        'Eligible Credit Cards', 'credit',
    ],
    INSTRUMENT_DEBIT: [
        'Applicable to Debit cards', 'Debit Cards', 'Debit Card',
        'Eligible Debit Cards', 'debit',
    ],
    INSTRUMENT_UPI: [
        'Applicable to UPI', 'UPI', 'UPI Apps', 'UPI Handles', 'upi',
    ],
    INSTRUMENT_NETBANKING: [
        'Applicable to Net Banking', 'Net Banking', 'Netbanking',
        'net bank', 'netbank',
    ],
}

# Same-row columns that say which kind of card a mixed column holds
TYPE_HINT_ALIASES = ['Card Type', 'Payment Type', 'Payment Mode', 'Instrument Type', 'Type']

_DELIMITERS = re.compile(r'[,/;|\n\r•]|\band\b', re.IGNORECASE)


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class InstrumentName:
    raw: str
    normalized: str
    base_name: str      # brand-corrected display form, variant removed
    base_norm: str      # normalize_name(base_name) - the join key
    variant: str
    instrument_type: str


@dataclass(frozen=True)
class CatalogEntry:
    display: str
    base_norm: str
    type: str


# ---------------------------------------------------------------------------
# Cell resolution
# ---------------------------------------------------------------------------

def _header(h) -> str:
    return _as_text(h).strip().lower()


def is_mixed_header(header: str) -> bool:
    """
    A card column that doesn't commit to one type.

    'Applicable to cards' and 'Credit/Debit Cards' are mixed;
    'Applicable to Credit cards' and 'Card Type' are not.
    """
    h = _header(header)
    if 'cards' not in h:
        return False
    return ('credit' in h) == ('debit' in h)


def resolve_cell(
    row: Mapping[str, object],
    aliases: Sequence[str],
    skip_mixed: bool = True,
) -> str:
    """
    Return the first populated cell whose header matches one of `aliases`.

    Pass 1: case-insensitive exact header match, aliases in order.
    Pass 2: case-insensitive substring match (alias inside header), aliases in order.
    Mixed card headers are skipped unless skip_mixed=False.
    Returns '' when nothing matches (the field is simply absent for this row).
    """
    headers = [(h, _header(h)) for h in row.keys()]
    if skip_mixed:
        headers = [(h, hl) for h, hl in headers if not is_mixed_header(hl)]

    for alias in aliases:
        a = alias.lower()
        for h, hl in headers:
            if hl == a:
                value = _as_text(row[h]).strip()
                if value:
                    return value

    for alias in aliases:
        a = alias.lower()
        for h, hl in headers:
            if a in hl:
                value = _as_text(row[h]).strip()
                if value:
                    return value

    return ''


def resolve_mixed_cell(row: Mapping[str, object]) -> str:
    """First populated mixed card column in header order, or ''."""
    for h in row.keys():
        if is_mixed_header(h):
            value = _as_text(row[h]).strip()
            if value:
                return value
    return ''


def classify_hint(text: str) -> Optional[str]:
    """
    Map a type-hint cell ('Credit Card', 'DEBIT', 'UPI') to an instrument type.

    Returns None when the hint is empty or names both credit and debit.
    """
    t = normalize_name(text)
    if not t:
        return None
    has_credit = 'credit' in t
    has_debit = 'debit' in t
    if has_credit and not has_debit:
        return INSTRUMENT_CREDIT
    if has_debit and not has_credit:
        return INSTRUMENT_DEBIT
    if has_credit and has_debit:
        return None
    if re.search(r'\bupi\b', t):
        return INSTRUMENT_UPI
    if 'net bank' in t or 'netbank' in t:
        return INSTRUMENT_NETBANKING
    return None


def classify_token(token: str, extended: bool = False) -> Optional[str]:
    """
    Guess a token's type from keywords inside the token itself.

    'HDFC Millennia Debit Card' -> debit. With extended=True (offer sheets)
    'upi' and 'net bank' are recognised too.
    """
    t = normalize_name(token)
    if 'debit' in t:
        return INSTRUMENT_DEBIT
    if 'credit' in t:
        return INSTRUMENT_CREDIT
    if extended:
        if re.search(r'\bupi\b', t):
            return INSTRUMENT_UPI
        if 'net bank' in t or 'netbank' in t:
            return INSTRUMENT_NETBANKING
    return None


# ---------------------------------------------------------------------------
# Splitting and parsing
# ---------------------------------------------------------------------------

def split_instruments(cell: str) -> List[str]:
    """
    Split a cell on , / ; | newline bullet and the word 'and'.

    Delimiters inside parentheses are ignored:
        'HDFC Regalia (Visa/Mastercard), SBI Card' ->
            ['HDFC Regalia (Visa/Mastercard)', 'SBI Card']
    """
    cell = _as_text(cell)
    if not cell.strip():
        return []

    # Depth of parenthesis nesting at each character
    depth = []
    level = 0
    for ch in cell:
        if ch == '(':
            level += 1
        depth.append(level)
        if ch == ')' and level > 0:
            level -= 1

    tokens = []
    start = 0
    for m in _DELIMITERS.finditer(cell):
        if depth[m.start()] > 0:
            continue
        tokens.append(cell[start:m.start()])
        start = m.end()
    tokens.append(cell[start:])

    return [t for t in (tidy_name(tok) for tok in tokens) if t]


def parse_instrument(token: str, instrument_type: str) -> InstrumentName:
    """
    Turn one raw token into an InstrumentName.

    base_name = canonicalize_brand(extract_base(tidy_name(token)))
    """
    display = tidy_name(token)
    base = canonicalize_brand(extract_base(display))
    return InstrumentName(
        raw=_as_text(token),
        normalized=normalize_name(display),
        base_name=base,
        base_norm=normalize_name(base),
        variant=extract_variant(display),
        instrument_type=instrument_type,
    )


def extract_row_instruments(
    row: Mapping[str, object],
    column_aliases: Mapping[str, Sequence[str]] = None,
    extended_keywords: bool = False,
) -> Dict[str, List[InstrumentName]]:
    """
    Project one schema-free row into {instrument_type: [InstrumentName]}.

    1. Each type's own column via resolve_cell()
    2. A mixed card column, if present: the row's type hint classifies the
       whole cell, otherwise each token is classified on its own keywords;
       tokens that can't be classified are skipped
    Types with no instruments are omitted from the result.
    """
    if column_aliases is None:
        column_aliases = DEFAULT_COLUMN_ALIASES

    result: Dict[str, List[InstrumentName]] = {}

    def _add(instrument_type, token):
        inst = parse_instrument(token, instrument_type)
        if inst.base_norm:
            result.setdefault(instrument_type, []).append(inst)

    for instrument_type in INSTRUMENT_TYPES:
        aliases = column_aliases.get(instrument_type)
        if not aliases:
            continue
        for token in split_instruments(resolve_cell(row, aliases)):
            _add(instrument_type, token)

    mixed = resolve_mixed_cell(row)
    if mixed:
        hinted = classify_hint(resolve_cell(row, TYPE_HINT_ALIASES))
        for token in split_instruments(mixed):
            instrument_type = hinted or classify_token(token, extended=extended_keywords)
            if instrument_type is None:
                logger.debug("Skipping unclassified token %r", token)
                continue
            _add(instrument_type, token)

    return result


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class Catalog:
    """Catalog entries grouped by instrument type, each group sorted by display."""

    def __init__(self, entries: Mapping[str, List[CatalogEntry]] = None):
        entries = entries or {}
        self.entries: Dict[str, List[CatalogEntry]] = OrderedDict(
            (t, list(entries.get(t, []))) for t in INSTRUMENT_TYPES
        )

    def __len__(self) -> int:
        return sum(len(v) for v in self.entries.values())

    def __eq__(self, other) -> bool:
        return isinstance(other, Catalog) and self.entries == other.entries

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    def all_entries(self) -> List[CatalogEntry]:
        return [e for t in INSTRUMENT_TYPES for e in self.entries[t]]

    def find(self, base_norm: str, instrument_type: str) -> Optional[CatalogEntry]:
        for entry in self.entries.get(instrument_type, []):
            if entry.base_norm == base_norm:
                return entry
        return None

    def suggest(
        self,
        query: str,
        threshold: float = SUGGESTION_THRESHOLD,
        limit: int = MAX_SUGGESTIONS,
    ) -> Dict[str, List[MatchCandidate]]:
        """
        Ranked suggestions grouped by type, for a dropdown with group headers.

        Ranking and truncation happen across the whole catalog first; grouping
        keeps the ranked order inside each group. Empty groups are omitted.
        """
        ranked = rank_candidates(query, self.all_entries(), threshold=threshold, limit=limit)
        grouped: Dict[str, List[MatchCandidate]] = OrderedDict()
        for t in INSTRUMENT_TYPES:
            in_type = [c for c in ranked if c.entry.type == t]
            if in_type:
                grouped[t] = in_type
        return grouped

    def counts(self) -> Dict[str, int]:
        return {t: len(v) for t, v in self.entries.items()}


def build_catalog(
    rows: Iterable[Mapping[str, object]],
    column_aliases: Mapping[str, Sequence[str]] = None,
) -> Catalog:
    """
    Build a deduplicated catalog from raw rows.

    At most one entry per (base_norm, type); the first display spelling seen
    wins. Each type is sorted by display, so identical input always yields an
    identical catalog.
    """
    seen: Dict[Tuple[str, str], CatalogEntry] = {}
    by_type: Dict[str, List[CatalogEntry]] = {t: [] for t in INSTRUMENT_TYPES}

    for row in rows:
        for instrument_type, instruments in extract_row_instruments(row, column_aliases).items():
            for inst in instruments:
                key = (inst.base_norm, instrument_type)
                if key in seen:
                    continue
                entry = CatalogEntry(display=inst.base_name, base_norm=inst.base_norm, type=instrument_type)
                seen[key] = entry
                by_type[instrument_type].append(entry)

    for t in INSTRUMENT_TYPES:
        by_type[t].sort(key=lambda e: (e.display, e.base_norm))

    catalog = Catalog(by_type)
    logger.info("Catalog built: %s", catalog.counts())
    return catalog
