"""
Core name-matching engine for card offer search.

Matching Approach:
    - Instrument names are normalized (lowercase, diacritics stripped, punctuation
      turned into spaces) before any comparison
    - Edit distance is plain Levenshtein over the normalized forms (rapidfuzz)
    - A query is scored against each catalog name with a cascade:
        exact normalized match -> 100
        normalized substring   -> 90
        otherwise a blend of word overlap, per-word fuzzy hits and whole-string
        similarity

Score Scale:
    - Scores run 0-100. Anything at or above SUGGESTION_THRESHOLD (30) is relevant
    - Identical names (after normalization) always score 100; the blend can never
      reach 100 because the whole-string term is < 1 for non-identical names

Weighting:
    - Three-term blend: 0.5 * word match + 0.3 * fuzzy word + 0.2 * overall
    - The fuzzy-word term is what lets "hdfc reglia" find "HDFC Regalia": the
      typo'd word is not a substring of any candidate word, but it is one edit away
"""

import re
import unicodedata
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Iterable, List, Optional

import pandas as pd
from rapidfuzz.distance import Levenshtein

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
SCORE_EXACT = 100
SCORE_SUBSTRING = 90

SUGGESTION_THRESHOLD = 30   # Minimum score for a catalog entry to be suggested
MAX_SUGGESTIONS = 20        # Suggestion list is truncated to this many entries

WEIGHT_WORD_MATCH = 0.5
WEIGHT_FUZZY_WORD = 0.3
WEIGHT_OVERALL = 0.2

FUZZY_WORD_MAX_DISTANCE = 2    # A query word within 2 edits of a candidate word...
FUZZY_WORD_MAX_RATIO = 0.35    # ...and under 35% of the longer word's length

NAME_SIMILARITY_MIN = 0.6      # is_fuzzy_name_match: whole-string similarity
WORD_SIMILARITY_MIN = 0.7      # is_fuzzy_name_match: per-word similarity
WORD_MIN_LENGTH = 3            # Words shorter than this never count as a word hit


# ---------------------------------------------------------------------------
# Brand casing
# ---------------------------------------------------------------------------

# Lowercase word -> canonical display form. Only applied to words that are
# written all-lowercase or all-caps in the source data.
BRAND_CASING = {
    # Banks
    'hdfc': 'HDFC', 'icici': 'ICICI', 'sbi': 'SBI', 'axis': 'Axis',
    'kotak': 'Kotak', 'hsbc': 'HSBC', 'idfc': 'IDFC', 'rbl': 'RBL',
    'au': 'AU', 'yes': 'YES', 'indusind': 'IndusInd', 'idbi': 'IDBI',
    'pnb': 'PNB', 'bob': 'BOB', 'dbs': 'DBS', 'boi': 'BOI', 'ubi': 'UBI',
    'citi': 'Citi', 'citibank': 'Citibank', 'amex': 'Amex', 'sc': 'SC',
    'federal': 'Federal', 'canara': 'Canara', 'bank': 'Bank',
    # Networks
    'visa': 'Visa', 'rupay': 'RuPay', 'mastercard': 'Mastercard',
    'diners': 'Diners',
    # Fintech / co-brands
    'onecard': 'OneCard', 'upi': 'UPI', 'paytm': 'Paytm',
    'phonepe': 'PhonePe', 'gpay': 'GPay', 'mobikwik': 'MobiKwik',
    'cred': 'CRED', 'bhim': 'BHIM', 'irctc': 'IRCTC',
}

_TRAILING_GROUP = re.compile(r'^(.*?)\s*\(([^()]*)\)\s*$', re.DOTALL)
_WORD = re.compile(r'[^\W_]+')
_EDGE_JUNK = ' \t\r\n"\'`•·*-–—:.'


def _as_text(value: Any) -> str:
    """Coerce a cell value to str; None / NaN become ''."""
    if value is None:
        return ''
    if not isinstance(value, str):
        if pd.isna(value):
            return ''
        value = str(value)
    return value


# ---------------------------------------------------------------------------
# String normalization
# ---------------------------------------------------------------------------

@lru_cache(maxsize=50000)
def _normalize_cached(text: str) -> str:
    s = unicodedata.normalize('NFKD', text.lower())
    s = ''.join(ch for ch in s if not unicodedata.combining(ch))
    # Compatibility decomposition can surface uppercase letters (e.g. U+210C)
    s = s.lower()

    # Anything that is not a letter, digit or whitespace becomes a space.
    # \w also covers '_', which is punctuation here.
    s = re.sub(r'[^\w\s]|_', ' ', s)

    s = re.sub(r'\s+', ' ', s).strip()
    return s


def normalize_name(text: str) -> str:
    """
    Normalize an instrument name for comparison.

    Steps:
        1. Lowercase
        2. Unicode compatibility decomposition, combining marks dropped
        3. Every non letter/digit/whitespace character becomes a space
        4. Collapse whitespace and trim

    Examples:
        'HDFC Regalia (Visa Signature)' -> 'hdfc regalia visa signature'
        'Axis Bank - Flipkart'          -> 'axis bank flipkart'
        'Société Générale'              -> 'societe generale'

    Idempotent: normalize_name(normalize_name(s)) == normalize_name(s).
    """
    text = _as_text(text)
    if not text:
        return ''
    return _normalize_cached(text)


def tidy_name(text: str) -> str:
    """
    Case-preserving cleanup of a raw token from a spreadsheet cell.

    Collapses whitespace and trims quotes, bullets and dashes off the ends,
    so '  • HDFC  Regalia ' -> 'HDFC Regalia'. Casing is kept for display.
    """
    text = _as_text(text)
    if not text:
        return ''
    s = re.sub(r'\s+', ' ', text)
    return s.strip(_EDGE_JUNK)


def extract_base(name: str) -> str:
    """
    Strip a trailing parenthesized variant.

    'HDFC Regalia (Visa Signature)' -> 'HDFC Regalia'
    'HDFC Regalia'                  -> 'HDFC Regalia'
    """
    name = _as_text(name)
    if not name:
        return ''
    m = _TRAILING_GROUP.match(name)
    if m:
        return m.group(1).strip()
    return name.strip()


def extract_variant(name: str) -> str:
    """Return the contents of a trailing parenthesized group, or ''."""
    name = _as_text(name)
    if not name:
        return ''
    m = _TRAILING_GROUP.match(name)
    if m:
        return re.sub(r'\s+', ' ', m.group(2)).strip()
    return ''


def canonicalize_brand(text: str) -> str:
    """
    Apply the BRAND_CASING table to each word of a display name.

    Only all-lowercase or all-caps words are rewritten; a deliberately
    mixed-case word like 'SimplyCLICK' is left alone.

    Examples:
        'hdfc regalia'     -> 'HDFC regalia'
        'ICICI AMAZON PAY' -> 'ICICI AMAZON PAY'
        'sbi SimplyCLICK'  -> 'SBI SimplyCLICK'
        'Rupay'            -> 'Rupay'
    """
    text = _as_text(text)
    if not text:
        return ''

    def _fix(m):
        word = m.group(0)
        canonical = BRAND_CASING.get(word.lower())
        if canonical and (word.islower() or word.isupper()):
            return canonical
        return word

    s = _WORD.sub(_fix, text)
    return re.sub(r'\s+', ' ', s).strip()


# ---------------------------------------------------------------------------
# Edit distance
# ---------------------------------------------------------------------------

def edit_distance(a: str, b: str) -> int:
    """
    Levenshtein distance (insert / delete / substitute, cost 1 each).

    Both inputs are normalized here; callers pass raw strings so every caller
    compares the same canonical forms.
    """
    return Levenshtein.distance(normalize_name(a), normalize_name(b))


def name_similarity(a: str, b: str) -> float:
    """1 - distance / longer length, over normalized forms (0.0 to 1.0)."""
    na = normalize_name(a)
    nb = normalize_name(b)
    longest = max(len(na), len(nb))
    if longest == 0:
        return 1.0
    return 1.0 - Levenshtein.distance(na, nb) / longest


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

def _word_match_ratio(q_words: List[str], c_words: List[str]) -> float:
    hits = sum(1 for qw in q_words if any(qw in cw for cw in c_words))
    return hits / len(q_words)


def _fuzzy_word_ratio(q_words: List[str], c_words: List[str]) -> float:
    hits = 0
    for qw in q_words:
        for cw in c_words:
            dist = Levenshtein.distance(qw, cw)
            ratio = dist / max(len(qw), len(cw))
            if dist <= FUZZY_WORD_MAX_DISTANCE and ratio < FUZZY_WORD_MAX_RATIO:
                hits += 1
                break
    return hits / len(q_words)


def score_name(query: str, candidate: str) -> float:
    """
    Score a query against one candidate name on a 0-100 scale.

    Cascade (first rule that applies wins):
        1. Normalized strings equal           -> 100
        2. Normalized candidate contains query -> 90
        3. Blend of:
             word match   - share of query words found inside a candidate word
             fuzzy word   - share of query words within 2 edits of a candidate word
             overall      - whole-string similarity
           weighted 0.5 / 0.3 / 0.2 and scaled to 0-100

    Empty query or candidate scores 0.
    """
    q = normalize_name(query)
    c = normalize_name(candidate)
    if not q or not c:
        return 0.0

    if q == c:
        return float(SCORE_EXACT)
    if q in c:
        return float(SCORE_SUBSTRING)

    q_words = q.split()
    c_words = c.split()
    blended = (
        WEIGHT_WORD_MATCH * _word_match_ratio(q_words, c_words)
        + WEIGHT_FUZZY_WORD * _fuzzy_word_ratio(q_words, c_words)
        + WEIGHT_OVERALL * name_similarity(q, c)
    )
    return round(blended * 100, 2)


def is_fuzzy_name_match(query: str, label: str) -> bool:
    """
    Loose yes/no check used to decide whether a label is worth suggesting.

    True when any of:
        - the normalized label contains the normalized query
        - whole-string similarity >= 0.6
        - some query word and label word (both >= 3 chars) have similarity >= 0.7
    """
    q = normalize_name(query)
    l = normalize_name(label)
    if not q or not l:
        return False
    if q in l:
        return True
    if name_similarity(q, l) >= NAME_SIMILARITY_MIN:
        return True

    q_words = [w for w in q.split() if len(w) >= WORD_MIN_LENGTH]
    l_words = [w for w in l.split() if len(w) >= WORD_MIN_LENGTH]
    for qw in q_words:
        for lw in l_words:
            if name_similarity(qw, lw) >= WORD_SIMILARITY_MIN:
                return True
    return False


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MatchCandidate:
    entry: Any      # anything with a .display attribute (CatalogEntry)
    score: float


def rank_candidates(
    query: str,
    entries: Iterable[Any],
    threshold: float = SUGGESTION_THRESHOLD,
    limit: int = MAX_SUGGESTIONS,
) -> List[MatchCandidate]:
    """
    Rank catalog entries against a query.

    An entry is kept when it scores at or above the threshold, or when
    is_fuzzy_name_match() accepts it. Results are sorted by score (high first),
    ties broken by display name, and truncated to `limit`.
    """
    if not normalize_name(query):
        return []

    candidates = []
    for entry in entries:
        s = score_name(query, entry.display)
        if s >= threshold or is_fuzzy_name_match(query, entry.display):
            candidates.append(MatchCandidate(entry=entry, score=s))

    candidates.sort(key=lambda c: (-c.score, c.entry.display))
    return candidates[:limit]


def best_match(
    query: str,
    entries: Iterable[Any],
    threshold: float = SUGGESTION_THRESHOLD,
) -> Optional[MatchCandidate]:
    """
    Resolve typed text straight to one entry (the "submit" path).

    Unlike rank_candidates() this uses the score threshold only; the loose
    is_fuzzy_name_match() rule never commits a selection on its own.
    """
    ranked = [
        c for c in rank_candidates(query, entries, threshold=threshold, limit=MAX_SUGGESTIONS)
        if c.score >= threshold
    ]
    return ranked[0] if ranked else None
