"""
Offer matching and cross-provider deduplication.

Matching Approach:
    - Every provider sheet row is projected into an OfferRow (text fields via
      header aliases, applicable instruments via card_catalog)
    - A row applies to the selected instrument when one of its tokens of the
      same type has the same normalized base name. Variants never exclude:
      "HDFC Regalia (Visa Signature)" on the row still applies to the user's
      "HDFC Regalia"; the variant is carried along as a note
    - Providers are scanned in priority order

Duplicate Handling:
    - Two offers are the same promotion when title, description, image URL and
      link URL agree after normalization
    - Coupon codes and terms are NOT part of the fingerprint: providers list the
      same bank promotion with their own code
    - The first provider (in priority order) keeps the offer; later copies drop
"""

import logging
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from card_catalog import (
    INSTRUMENT_LABELS,
    INSTRUMENT_TYPES,
    Catalog,
    CatalogEntry,
    InstrumentName,
    extract_row_instruments,
    resolve_cell,
)
from card_matcher import normalize_name

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

OFFER_FIELD_ALIASES: Dict[str, List[str]] = {
    'title': ['Offer', 'Offer Title', 'Title', 'Offer Text', 'Deal', 'Offers'],
    'description': ['Description', 'Offer Description', 'Details', 'Offer Details'],
    'coupon_code': ['Coupon code', 'Coupon', 'Promo code', 'Promocode', 'Code'],
    'terms': ['Terms', 'Terms and Conditions', 'T&C', 'TnC'],
    'link': ['Link', 'Offer Link', 'URL', 'Website'],
    'image': ['Image', 'Image URL', 'Image Link', 'Banner', 'Logo'],
}

FINGERPRINT_SEPARATOR = '||'
VARIANT_NOTE_TEMPLATE = 'Applies only on {variant}'


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OfferRow:
    provider: str
    title: str = ''
    description: str = ''
    coupon_code: str = ''
    terms: str = ''
    link: str = ''
    image: str = ''
    instruments: Mapping[str, Sequence[InstrumentName]] = field(default_factory=dict)

    @property
    def applicable_instruments(self) -> List[InstrumentName]:
        return [i for t in INSTRUMENT_TYPES for i in self.instruments.get(t, ())]


@dataclass(frozen=True)
class MatchedOffer:
    offer: OfferRow
    provider: str
    variant_text: str = ''
    show_variant_note: bool = False

    @property
    def variant_note(self) -> str:
        """User-facing restriction note; informational only, never filters."""
        if self.show_variant_note and self.variant_text:
            return VARIANT_NOTE_TEMPLATE.format(variant=self.variant_text)
        return ''


# ---------------------------------------------------------------------------
# Row projection
# ---------------------------------------------------------------------------

def _header_owner(header: str) -> Optional[str]:
    """
    The offer field a header belongs to, or None.

    An exact alias match beats any substring match; among substring matches
    the longest alias wins. So 'Offer Description' is a description column
    (not a title one via 'Offer') and 'Image Link' is an image column (not a
    link one via 'Link'). Ties go to the earlier field.
    """
    h = header.strip().lower()
    best_field, best_rank = None, None
    for name, aliases in OFFER_FIELD_ALIASES.items():
        for alias in aliases:
            a = alias.lower()
            if h == a:
                rank = (1, len(a))
            elif a in h:
                rank = (0, len(a))
            else:
                continue
            if best_rank is None or rank > best_rank:
                best_field, best_rank = name, rank
    return best_field


def resolve_offer_fields(row: Mapping[str, object]) -> Dict[str, str]:
    """
    Resolve every OFFER_FIELD_ALIASES field for one row.

    Each header is claimed by at most one field (see _header_owner), then
    each field is resolved with resolve_cell over its own headers only.
    """
    owned: Dict[str, Dict[str, object]] = {name: {} for name in OFFER_FIELD_ALIASES}
    for header, value in row.items():
        owner = _header_owner(str(header))
        if owner is not None:
            owned[owner][header] = value
    return {name: resolve_cell(owned[name], aliases) for name, aliases in OFFER_FIELD_ALIASES.items()}


def parse_offer_row(row: Mapping[str, object], provider: str) -> Optional[OfferRow]:
    """
    Project a raw {header: value} row into an OfferRow.

    Missing fields are left empty (one absent column never drops the row).
    Returns None only for a row with no text and no instruments at all,
    which is what trailing blank lines in a CSV look like.
    """
    fields = resolve_offer_fields(row)
    instruments = extract_row_instruments(row, extended_keywords=True)

    if not any(fields.values()) and not instruments:
        return None

    return OfferRow(
        provider=provider,
        instruments={t: tuple(v) for t, v in instruments.items()},
        **fields,
    )


def parse_offer_rows(rows: Iterable[Mapping[str, object]], provider: str) -> List[OfferRow]:
    offers = []
    for row in rows:
        offer = parse_offer_row(row, provider)
        if offer is not None:
            offers.append(offer)
    logger.info("Parsed %d offer rows for %s", len(offers), provider)
    return offers


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------

def match_offers(
    selected: CatalogEntry,
    offer_rows: Iterable[OfferRow],
    provider: str,
    variant_note_providers: Iterable[str] = (),
) -> List[MatchedOffer]:
    """
    Offers from one provider that apply to the selected instrument.

    A row matches when a token of the selected type has the same base_norm.
    The first non-empty variant among the matching tokens is kept; no variant
    means the offer applies to every variant of the card.
    """
    show_note = provider in set(variant_note_providers)
    matched = []
    for row in offer_rows:
        hit = False
        variant = ''
        for inst in row.instruments.get(selected.type, ()):
            if inst.base_norm != selected.base_norm:
                continue
            hit = True
            if inst.variant and not variant:
                variant = inst.variant
        if hit:
            matched.append(MatchedOffer(
                offer=row,
                provider=provider,
                variant_text=variant,
                show_variant_note=show_note,
            ))
    return matched


# ---------------------------------------------------------------------------
# Deduplication
# ---------------------------------------------------------------------------

def normalize_url(url: str) -> str:
    """
    Lowercase, drop scheme, leading www. and trailing slash.

    'https://www.Swiggy.com/offers/' -> 'swiggy.com/offers'
    """
    if not isinstance(url, str):
        return ''
    s = url.strip().lower()
    s = re.sub(r'^https?://', '', s)
    s = re.sub(r'^www\.', '', s)
    return s.rstrip('/')


def offer_fingerprint(offer: OfferRow) -> str:
    """title + description + image URL + link URL, each normalized."""
    return FINGERPRINT_SEPARATOR.join([
        normalize_name(offer.title),
        normalize_name(offer.description),
        normalize_url(offer.image),
        normalize_url(offer.link),
    ])


def dedupe_offers(matched: Iterable[MatchedOffer]) -> List[MatchedOffer]:
    """Keep the first offer per fingerprint, in iteration order."""
    seen = set()
    kept = []
    for m in matched:
        fp = offer_fingerprint(m.offer)
        if fp in seen:
            logger.debug("Dropping duplicate offer from %s: %s", m.provider, m.offer.title)
            continue
        seen.add(fp)
        kept.append(m)
    return kept


def find_offers(
    selected: CatalogEntry,
    offer_tables: Mapping[str, Sequence[OfferRow]],
    variant_note_providers: Iterable[str] = (),
) -> Dict[str, List[MatchedOffer]]:
    """
    Match all providers (in the mapping's order = priority) and dedupe across them.

    Returns provider -> offers, providers without offers omitted. An empty
    result means the instrument is known but nothing applies to it.
    """
    variant_note_providers = list(variant_note_providers)
    all_matched = []
    for provider, rows in offer_tables.items():
        all_matched.extend(match_offers(selected, rows, provider, variant_note_providers))

    grouped: Dict[str, List[MatchedOffer]] = OrderedDict()
    for m in dedupe_offers(all_matched):
        grouped.setdefault(m.provider, []).append(m)
    return grouped


# ---------------------------------------------------------------------------
# Coverage report
# ---------------------------------------------------------------------------

def compute_offer_coverage(
    catalog: Catalog,
    offer_tables: Mapping[str, Sequence[OfferRow]],
) -> pd.DataFrame:
    """
    One row per catalog entry with its deduplicated offer count per provider.

    Columns: instrument, type, <provider>..., total_offers
    """
    providers = list(offer_tables.keys())
    records = []
    for entry in catalog.all_entries():
        grouped = find_offers(entry, offer_tables)
        record = {'instrument': entry.display, 'type': INSTRUMENT_LABELS[entry.type]}
        for p in providers:
            record[p] = len(grouped.get(p, []))
        record['total_offers'] = sum(record[p] for p in providers)
        records.append(record)

    columns = ['instrument', 'type'] + providers + ['total_offers']
    return pd.DataFrame(records, columns=columns)


def detect_offer_gaps(coverage: pd.DataFrame) -> Dict[str, object]:
    """
    Summarize catalog entries with no offers at all.

    Returns a dict with:
        total_instruments: int
        without_offers: list of instrument names with zero offers
        without_offers_by_type: dict of type label -> count
        coverage_rate: % of instruments with at least one offer
    """
    total = len(coverage)
    if total == 0:
        return {'total_instruments': 0, 'without_offers': [],
                'without_offers_by_type': {}, 'coverage_rate': 0.0}

    gaps = coverage[coverage['total_offers'] == 0]
    return {
        'total_instruments': total,
        'without_offers': gaps['instrument'].tolist(),
        'without_offers_by_type': gaps['type'].value_counts().to_dict(),
        'coverage_rate': round((total - len(gaps)) / total * 100, 1),
    }
