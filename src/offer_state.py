"""
Application state for the offer finder and its single transition function.

Every user or loader event goes through reduce(state, event) -> new state.
AppState is frozen; reduce never mutates its input, so the whole search /
select / offer flow can be exercised without a UI.

Result statuses:
    IDLE              - nothing typed yet
    LOADING           - sources are being fetched
    NO_CATALOG        - every source failed or had no instruments
    HAS_MATCHES       - an instrument is selected and has offers
    NO_CATALOG_MATCH  - the query matches no known instrument
    NO_OFFERS         - instrument known, but no provider has an offer for it

Stale loads:
    Each load is tagged with a generation number. A SourcesLoaded event whose
    generation is older than the state's current one is dropped, so a slow
    response can't overwrite a newer load's data.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from card_catalog import Catalog, CatalogEntry, build_catalog
from card_matcher import SUGGESTION_THRESHOLD, MatchCandidate, best_match, normalize_name
from offer_matcher import MatchedOffer, OfferRow, find_offers, parse_offer_rows
from offer_sources import ROLE_CATALOG, ROLE_OFFERS, LoadResult

logger = logging.getLogger(__name__)

STATUS_IDLE = "IDLE"
STATUS_LOADING = "LOADING"
STATUS_NO_CATALOG = "NO_CATALOG"
STATUS_HAS_MATCHES = "HAS_MATCHES"
STATUS_NO_CATALOG_MATCH = "NO_CATALOG_MATCH"
STATUS_NO_OFFERS = "NO_OFFERS"

STATUS_MESSAGES = {
    STATUS_NO_CATALOG: "No card catalog is available right now.",
    STATUS_NO_CATALOG_MATCH: "No matching card found.",
    STATUS_NO_OFFERS: "We know this card, but there are no offers for it yet.",
}


# ---------------------------------------------------------------------------
# State and events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AppState:
    query: str = ''
    suggestions: Mapping[str, Sequence[MatchCandidate]] = field(default_factory=dict)
    selected: Optional[CatalogEntry] = None
    offers: Mapping[str, Sequence[MatchedOffer]] = field(default_factory=dict)
    status: str = STATUS_IDLE
    catalog: Catalog = field(default_factory=Catalog)
    offer_tables: Mapping[str, Sequence[OfferRow]] = field(default_factory=dict)
    variant_note_providers: Tuple[str, ...] = ()
    generation: int = 0
    diagnostics: Tuple[str, ...] = ()

    @property
    def has_suggestions(self) -> bool:
        return any(self.suggestions.values())

    @property
    def ranked_suggestions(self) -> List[MatchCandidate]:
        """Suggestions flattened back into rank order."""
        flat = [c for group in self.suggestions.values() for c in group]
        flat.sort(key=lambda c: (-c.score, c.entry.display))
        return flat

    @property
    def message(self) -> str:
        return STATUS_MESSAGES.get(self.status, '')


@dataclass(frozen=True)
class LoadStarted:
    generation: int


@dataclass(frozen=True)
class SourcesLoaded:
    generation: int
    result: LoadResult
    include_offer_sources_in_catalog: bool = True
    variant_note_providers: Tuple[str, ...] = ()


@dataclass(frozen=True)
class QueryChanged:
    text: str


@dataclass(frozen=True)
class SuggestionSelected:
    entry: CatalogEntry


@dataclass(frozen=True)
class QuerySubmitted:
    pass


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def build_offer_tables(result: LoadResult) -> Dict[str, List[OfferRow]]:
    """Provider -> parsed OfferRows, in configured provider order."""
    return OrderedDict(
        (provider, parse_offer_rows(rows, provider))
        for provider, rows in result.rows_for_role(ROLE_OFFERS).items()
    )


def build_catalog_from_load(result: LoadResult, include_offer_sources: bool = True) -> Catalog:
    rows = []
    for source_rows in result.rows_for_role(ROLE_CATALOG).values():
        rows.extend(source_rows)
    if include_offer_sources:
        for source_rows in result.rows_for_role(ROLE_OFFERS).values():
            rows.extend(source_rows)
    return build_catalog(rows)


def next_load(state: AppState) -> Tuple[AppState, int]:
    """Start a new load generation; returns the new state and its tag."""
    generation = state.generation + 1
    return reduce(state, LoadStarted(generation=generation)), generation


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

def _with_query(state: AppState, text: str) -> AppState:
    # Any edit to the query drops the current selection and its offers
    state = replace(state, query=text, selected=None, offers={})

    if state.catalog.is_empty:
        status = STATUS_LOADING if state.status == STATUS_LOADING else STATUS_NO_CATALOG
        return replace(state, suggestions={}, status=status)

    if not normalize_name(text):
        return replace(state, suggestions={}, status=STATUS_IDLE)

    suggestions = state.catalog.suggest(text)
    status = STATUS_IDLE if suggestions else STATUS_NO_CATALOG_MATCH
    return replace(state, suggestions=suggestions, status=status)


def _select(state: AppState, entry: CatalogEntry) -> AppState:
    offers = find_offers(entry, state.offer_tables, state.variant_note_providers)
    status = STATUS_HAS_MATCHES if offers else STATUS_NO_OFFERS
    return replace(
        state,
        query=entry.display,
        suggestions={},
        selected=entry,
        offers=offers,
        status=status,
    )


def _submit(state: AppState) -> AppState:
    if state.catalog.is_empty:
        return replace(state, status=STATUS_NO_CATALOG)

    if state.has_suggestions:
        return _select(state, state.ranked_suggestions[0].entry)

    if not normalize_name(state.query):
        return state

    best = best_match(state.query, state.catalog.all_entries(), threshold=SUGGESTION_THRESHOLD)
    if best is None:
        return replace(state, selected=None, offers={}, status=STATUS_NO_CATALOG_MATCH)
    return _select(state, best.entry)


def _loaded(state: AppState, event: SourcesLoaded) -> AppState:
    if event.generation != state.generation:
        logger.debug("Ignoring stale load (generation %d, current %d)", event.generation, state.generation)
        return state

    result = event.result
    catalog = build_catalog_from_load(result, event.include_offer_sources_in_catalog)
    diagnostics = tuple(f"{name}: {reason}" for name, reason in result.failures.items())

    state = replace(
        state,
        catalog=catalog,
        offer_tables=build_offer_tables(result),
        variant_note_providers=tuple(event.variant_note_providers),
        diagnostics=diagnostics,
        status=STATUS_IDLE,
    )
    if catalog.is_empty:
        logger.warning("No instruments found in any source")
        return replace(state, suggestions={}, selected=None, offers={}, status=STATUS_NO_CATALOG)

    # Re-run whatever the user typed while sources were loading
    return _with_query(state, state.query)


def reduce(state: AppState, event) -> AppState:
    """Apply one event and return the next state."""
    if isinstance(event, QueryChanged):
        return _with_query(state, event.text)
    if isinstance(event, SuggestionSelected):
        return _select(state, event.entry)
    if isinstance(event, QuerySubmitted):
        return _submit(state)
    if isinstance(event, LoadStarted):
        return replace(state, generation=event.generation, status=STATUS_LOADING)
    if isinstance(event, SourcesLoaded):
        return _loaded(state, event)
    raise TypeError(f"Unknown event: {event!r}")
