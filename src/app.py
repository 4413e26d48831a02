"""
Card Offer Finder - Streamlit UI

Type your card name (typos are fine), pick it from the suggestions, and see
the Swiggy / Zomato offers that apply to it.

Run with:
    streamlit run src/app.py

Sources are configured through environment variables / .env (see settings.py);
sample sheets ship in data/.
"""

import streamlit as st

from card_catalog import INSTRUMENT_LABELS
from offer_sources import load_sources
from offer_state import (
    AppState,
    QueryChanged,
    QuerySubmitted,
    SourcesLoaded,
    SuggestionSelected,
    STATUS_HAS_MATCHES,
    STATUS_NO_CATALOG,
    STATUS_NO_CATALOG_MATCH,
    STATUS_NO_OFFERS,
    next_load,
    reduce,
)
from settings import configure_logging, settings

configure_logging()

# ---------------------------------------------------------------------------
# Page config
# ---------------------------------------------------------------------------
st.set_page_config(
    page_title="Card Offer Finder",
    page_icon="💳",
    layout="centered",
)

st.title("💳 Food Delivery Card Offers")
st.markdown(
    "Search for your credit card, debit card, UPI app or net banking option to see "
    "the discounts and promo codes available on " + " and ".join(settings.provider_names()) + "."
)


# =========================================================================
# Load sources - CACHED for SOURCE_CACHE_TTL seconds, never with failures
# =========================================================================

@st.cache_data(ttl=settings.SOURCE_CACHE_TTL, show_spinner="Loading offer sheets...")
def _cached_sources():
    return load_sources(settings.source_specs(), max_workers=settings.MAX_LOAD_WORKERS)


def load_all_sources():
    """Fetch the catalog and every provider sheet concurrently."""
    result = _cached_sources()
    if not result.complete:
        # Keep the partial result for this session only; the next one retries
        _cached_sources.clear()
    return result


def dispatch(event):
    st.session_state['offer_state'] = reduce(st.session_state['offer_state'], event)


if 'offer_state' not in st.session_state:
    state, generation = next_load(AppState())
    st.session_state['offer_state'] = state
    dispatch(SourcesLoaded(
        generation=generation,
        result=load_all_sources(),
        include_offer_sources_in_catalog=settings.CATALOG_INCLUDES_OFFER_SOURCES,
        variant_note_providers=tuple(settings.VARIANT_NOTE_PROVIDERS),
    ))

state: AppState = st.session_state['offer_state']

for problem in state.diagnostics:
    st.warning(f"Some offers could not be loaded ({problem})")

if state.status == STATUS_NO_CATALOG:
    st.error(state.message)
    st.stop()


# =========================================================================
# Search
# =========================================================================

def _on_query_change():
    dispatch(QueryChanged(text=st.session_state['query_input']))


def _on_select(entry):
    dispatch(SuggestionSelected(entry=entry))
    st.session_state['query_input'] = entry.display


def _on_submit():
    dispatch(QuerySubmitted())
    selected = st.session_state['offer_state'].selected
    if selected is not None:
        st.session_state['query_input'] = selected.display


if 'query_input' not in st.session_state:
    st.session_state['query_input'] = state.query

col_input, col_button = st.columns([4, 1])
with col_input:
    st.text_input(
        "Search your card",
        key='query_input',
        placeholder="e.g. HDFC Regalia, SBI Cashback, ICICI Amazon Pay",
        on_change=_on_query_change,
        label_visibility="collapsed",
    )
with col_button:
    st.button("Find offers", type="primary", on_click=_on_submit, use_container_width=True)

state = st.session_state['offer_state']

if state.has_suggestions:
    for instrument_type, candidates in state.suggestions.items():
        st.caption(f"**{INSTRUMENT_LABELS[instrument_type]}**")
        for candidate in candidates:
            st.button(
                candidate.entry.display,
                key=f"pick_{instrument_type}_{candidate.entry.base_norm}",
                on_click=_on_select,
                args=(candidate.entry,),
                use_container_width=True,
            )


# =========================================================================
# Offers
# =========================================================================

def render_offer(matched):
    offer = matched.offer
    with st.container(border=True):
        if offer.image:
            st.image(offer.image, width=120)
        st.markdown(f"**{offer.title or 'Offer'}**")
        if offer.description:
            st.write(offer.description)
        if offer.coupon_code:
            st.caption("Coupon code")
            st.code(offer.coupon_code, language=None)
        if matched.variant_note:
            st.info(matched.variant_note)
        if offer.terms:
            with st.expander("Terms & conditions"):
                st.write(offer.terms)
        if offer.link:
            st.link_button("View offer", offer.link)


if state.status in (STATUS_NO_CATALOG_MATCH, STATUS_NO_OFFERS):
    st.warning(state.message)

if state.status == STATUS_HAS_MATCHES and state.selected is not None:
    st.subheader(f"Offers for {state.selected.display}")
    total = sum(len(v) for v in state.offers.values())
    st.caption(f"{total} offer{'s' if total != 1 else ''} across {len(state.offers)} platform(s)")
    for provider, offers in state.offers.items():
        st.markdown(f"### {provider} Offers")
        for matched in offers:
            render_offer(matched)


# =========================================================================
# FAQ
# =========================================================================
st.divider()
st.subheader("Frequently Asked Questions")
faq1, faq2, faq3 = st.columns(3)
with faq1:
    st.markdown("**How do I use these offers?**")
    st.caption("Search for your card, pick an offer and apply the coupon code at checkout.")
with faq2:
    st.markdown("**Are these offers valid for all users?**")
    st.caption("Most offers are valid for anyone holding the card; some carry extra terms.")
with faq3:
    st.markdown("**How often are offers updated?**")
    st.caption("The sheets are refreshed regularly. Check back for the latest promotions.")
