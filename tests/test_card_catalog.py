"""Catalog building tests: column aliases, mixed columns, splitting, dedup."""
import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

import pytest

from card_catalog import (
    DEFAULT_COLUMN_ALIASES,
    INSTRUMENT_CREDIT,
    INSTRUMENT_DEBIT,
    INSTRUMENT_UPI,
    INSTRUMENT_NETBANKING,
    Catalog,
    build_catalog,
    classify_hint,
    extract_row_instruments,
    is_mixed_header,
    parse_instrument,
    resolve_cell,
    split_instruments,
)

CREDIT_ALIASES = DEFAULT_COLUMN_ALIASES[INSTRUMENT_CREDIT]


# ---------------------------------------------------------------------------
# Splitting
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("cell, expected", [
    ("HDFC Regalia, SBI Cashback / ICICI Amazon Pay and Axis Ace",
     ["HDFC Regalia", "SBI Cashback", "ICICI Amazon Pay", "Axis Ace"]),
    ("HDFC Regalia (Visa/Mastercard), SBI Card",
     ["HDFC Regalia (Visa/Mastercard)", "SBI Card"]),
    ("A; B | C\nD • E", ["A", "B", "C", "D", "E"]),
    ("AU LIT AND IDFC FIRST", ["AU LIT", "IDFC FIRST"]),
    ("Standard Chartered, Bandhan Bank", ["Standard Chartered", "Bandhan Bank"]),
    ("HDFC Regalia,, ,", ["HDFC Regalia"]),
    ("", []),
    (None, []),
])
def test_split_instruments(cell, expected):
    assert split_instruments(cell) == expected


# ---------------------------------------------------------------------------
# Instrument parsing
# ---------------------------------------------------------------------------

def test_parse_instrument_with_variant():
    inst = parse_instrument("ICICI Amazon Pay (RuPay)", INSTRUMENT_CREDIT)
    assert inst.base_name == "ICICI Amazon Pay"
    assert inst.base_norm == "icici amazon pay"
    assert inst.variant == "RuPay"
    assert inst.normalized == "icici amazon pay rupay"
    assert inst.instrument_type == INSTRUMENT_CREDIT


def test_parse_instrument_fixes_brand_casing():
    inst = parse_instrument(" hdfc regalia (visa) ", INSTRUMENT_CREDIT)
    assert inst.base_name == "HDFC regalia"
    assert inst.base_norm == "hdfc regalia"
    assert inst.variant == "visa"


# ---------------------------------------------------------------------------
# Column resolution
# ---------------------------------------------------------------------------

def test_resolve_cell_exact_beats_substring():
    row = {"My credit list": "A", "Credit Cards": "B"}
    assert resolve_cell(row, CREDIT_ALIASES) == "B"


def test_resolve_cell_case_insensitive_substring_fallback():
    row = {"Eligible CREDIT card list": "A"}
    assert resolve_cell(row, CREDIT_ALIASES) == "A"


def test_resolve_cell_skips_empty_cells():
    row = {"Credit Cards": "  ", "credit only": "C"}
    assert resolve_cell(row, CREDIT_ALIASES) == "C"


def test_resolve_cell_missing_field():
    assert resolve_cell({"Offer": "10% off"}, CREDIT_ALIASES) == ""


@pytest.mark.parametrize("header, expected", [
    ("Applicable to cards", True),
    ("Credit/Debit Cards", True),
    ("Eligible Cards", True),
    ("Applicable to Credit cards", False),
    ("Debit Cards", False),
    ("Card Type", False),
    ("Offer", False),
])
def test_is_mixed_header(header, expected):
    assert is_mixed_header(header) is expected


@pytest.mark.parametrize("hint, expected", [
    ("Credit Card", INSTRUMENT_CREDIT),
    ("DEBIT", INSTRUMENT_DEBIT),
    ("UPI", INSTRUMENT_UPI),
    ("Net Banking", INSTRUMENT_NETBANKING),
    ("Credit / Debit", None),
    ("", None),
])
def test_classify_hint(hint, expected):
    assert classify_hint(hint) == expected


# ---------------------------------------------------------------------------
# Row projection
# ---------------------------------------------------------------------------

def test_mixed_column_uses_row_type_hint():
    row = {"Eligible cards": "HDFC Regalia, SBI Card", "Card Type": "Debit Card"}
    result = extract_row_instruments(row)
    assert list(result) == [INSTRUMENT_DEBIT]
    assert [i.base_name for i in result[INSTRUMENT_DEBIT]] == ["HDFC Regalia", "SBI Card"]


def test_mixed_column_falls_back_to_token_keywords():
    row = {"Applicable to cards": "HDFC Millennia Debit Card, SBI Credit Card, Axis Ace"}
    result = extract_row_instruments(row)
    assert [i.base_name for i in result[INSTRUMENT_DEBIT]] == ["HDFC Millennia Debit Card"]
    assert [i.base_name for i in result[INSTRUMENT_CREDIT]] == ["SBI Credit Card"]
    # "Axis Ace" has no keyword and no hint: skipped


def test_extended_keywords_only_for_offer_rows():
    row = {"Applicable to cards": "HDFC Bank UPI"}
    assert extract_row_instruments(row) == {}
    result = extract_row_instruments(row, extended_keywords=True)
    assert [i.base_name for i in result[INSTRUMENT_UPI]] == ["HDFC Bank UPI"]


def test_typed_columns_for_every_instrument_type():
    row = {
        "Applicable to Credit cards": "HDFC Regalia",
        "Applicable to Debit cards": "SBI Debit",
        "UPI": "PhonePe / GPay",
        "Net Banking": "ICICI Bank",
    }
    result = extract_row_instruments(row)
    assert [i.base_name for i in result[INSTRUMENT_CREDIT]] == ["HDFC Regalia"]
    assert [i.base_name for i in result[INSTRUMENT_DEBIT]] == ["SBI Debit"]
    assert [i.base_name for i in result[INSTRUMENT_UPI]] == ["PhonePe", "GPay"]
    assert [i.base_name for i in result[INSTRUMENT_NETBANKING]] == ["ICICI Bank"]


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

def test_build_catalog_from_single_row():
    rows = [{"Applicable to Credit cards": "HDFC Regalia (Visa), ICICI Amazonay"}]
    catalog = build_catalog(rows)
    assert [e.display for e in catalog.entries[INSTRUMENT_CREDIT]] == ["HDFC Regalia", "ICICI Amazonay"]
    assert catalog.entries[INSTRUMENT_DEBIT] == []


def test_build_catalog_first_display_wins():
    rows = [
        {"Credit Cards": "HDFC Regalia"},
        {"Credit Cards": "hdfc regalia (Visa Infinite)"},
    ]
    catalog = build_catalog(rows)
    assert len(catalog) == 1
    assert catalog.entries[INSTRUMENT_CREDIT][0].display == "HDFC Regalia"
    assert catalog.find("hdfc regalia", INSTRUMENT_CREDIT) is not None
    assert catalog.find("hdfc regalia", INSTRUMENT_DEBIT) is None


def test_same_name_under_two_types_is_two_entries():
    rows = [{"Credit Cards": "HDFC Millennia", "Debit Cards": "HDFC Millennia"}]
    catalog = build_catalog(rows)
    assert catalog.counts() == {INSTRUMENT_CREDIT: 1, INSTRUMENT_DEBIT: 1,
                                INSTRUMENT_UPI: 0, INSTRUMENT_NETBANKING: 0}


def test_build_catalog_sorted_and_deterministic():
    rows = [
        {"Credit Cards": "SBI SimplyCLICK, Axis Ace"},
        {"Credit Cards": "HDFC Regalia", "UPI": "PhonePe"},
    ]
    first = build_catalog(rows)
    assert [e.display for e in first.entries[INSTRUMENT_CREDIT]] == ["Axis Ace", "HDFC Regalia", "SBI SimplyCLICK"]
    assert build_catalog(rows) == first
    assert [e.display for e in first.all_entries()] == ["Axis Ace", "HDFC Regalia", "SBI SimplyCLICK", "PhonePe"]


def test_empty_catalog():
    catalog = build_catalog([])
    assert catalog.is_empty
    assert catalog.suggest("hdfc") == {}
    assert Catalog().is_empty


def test_suggest_groups_by_type():
    rows = [{"Credit Cards": "HDFC Regalia, SBI SimplyCLICK", "Debit Cards": "HDFC Millennia Debit"}]
    catalog = build_catalog(rows)
    groups = catalog.suggest("hdfc")
    assert list(groups) == [INSTRUMENT_CREDIT, INSTRUMENT_DEBIT]
    assert [c.entry.display for c in groups[INSTRUMENT_CREDIT]] == ["HDFC Regalia"]
    assert [c.entry.display for c in groups[INSTRUMENT_DEBIT]] == ["HDFC Millennia Debit"]
