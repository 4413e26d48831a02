"""Source loading tests: CSV/Excel parsing and per-source failure isolation."""
import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from urllib.error import URLError

import pandas as pd
import pytest

import offer_sources
from offer_sources import (
    ROLE_CATALOG,
    ROLE_OFFERS,
    SourceLoadFailure,
    SourceSpec,
    load_sources,
    read_source_rows,
)

SWIGGY_CSV = (
    'Offer , Coupon code,Applicable to Credit cards,\n'
    '10% off,00123,"HDFC Regalia, SBI Card",\n'
    ',,,\n'
    'Rs 50 off,,Axis Ace,\n'
)


@pytest.fixture
def swiggy_csv(tmp_path):
    path = tmp_path / "Swiggy.csv"
    path.write_text(SWIGGY_CSV, encoding="utf-8")
    return str(path)


def test_read_csv_rows(swiggy_csv):
    rows = read_source_rows(swiggy_csv)
    assert rows == [
        {"Offer": "10% off", "Coupon code": "00123", "Applicable to Credit cards": "HDFC Regalia, SBI Card"},
        {"Offer": "Rs 50 off", "Coupon code": "", "Applicable to Credit cards": "Axis Ace"},
    ]


def test_read_excel_rows(tmp_path):
    path = tmp_path / "Zomato.xlsx"
    pd.DataFrame([
        {"Offer Title": "Rs 75 off", "Promo code": "00075", "Eligible cards": "ICICI Coral"},
        {"Offer Title": "Extra 5% off", "Promo code": None, "Eligible cards": "AU LIT"},
    ]).to_excel(path, index=False)

    rows = read_source_rows(str(path))
    assert rows[0] == {"Offer Title": "Rs 75 off", "Promo code": "00075", "Eligible cards": "ICICI Coral"}
    assert rows[1]["Promo code"] == ""


def test_missing_file_raises_source_load_failure(tmp_path):
    with pytest.raises(SourceLoadFailure) as exc:
        read_source_rows(str(tmp_path / "nope.csv"), name="Swiggy")
    assert exc.value.source == "Swiggy"


def test_empty_file_raises_source_load_failure(tmp_path):
    path = tmp_path / "empty.csv"
    path.write_text("", encoding="utf-8")
    with pytest.raises(SourceLoadFailure):
        read_source_rows(str(path))


def test_unconfigured_location_raises():
    with pytest.raises(SourceLoadFailure):
        read_source_rows("", name="Zomato")


def test_load_sources_isolates_failures(tmp_path, swiggy_csv):
    specs = [
        SourceSpec(name="catalog", location=str(tmp_path / "missing_catalog.csv"), role=ROLE_CATALOG),
        SourceSpec(name="Swiggy", location=swiggy_csv, role=ROLE_OFFERS),
        SourceSpec(name="Zomato", location=str(tmp_path / "missing_zomato.csv"), role=ROLE_OFFERS),
    ]
    result = load_sources(specs, max_workers=3)

    assert list(result.rows) == ["catalog", "Swiggy", "Zomato"]
    assert set(result.failures) == {"catalog", "Zomato"}
    assert result.succeeded == ["Swiggy"]
    assert len(result.rows["Swiggy"]) == 2
    assert result.rows["Zomato"] == []
    assert list(result.rows_for_role(ROLE_OFFERS)) == ["Swiggy", "Zomato"]


def test_corrupt_workbook_is_recorded_not_raised(tmp_path, swiggy_csv):
    broken = tmp_path / "Zomato.xlsx"
    broken.write_bytes(b"PK\x03\x04" + b"\x00garbage" * 20)

    with pytest.raises(SourceLoadFailure):
        read_source_rows(str(broken), name="Zomato")

    specs = [
        SourceSpec(name="Swiggy", location=swiggy_csv),
        SourceSpec(name="Zomato", location=str(broken)),
    ]
    result = load_sources(specs)
    assert list(result.failures) == ["Zomato"]
    assert result.rows["Zomato"] == []
    assert len(result.rows["Swiggy"]) == 2
    assert not result.complete


def test_legacy_xls_is_recorded_not_raised(tmp_path, swiggy_csv):
    old = tmp_path / "Zomato.xls"
    old.write_bytes(b"\xd0\xcf\x11\xe0" + b"\x00" * 64)

    result = load_sources([
        SourceSpec(name="Swiggy", location=swiggy_csv),
        SourceSpec(name="Zomato", location=str(old)),
    ])
    assert ".xls" in result.failures["Zomato"]
    assert result.succeeded == ["Swiggy"]


def test_unexpected_reader_error_is_isolated(monkeypatch, swiggy_csv):
    real_read = offer_sources.read_source_rows

    def flaky_read(location, name=''):
        if name == "Zomato":
            raise RuntimeError("reader crashed")
        return real_read(location, name)

    monkeypatch.setattr(offer_sources, "read_source_rows", flaky_read)

    result = load_sources([
        SourceSpec(name="Swiggy", location=swiggy_csv),
        SourceSpec(name="Zomato", location="Zomato.csv"),
    ])
    assert result.failures == {"Zomato": "reader crashed"}
    assert len(result.rows["Swiggy"]) == 2


def test_complete_when_nothing_failed(swiggy_csv):
    assert load_sources([SourceSpec(name="Swiggy", location=swiggy_csv)]).complete


def test_network_error_does_not_block_other_sources(monkeypatch, swiggy_csv):
    real_read = offer_sources._read_frame

    def fake_read(location):
        if location.startswith("https://"):
            raise URLError("Name or service not known")
        return real_read(location)

    monkeypatch.setattr(offer_sources, "_read_frame", fake_read)

    specs = [
        SourceSpec(name="Zomato", location="https://example.invalid/zomato.csv"),
        SourceSpec(name="Swiggy", location=swiggy_csv),
    ]
    result = load_sources(specs)
    assert "Zomato" in result.failures
    assert "Name or service not known" in result.failures["Zomato"]
    assert [r["Offer"] for r in result.rows["Swiggy"]] == ["10% off", "Rs 50 off"]


def test_load_sources_with_no_specs():
    result = load_sources([])
    assert result.rows == {}
    assert result.failures == {}
