"""
Offer Coverage Report Generator

Builds the card catalog from the configured sources, matches every catalog
entry against every provider sheet, and writes which cards have offers where.

Usage:
    python scripts/generate_offer_report.py

Inputs:
    - Catalog + provider sheets from settings (data/ by default, or .env)

Outputs:
    - outputs/offer_coverage.csv     (one row per card, offers per provider)
    - outputs/offer_coverage.xlsx    (Coverage tab + Gaps tab + Load Failures tab)
"""

import sys, os
import time
_SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
_PROJECT_ROOT = os.path.join(_SCRIPT_DIR, '..')
sys.path.insert(0, os.path.join(_PROJECT_ROOT, 'src'))
OUTPUT_DIR = os.path.join(_PROJECT_ROOT, 'outputs')

import pandas as pd

from offer_matcher import compute_offer_coverage, detect_offer_gaps
from offer_sources import load_sources
from offer_state import build_catalog_from_load, build_offer_tables
from settings import configure_logging, settings


def main():
    configure_logging()
    start_time = time.time()
    os.makedirs(OUTPUT_DIR, exist_ok=True)

    print("Loading sources...")
    result = load_sources(settings.source_specs(), max_workers=settings.MAX_LOAD_WORKERS)
    for name, rows in result.rows.items():
        status = f"FAILED ({result.failures[name]})" if name in result.failures else f"{len(rows)} rows"
        print(f"  {name}: {status}")

    catalog = build_catalog_from_load(result, settings.CATALOG_INCLUDES_OFFER_SOURCES)
    if catalog.is_empty:
        print("\nNo instruments found in any source - nothing to report.")
        return

    offer_tables = build_offer_tables(result)
    print(f"\nCatalog: {len(catalog)} instruments {catalog.counts()}")

    coverage = compute_offer_coverage(catalog, offer_tables)
    coverage = coverage.sort_values(by=['total_offers', 'type', 'instrument']).reset_index(drop=True)
    gaps = detect_offer_gaps(coverage)

    csv_path = os.path.join(OUTPUT_DIR, "offer_coverage.csv")
    coverage.to_csv(csv_path, index=False, encoding='utf-8-sig')
    print(f"\nWrote {csv_path} ({len(coverage)} rows)")

    xlsx_path = os.path.join(OUTPUT_DIR, "offer_coverage.xlsx")
    with pd.ExcelWriter(xlsx_path, engine='openpyxl') as writer:
        coverage.to_excel(writer, sheet_name='Coverage', index=False)
        coverage[coverage['total_offers'] == 0].to_excel(writer, sheet_name='Gaps', index=False)
        pd.DataFrame(
            [{'source': name, 'reason': reason} for name, reason in result.failures.items()],
            columns=['source', 'reason'],
        ).to_excel(writer, sheet_name='Load Failures', index=False)
    print(f"Wrote {xlsx_path}")

    print("\n" + "=" * 60)
    print("SUMMARY")
    print("=" * 60)
    print(f"  Instruments:          {gaps['total_instruments']}")
    print(f"  With >= 1 offer:      {gaps['coverage_rate']}%")
    print(f"  Without offers:       {len(gaps['without_offers'])}")
    for type_label, count in gaps['without_offers_by_type'].items():
        print(f"    {type_label}: {count}")

    print(f"\nDone in {time.time() - start_time:.1f}s")


if __name__ == '__main__':
    main()
