"""
Tabular data sources: the catalog sheet and one offer sheet per provider.

Sources are CSV or Excel files, local paths or URLs, read with pandas. All
cells come back as strings ('' for blanks) so nothing downstream has to care
about NaN or numeric coercion of coupon codes.

Loading:
    - All sources load concurrently; none depends on another
    - The phase is done once every load has settled, success or failure
    - A failed source contributes no rows, is logged, and is listed in
      LoadResult.failures; the others are unaffected
"""

import logging
import os
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

import pandas as pd

logger = logging.getLogger(__name__)

ROLE_CATALOG = "catalog"
ROLE_OFFERS = "offers"

EXCEL_EXTENSIONS = ('.xlsx',)
# Old binary workbooks need xlrd, which is not installed
LEGACY_EXCEL_EXTENSIONS = ('.xls',)
DEFAULT_MAX_WORKERS = 4


class SourceLoadFailure(Exception):
    """A tabular source could not be fetched or parsed."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


@dataclass(frozen=True)
class SourceSpec:
    name: str
    location: str
    role: str = ROLE_OFFERS


@dataclass
class LoadResult:
    rows: Dict[str, List[Dict[str, str]]] = field(default_factory=OrderedDict)
    failures: Dict[str, str] = field(default_factory=OrderedDict)
    specs: List[SourceSpec] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        """True when every configured source loaded."""
        return not self.failures

    @property
    def succeeded(self) -> List[str]:
        return [name for name in self.rows if name not in self.failures]

    def rows_for_role(self, role: str) -> Dict[str, List[Dict[str, str]]]:
        """name -> rows for every source with this role, in configured order."""
        return OrderedDict(
            (s.name, self.rows.get(s.name, [])) for s in self.specs if s.role == role
        )


def _read_frame(location: str) -> pd.DataFrame:
    path = location.split('?', 1)[0].lower()
    if path.endswith(LEGACY_EXCEL_EXTENSIONS):
        raise ValueError("legacy .xls workbooks are not supported; save the sheet as .xlsx or .csv")
    if path.endswith(EXCEL_EXTENSIONS):
        return pd.read_excel(location, dtype=str)
    return pd.read_csv(location, dtype=str, keep_default_na=False, skip_blank_lines=True)


def read_source_rows(location: str, name: str = '') -> List[Dict[str, str]]:
    """
    Read one source into a list of {header: cell} dicts.

    Headers are stripped; unnamed pandas filler columns ('Unnamed: 3') and
    fully blank rows are dropped. Raises SourceLoadFailure on any fetch or
    parse problem.
    """
    name = name or location
    if not location:
        raise SourceLoadFailure(name, "no location configured")

    try:
        df = _read_frame(location)
    except FileNotFoundError:
        raise SourceLoadFailure(name, f"file not found: {location}")
    except Exception as e:
        # Network errors, corrupt workbooks (BadZipFile), parser errors...
        raise SourceLoadFailure(name, str(e) or e.__class__.__name__) from e

    df.columns = [str(c).strip() for c in df.columns]
    df = df[[c for c in df.columns if c and not c.startswith('Unnamed:')]].fillna('')
    for col in df.columns:
        df[col] = df[col].astype(str).str.strip()
    df = df[(df != '').any(axis=1)]

    return df.to_dict(orient='records')


def load_sources(specs: Sequence[SourceSpec], max_workers: int = DEFAULT_MAX_WORKERS) -> LoadResult:
    """
    Load every source concurrently and wait for all of them to settle.

    Results are keyed in configured order regardless of completion order, so the
    provider priority downstream is stable.
    """
    result = LoadResult(specs=list(specs))
    if not specs:
        return result

    workers = max(1, min(max_workers, len(specs)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [(spec, pool.submit(read_source_rows, spec.location, spec.name)) for spec in specs]

        for spec, future in futures:
            try:
                rows = future.result()
            except SourceLoadFailure as e:
                logger.warning("Source %s failed to load: %s", spec.name, e.reason)
                result.rows[spec.name] = []
                result.failures[spec.name] = e.reason
                continue
            except Exception as e:
                logger.exception("Unexpected error loading source %s", spec.name)
                result.rows[spec.name] = []
                result.failures[spec.name] = str(e) or e.__class__.__name__
                continue
            result.rows[spec.name] = rows
            logger.info("Loaded %d rows from %s (%s)", len(rows), spec.name, os.path.basename(spec.location))

    return result
