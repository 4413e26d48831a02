import os
import logging
from typing import List

from dotenv import load_dotenv

from offer_sources import ROLE_CATALOG, ROLE_OFFERS, SourceSpec

load_dotenv()

_PROJECT_ROOT = os.path.join(os.path.dirname(os.path.abspath(__file__)), '..')
DEFAULT_DATA_DIR = os.path.join(_PROJECT_ROOT, 'data')


def _parse_sources(raw: str, data_dir: str) -> List[SourceSpec]:
    """
    'Swiggy=Swiggy.csv,Zomato=https://.../zomato.csv' -> [SourceSpec, ...]

    Relative paths resolve against the data dir. Order is provider priority.
    """
    specs = []
    for item in raw.split(','):
        item = item.strip()
        if not item or '=' not in item:
            continue
        name, location = (part.strip() for part in item.split('=', 1))
        if not name:
            continue
        if location and '://' not in location and not os.path.isabs(location):
            location = os.path.join(data_dir, location)
        specs.append(SourceSpec(name=name, location=location, role=ROLE_OFFERS))
    return specs


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


class Settings:
    OFFER_DATA_DIR: str = os.getenv("OFFER_DATA_DIR", DEFAULT_DATA_DIR)
    CATALOG_SOURCE: str = os.getenv("CATALOG_SOURCE", os.path.join(OFFER_DATA_DIR, "catalog.csv"))
    # Provider=location pairs; the order is the dedup priority
    OFFER_SOURCES: str = os.getenv("OFFER_SOURCES", "Swiggy=Swiggy.csv,Zomato=Zomato.csv")
    # Providers whose sheets restrict offers to card variants, e.g. "(Visa Signature)"
    VARIANT_NOTE_PROVIDERS: List[str] = [
        p.strip() for p in os.getenv("VARIANT_NOTE_PROVIDERS", "Swiggy,Zomato").split(",") if p.strip()
    ]
    # Offer sheets also list cards; fold them into the catalog too
    CATALOG_INCLUDES_OFFER_SOURCES: bool = _parse_bool(os.getenv("CATALOG_INCLUDES_OFFER_SOURCES", "true"))
    MAX_LOAD_WORKERS: int = int(os.getenv("MAX_LOAD_WORKERS", 4))
    # Seconds a complete load is shared across sessions before sheets are re-read
    SOURCE_CACHE_TTL: int = int(os.getenv("SOURCE_CACHE_TTL", 600))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    def catalog_spec(self) -> SourceSpec:
        return SourceSpec(name="catalog", location=self.CATALOG_SOURCE, role=ROLE_CATALOG)

    def offer_specs(self) -> List[SourceSpec]:
        return _parse_sources(self.OFFER_SOURCES, self.OFFER_DATA_DIR)

    def source_specs(self) -> List[SourceSpec]:
        return [self.catalog_spec()] + self.offer_specs()

    def provider_names(self) -> List[str]:
        return [s.name for s in self.offer_specs()]


settings = Settings()


def configure_logging(level: str = None) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
