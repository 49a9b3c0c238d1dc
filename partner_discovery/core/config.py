"""Configuration helpers for the partner discovery pipeline.

Every setting has a working default so the collection scripts run from a
fresh checkout; environment variables (or a local `.env`) override paths,
timeouts and the outbound user agent.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; partner-discovery/1.0; +https://automationagencydirectory.com)"


class ConfigError(RuntimeError):
    """Raised when a configuration value cannot be parsed."""


@dataclass(frozen=True)
class Settings:
    listings_csv: str = "data/listings.csv"
    staging_dir: str = "data/staging"
    query_file: str = "data/partner-queries.sample.json"
    vendor_master: str = "data/vendor-list-master.csv"
    search_timeout: float = 12.0
    fetch_timeout: float = 10.0
    link_timeout: float = 9.0
    user_agent: str = DEFAULT_USER_AGENT
    fetch_concurrency: int = 1


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load, validate and cache pipeline settings."""
    load_dotenv()

    fetch_concurrency = _get_int("PARTNER_FETCH_CONCURRENCY", 1)
    if fetch_concurrency < 1:
        logger.warning("PARTNER_FETCH_CONCURRENCY=%s is below 1; using 1", fetch_concurrency)
        fetch_concurrency = 1

    return Settings(
        listings_csv=os.getenv("PARTNER_LISTINGS_CSV") or Settings.listings_csv,
        staging_dir=os.getenv("PARTNER_STAGING_DIR") or Settings.staging_dir,
        query_file=os.getenv("PARTNER_QUERY_FILE") or Settings.query_file,
        vendor_master=os.getenv("PARTNER_VENDOR_MASTER") or Settings.vendor_master,
        search_timeout=_get_float("PARTNER_SEARCH_TIMEOUT", Settings.search_timeout),
        fetch_timeout=_get_float("PARTNER_FETCH_TIMEOUT", Settings.fetch_timeout),
        link_timeout=_get_float("PARTNER_LINK_TIMEOUT", Settings.link_timeout),
        user_agent=os.getenv("PARTNER_USER_AGENT") or DEFAULT_USER_AGENT,
        fetch_concurrency=fetch_concurrency,
    )
