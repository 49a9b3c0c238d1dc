"""Lookup table of available source adapters."""

from __future__ import annotations

from typing import Dict, Optional, Type

import requests

from partner_discovery.core.config import Settings
from partner_discovery.sources.base import SearchEngineSource, SourceAdapter
from partner_discovery.sources.bing import BingSource
from partner_discovery.sources.duckduckgo import DuckDuckGoSource
from partner_discovery.sources.seed import SeedSource

SOURCE_ADAPTERS: Dict[str, Type[SourceAdapter]] = {
    DuckDuckGoSource.key: DuckDuckGoSource,
    BingSource.key: BingSource,
    SeedSource.key: SeedSource,
}


def available_sources() -> list:
    return list(SOURCE_ADAPTERS)


def create_adapter(
    name: str,
    *,
    settings: Optional[Settings] = None,
    session: Optional[requests.Session] = None,
) -> Optional[SourceAdapter]:
    """Instantiate the adapter registered under `name`, or None if unknown."""
    adapter_cls = SOURCE_ADAPTERS.get(name)
    if adapter_cls is None:
        return None
    if issubclass(adapter_cls, SearchEngineSource):
        return adapter_cls(settings=settings, session=session)
    return adapter_cls()
