"""Offline seed adapter: placeholder candidates built from a query's platforms."""

from __future__ import annotations

from typing import List

from partner_discovery.models import CandidateRaw, SearchQuery
from partner_discovery.sources.base import SourceAdapter

MAX_SEED_CANDIDATES = 3


class SeedSource(SourceAdapter):
    key = "seed"
    display_name = "Manual Seed URLs"

    def discover(self, query: SearchQuery, max_results: int) -> List[CandidateRaw]:
        platforms = [platform for platform in query.platforms if platform][:MAX_SEED_CANDIDATES]
        return [
            CandidateRaw(
                source=self.key,
                discovered_name=f"{platform.upper()} Partner",
                discovered_website="",
                source_ref=query.query,
                country=query.country,
                platforms=(platform,),
                query=query,
            )
            for platform in platforms[:max_results]
        ]

    def fetch_details(self, candidate: CandidateRaw) -> CandidateRaw:
        return candidate
