"""Bing RSS search adapter."""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Set
from urllib.parse import quote_plus

from partner_discovery.core.text import clean_text, decode_entities
from partner_discovery.core.urls import normalize_website
from partner_discovery.models import CandidateRaw, SearchQuery
from partner_discovery.sources.base import SEARCH_SITE_EXCLUDES, SearchEngineSource

logger = logging.getLogger(__name__)

SEARCH_URL = "https://www.bing.com/search?q={query}&format=rss"
SITE_EXCLUDES = " ".join(f"-site:{domain}" for domain in (*SEARCH_SITE_EXCLUDES, "linkedin.com", "github.com"))
DEFAULT_KEYWORDS = '("automation agency" OR "marketing automation agency" OR "zapier partner")'

_CDATA_RE = re.compile(r"^<!\[CDATA\[|\]\]>$")


def strip_cdata(value: str) -> str:
    return _CDATA_RE.sub("", value)


def parse_tag_value(xml: str, tag_name: str) -> str:
    """Text content of the first `<tag_name>` element, CDATA-unwrapped and entity-decoded."""
    pattern = re.compile(rf"<{tag_name}(?:\s+[^>]*)?>([\s\S]*?)</{tag_name}>", re.IGNORECASE)
    match = pattern.search(xml or "")
    if not match:
        return ""
    raw = match.group(1).strip()
    return clean_text(decode_entities(strip_cdata(raw))) if raw else ""


def parse_rss_items(xml: str, max_results: int) -> List[Dict[str, str]]:
    items: List[Dict[str, str]] = []
    for chunk in (xml or "").split("<item>")[1:]:
        if len(items) >= max_results:
            break
        block = chunk.split("</item>")[0]
        if not block:
            continue
        url = parse_tag_value(block, "link")
        if url:
            items.append(
                {
                    "title": parse_tag_value(block, "title"),
                    "url": url,
                    "description": parse_tag_value(block, "description"),
                }
            )
    return items


class BingSource(SearchEngineSource):
    key = "bing"
    display_name = "Bing RSS Search"

    def build_query(self, query: SearchQuery) -> str:
        keywords = f"({' OR '.join(query.platforms)})" if query.platforms else DEFAULT_KEYWORDS
        return f'{query.query} {query.country or ""} {keywords} {SITE_EXCLUDES}'.strip()

    def discover(self, query: SearchQuery, max_results: int) -> List[CandidateRaw]:
        xml = self._search(
            SEARCH_URL.format(query=quote_plus(self.build_query(query))),
            headers={"Referer": "https://www.bing.com/"},
        )
        if xml is None:
            return []

        seen: Set[str] = set()
        candidates: List[CandidateRaw] = []
        for item in parse_rss_items(xml, max_results):
            website = normalize_website(item["url"])
            if not website or website in seen:
                continue
            seen.add(website)
            candidates.append(
                CandidateRaw(
                    source=self.key,
                    discovered_name=item["title"] or "Unknown",
                    discovered_website=website,
                    source_ref=item["url"],
                    snippet=item["description"] or None,
                    country=query.country,
                    platforms=query.platforms,
                    query=query,
                )
            )

        kept = self.filter_directories(candidates)
        logger.info("Bing returned %d results for %r (%d kept)", len(candidates), query.query, len(kept))
        return kept
