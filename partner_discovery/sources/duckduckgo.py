"""DuckDuckGo HTML search adapter."""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import List, Set
from urllib.parse import parse_qs, quote_plus, urljoin, urlparse

from partner_discovery.core.text import clean_text, decode_entities
from partner_discovery.core.urls import normalize_website
from partner_discovery.models import CandidateRaw, SearchQuery
from partner_discovery.sources.base import SEARCH_SITE_EXCLUDES, SearchEngineSource

logger = logging.getLogger(__name__)

SEARCH_URL = "https://duckduckgo.com/html/?q={query}"
SITE_EXCLUDES = " ".join(f"-site:{domain}" for domain in SEARCH_SITE_EXCLUDES)

RESULT_LINK_RE = re.compile(r'<a[^>]*class="[^"]*result__a[^"]*"[^>]*href="([^"]+)"[^>]*>(.*?)</a>')
RESULT_SNIPPET_RE = re.compile(r'class="result__snippet"[^>]*>(.*?)</(?:a|p|div)>')
MAX_SNIPPETS = 400


def get_result_url(raw_href: str) -> str:
    """Unwrap DuckDuckGo's `/l/?uddg=` redirect links."""
    try:
        parsed = urlparse(urljoin("https://duckduckgo.com", raw_href))
    except ValueError:
        return raw_href
    params = parse_qs(parsed.query)
    for key in ("uddg", "uddg1"):
        values = params.get(key)
        if values and values[0]:
            return values[0]
    return raw_href


def parse_duckduckgo_results(html: str, max_results: int) -> List[CandidateRaw]:
    """Extract result links and snippets from a DuckDuckGo HTML results page."""
    snippets = [clean_text(decode_entities(match.group(1))) for match in RESULT_SNIPPET_RE.finditer(html or "")]
    snippets = snippets[:MAX_SNIPPETS]

    results: List[CandidateRaw] = []
    seen: Set[str] = set()
    for index, match in enumerate(RESULT_LINK_RE.finditer(html or "")):
        if len(results) >= max_results:
            break
        raw_href = decode_entities(match.group(1))
        website = normalize_website(get_result_url(raw_href))
        if not website or website in seen:
            continue
        seen.add(website)

        name = clean_text(decode_entities(match.group(2)))
        snippet = snippets[index] if index < len(snippets) else ""
        results.append(
            CandidateRaw(
                source="duckduckgo",
                discovered_name=name or "Unknown",
                discovered_website=website,
                source_ref=raw_href,
                snippet=snippet or None,
            )
        )
    return results


class DuckDuckGoSource(SearchEngineSource):
    key = "duckduckgo"
    display_name = "DuckDuckGo HTML Search"

    def build_query(self, query: SearchQuery) -> str:
        return f'{query.query} {query.country or ""} "automation partner" {SITE_EXCLUDES}'.strip()

    def discover(self, query: SearchQuery, max_results: int) -> List[CandidateRaw]:
        html = self._search(SEARCH_URL.format(query=quote_plus(self.build_query(query))))
        if html is None:
            return []

        parsed = [
            replace(candidate, query=query, country=candidate.country or query.country, platforms=query.platforms)
            for candidate in parse_duckduckgo_results(html, max_results)
        ]
        kept = self.filter_directories(parsed)
        logger.info("DuckDuckGo returned %d results for %r (%d kept)", len(parsed), query.query, len(kept))
        return kept
