"""Source adapter contract and the directory/aggregator blocklist shared by search adapters."""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

import requests

from partner_discovery.core.config import Settings, get_settings
from partner_discovery.core.site_enricher import SiteEnricher
from partner_discovery.core.urls import domain_from_url
from partner_discovery.models import CandidateRaw, DiscoveryFlags, SearchQuery

logger = logging.getLogger(__name__)

DIRECTORY_DOMAINS = frozenset(
    {
        "clutch.co",
        "goodfirms.com",
        "sortlist.com",
        "fiverr.com",
        "upwork.com",
        "trustpilot.com",
        "g2.com",
        "capterra.com",
        "softwareadvice.com",
        "yelp.com",
        "yellowpages.com",
        "agencyspotter.com",
        "agencyanalytics.com",
        "agencycentral.com",
        "agencylist.co",
        "freelancer.com",
    }
)

NON_AGENCY_HOSTS = frozenset(
    {
        "facebook.com",
        "twitter.com",
        "x.com",
        "instagram.com",
        "reddit.com",
        "quora.com",
        "stacker.news",
        "stackoverflow.com",
        "github.com",
        "gitlab.com",
        "discord.com",
        "wikipedia.org",
        "namu.wiki",
        "tistory.com",
        "magicaiprompts.com",
        "infograb.net",
        "aeiai.net",
        "medium.com",
        "zhihu.com",
        "youtube.com",
        "twitch.tv",
        "bilibili.com",
        "facebook.net",
        "wix.com",
        "wordpress.com",
        "wordpress.org",
        "blogspot.com",
        "soundcloud.com",
        "dribbble.com",
    }
)

DIRECTORY_PATH_HINTS = (
    "/directory",
    "/directories",
    "/listing",
    "/listings",
    "/find-a",
    "/find-an",
    "/marketplace",
    "/vendors",
    "/agency",
    "/question",
    "/questions",
    "/answers",
    "/forum",
    "/community",
    "/user",
    "/users",
    "/wiki",
    "/blog",
    "/docs",
    "/documentation",
    "/help",
    "/tutorial",
    "/tutorials",
    "/guide",
    "/guides",
    "/post",
    "/posts",
    "/tags",
    "/tag/",
)

DIRECTORY_TEXT_HINTS = (
    "directory",
    "directory of",
    "list of",
    "best",
    "reviews",
    "reviewed",
    "top",
    "listing",
    "marketplace",
    "compare",
    "service directory",
    "directory listing",
    "question",
    "answers",
    "forum",
    "community",
    "review",
    "wiki",
    "blog",
    "tutorial",
    "guide",
    "documentation",
    "documentation page",
    "technical documentation",
    "questions",
    "profile",
)

SEARCH_SITE_EXCLUDES = (
    "clutch.co",
    "goodfirms.com",
    "sortlist.com",
    "fiverr.com",
    "upwork.com",
    "trustpilot.com",
    "g2.com",
    "capterra.com",
    "softwareadvice.com",
    "yellowpages.com",
)

_DOCS_RE = re.compile(r"\bdocs?\b")
_GUIDE_RE = re.compile(r"\bguide\b|\btutorial\b|\breference\b")


def _host_matches(host: str, domains) -> bool:
    return any(host == domain or host.endswith(f".{domain}") for domain in domains)


def is_known_directory_host(hostname: str) -> bool:
    host = domain_from_url(hostname)
    if not host:
        return False
    return _host_matches(host, DIRECTORY_DOMAINS) or _host_matches(host, NON_AGENCY_HOSTS)


def is_directory_candidate(candidate: CandidateRaw) -> Tuple[bool, List[str]]:
    """Check a discovered result against the directory/aggregator/social blocklist."""
    reasons: List[str] = []
    host = domain_from_url(candidate.discovered_website)
    text = f"{candidate.discovered_name or ''} {candidate.snippet or ''}".lower()
    url = (candidate.discovered_website or "").lower()

    if _DOCS_RE.search(text):
        reasons.append("non-business-content:text:docs")
    if _GUIDE_RE.search(text):
        reasons.append("non-business-content:text:guide")
    if host.endswith(".wiki") and "wikipedia.org" not in host:
        reasons.append("non-business-content:wiki-host")
    if is_known_directory_host(host):
        reasons.append(f"blacklist_host:{host}")

    path_hint = next((hint for hint in DIRECTORY_PATH_HINTS if hint in url), None)
    if path_hint:
        reasons.append(f"directory_path:{path_hint}")

    text_hint = next((hint for hint in DIRECTORY_TEXT_HINTS if hint in text), None)
    if text_hint:
        reasons.append(f"directory_text:{text_hint}")

    return bool(reasons), reasons


class SourceAdapter(ABC):
    """A discovery backend producing unverified candidates."""

    key: str = "base"
    display_name: str = "Base source"

    @abstractmethod
    def discover(self, query: SearchQuery, max_results: int) -> List[CandidateRaw]:
        """Return up to `max_results` de-duplicated candidates; never raises for network errors."""

    @abstractmethod
    def fetch_details(self, candidate: CandidateRaw) -> CandidateRaw:
        """Return the candidate enriched with verification signals; never raises."""

    def blocked_candidates(self) -> List[CandidateRaw]:
        """Results dropped by the directory blocklist so far, flagged with their reasons."""
        return []

    def close(self) -> None:
        """Release network resources held by the adapter."""


class SearchEngineSource(SourceAdapter):
    """Shared plumbing for adapters that scrape a public search engine."""

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
        enricher: Optional[SiteEnricher] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", self.settings.user_agent)
        self.enricher = enricher or SiteEnricher(settings=self.settings, session=self.session)
        self.blocked: List[CandidateRaw] = []

    def _search(self, url: str, headers: Optional[Dict[str, str]] = None) -> Optional[str]:
        try:
            response = self.session.get(url, headers=headers, timeout=self.settings.search_timeout)
        except requests.RequestException as exc:  # noqa: BLE001
            logger.warning("%s search request failed: %s", self.display_name, exc)
            return None
        if not response.ok:
            logger.warning("%s search returned HTTP %s", self.display_name, response.status_code)
            return None
        return response.text

    def filter_directories(self, candidates: List[CandidateRaw]) -> List[CandidateRaw]:
        """Drop blocklisted results; the dropped ones are kept on `self.blocked` with their flags."""
        kept: List[CandidateRaw] = []
        for candidate in candidates:
            blocked, reasons = is_directory_candidate(candidate)
            if blocked:
                self.blocked.append(
                    replace(
                        candidate,
                        discovery_flags=DiscoveryFlags(blocked_by_source=True, rejection_reasons=tuple(reasons)),
                    )
                )
                logger.debug("Dropping %s: %s", candidate.discovered_website, ", ".join(reasons))
                continue
            kept.append(candidate)
        return kept

    def blocked_candidates(self) -> List[CandidateRaw]:
        return list(self.blocked)

    def fetch_details(self, candidate: CandidateRaw) -> CandidateRaw:
        return self.enricher.enrich(candidate)

    def close(self) -> None:
        self.enricher.close()
        self.session.close()
