"""Website enrichment: fetch a candidate's homepage and contact pages and extract signals."""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from partner_discovery.core.config import Settings, get_settings
from partner_discovery.core.text import clean_text, decode_entities
from partner_discovery.core.urls import normalize_website, origin_of
from partner_discovery.models import CandidateRaw, VerificationSignals, merge_signals

logger = logging.getLogger(__name__)

MAX_CONTACT_LINKS = 3
HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")
CONTACT_PATHS = ("/contact", "/contact-us", "/about", "/about-us", "/aboutus")
ASSET_SUFFIXES = (".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp")

EMAIL_REGEX = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)
TITLE_REGEX = re.compile(r"<title[^>]*>([^<]+)</title>", re.IGNORECASE)
META_DESCRIPTION_REGEXES = (
    re.compile(r"""<meta[^>]+name=["']description["'][^>]+content=["']([^"']+)["']""", re.IGNORECASE),
    re.compile(r"""<meta[^>]+property=["']og:description["'][^>]+content=["']([^"']+)["']""", re.IGNORECASE),
)
HREF_REGEX = re.compile(r"""<a[^>]+href=["']([^"']+)["'][^>]*>""", re.IGNORECASE)

CONTACT_RE = re.compile(r"\bcontact\b|reach us|get in touch|contact us|contact information")
ABOUT_RE = re.compile(r"\babout\b|who we are|about us|our story")
AUTOMATION_RE = re.compile(r"\bautomation\b|zapier|make\.com|n8n|workflow|integration")
SERVICES_RE = re.compile(r"\bservices?\b|what we do|offerings|solutions?")
WORK_RE = re.compile(r"\bwork\b|portfolio|case study|projects?")
SOCIAL_RE = re.compile(r"linkedin\.com|facebook\.com|instagram\.com|x\.com|twitter\.com")


@dataclass(frozen=True)
class PageDetails:
    name: Optional[str]
    description: Optional[str]
    email: Optional[str]
    signals: VerificationSignals


def extract_title(html: str) -> Optional[str]:
    match = TITLE_REGEX.search(html or "")
    if not match:
        return None
    return clean_text(decode_entities(match.group(1))) or None


def extract_meta_description(html: str) -> Optional[str]:
    """Return the meta description, falling back to og:description."""
    for pattern in META_DESCRIPTION_REGEXES:
        match = pattern.search(html or "")
        if match:
            return clean_text(decode_entities(match.group(1))) or None
    return None


def extract_emails(text: str) -> List[str]:
    """Return unique lower-cased emails in order of first appearance."""
    found: List[str] = []
    for match in EMAIL_REGEX.finditer(text or ""):
        email = match.group(0).lower()
        if email.endswith(ASSET_SUFFIXES):
            continue
        if email not in found:
            found.append(email)
    return found


def page_text(html: str) -> str:
    """Visible text of a page, whitespace-collapsed."""
    soup = BeautifulSoup(html or "", "html.parser")
    return clean_text(soup.get_text(" ", strip=True))


def evaluate_signals(text: str, source_html: str) -> VerificationSignals:
    """Keyword signals for a page; `text` is the visible text, `source_html` the raw markup."""
    normalized = (text or "").lower()
    return VerificationSignals(
        contact_signal=bool(CONTACT_RE.search(normalized)),
        about_signal=bool(ABOUT_RE.search(normalized)),
        automation_signal=bool(AUTOMATION_RE.search(normalized)),
        services_signal=bool(SERVICES_RE.search(normalized)),
        work_signal=bool(WORK_RE.search(normalized)),
        social_signal=bool(SOCIAL_RE.search(normalized)),
        mailto_signal="mailto:" in (source_html or "").lower(),
    )


def collect_contact_links(base_url: str, html: str, max_links: int = MAX_CONTACT_LINKS) -> List[str]:
    """Same-origin contact/about links found in anchor tags, in document order."""
    links: List[str] = []
    base_origin = origin_of(base_url)

    for match in HREF_REGEX.finditer(html or ""):
        if len(links) >= max_links:
            break
        raw = match.group(1).split("#", 1)[0].strip()
        if not raw:
            continue
        if not any(path in raw.lower() for path in CONTACT_PATHS):
            continue
        try:
            target = urljoin(base_url, decode_entities(raw))
        except ValueError:
            continue
        if origin_of(target) != base_origin:
            continue
        normalized = target.rstrip("/")
        if normalized not in links:
            links.append(normalized)

    return links


def extract_page_details(html: str, status_code: Optional[int] = 200) -> PageDetails:
    emails = extract_emails(html)
    signals = replace(
        evaluate_signals(page_text(html), html),
        website_ok=True,
        website_status="ok",
        website_status_code=status_code,
        email_from_source=bool(emails),
    )
    return PageDetails(
        name=extract_title(html),
        description=extract_meta_description(html),
        email=emails[0] if emails else None,
        signals=signals,
    )


def _is_html(response: requests.Response) -> bool:
    content_type = (response.headers.get("Content-Type") or "").lower()
    return any(kind in content_type for kind in HTML_CONTENT_TYPES)


class SiteEnricher:
    """Fetch a candidate website plus a few contact/about pages and attach verification signals.

    Never raises for network problems: failures become a degraded
    `VerificationSignals` with `website_status` set to `error`,
    `http_<code>` or `non_html`.

    Requests made from threads other than the one that built the enricher go
    through per-thread sessions carrying the same headers; `close` shuts them all.
    """

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
        max_links: int = MAX_CONTACT_LINKS,
    ) -> None:
        self.settings = settings or get_settings()
        self.max_links = max_links
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", self.settings.user_agent)
        self.session.headers.setdefault("Accept", "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8")
        self._owner = threading.get_ident()
        self._local = threading.local()
        self._worker_sessions: List[requests.Session] = []
        self._lock = threading.Lock()

    def _session(self) -> requests.Session:
        """The shared session on the creating thread, a lazily built copy on any other."""
        if threading.get_ident() == self._owner:
            return self.session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            session.headers.update(self.session.headers)
            self._local.session = session
            with self._lock:
                self._worker_sessions.append(session)
        return session

    def _get(self, url: str, timeout: float) -> requests.Response:
        return self._session().get(
            url,
            timeout=timeout,
            allow_redirects=True,
            headers={"Accept-Language": "en-US,en;q=0.9"},
        )

    def _fetch_extra_page(self, url: str) -> Optional[PageDetails]:
        try:
            response = self._get(url, self.settings.link_timeout)
        except requests.RequestException as exc:  # noqa: BLE001
            logger.debug("Contact page %s failed: %s", url, exc)
            return None
        if not response.ok or not _is_html(response):
            return None
        return extract_page_details(response.text, response.status_code)

    def _degraded(self, candidate: CandidateRaw, website: str, signals: VerificationSignals) -> CandidateRaw:
        return replace(
            candidate,
            discovered_website=website,
            source_ref=candidate.source_ref or candidate.discovered_website,
            verification_signals=signals,
        )

    def enrich(self, candidate: CandidateRaw) -> CandidateRaw:
        website = normalize_website(candidate.discovered_website)
        if not website:
            return self._degraded(candidate, website, VerificationSignals.failed("missing"))

        try:
            response = self._get(website, self.settings.fetch_timeout)
        except requests.RequestException as exc:  # noqa: BLE001
            logger.warning("Failed to fetch %s: %s", website, exc)
            return self._degraded(candidate, website, VerificationSignals.failed("error"))

        if not response.ok:
            logger.info("Website %s returned HTTP %s", website, response.status_code)
            return self._degraded(
                candidate,
                website,
                VerificationSignals.failed(f"http_{response.status_code}", response.status_code),
            )

        if not _is_html(response):
            logger.debug("Skipping non-HTML content at %s", website)
            return self._degraded(candidate, website, VerificationSignals.failed("non_html"))

        homepage_html = response.text
        homepage = extract_page_details(homepage_html, response.status_code)
        signals = homepage.signals
        email = candidate.email or homepage.email

        base_url = response.url if isinstance(response.url, str) and response.url else website
        for link in collect_contact_links(base_url, homepage_html, self.max_links):
            extra = self._fetch_extra_page(link)
            if extra is None:
                continue
            signals = merge_signals(signals, extra.signals)
            email = email or extra.email

        name = candidate.discovered_name
        if not name or name == "Unknown":
            name = homepage.name or name or "Unknown"

        return replace(
            candidate,
            discovered_name=name,
            discovered_website=website,
            source_ref=candidate.source_ref or candidate.discovered_website,
            snippet=candidate.snippet or homepage.description,
            email=email,
            verification_signals=replace(signals, email_from_source=bool(email)),
        )

    def close(self) -> None:
        with self._lock:
            workers, self._worker_sessions = self._worker_sessions, []
        for session in workers:
            session.close()
        self.session.close()

    def __enter__(self) -> "SiteEnricher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def fetch_details(candidate: CandidateRaw, *, settings: Optional[Settings] = None) -> CandidateRaw:
    """One-shot enrichment with a throwaway session."""
    with SiteEnricher(settings=settings) as enricher:
        return enricher.enrich(candidate)
