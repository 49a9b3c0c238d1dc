"""Turn enriched candidates into scored, classified partner records."""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import replace
from typing import Iterable, List, Optional, Sequence

from partner_discovery.core.text import normalize_text
from partner_discovery.core.urls import domain_from_url
from partner_discovery.models import (
    STATUS_ACCEPTED,
    STATUS_PENDING,
    STATUS_REJECTED,
    VERIFICATION_MODES,
    CandidateRaw,
    NormalizedPartner,
    SearchQuery,
    VerificationSignals,
)

logger = logging.getLogger(__name__)

DEFAULT_MIN_SCORE = 30
DEFAULT_VERIFICATION_MODE = "strict"
DESCRIPTION_LIMIT = 360
DESCRIPTION_FALLBACK = "Auto-discovered partner candidate from web search."

PLATFORM_VOCABULARY = ("zapier", "make", "n8n", "automation", "ai", "custom")
AUTOMATION_HINTS = ("automation", "zapier", "make", "n8n", "workflow", "integration", "agency")

EMAIL_REGEX = re.compile(r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@(?:[a-zA-Z0-9-]+\.)+[a-zA-Z]{2,}$")
BARE_DOMAIN_REGEX = re.compile(r"^[a-z0-9.-]+\.[a-z]{2,}$", re.IGNORECASE)
_PLATFORM_PATTERNS = {token: re.compile(rf"\b{re.escape(token)}s?\b") for token in PLATFORM_VOCABULARY}
_QUOTES_RE = re.compile(r"""^['"]|['"]$""")
_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")

NOTE_MISSING_NAME = "missing name"
NOTE_MISSING_WEBSITE = "missing website"
NOTE_NO_PLATFORM = "no platform signal"
NOTE_INVALID_EMAIL = "missing or invalid email"
NOTE_WEBSITE_FAILED = "website verification failed"
NOTE_LOW_SIGNAL = "low verification signal"
NOTE_LENIENT = "lenient acceptance"
HARD_DISQUALIFIERS = (NOTE_MISSING_NAME, NOTE_MISSING_WEBSITE, NOTE_NO_PLATFORM)


def normalize_mode(mode: Optional[str]) -> str:
    return mode if mode in VERIFICATION_MODES else DEFAULT_VERIFICATION_MODE


def normalize_country(value: Optional[str]) -> str:
    return normalize_text(value)


def normalize_slug(value: str) -> str:
    """Lower-case ASCII slug with single hyphens between words."""
    text = normalize_text(value).replace("&", " and ")
    ascii_text = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    return _SLUG_STRIP_RE.sub("-", ascii_text.lower()).strip("-")


def normalize_website(value: Optional[str]) -> str:
    text = normalize_text(value).lower()
    if not text:
        return ""
    if not text.startswith(("http://", "https://")):
        text = f"https://{text}"
    return text.rstrip("/")


def normalize_name(value: Optional[str]) -> str:
    return _QUOTES_RE.sub("", normalize_text(value))


def extract_platforms(text: str, seed: Iterable[str] = ()) -> List[str]:
    """Platforms from the fixed vocabulary mentioned in `text` or the seed tokens."""
    source_text = " ".join([*(token.lower() for token in seed), normalize_text(text).lower()])
    found = [token for token in PLATFORM_VOCABULARY if _PLATFORM_PATTERNS[token].search(source_text)]
    if not found and "zapier" in source_text:
        found.append("zapier")
    return found


def normalize_platform_tokens(values: Iterable[str]) -> List[str]:
    """Lower-case, comma-split, trimmed and de-duplicated platform tokens."""
    tokens: List[str] = []
    for value in values:
        for item in str(value or "").split(","):
            token = normalize_text(item.lower())
            if token and token not in tokens:
                tokens.append(token)
    return tokens


def has_automation_hint(text: str) -> bool:
    normalized = normalize_text(text).lower()
    return any(token in normalized for token in AUTOMATION_HINTS)


def validate_email(email: Optional[str]) -> bool:
    return bool(EMAIL_REGEX.match(normalize_text(email).lower()))


def email_domain(email: Optional[str]) -> str:
    normalized = normalize_text(email).lower()
    at_index = normalized.rfind("@")
    if at_index < 0:
        return ""
    return normalized[at_index + 1 :]


def sanitize_description(value: Optional[str]) -> str:
    text = normalize_text(value)
    if not text:
        return DESCRIPTION_FALLBACK
    if len(text) > DESCRIPTION_LIMIT:
        return f"{text[: DESCRIPTION_LIMIT - 3]}..."
    return text


def score_candidate(
    *,
    name: str,
    website: str,
    platforms: Sequence[str],
    description: str,
    country: str,
    email_valid: bool,
    signals: VerificationSignals,
) -> int:
    """Additive point score; every positive signal only ever adds points."""
    score = 0
    if len(name) > 2:
        score += 20
    if BARE_DOMAIN_REGEX.match(re.sub(r"^https?://", "", website)):
        score += 20
    if len(platforms) > 0:
        score += 25
    if len(platforms) > 1:
        score += 10
    if len(description) > 80:
        score += 15
    if country:
        score += 10
    if email_valid:
        score += 25
    if signals.website_ok:
        score += 10
    if signals.contact_signal:
        score += 22
    if signals.about_signal:
        score += 10
    if signals.automation_signal:
        score += 12
    if signals.work_signal:
        score += 10
    if signals.services_signal:
        score += 10
    if signals.social_signal:
        score += 8
    if has_automation_hint(name):
        score += 15
    if has_automation_hint(description):
        score += 15
    if domain_from_url(website).endswith((".io", ".ai")):
        score += 8
    return score


def _verification_state(candidate: CandidateRaw, email: str) -> VerificationSignals:
    signals = candidate.verification_signals or VerificationSignals(website_status="unknown")
    return replace(
        signals,
        website_ok=signals.website_ok or signals.website_status == "ok",
        website_status=signals.website_status or "unknown",
        email_from_source=signals.email_from_source or bool(email),
    )


def _classify(
    partner: NormalizedPartner,
    *,
    min_score: int,
    mode: str,
    require_email: bool,
) -> None:
    """Set `status` and append notes; rules are evaluated in priority order."""
    notes = partner.validation_notes
    signals = partner.verification_signals

    if any(reason in HARD_DISQUALIFIERS for reason in partner.reasons):
        partner.status = STATUS_REJECTED
    elif require_email and not partner.email_valid:
        partner.status = STATUS_REJECTED
    elif partner.score < min_score:
        partner.status = STATUS_PENDING
        notes.append(f"score {partner.score} < threshold {min_score}")
    elif mode == "strict":
        if not signals.website_ok:
            partner.status = STATUS_PENDING
            notes.append(NOTE_WEBSITE_FAILED)
        elif not signals.has_content_signal():
            partner.status = STATUS_PENDING
            notes.append(NOTE_LOW_SIGNAL)
        else:
            partner.status = STATUS_ACCEPTED
    elif mode == "moderate":
        if not signals.website_ok and not signals.has_content_signal():
            partner.status = STATUS_PENDING
            notes.append(NOTE_LOW_SIGNAL)
        else:
            partner.status = STATUS_ACCEPTED
    else:
        partner.status = STATUS_ACCEPTED
        if signals.website_ok:
            notes.append(NOTE_LENIENT)

    if not notes:
        notes.append({STATUS_ACCEPTED: "accepted", STATUS_PENDING: "review needed"}.get(partner.status, "rejected"))


def normalize_candidate(
    candidate: CandidateRaw,
    query: SearchQuery,
    min_score: int = DEFAULT_MIN_SCORE,
    verification_mode: str = DEFAULT_VERIFICATION_MODE,
    require_email: bool = True,
) -> NormalizedPartner:
    """Score and classify a candidate. Pure: same inputs always give the same record."""
    website = normalize_website(candidate.discovered_website)
    name = normalize_name(candidate.discovered_name)
    platforms = extract_platforms(
        " ".join([normalize_text(candidate.discovered_name), candidate.snippet or "", normalize_text(query.query)]),
        [*candidate.platforms, *query.platforms],
    )
    location = normalize_text(candidate.location)
    country = normalize_country(candidate.country or query.country)
    description = sanitize_description(candidate.snippet or (candidate.query.query if candidate.query else ""))
    email = normalize_text(candidate.email).lower()
    signals = _verification_state(candidate, email)
    mode = normalize_mode(verification_mode)

    reasons: List[str] = []
    if not name:
        reasons.append(NOTE_MISSING_NAME)
    if not website:
        reasons.append(NOTE_MISSING_WEBSITE)
        signals = replace(signals, website_ok=False, website_status="missing")
    if not platforms:
        reasons.append(NOTE_NO_PLATFORM)
    email_valid = validate_email(email)
    if require_email and not email_valid:
        reasons.append(NOTE_INVALID_EMAIL)

    partner = NormalizedPartner(
        name=name or "Unnamed Partner",
        website=website,
        location=location,
        country=country or "Unknown",
        description=description,
        email=email,
        platforms=platforms or ["custom"],
        source_ref=candidate.source_ref or candidate.discovered_website,
        slug=normalize_slug(f"{name or 'partner'} {location or country or 'global'}"),
        verification_signals=signals,
        email_valid=email_valid,
        email_domain=email_domain(email),
        reasons=reasons,
        validation_notes=list(reasons),
    )
    partner.score = score_candidate(
        name=name,
        website=website,
        platforms=platforms,
        description=description,
        country=country,
        email_valid=email_valid,
        signals=signals,
    )
    _classify(partner, min_score=min_score, mode=mode, require_email=require_email)
    return partner


def get_verification_mode_default(mode: str, requested_min_score: int) -> int:
    """Effective score threshold when the caller did not pass one explicitly."""
    mode = normalize_mode(mode)
    if mode == "strict":
        return max(requested_min_score, 45)
    if mode == "moderate":
        return max(requested_min_score - 10, 30)
    return max(requested_min_score - 20, 20)
