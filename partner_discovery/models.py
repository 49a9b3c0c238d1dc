"""Core data models shared by the partner discovery pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Literal, Optional, Set, Tuple

VerificationMode = Literal["strict", "moderate", "lenient"]
VERIFICATION_MODES: Tuple[str, ...] = ("strict", "moderate", "lenient")

STATUS_ACCEPTED = "accepted"
STATUS_PENDING = "pending_review"
STATUS_REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class SearchQuery:
    """A discovery seed loaded from the query template file."""

    query: str
    country: Optional[str] = None
    platforms: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class VerificationSignals:
    """Evidence scraped from a candidate website and its contact/about pages."""

    website_ok: bool = False
    website_status: str = ""
    website_status_code: Optional[int] = None
    contact_signal: bool = False
    about_signal: bool = False
    automation_signal: bool = False
    services_signal: bool = False
    work_signal: bool = False
    social_signal: bool = False
    mailto_signal: bool = False
    email_from_source: bool = False

    @classmethod
    def failed(cls, status: str, status_code: Optional[int] = None) -> "VerificationSignals":
        """Degraded result for an unreachable or unusable website."""
        return cls(website_ok=False, website_status=status, website_status_code=status_code)

    def merge(self, other: "VerificationSignals") -> "VerificationSignals":
        return merge_signals(self, other)

    def has_content_signal(self) -> bool:
        return self.contact_signal or self.automation_signal or self.services_signal or self.work_signal


_BOOLEAN_SIGNALS = (
    "website_ok",
    "contact_signal",
    "about_signal",
    "automation_signal",
    "services_signal",
    "work_signal",
    "social_signal",
    "mailto_signal",
    "email_from_source",
)


def merge_signals(base: VerificationSignals, extra: VerificationSignals) -> VerificationSignals:
    """Combine two signal sets: booleans are OR-ed, status fields keep the first non-empty value."""
    merged = {name: getattr(base, name) or getattr(extra, name) for name in _BOOLEAN_SIGNALS}
    return VerificationSignals(
        website_status=base.website_status or extra.website_status,
        website_status_code=base.website_status_code or extra.website_status_code,
        **merged,
    )


@dataclass(frozen=True, slots=True)
class DiscoveryFlags:
    blocked_by_source: bool = False
    rejection_reasons: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class CandidateRaw:
    """Unverified candidate produced by a source adapter."""

    source: str
    discovered_name: str
    discovered_website: str
    source_ref: str
    snippet: Optional[str] = None
    location: Optional[str] = None
    country: Optional[str] = None
    platforms: Tuple[str, ...] = ()
    email: Optional[str] = None
    query: Optional[SearchQuery] = None
    verification_signals: Optional[VerificationSignals] = None
    discovery_flags: Optional[DiscoveryFlags] = None


@dataclass(slots=True)
class NormalizedPartner:
    """Scored and classified candidate; the unit written to staging and listings."""

    name: str
    website: str
    location: str
    country: str
    description: str
    email: str
    platforms: List[str]
    source_ref: str
    slug: str
    verification_signals: VerificationSignals
    email_valid: bool = False
    email_domain: str = ""
    score: int = 0
    status: str = STATUS_PENDING
    reasons: List[str] = field(default_factory=list)
    validation_notes: List[str] = field(default_factory=list)
    source: str = "public_api"
    verification_method: str = "api_match"
    verified: bool = False
    verified_at: str = ""
    assigned_id: Optional[int] = None


@dataclass(slots=True)
class ExistingPartnerSnapshot:
    """Domains, slugs and the highest id already present in the master listings."""

    websites: Set[str] = field(default_factory=set)
    slugs: Set[str] = field(default_factory=set)
    max_id: int = 0
