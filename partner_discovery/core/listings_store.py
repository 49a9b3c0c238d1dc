"""Master listings CSV access: existing-partner snapshot, dedup index and appends."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Iterable

from partner_discovery.core.text import normalize_text
from partner_discovery.core.urls import domain_from_url
from partner_discovery.etl.csv_io import LISTING_COLUMNS, ListingRow, format_csv_line, read_csv_records, row_values
from partner_discovery.etl.normalize import normalize_slug, normalize_website
from partner_discovery.models import STATUS_ACCEPTED, STATUS_REJECTED, ExistingPartnerSnapshot, NormalizedPartner

logger = logging.getLogger(__name__)

DUPLICATE_REASON = "duplicate domain or slug"


def read_existing_listings(path: str) -> ExistingPartnerSnapshot:
    """Load domains, slugs and the max id from the master listings file.

    A missing or unreadable file yields an empty snapshot.
    """
    try:
        records = read_csv_records(path)
    except (OSError, UnicodeDecodeError, ValueError) as exc:
        logger.warning("Unable to read existing listings from %s: %s", path, exc)
        return ExistingPartnerSnapshot()

    snapshot = ExistingPartnerSnapshot()
    for record in records:
        row = ListingRow.from_mapping(record)
        try:
            snapshot.max_id = max(snapshot.max_id, int(row.id.strip() or "0"))
        except ValueError:
            pass

        website = normalize_website(row.website)
        if website:
            snapshot.websites.add(domain_from_url(website))

        name = normalize_text(row.name or record.get("slug"))
        city = normalize_text(row.location)
        slug = normalize_slug(f"{name} {city}") or normalize_slug(city)
        if slug:
            snapshot.slugs.add(slug)

    logger.info(
        "Loaded %d existing listings (%d domains, max id %d)", len(records), len(snapshot.websites), snapshot.max_id
    )
    return snapshot


class DedupIndex:
    """Domains and slugs occupied so far in a collection run, plus the next free id."""

    def __init__(self, snapshot: ExistingPartnerSnapshot) -> None:
        self.websites = set(snapshot.websites)
        self.slugs = set(snapshot.slugs)
        self.next_id = snapshot.max_id + 1
        self.blocked = 0

    def is_duplicate(self, partner: NormalizedPartner) -> bool:
        domain = domain_from_url(partner.website)
        return (bool(partner.website) and domain in self.websites) or partner.slug in self.slugs

    def apply(self, partner: NormalizedPartner) -> NormalizedPartner:
        """Reject duplicates, claim the domain/slug of everything else that survived validation.

        Runs after normalization and can only turn a record into `rejected`.
        """
        if self.is_duplicate(partner):
            self.blocked += 1
            return replace(
                partner,
                status=STATUS_REJECTED,
                reasons=[*partner.reasons, DUPLICATE_REASON],
                validation_notes=[*partner.validation_notes, DUPLICATE_REASON],
            )

        if partner.status == STATUS_REJECTED:
            return partner

        self.slugs.add(partner.slug)
        domain = domain_from_url(partner.website)
        if domain:
            self.websites.add(domain)

        if partner.status != STATUS_ACCEPTED:
            return partner
        assigned = replace(partner, assigned_id=self.next_id)
        self.next_id += 1
        return assigned


def append_listing_rows(path: str, rows: Iterable[ListingRow]) -> int:
    """Append rows to the master listings CSV, writing the header first for a new file."""
    lines = [format_csv_line(row_values(row, LISTING_COLUMNS)) for row in rows]
    if not lines:
        return 0

    target = Path(path)
    existing = target.read_text(encoding="utf-8") if target.exists() else ""
    if not existing:
        existing = format_csv_line(LISTING_COLUMNS) + "\n"
    separator = "" if existing.endswith("\n") else "\n"

    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(existing + separator + "\n".join(lines) + "\n", encoding="utf-8")
    logger.info("Appended %d rows to %s", len(lines), path)
    return len(lines)
