"""Utilities for turning normalized partners into listing and staging rows."""

from __future__ import annotations

from typing import Optional

from partner_discovery.etl.csv_io import LISTING_COLUMNS, ListingRow, StagingRow
from partner_discovery.models import NormalizedPartner


def _bool(value: bool) -> str:
    return "true" if value else "false"


def to_listing_row(partner: NormalizedPartner, partner_id: Optional[int] = None) -> ListingRow:
    """Master listing row; appended partners are never marked verified."""
    if partner_id is None:
        partner_id = partner.assigned_id or 0
    return ListingRow(
        id=str(partner_id),
        name=partner.name,
        platforms=",".join(partner.platforms),
        location=partner.location,
        country=partner.country,
        description=partner.description,
        website=partner.website,
        email=partner.email,
        source=partner.source,
        source_ref=partner.source_ref,
        verified="false",
        verification_method=partner.verification_method,
        verified_at="",
    )


def to_staging_row(partner: NormalizedPartner, partner_id: Optional[int] = None) -> StagingRow:
    base = to_listing_row(partner, partner_id)
    return StagingRow(
        **{column: getattr(base, column) for column in LISTING_COLUMNS},
        source_website=partner.source_ref or partner.website,
        verification_score=str(partner.score),
        verification_status=partner.status,
        validation_notes="; ".join(partner.validation_notes),
        contact_signal=_bool(partner.verification_signals.contact_signal),
    )


def staging_sort_key(partner: NormalizedPartner):
    """Order staged partners by email, website, country and platforms; contact evidence first on ties."""
    return (
        partner.email or "",
        partner.website or "",
        partner.country or "",
        "|".join(partner.platforms),
        not partner.verification_signals.contact_signal,
    )
