"""Merge listings and staging CSVs into one de-duplicated vendor master list."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

from partner_discovery.core.text import normalize_text
from partner_discovery.core.urls import domain_from_url, normalize_website
from partner_discovery.etl.csv_io import ListingRow, read_csv_records

logger = logging.getLogger(__name__)

SOURCE_TAG_MASTER = "vendor_master"
SOURCE_TAG_FILE = "source_file"


class VendorListError(RuntimeError):
    """Raised when the merge has no usable input at all."""


@dataclass
class MergeResult:
    rows: List[ListingRow] = field(default_factory=list)
    incoming: int = 0
    duplicates: Dict[str, int] = field(default_factory=dict)

    @property
    def unique(self) -> int:
        return len(self.rows)

    @property
    def duplicate_count(self) -> int:
        return sum(self.duplicates.values())


def _first(record: Mapping[str, str], *keys: str, default: str = "") -> str:
    for key in keys:
        value = record.get(key)
        if value not in (None, ""):
            return str(value)
    return default


def normalize_vendor_row(record: Mapping[str, str], fallback_id: int, source_tag: str) -> ListingRow:
    """Map a raw CSV record (snake or camel case headers) onto a listing row."""
    raw_id = normalize_text(record.get("id"))
    row_id = raw_id if raw_id.isdigit() and int(raw_id) > 0 else str(fallback_id)
    return ListingRow(
        id=row_id,
        name=normalize_text(_first(record, "name", "slug")),
        platforms=normalize_text(record.get("platforms")),
        location=normalize_text(_first(record, "location", "city")),
        country=normalize_text(record.get("country")),
        description=normalize_text(record.get("description")),
        price_min=_first(record, "price_min", "priceMin", default="0"),
        price_max=_first(record, "price_max", "priceMax", default="0"),
        rating=_first(record, "rating", default="0"),
        review_count=_first(record, "review_count", "reviewCount", default="0"),
        featured=_first(record, "featured", "is_featured", default="false"),
        website=normalize_website(record.get("website") or ""),
        email=normalize_text(record.get("email")).lower(),
        source=normalize_text(record.get("source")) or source_tag,
        source_ref=normalize_text(_first(record, "source_ref", "sourceRef")),
        verified=_first(record, "verified", "is_verified", default="false"),
        verification_method=normalize_text(_first(record, "verification_method", "verificationMethod")) or "none",
        verified_at=normalize_text(_first(record, "verified_at", "verifiedAt")),
    )


def vendor_key(row: ListingRow) -> str:
    """Dedup key: website domain, then email, then name|country|location."""
    domain = domain_from_url(row.website)
    if domain:
        return f"domain:{domain}"
    if row.email:
        return f"email:{row.email}"
    return f"fallback:{normalize_text(row.name)}|{normalize_text(row.country)}|{normalize_text(row.location)}"


def collect_inputs(
    *,
    append_mode: bool,
    master_output: str,
    base_listings: str,
    staging_dir: str,
    new_files: Sequence[str] = (),
    include_staging: bool = True,
) -> List[str]:
    if append_mode:
        return [master_output, *new_files]

    inputs = [base_listings]
    if include_staging:
        staging = Path(staging_dir)
        if staging.is_dir():
            csv_names = sorted(entry.name for entry in staging.iterdir() if entry.name.lower().endswith(".csv"))
            inputs.extend(str(staging / name) for name in csv_names)
    return inputs


def _read_rows(path: str, max_rows: Optional[int]) -> List[Dict[str, str]]:
    try:
        return read_csv_records(path, max_rows)
    except (OSError, UnicodeDecodeError, ValueError) as exc:
        logger.warning("Skipping unreadable input %s: %s", path, exc)
        return []


def merge_vendor_files(
    inputs: Sequence[str],
    *,
    master_output: str = "",
    max_rows: Optional[int] = None,
) -> MergeResult:
    """Read every input in order and keep the first row seen for each vendor key."""
    if not any(Path(path).is_file() for path in inputs):
        raise VendorListError(f"no input CSV source available among: {', '.join(inputs) or '(none)'}")

    result = MergeResult()
    seen: Dict[str, ListingRow] = {}
    for input_index, path in enumerate(inputs):
        source_tag = SOURCE_TAG_MASTER if path == master_output else SOURCE_TAG_FILE
        for record in _read_rows(path, max_rows):
            result.incoming += 1
            row = normalize_vendor_row(record, input_index * 1_000_000 + len(seen) + 1, source_tag)
            if not row.name and not row.website and not row.email:
                continue
            key = vendor_key(row)
            if key in seen:
                result.duplicates[key] = result.duplicates.get(key, 0) + 1
                continue
            seen[key] = row

    result.rows = sorted(seen.values(), key=lambda row: (row.name, row.website))
    return result
