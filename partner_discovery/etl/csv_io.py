"""Typed CSV rows for the master listings, staging and vendor files.

The column order of every file is derived from the dataclass field order, so
the writer and the reader share one table and cannot drift apart.
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ListingRow:
    id: str = "0"
    name: str = ""
    platforms: str = ""
    location: str = ""
    country: str = ""
    description: str = ""
    price_min: str = "0"
    price_max: str = "0"
    rating: str = "0"
    review_count: str = "0"
    featured: str = "false"
    website: str = ""
    email: str = ""
    source: str = ""
    source_ref: str = ""
    verified: str = "false"
    verification_method: str = ""
    verified_at: str = ""

    @classmethod
    def from_mapping(cls, record: Mapping[str, Any]) -> "ListingRow":
        values = {}
        for column in listing_columns(cls):
            value = record.get(column)
            if value is not None:
                values[column] = str(value)
        return cls(**values)


@dataclass(slots=True)
class StagingRow(ListingRow):
    source_website: str = ""
    verification_score: str = "0"
    verification_status: str = ""
    validation_notes: str = ""
    contact_signal: str = "false"


def listing_columns(row_type: type = ListingRow) -> Tuple[str, ...]:
    return tuple(f.name for f in fields(row_type))


LISTING_COLUMNS = listing_columns(ListingRow)
STAGING_COLUMNS = listing_columns(StagingRow)


def escape_csv(value: Any) -> str:
    """Quote a value when it holds a comma, quote or line break; double inner quotes."""
    raw = "" if value is None else str(value)
    if any(ch in raw for ch in ('"', ",", "\n", "\r")):
        return '"' + raw.replace('"', '""') + '"'
    return raw


def format_csv_line(values: Iterable[Any]) -> str:
    return ",".join(escape_csv(value) for value in values)


def row_values(row: ListingRow, columns: Sequence[str]) -> List[str]:
    return [getattr(row, column) for column in columns]


def render_csv(rows: Iterable[ListingRow], columns: Sequence[str]) -> str:
    lines = [format_csv_line(columns)]
    lines.extend(format_csv_line(row_values(row, columns)) for row in rows)
    return "\n".join(lines) + "\n"


def write_csv(path: str, rows: Iterable[ListingRow], columns: Sequence[str]) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(render_csv(rows, columns), encoding="utf-8")


def read_csv_records(path: str, max_rows: Optional[int] = None) -> List[Dict[str, str]]:
    """Parse a headered CSV file into dicts; blank lines are skipped.

    Malformed CSV is reported as `ValueError`.
    """
    with open(path, "r", encoding="utf-8", newline="") as handle:
        try:
            records = [
                record
                for record in csv.DictReader(handle)
                if any((value or "").strip() for value in record.values() if isinstance(value, str))
            ]
        except csv.Error as exc:
            raise ValueError(f"malformed CSV in {path}: {exc}") from exc
    if max_rows is not None and max_rows > 0:
        return records[:max_rows]
    return records
