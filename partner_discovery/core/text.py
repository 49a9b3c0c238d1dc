"""Small text cleanup helpers shared by the scrapers and the normalizer."""

from __future__ import annotations

import html
import re
from typing import Any

_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(value: Any) -> str:
    """Collapse whitespace runs and trim."""
    return _WHITESPACE_RE.sub(" ", str(value or "")).strip()


def clean_text(value: Any) -> str:
    """Strip markup and collapse whitespace."""
    return normalize_text(_TAG_RE.sub(" ", str(value or "")))


def decode_entities(value: str) -> str:
    return html.unescape(value or "")
