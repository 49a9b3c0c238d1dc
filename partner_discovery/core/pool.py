"""Bounded-concurrency helper for per-candidate network work."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def process_each(items: Iterable[T], func: Callable[[T], T], *, concurrency: int = 1) -> List[T]:
    """Apply `func` to every item with at most `concurrency` calls in flight.

    Results keep the input order. An item whose call raises is logged and
    returned unchanged so one bad site never aborts the batch.
    """

    def _safe(item: T) -> T:
        try:
            return func(item)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Processing failed for %r: %s", item, exc)
            return item

    batch = list(items)
    if concurrency <= 1 or len(batch) <= 1:
        return [_safe(item) for item in batch]

    with ThreadPoolExecutor(max_workers=concurrency) as executor:
        return list(executor.map(_safe, batch))
