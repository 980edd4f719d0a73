"""
Result assembly: deduplication and index-window slicing.
"""
import logging
from typing import Iterable, List, Sequence, Tuple, TypeVar

from .models import PlaceRecord, ScrapeResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


def dedupe(records: Iterable[PlaceRecord]) -> List[PlaceRecord]:
    """Drop repeats of (mapsUrl, name, address) and records with neither name nor address"""
    seen = set()
    unique = []
    for record in records:
        if not record.is_emittable:
            continue
        key = record.identity
        if key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return unique


def clamp_window(from_index: int, to_index: int, total: int) -> Tuple[int, int]:
    """
    Clamp a 1-based inclusive window to [1, total].

    A window entirely past the end collapses to (total, total); with no
    results at all the requested from-index is echoed back.
    """
    if total <= 0:
        return from_index, from_index
    if from_index > total:
        return total, total
    return max(1, from_index), min(to_index, total)


def select_window(items: Sequence[T], from_index: int, to_index: int) -> Tuple[List[T], int, int]:
    """Slice items to the requested window; returns (slice, actual_from, actual_to)"""
    total = len(items)
    actual_from, actual_to = clamp_window(from_index, to_index, total)
    if total <= 0 or from_index > total:
        return [], actual_from, actual_to
    return list(items[actual_from - 1:actual_to]), actual_from, actual_to


def assemble(records: Iterable[PlaceRecord], from_index: int, to_index: int) -> ScrapeResult:
    unique = dedupe(records)
    window, actual_from, actual_to = select_window(unique, from_index, to_index)
    return ScrapeResult(
        results=window,
        total_available=len(unique),
        actual_from=actual_from,
        actual_to=actual_to,
    )
