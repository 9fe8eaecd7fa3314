"""
Core Module - Bounded Batching.

Datastore write batches are capped at 500 operations. Scans and
bulk writes iterate their populations through `chunked` so no
single commit exceeds that bound.
"""

from typing import Iterable, Iterator, List, Sequence, TypeVar


T = TypeVar("T")

MAX_BATCH_SIZE = 500


def chunked(items: Iterable[T], size: int = MAX_BATCH_SIZE) -> Iterator[List[T]]:
    """
    Yield consecutive lists of at most `size` items.
    
    Args:
        items: Any iterable
        size: Batch size, clamped to [1, MAX_BATCH_SIZE]
    """
    size = max(1, min(size, MAX_BATCH_SIZE))
    batch: List[T] = []
    for item in items:
        batch.append(item)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


def dedupe_preserving_order(items: Sequence[T]) -> List[T]:
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


__all__ = ["MAX_BATCH_SIZE", "chunked", "dedupe_preserving_order"]
