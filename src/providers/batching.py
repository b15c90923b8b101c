"""Chunked fan-out against the rate-limited quote source."""

import logging
import time
from typing import Callable, Dict, Iterator, List, Sequence, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Yield consecutive groups of at most `size` items."""
    if size < 1:
        raise ValueError(f"Batch size must be >= 1, got {size}")
    for i in range(0, len(items), size):
        yield list(items[i : i + size])


def fetch_in_batches(
    items: Sequence[T],
    fn: Callable[[T], R],
    batch_size: int = 5,
    delay_seconds: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> Tuple[Dict[T, R], Dict[T, str]]:
    """
    Call fn for every item, batch_size at a time, pausing between batches.

    A failing item is logged and recorded; it never aborts the batch.

    Returns:
        (results, failures) where failures maps item -> error message
    """
    results: Dict[T, R] = {}
    failures: Dict[T, str] = {}

    batches = list(chunked(items, batch_size))
    for n, batch in enumerate(batches):
        for item in batch:
            try:
                results[item] = fn(item)
            except Exception as e:
                logger.error(f"Batch fetch failed for {item}: {e}")
                failures[item] = str(e)

        if n < len(batches) - 1 and delay_seconds > 0:
            sleep(delay_seconds)

    return results, failures
