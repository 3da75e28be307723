"""Paginated, sequential resolver calls."""

import logging
from typing import AsyncIterator, Awaitable, Callable, List, Sequence, Tuple, TypeVar

from apidelta.config import DEFAULT_BATCH_SIZE


logger = logging.getLogger(__name__)

K = TypeVar("K")
R = TypeVar("R")


def paginate(keys: Sequence[K], batch_size: int = DEFAULT_BATCH_SIZE) -> List[List[K]]:
    """Split ``keys`` into consecutive chunks of at most ``batch_size``."""
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    return [list(keys[i:i + batch_size]) for i in range(0, len(keys), batch_size)]


async def iter_batches(
    keys: Sequence[K],
    fetch: Callable[[List[K]], Awaitable[R]],
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> AsyncIterator[Tuple[List[K], R]]:
    """Yield ``(chunk, result)`` for each chunk, awaiting one fetch at a time.

    The next chunk is only requested after the consumer has processed the
    previous one, so at most one call is outstanding.
    """
    chunks = paginate(keys, batch_size)
    for number, chunk in enumerate(chunks, start=1):
        logger.debug("Fetching batch %d/%d (%d keys)", number, len(chunks), len(chunk))
        result = await fetch(chunk)
        yield chunk, result
