"""
Database Persistence Layer - Batched Writes.

============================================================
BATCH SEMANTICS
============================================================
- Each batch of at most 500 items commits in its own session
- A failed batch is logged and skipped; later batches continue
- Already-committed batches stay applied (no cross-batch
  transaction), so a timeout mid-scan leaves valid progress
- Whatever a writer returns is kept in `committed` only once
  its batch has committed

============================================================
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Iterable, List, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.batching import MAX_BATCH_SIZE, chunked
from core.exceptions import PersistenceError

from .engine import session_scope


logger = logging.getLogger(__name__)

T = TypeVar("T")

BatchWriter = Callable[[AsyncSession, List[T]], Awaitable[Optional[List[Any]]]]


@dataclass
class BatchWriteResult:
    """Outcome of a batched write."""
    
    written: int = 0
    committed_batches: int = 0
    failed_batches: int = 0
    errors: List[str] = field(default_factory=list)
    committed: List[Any] = field(default_factory=list)
    
    @property
    def success(self) -> bool:
        return self.failed_batches == 0


async def write_in_batches(
    session_factory: async_sessionmaker,
    items: Iterable[T],
    writer: BatchWriter,
    batch_size: int = MAX_BATCH_SIZE,
    operation: str = "batch_write",
) -> BatchWriteResult:
    """
    Write `items` through `writer`, one transaction per batch.
    
    Args:
        session_factory: Async session factory
        items: Items to write
        writer: Coroutine writing one batch into a session
        batch_size: Max items per commit
        operation: Label for logs
    """
    result = BatchWriteResult()
    
    for index, batch in enumerate(chunked(items, batch_size)):
        try:
            async with session_scope(session_factory, operation) as session:
                returned = await writer(session, batch)
            result.written += len(batch)
            if returned:
                result.committed.extend(returned)
            result.committed_batches += 1
        except PersistenceError as e:
            result.failed_batches += 1
            result.errors.append(f"batch {index}: {e.message}")
            logger.error(
                f"{operation}: batch {index} ({len(batch)} items) failed, continuing: {e.message}"
            )
    
    if result.failed_batches:
        logger.warning(
            f"{operation}: {result.committed_batches} batches committed, "
            f"{result.failed_batches} failed"
        )
    return result


__all__ = ["BatchWriteResult", "write_in_batches"]
