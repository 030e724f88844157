"""Rate-limited batch scheduler for remote writes."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, TypeVar

from workdesk.adapters.notion.sync.constants import DEFAULT_BATCH_DELAY_SECONDS
from workdesk.adapters.notion.sync.errors import Result, capture

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

logger = logging.getLogger(__name__)

T = TypeVar("T")
V = TypeVar("V")


async def run_batches(
    items: Sequence[T],
    width: int,
    operation: Callable[[T], Awaitable[Result[V]]],
    delay: float = DEFAULT_BATCH_DELAY_SECONDS,
    *,
    operation_name: str = "batch_item",
    correlation_id: str | None = None,
) -> list[Result[V]]:
    """Run ``operation`` over ``items`` in concurrent chunks of ``width``.

    Chunks run one after another with ``delay`` seconds between them (never
    after the last). Results come back in input order; an exception in one
    item becomes a failed Result for that item only.
    """
    if width < 1:
        raise ValueError("width must be >= 1")

    results: list[Result[V]] = []
    for start in range(0, len(items), width):
        if start:
            await asyncio.sleep(delay)
        chunk = items[start : start + width]
        chunk_results = await asyncio.gather(
            *(
                capture(
                    lambda item=item: operation(item),
                    operation=operation_name,
                    correlation_id=correlation_id,
                )
                for item in chunk
            )
        )
        results.extend(chunk_results)
        logger.debug(
            "notion_batch_complete",
            extra={
                "correlation_id": correlation_id,
                "operation": operation_name,
                "batch_start": start,
                "batch_size": len(chunk),
                "failed": sum(1 for r in chunk_results if not r.ok),
            },
        )
    return results
