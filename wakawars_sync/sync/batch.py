"""Rate-limited batch runner.

Dispatches work items in fixed-size groups with a pause between groups so
that sustained throughput stays under WakaTime's rate limit.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, TypeVar

from ..config import DEFAULT_BATCH_DELAY_SECONDS, DEFAULT_BATCH_SIZE

__all__ = ["BatchStats", "run_in_batches"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class BatchStats:
    """Outcome of a batch run."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    batches: int = 0


def run_in_batches(
    items: Iterable[T],
    handler: Callable[[T], object],
    batch_size: int = DEFAULT_BATCH_SIZE,
    delay_seconds: float = DEFAULT_BATCH_DELAY_SECONDS,
    on_error: Optional[Callable[[Exception], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> BatchStats:
    """Run ``handler`` over ``items`` in concurrent groups of ``batch_size``.

    A group finishes when every handler in it has returned or raised; a
    failing item never cancels its siblings. Between groups (not after the
    last one) the runner waits ``delay_seconds``. Each failure is passed to
    ``on_error`` individually. Item failures never escape this call.

    Args:
        items: Work items, processed in order
        handler: Called once per item on a worker thread
        batch_size: Maximum items in flight at once
        delay_seconds: Pause after each group except the last
        on_error: Receives each handler exception (logged if omitted)
        sleep: Sleep function (injectable for tests)

    Returns:
        BatchStats for the run

    Raises:
        ValueError: If batch_size is less than 1
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")

    pending = list(items)
    stats = BatchStats(total=len(pending))
    if not pending:
        return stats

    with ThreadPoolExecutor(
        max_workers=min(batch_size, len(pending)),
        thread_name_prefix="wakawars-batch",
    ) as executor:
        for start in range(0, len(pending), batch_size):
            batch = pending[start : start + batch_size]
            futures = [executor.submit(handler, item) for item in batch]
            stats.batches += 1

            for future in futures:
                error = future.exception()
                if error is None:
                    stats.succeeded += 1
                    continue
                stats.failed += 1
                _report(error, on_error)

            if start + batch_size < len(pending) and delay_seconds > 0:
                sleep(delay_seconds)

    logger.debug(
        f"Batch run done: {stats.succeeded}/{stats.total} ok "
        f"in {stats.batches} batches"
    )
    return stats


def _report(error: BaseException, on_error: Optional[Callable[[Exception], None]]) -> None:
    if on_error is None:
        logger.error("Batch item failed", exc_info=error)
        return
    try:
        on_error(error)
    except Exception:
        logger.exception("Batch error handler failed")
