"""
Window scheduling: run items in fixed-size windows, each window gathered
concurrently and awaited in full, with a pacing delay between windows.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

logger = logging.getLogger("drive_audit_engine.processing")

T = TypeVar("T")
R = TypeVar("R")


def windows(items: Sequence[T], size: int) -> list[Sequence[T]]:
    size = max(1, size)
    return [items[i:i + size] for i in range(0, len(items), size)]


async def run_windowed(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    on_exception: Callable[[T, BaseException], R],
    size: int,
    pacing: float = 0.0,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    on_window: Optional[Callable[[int, int, Sequence[T]], Any]] = None,
    on_window_done: Optional[Callable[[int, int, Sequence[T], list], Any]] = None,
) -> list[R]:
    """
    Results follow input order. An exception escaping a worker is turned into
    a result by on_exception, so one failure never takes down its window.
    """
    results: list[R] = []
    chunks = windows(items, size)

    for index, chunk in enumerate(chunks, start=1):
        if on_window:
            on_window(index, len(chunks), chunk)

        settled = await asyncio.gather(*(worker(item) for item in chunk), return_exceptions=True)

        window_results = []
        for item, res in zip(chunk, settled):
            if isinstance(res, BaseException):
                if not isinstance(res, Exception):
                    raise res
                logger.error(f"Window {index} item failed: {type(res).__name__}: {res}")
                res = on_exception(item, res)
            window_results.append(res)
        results.extend(window_results)

        if on_window_done:
            on_window_done(index, len(chunks), chunk, window_results)

        if pacing > 0 and index < len(chunks):
            await sleep(pacing)

    return results
