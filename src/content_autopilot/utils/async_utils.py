"""Async utilities for running cycle coroutines from sync entry points."""

import asyncio
from collections.abc import Coroutine
from typing import Any, TypeVar

T = TypeVar("T")


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine in a sync context (Celery tasks, CLI commands).

    Reuses the thread's event loop if one exists, otherwise creates a new one.
    The loop is not closed afterwards because the publisher keeps an
    ``httpx.AsyncClient`` bound to it between calls in the same worker.

    Raises:
        RuntimeError: If called from inside a running event loop; await the
            coroutine directly there instead.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        pass
    else:
        coro.close()
        raise RuntimeError("run_async() called from a running event loop")

    try:
        loop = asyncio.get_event_loop()
        if loop.is_closed():
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)
