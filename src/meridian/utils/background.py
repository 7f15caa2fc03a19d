"""Fire-and-forget scheduling of coroutines from synchronous code.

Callers inside a running event loop get a task on that loop. Callers with
no loop (scripts, worker threads, synchronous tests) hand the coroutine to
a daemon thread that owns its own loop, so neither path waits for the work.
"""

import asyncio
import concurrent.futures
import threading
import time
from typing import Any, Coroutine, Optional, Set, Union

from ..config.logging import get_logger

logger = get_logger(__name__)

# Strong references so pending tasks are not garbage collected mid-flight
_pending_tasks: Set[asyncio.Task] = set()
_pending_futures: Set[concurrent.futures.Future] = set()
_futures_lock = threading.Lock()

_runner_lock = threading.Lock()
_runner_loop: Optional[asyncio.AbstractEventLoop] = None

BackgroundHandle = Union[asyncio.Task, concurrent.futures.Future]


def _background_loop() -> asyncio.AbstractEventLoop:
    """Loop of the runner thread, started on first use."""
    global _runner_loop

    with _runner_lock:
        if _runner_loop is None or _runner_loop.is_closed():
            loop = asyncio.new_event_loop()
            threading.Thread(
                target=loop.run_forever, name="meridian-background", daemon=True
            ).start()
            _runner_loop = loop
        return _runner_loop


def fire_and_forget(coro: Coroutine[Any, Any, Any]) -> BackgroundHandle:
    """
    Schedule a coroutine without awaiting its result.

    Args:
        coro: Coroutine to run

    Returns:
        The task on the caller's loop, or a future on the runner thread
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return _submit_to_runner(coro)

    task = loop.create_task(coro)
    _pending_tasks.add(task)
    task.add_done_callback(_on_task_done)
    return task


def _submit_to_runner(coro: Coroutine[Any, Any, Any]) -> concurrent.futures.Future:
    future = asyncio.run_coroutine_threadsafe(coro, _background_loop())
    with _futures_lock:
        _pending_futures.add(future)
    future.add_done_callback(_on_future_done)
    return future


def _log_failure(exc: Optional[BaseException]) -> None:
    if exc is not None:
        logger.error(
            "Background task failed",
            error_type=type(exc).__name__,
            error=str(exc),
        )


def _on_task_done(task: asyncio.Task) -> None:
    _pending_tasks.discard(task)
    if not task.cancelled():
        _log_failure(task.exception())


def _on_future_done(future: concurrent.futures.Future) -> None:
    with _futures_lock:
        _pending_futures.discard(future)
    if not future.cancelled():
        _log_failure(future.exception())


def pending_count() -> int:
    """Number of background tasks still in flight."""
    with _futures_lock:
        return len(_pending_tasks) + len(_pending_futures)


def _snapshot_futures() -> list:
    with _futures_lock:
        return list(_pending_futures)


async def drain_background_tasks() -> None:
    """Wait for every scheduled background task to finish."""
    loop = asyncio.get_running_loop()
    while True:
        tasks = [t for t in _pending_tasks if t.get_loop() is loop]
        futures = [asyncio.wrap_future(f) for f in _snapshot_futures()]
        if not tasks and not futures:
            return
        await asyncio.gather(*tasks, *futures, return_exceptions=True)


def wait_for_background(timeout: Optional[float] = None) -> bool:
    """
    Block until work handed to the runner thread has finished.

    For synchronous callers; tasks on an event loop are drained with
    ``drain_background_tasks`` instead.

    Returns:
        False if the timeout expired first
    """
    deadline = None if timeout is None else time.monotonic() + timeout
    while True:
        futures = _snapshot_futures()
        if not futures:
            return True

        remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
        done, not_done = concurrent.futures.wait(futures, timeout=remaining)
        with _futures_lock:
            _pending_futures.difference_update(done)
        if not_done:
            return False
