"""
Utilities for background asyncio tasks.

`safe_create_task` runs a coroutine detached from its caller: errors are
logged and counted instead of lost in an unobserved task. `TaskRegistry`
owns such tasks by key (one delivery run per campaign).
"""
import asyncio
import logging
from collections import Counter
from typing import Coroutine, Any, Optional, Callable

logger = logging.getLogger(__name__)

# Failures per task kind: the part of the task name before ":"
_task_failures: Counter = Counter()


def _task_kind(task_name: str) -> str:
    return task_name.split(":", 1)[0]


async def _safe_wrapper(
    coro: Coroutine,
    task_name: str,
    on_error: Optional[Callable[[Exception], None]] = None
) -> Any:
    try:
        return await coro
    except asyncio.CancelledError:
        logger.debug(f"Task cancelled: {task_name}")
        raise
    except Exception as e:
        _task_failures[_task_kind(task_name)] += 1
        logger.error(
            f"Background task '{task_name}' failed: {e}",
            exc_info=True,
            extra={"task_name": task_name, "error_type": type(e).__name__},
        )
        if on_error is not None:
            try:
                on_error(e)
            except Exception as callback_error:
                logger.error(f"on_error callback of '{task_name}' failed: {callback_error}")
        return None


def safe_create_task(
    coro: Coroutine,
    name: Optional[str] = None,
    on_error: Optional[Callable[[Exception], None]] = None
) -> asyncio.Task:
    """
    Schedules `coro` with error logging.

    The task resolves to the coroutine's result, or None when it raised.
    Cancellation still propagates.

    Usage:
        safe_create_task(recompute(campaign_id), name=f"stats:{campaign_id}")
    """
    task_name = name or getattr(coro, "__qualname__", "unknown")
    return asyncio.create_task(_safe_wrapper(coro, task_name, on_error), name=task_name)


def get_task_failure_counts() -> dict[str, int]:
    """Failure counts per task kind."""
    return dict(_task_failures)


def reset_task_failure_counts():
    _task_failures.clear()


class TaskRegistry:
    """
    Owned background tasks keyed by identity.

    At most one live task per key. Finished tasks remove themselves.

    Usage:
        registry = TaskRegistry("delivery")
        registry.spawn(campaign_id, run(campaign_id))
        registry.cancel(campaign_id)
        await registry.shutdown()
    """

    def __init__(self, prefix: str):
        self.prefix = prefix
        self._tasks: dict[str, asyncio.Task] = {}

    def is_running(self, key: str) -> bool:
        task = self._tasks.get(str(key))
        return task is not None and not task.done()

    def get(self, key: str) -> Optional[asyncio.Task]:
        return self._tasks.get(str(key))

    def spawn(self, key: str, coro: Coroutine) -> asyncio.Task:
        """
        Starts a task for the key.

        Raises:
            RuntimeError: If a live task already exists for the key
                (the coroutine is closed without running).
        """
        key = str(key)
        if self.is_running(key):
            coro.close()
            raise RuntimeError(f"Task already running: {self.prefix}:{key}")

        task = safe_create_task(coro, name=f"{self.prefix}:{key}")
        self._tasks[key] = task

        def _forget(done: asyncio.Task) -> None:
            if self._tasks.get(key) is done:
                del self._tasks[key]

        task.add_done_callback(_forget)
        return task

    def cancel(self, key: str) -> bool:
        """Requests cancellation. Returns False if nothing was running."""
        task = self._tasks.get(str(key))
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def active_keys(self) -> list[str]:
        return [key for key, task in self._tasks.items() if not task.done()]

    async def shutdown(self) -> None:
        """Cancels every live task and waits for them to finish."""
        tasks = [task for task in self._tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
