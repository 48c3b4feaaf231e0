"""Celery plumbing for the periodic ticket sweeps.

Sweep bodies are coroutines on the helpdesk service; each worker process
drives them on one event loop so pooled DB connections stay bound to it.
"""

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable

from celery import Task

from helpdesk.core.celery_app import celery_app
from helpdesk.services.helpdesk.errors import HelpdeskError

logger = logging.getLogger(__name__)

_loop: asyncio.AbstractEventLoop | None = None


def _worker_loop() -> asyncio.AbstractEventLoop:
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
        asyncio.set_event_loop(_loop)
    return _loop


class SweepTask(Task):
    """Retries a sweep on infrastructure failures, never on ticket rule errors.

    A failed sweep is harmless to rerun: every ticket it touches goes through
    the versioned save, so a retry skips tickets already handled.
    """

    abstract = True
    autoretry_for = (Exception,)
    dont_autoretry_for = (HelpdeskError,)
    retry_backoff = True
    retry_backoff_max = 300
    retry_jitter = True
    max_retries = 3

    def on_failure(self, exc, task_id, args, kwargs, einfo) -> None:
        logger.error(
            f"Sweep {self.name} gave up after {self.request.retries} retries",
            exc_info=exc,
            extra={"task_id": task_id, "sweep": self.name},
        )

    def on_retry(self, exc, task_id, args, kwargs, einfo) -> None:
        logger.warning(
            f"Sweep {self.name} retry {self.request.retries + 1}/{self.max_retries}: {exc}",
            extra={"task_id": task_id, "sweep": self.name},
        )


def sweep_task(queue: str, **options: Any) -> Callable:
    """Register a coroutine as a bound sweep task on ``queue``.

    @param queue - Celery queue the beat schedule routes to
    @returns Decorator producing the Celery task
    """

    def decorator(func: Callable[..., Awaitable[dict]]) -> Task:
        @celery_app.task(bind=True, base=SweepTask, queue=queue, **options)
        @functools.wraps(func)
        def run(*args: Any, **kwargs: Any) -> dict:
            return _worker_loop().run_until_complete(func(*args, **kwargs))

        return run

    return decorator
