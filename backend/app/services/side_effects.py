"""
Fire-and-forget side effects.

Device locks and unlocks, notification emails and API key usage stamps run as asyncio
tasks after the triggering transaction has committed. A failure is logged
and, unless the caller opts out, written to the dead letter queue. Nothing
here ever propagates into, or rolls back, the request that dispatched it.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from sqlalchemy.ext.asyncio import async_sessionmaker

from backend.app.models.dlq import DeadLetterQueue, DLQStatus

logger = logging.getLogger(__name__)


class SideEffectDispatcher:
    """
    Runs background coroutines and keeps a handle on them until they finish.

    drain() awaits everything in flight; the application calls it on
    shutdown and tests call it before asserting on side effects.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory
        self._tasks: Set[asyncio.Task] = set()

    def dispatch(
        self,
        task_name: str,
        func: Callable[..., Awaitable[Any]],
        *args,
        payload: Optional[Dict[str, Any]] = None,
        dead_letter: bool = True,
        **kwargs,
    ) -> asyncio.Task:
        task = asyncio.create_task(
            self._run(task_name, func, args, kwargs, payload or {}, dead_letter),
            name=task_name,
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, task_name, func, args, kwargs, payload, dead_letter) -> None:
        try:
            await func(*args, **kwargs)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Side effect %s failed: %s (payload=%s)", task_name, exc, payload)
            if dead_letter:
                await self._record_failure(task_name, exc, payload)

    async def _record_failure(self, task_name: str, exc: Exception, payload: Dict[str, Any]) -> None:
        try:
            async with self.session_factory() as session:
                session.add(DeadLetterQueue(
                    task_name=task_name,
                    short_id=payload.get("short_id"),
                    error_message=f"{type(exc).__name__}: {exc}",
                    payload=payload,
                    status=DLQStatus.FAILED,
                ))
                await session.commit()
        except Exception:
            logger.exception("Could not record failed side effect %s in the dead letter queue", task_name)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

