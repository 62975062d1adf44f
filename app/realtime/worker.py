"""
Serial runner for live-session work.

Session handlers touch the database (log fetches, mark-read commits), so they
run in the threadpool rather than on the event loop. Jobs run one at a time
in submission order, which keeps a single owner for session state.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional, TypeVar

from starlette.concurrency import run_in_threadpool

from app.infra.logging_config import get_logger

logger = get_logger("realtime.worker")

T = TypeVar("T")

Job = tuple[Callable[[], Any], Optional["asyncio.Future[Any]"]]


class SessionWorker:
    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self._jobs: asyncio.Queue[Job] = asyncio.Queue()

    def dispatch(self, fn: Callable[[], None]) -> None:
        """Queue fire-and-forget work. Safe to call from any thread."""
        self._loop.call_soon_threadsafe(self._jobs.put_nowait, (fn, None))

    async def call(self, fn: Callable[[], T]) -> T:
        """Queue ``fn`` behind pending work and wait for its result."""
        future: asyncio.Future[T] = self._loop.create_future()
        self._jobs.put_nowait((fn, future))
        return await future

    async def run(self) -> None:
        while True:
            fn, future = await self._jobs.get()
            try:
                result = await run_in_threadpool(fn)
            except Exception as e:
                if future is None:
                    logger.exception("Live session job failed")
                elif not future.done():
                    future.set_exception(e)
                continue
            if future is not None and not future.done():
                future.set_result(result)
