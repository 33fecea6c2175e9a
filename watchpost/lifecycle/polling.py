"""Periodic background refresh."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)


class Poller:
    """
    Runs ``refresh`` every ``interval`` seconds while the context is open.

    Failures are logged and the loop carries on; on exit the task is
    cancelled and awaited so nothing outlives the owning view.
    """

    def __init__(
        self,
        refresh: Callable[[], Awaitable[Any]],
        interval: float = 15.0,
        name: str = "poller",
    ):
        self._refresh = refresh
        self.interval = interval
        self.name = name
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def __aenter__(self) -> Poller:
        self._task = asyncio.create_task(self._loop(), name=self.name)
        return self

    async def __aexit__(self, *exc) -> None:
        await self.stop()

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self._refresh()
            except Exception as e:
                logger.warning("Background refresh failed", poller=self.name, error=str(e))
