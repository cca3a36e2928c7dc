"""Cancellable recurring asyncio task with a hard ceiling."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


class PeriodicTask:
    """Run ``callback`` every ``interval`` seconds until it returns True.

    The task stops when the callback returns a truthy value, when
    ``timeout`` seconds have elapsed (``on_timeout`` is then called once),
    or when ``cancel()`` is called. After ``cancel()`` returns, neither
    callback is invoked again, including when cancel() is called from inside
    the callback itself.

    Exceptions raised by the callback are logged and polling continues.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[Optional[bool]]],
        interval: float,
        timeout: Optional[float] = None,
        on_timeout: Optional[Callable[[], None]] = None,
        name: str = "periodic",
    ):
        self._callback = callback
        self._interval = interval
        self._timeout = timeout
        self._on_timeout = on_timeout
        self._name = name
        self._task: asyncio.Task | None = None
        self._cancelled = False
        self.timed_out = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def start(self) -> None:
        if self._task is not None or self._cancelled:
            return
        self._task = asyncio.create_task(self._run(), name=self._name)

    def cancel(self) -> None:
        self._cancelled = True
        task = self._task
        if task is None or task.done():
            return
        # From inside the callback the flag alone ends the loop.
        if task is not asyncio.current_task():
            task.cancel()

    async def wait(self) -> None:
        """Wait for the loop to finish (stopped, timed out or cancelled)."""
        if self._task is None:
            return
        try:
            await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout if self._timeout is not None else None

        while not self._cancelled:
            await asyncio.sleep(self._interval)
            if self._cancelled:
                return
            if deadline is not None and loop.time() >= deadline:
                self.timed_out = True
                logger.info(f"[{self._name}] Stopped after {self._timeout:.0f}s ceiling")
                if self._on_timeout:
                    self._on_timeout()
                return
            try:
                done = await self._callback()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"[{self._name}] Tick failed: {e}")
                continue
            if done:
                return
