"""Login and anti-bot challenge monitors."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Awaitable, Callable, Optional

from ..config import (
    CHALLENGE_POLL_INTERVAL,
    CHALLENGE_TIMEOUT,
    LOGIN_POLL_INTERVAL,
    LOGIN_TIMEOUT,
)
from ..errors import ChallengeTimeout, DriverUnavailable
from .periodic import PeriodicTask

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


class LoginMonitor:
    """Detects the moment a session becomes authenticated.

    With a ``check`` the monitor polls it every ``interval`` seconds for at
    most ``timeout`` seconds (embedded browser). Without one it only reacts
    to ``report()`` calls pushed by the extension peer, and a one-shot timer
    closes the same login window. Either way ``on_authenticated`` runs at
    most once, and never after the window has expired.
    """

    def __init__(
        self,
        session_id: str,
        on_authenticated: Callable[[], Awaitable[None]],
        check: Optional[Callable[[], Awaitable[bool]]] = None,
        interval: float = LOGIN_POLL_INTERVAL,
        timeout: float = LOGIN_TIMEOUT,
        on_timeout: Optional[Callable[[], None]] = None,
    ):
        self.session_id = session_id
        self._on_authenticated = on_authenticated
        self._check = check
        self._interval = interval
        self._timeout = timeout
        self._on_timeout = on_timeout
        self._poller: PeriodicTask | None = None
        self._deadline: asyncio.TimerHandle | None = None
        self._started = False
        self._fired = False
        self._expired = False
        self._cancelled = False

    @property
    def authenticated(self) -> bool:
        return self._fired

    @property
    def polling(self) -> bool:
        return self._poller is not None and self._poller.running

    @property
    def timed_out(self) -> bool:
        return self._expired

    def start(self) -> None:
        if self._started or self._cancelled:
            return
        self._started = True
        if self._check is None:
            self._deadline = asyncio.get_running_loop().call_later(self._timeout, self._timed_out)
            return
        logger.info(f"[{self.session_id}] Watching for login every {self._interval:.0f}s")
        self._poller = PeriodicTask(
            self._tick,
            interval=self._interval,
            timeout=self._timeout,
            on_timeout=self._timed_out,
            name=f"login-{self.session_id[:8]}",
        )
        self._poller.start()

    async def _tick(self) -> bool:
        if await self._check():
            await self.report(True)
            return True
        return False

    def _timed_out(self) -> None:
        if self._fired or self._cancelled:
            return
        self._expired = True
        logger.warning(f"[{self.session_id}] Login monitoring timeout; no login detected")
        if self._on_timeout:
            self._on_timeout()

    async def report(self, is_logged_in: bool) -> bool:
        """Record a login state. Returns True only for the report that authenticates."""
        if self._cancelled or self._fired or self._expired or not is_logged_in:
            return False
        self._fired = True
        logger.info(f"[{self.session_id}] Login detected!")
        self._stop()
        await self._on_authenticated()
        return True

    def cancel(self) -> None:
        self._cancelled = True
        self._stop()

    def _stop(self) -> None:
        if self._poller:
            self._poller.cancel()
        if self._deadline:
            self._deadline.cancel()


class ChallengeMonitor:
    """Waits out an anti-bot challenge on the current page.

    ``check`` returns the kind of challenge present, or None when the page
    is clear.
    """

    def __init__(
        self,
        session_id: str,
        check: Callable[[], Awaitable[Optional[str]]],
        interval: float = CHALLENGE_POLL_INTERVAL,
        timeout: float = CHALLENGE_TIMEOUT,
    ):
        self.session_id = session_id
        self._check = check
        self._interval = interval
        self._timeout = timeout

    async def wait_until_clear(self) -> Optional[str]:
        """Return the challenge kind that was waited out (None if there was none).

        Raises ChallengeTimeout when it is still present after ``timeout``,
        and DriverUnavailable as soon as the check reports the browser gone.
        """
        challenge = await self._check()
        if not challenge:
            return None

        logger.info(f"[{self.session_id}] {challenge} challenge detected, waiting for resolution...")

        lost: list[DriverUnavailable] = []

        async def _cleared() -> bool:
            try:
                return not await self._check()
            except DriverUnavailable as e:
                lost.append(e)
                return True

        poller = PeriodicTask(
            _cleared,
            interval=self._interval,
            timeout=self._timeout,
            name=f"challenge-{self.session_id[:8]}",
        )
        poller.start()
        try:
            await poller.wait()
        finally:
            poller.cancel()

        if lost:
            raise lost[0]
        if poller.timed_out:
            raise ChallengeTimeout(
                f"{challenge} challenge did not clear within {self._timeout:.0f}s"
            )
        logger.info(f"[{self.session_id}] {challenge} challenge resolved.")
        return challenge
