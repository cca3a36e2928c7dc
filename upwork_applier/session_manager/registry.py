"""In-memory session store with inactivity-based eviction."""

from __future__ import annotations

import logging
import sys
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..config import (
    CLEANUP_INTERVAL,
    DRIVER_MODE,
    INACTIVITY_THRESHOLD,
    LOGIN_POLL_INTERVAL,
    LOGIN_TIMEOUT,
)
from ..content import generate_application_data
from ..errors import InvalidSessionState, NotFoundError
from ..models.job import ApplicationPreferences, Job, utcnow
from ..models.session import DriverMode
from .broker import ConnectionBroker, PeerConnection
from .dispatcher import ContentGenerator
from .driver import Driver
from .extension import ExtensionDriver
from .periodic import PeriodicTask
from .session import Session

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


def _default_embedded_driver(session_id: str) -> Driver:
    from .browser import EmbeddedBrowserDriver

    return EmbeddedBrowserDriver(session_id)


class SessionRegistry:
    """Owns every live Session and the extension connection broker.

    Constructed explicitly (one per app) so tests get isolated instances.
    Call ``start()`` to run the cleanup sweeper and ``close()`` on shutdown.
    """

    def __init__(
        self,
        broker: Optional[ConnectionBroker] = None,
        embedded_driver_factory: Callable[[str], Driver] = _default_embedded_driver,
        default_mode: DriverMode | str = DRIVER_MODE,
        cleanup_interval: float = CLEANUP_INTERVAL,
        inactivity_threshold: float = INACTIVITY_THRESHOLD,
        login_interval: float = LOGIN_POLL_INTERVAL,
        login_timeout: float = LOGIN_TIMEOUT,
        generate: ContentGenerator = generate_application_data,
    ):
        self.broker = broker or ConnectionBroker()
        self.default_mode = DriverMode(default_mode)
        self._embedded_driver_factory = embedded_driver_factory
        self._cleanup_interval = cleanup_interval
        self._inactivity_threshold = timedelta(seconds=inactivity_threshold)
        self._login_interval = login_interval
        self._login_timeout = login_timeout
        self._generate = generate
        self._sessions: dict[str, Session] = {}
        self._sweeper: PeriodicTask | None = None

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found.")
        return session

    def create(
        self,
        jobs: list[Job],
        preferences: Optional[ApplicationPreferences] = None,
        keep_alive: bool = False,
        close_after_run: bool = True,
        mode: Optional[DriverMode] = None,
    ) -> Session:
        session_id = str(uuid.uuid4())
        mode = mode or self.default_mode
        if mode == DriverMode.EXTENSION:
            driver: Driver = ExtensionDriver(session_id, self.broker)
        else:
            driver = self._embedded_driver_factory(session_id)

        session = Session(
            session_id,
            driver,
            jobs,
            preferences,
            keep_alive=keep_alive,
            close_after_run=close_after_run,
            login_interval=self._login_interval,
            login_timeout=self._login_timeout,
            generate=self._generate,
        )
        self._sessions[session_id] = session
        logger.info(f"[{session_id}] Session created ({mode.value} mode, {len(jobs)} jobs)")
        session.start()
        return session

    # ── Extension peers ──────────────────────────────────────────────────────

    async def attach_peer(self, session_id: str, connection: PeerConnection) -> Session:
        session = self.get(session_id)
        if session.mode != DriverMode.EXTENSION:
            raise InvalidSessionState(
                f"Session {session_id} uses the {session.mode.value} driver and accepts no extension peer."
            )
        await self.broker.connect(session_id, connection)
        session.touch()
        await session.on_driver_attached()
        return session

    def detach_peer(self, session_id: str, connection: PeerConnection) -> None:
        if self.broker.disconnect(session_id, connection) and session_id in self._sessions:
            logger.info(f"[{session_id}] Waiting for extension to reconnect")

    # ── Cleanup ──────────────────────────────────────────────────────────────

    def start(self) -> None:
        if self._sweeper is not None:
            return
        self._sweeper = PeriodicTask(self._sweep_tick, interval=self._cleanup_interval, name="session-cleanup")
        self._sweeper.start()

    async def _sweep_tick(self) -> bool:
        await self.sweep()
        return False

    async def sweep(self, now: Optional[datetime] = None) -> list[str]:
        """Evict sessions idle longer than the inactivity threshold."""
        now = now or utcnow()
        stale = [
            session
            for session in self._sessions.values()
            if now - session.last_activity_at > self._inactivity_threshold
        ]
        for session in stale:
            self._sessions.pop(session.id, None)
        for session in stale:
            logger.info(f"Cleaning up inactive session: {session.id}")
            await self._close_session(session)
        return [session.id for session in stale]

    async def remove(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await self._close_session(session)
        return True

    async def _close_session(self, session: Session) -> None:
        try:
            await session.close()
        except Exception as e:
            logger.error(f"[{session.id}] Error closing session: {e}", exc_info=True)

    async def close(self) -> None:
        """Stop the sweeper and close every session."""
        if self._sweeper:
            self._sweeper.cancel()
            await self._sweeper.wait()
            self._sweeper = None
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            logger.info(f"Closing session: {session.id}")
            await self._close_session(session)
        await self.broker.close()
