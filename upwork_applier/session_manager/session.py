"""Per-batch session state machine.

    created -> waiting_for_driver -> waiting_for_login -> logged_in
            -> processing -> completed

``error`` is absorbing and reachable from any non-terminal state.
``ready`` is only entered through reuse() on a keep-alive session.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
from collections import Counter
from typing import Optional

from ..config import LOGIN_POLL_INTERVAL, LOGIN_TIMEOUT
from ..content import generate_application_data
from ..errors import DriverUnavailable, InvalidSessionState, LoginTimeout, NotFoundError
from ..models.job import (
    ERROR_OUTCOMES,
    ApplicationPreferences,
    ApplyOutcome,
    Job,
    JobOutcome,
    JobResult,
    utcnow,
)
from ..models.messages import ExtensionConnected, JobApplied, LoginStatus
from ..models.session import DriverMode, ResultsSummary, SessionStatus, SessionView
from .dispatcher import ContentGenerator, JobDispatcher
from .driver import Driver
from .monitors import LoginMonitor

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

STARTABLE = {SessionStatus.LOGGED_IN, SessionStatus.READY}
REUSABLE = {SessionStatus.LOGGED_IN, SessionStatus.COMPLETED, SessionStatus.READY}


class Session:
    """One job-application run bound to a single driver."""

    def __init__(
        self,
        session_id: str,
        driver: Driver,
        jobs: list[Job],
        preferences: Optional[ApplicationPreferences] = None,
        keep_alive: bool = False,
        close_after_run: bool = True,
        login_interval: float = LOGIN_POLL_INTERVAL,
        login_timeout: float = LOGIN_TIMEOUT,
        generate: ContentGenerator = generate_application_data,
    ):
        self.id = session_id
        self.driver = driver
        self.jobs = list(jobs)
        self.preferences = preferences or ApplicationPreferences()
        self.keep_alive = keep_alive
        self.close_after_run = close_after_run
        self.status = SessionStatus.CREATED
        self.created_at = utcnow()
        self.last_activity_at = self.created_at
        self.is_logged_in = False
        self.login_timed_out = False
        self.error: Optional[str] = None

        self._login_interval = login_interval
        self._login_timeout = login_timeout
        self._generate = generate
        self._login_monitor: LoginMonitor | None = None
        self._dispatcher: JobDispatcher | None = None
        self._acquire_task: asyncio.Task | None = None
        self._dispatch_task: asyncio.Task | None = None
        # Jobs pushed one at a time outside the batch; they get no result slot.
        self._single_jobs: set[str] = set()
        self._closed = False

    # ── Properties ───────────────────────────────────────────────────────────

    @property
    def mode(self):
        return self.driver.mode

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def results(self) -> list[JobResult]:
        return list(self._dispatcher.results) if self._dispatcher else []

    @property
    def dispatch_task(self) -> asyncio.Task | None:
        return self._dispatch_task

    def touch(self) -> None:
        self.last_activity_at = utcnow()

    def _set_status(self, status: SessionStatus) -> None:
        if status != self.status:
            logger.info(f"[{self.id}] {self.status.value} -> {status.value}")
            self.status = status

    def _fail(self, message: str) -> None:
        if self.status == SessionStatus.ERROR:
            return
        logger.error(f"[{self.id}] {message}")
        self.error = message
        self._set_status(SessionStatus.ERROR)
        if self._login_monitor:
            self._login_monitor.cancel()

    # ── Driver acquisition & login ───────────────────────────────────────────

    def start(self) -> None:
        """Begin acquiring the driver in the background."""
        if self.status != SessionStatus.CREATED or self._closed:
            return
        self._set_status(SessionStatus.WAITING_FOR_DRIVER)
        self._acquire_task = asyncio.create_task(self._acquire_driver(), name=f"acquire-{self.id[:8]}")

    async def _acquire_driver(self) -> None:
        try:
            attached = await self.driver.acquire()
        except Exception as e:
            self._fail(f"Driver acquisition failed: {e}")
            return
        if attached:
            await self.on_driver_attached()

    async def on_driver_attached(self) -> None:
        """The browser page loaded or the extension peer connected."""
        if self._closed or self.status != SessionStatus.WAITING_FOR_DRIVER:
            return
        self._set_status(SessionStatus.WAITING_FOR_LOGIN)
        self._login_monitor = LoginMonitor(
            self.id,
            self._on_authenticated,
            check=None if self.driver.pushes_login else self.driver.attempt_login,
            interval=self._login_interval,
            timeout=self._login_timeout,
            on_timeout=self._on_login_timeout,
        )
        self._login_monitor.start()

    async def report_login(self, is_logged_in: bool) -> None:
        """Login state pushed by the extension peer."""
        if self._closed:
            return
        if self._login_monitor is None:
            if not is_logged_in:
                return
            await self.on_driver_attached()
        if self._login_monitor is not None:
            await self._login_monitor.report(is_logged_in)

    async def _on_authenticated(self) -> None:
        if self._closed or self.status != SessionStatus.WAITING_FOR_LOGIN:
            return
        self.is_logged_in = True
        self._set_status(SessionStatus.LOGGED_IN)
        self._launch_dispatch()

    def _on_login_timeout(self) -> None:
        self.login_timed_out = True

    # ── Dispatch ─────────────────────────────────────────────────────────────

    def start_processing(self) -> bool:
        """Start dispatching the queue.

        Returns False when a run is already in progress. Synchronous so the
        check and the move to ``processing`` cannot interleave with another
        caller.
        """
        if self._closed:
            raise InvalidSessionState("Session is closed.")
        if self.status == SessionStatus.PROCESSING:
            return False
        if self.login_timed_out and self.status == SessionStatus.WAITING_FOR_LOGIN:
            raise LoginTimeout("No Upwork login was detected before the login window expired.")
        if self.status not in STARTABLE:
            raise InvalidSessionState(
                f"Cannot start processing while session is {self.status.value}."
            )
        if not self.driver.is_connected:
            raise DriverUnavailable("Browser not ready: driver is not connected.")
        self.touch()
        self._launch_dispatch()
        return True

    def _launch_dispatch(self) -> None:
        dispatcher = JobDispatcher(
            self.id,
            self.driver,
            self.jobs,
            self.preferences,
            generate=self._generate,
            on_result=lambda _: self.touch(),
        )
        self._dispatcher = dispatcher
        self._set_status(SessionStatus.PROCESSING)
        self._dispatch_task = asyncio.create_task(
            self._run_dispatch(dispatcher), name=f"dispatch-{self.id[:8]}"
        )

    async def _run_dispatch(self, dispatcher: JobDispatcher) -> None:
        try:
            await dispatcher.run()
        except Exception as e:
            if dispatcher is self._dispatcher:
                self._fail(f"Job processing failed: {e}")
            return
        if self._closed or dispatcher is not self._dispatcher:
            return
        self._set_status(SessionStatus.COMPLETED)
        await self._maybe_close_after_run()

    async def _maybe_close_after_run(self) -> None:
        """Release the driver once a closeAfterRun batch has fully settled."""
        if not self.close_after_run or self.keep_alive or self.status != SessionStatus.COMPLETED:
            return
        if any(r.outcome == JobOutcome.SENT for r in self.results):
            return
        if not self.driver.released:
            logger.info(f"[{self.id}] Run settled, releasing driver (closeAfterRun)")
            await self.driver.release()

    async def acknowledge(self, job_id: str, success: bool, error: Optional[str] = None) -> Optional[JobResult]:
        """Record the peer's final outcome for a dispatched job."""
        if job_id in self._single_jobs:
            self._single_jobs.discard(job_id)
            self.touch()
            logger.info(f"[{self.id}] Single job {job_id} acknowledged: success={success}")
            return None
        if self._dispatcher is None:
            raise NotFoundError("No jobs have been dispatched in this session.")
        result = self._dispatcher.acknowledge(job_id, success, error)
        self.touch()
        await self._maybe_close_after_run()
        return result

    async def dispatch_single(self, job: Job) -> ApplyOutcome:
        """Push one job outside the batch straight to the extension peer.

        Raises DriverUnavailable when no peer is connected.
        """
        if self._closed:
            raise InvalidSessionState("Session is closed.")
        if self.mode != DriverMode.EXTENSION:
            raise InvalidSessionState("Single-job dispatch needs an extension-mode session.")
        self.touch()
        application = self._generate(job, 0, self.preferences)
        self._single_jobs.add(job.id)
        applied = await self.driver.apply_to_job(job, application)
        if applied.outcome != JobOutcome.SENT:
            self._single_jobs.discard(job.id)
            raise DriverUnavailable(applied.message)
        return applied

    async def handle_peer_message(self, message: JobApplied | LoginStatus | ExtensionConnected) -> None:
        self.touch()
        if isinstance(message, JobApplied):
            await self.acknowledge(message.job_id, message.success, message.error)
        elif not self.driver.pushes_login:
            logger.warning(f"[{self.id}] Ignoring {message.type} from a peer: driver is {self.mode.value}")
        elif isinstance(message, LoginStatus):
            logger.info(f"[{self.id}] Login status from extension: {message.is_logged_in}")
            await self.report_login(message.is_logged_in)
        elif isinstance(message, ExtensionConnected):
            await self.on_driver_attached()

    # ── Reuse & teardown ─────────────────────────────────────────────────────

    def reuse(self, jobs: list[Job], preferences: Optional[ApplicationPreferences] = None) -> None:
        """Load a new batch into a keep-alive session, keeping its id and driver."""
        if not self.keep_alive:
            raise InvalidSessionState("Session was not created with keepAlive and cannot be reused.")
        if self._closed or self.driver.released:
            raise DriverUnavailable("Session driver has already been released.")
        if self.status not in REUSABLE:
            raise InvalidSessionState(f"Cannot reuse session while it is {self.status.value}.")
        self.jobs = list(jobs)
        self.preferences = preferences or ApplicationPreferences()
        self._dispatcher = None
        self._dispatch_task = None
        self._set_status(SessionStatus.READY)
        self.touch()

    async def close(self) -> bool:
        """Cancel monitors and in-flight work, then release the driver.

        Returns False if the session was already closed.
        """
        if self._closed:
            return False
        self._closed = True
        if self._login_monitor:
            self._login_monitor.cancel()
        current = asyncio.current_task()
        for task in (self._acquire_task, self._dispatch_task):
            if task is None or task.done() or task is current:
                continue
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self.driver.release()
        logger.info(f"[{self.id}] Session closed")
        return True

    # ── Views ────────────────────────────────────────────────────────────────

    def view(self) -> SessionView:
        results = self.results
        return SessionView(
            session_id=self.id,
            status=self.status,
            driver_mode=self.mode,
            is_logged_in=self.is_logged_in,
            extension_connected=self.driver.is_connected,
            login_timed_out=self.login_timed_out,
            keep_alive=self.keep_alive,
            close_after_run=self.close_after_run,
            jobs_count=len(self.jobs),
            current_job=len(results),
            results=results,
            created_at=self.created_at,
            last_activity=self.last_activity_at,
            error=self.error,
        )

    def summary(self) -> ResultsSummary:
        results = self.results
        by_outcome = Counter(r.outcome.value for r in results)
        return ResultsSummary(
            total=len(self.jobs),
            completed=len(results),
            pending=len(self.jobs) - len(results),
            errors=sum(1 for r in results if r.outcome in ERROR_OUTCOMES),
            by_outcome=dict(by_outcome),
        )
