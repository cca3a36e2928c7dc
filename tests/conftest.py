"""
Pytest fixtures and fakes for the session manager test suite.

No real browser or extension is involved: FakeDriver stands in for the
Camoufox driver and FakeSocket for an extension WebSocket.
"""

import asyncio
from typing import Optional

import pytest

from upwork_applier.models.job import ApplicationData, ApplyOutcome, Job, JobOutcome
from upwork_applier.models.session import DriverMode
from upwork_applier.session_manager.driver import Driver
from upwork_applier.session_manager.monitors import ChallengeMonitor


class FakeDriver(Driver):
    """Embedded-style driver with scripted login, challenges and outcomes."""

    mode = DriverMode.EMBEDDED

    def __init__(
        self,
        session_id: str = "test-session",
        *,
        logged_in: bool = False,
        attach: bool = True,
        acquire_error: Optional[Exception] = None,
        challenge_urls: tuple = (),
        outcomes: Optional[dict] = None,
        challenge_interval: float = 0.01,
        challenge_timeout: float = 0.05,
    ):
        super().__init__(session_id)
        self.logged_in = logged_in
        self.attach = attach
        self.acquire_error = acquire_error
        self.challenge_urls = set(challenge_urls)
        self.outcomes = outcomes or {}
        self.connected = True
        self.release_count = 0
        self.login_checks = 0
        self.applied: list[str] = []
        self._current_url: Optional[str] = None
        self._challenges = ChallengeMonitor(
            session_id, self._detect_challenge, interval=challenge_interval, timeout=challenge_timeout
        )

    @property
    def is_connected(self) -> bool:
        return self.connected and not self.released

    async def acquire(self) -> bool:
        await asyncio.sleep(0)
        if self.acquire_error:
            raise self.acquire_error
        return self.attach

    async def attempt_login(self) -> bool:
        self.login_checks += 1
        return self.logged_in

    async def open_job(self, job: Job) -> None:
        self._current_url = job.url

    async def _detect_challenge(self) -> Optional[str]:
        return "cloudflare" if self._current_url in self.challenge_urls else None

    async def resolve_challenge(self) -> None:
        await self._challenges.wait_until_clear()

    async def apply_to_job(self, job: Job, application: ApplicationData) -> ApplyOutcome:
        await asyncio.sleep(0)
        self.applied.append(job.url)
        outcome = self.outcomes.get(job.url)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome or ApplyOutcome(outcome=JobOutcome.APPLIED, message="Successfully applied")

    async def _release(self) -> None:
        self.release_count += 1


class FakeSocket:
    """Stand-in for aiohttp's WebSocketResponse as seen by the broker."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[dict] = []
        self.closed = False
        self.close_codes: list[int] = []

    async def send_json(self, data) -> None:
        if self.fail:
            raise ConnectionResetError("peer went away")
        self.sent.append(data)

    async def close(self, *, code: int = 1000, message: bytes = b"") -> bool:
        self.closed = True
        self.close_codes.append(code)
        return True


def job_url(n: int) -> str:
    return f"https://www.upwork.com/jobs/~0{n}"


def make_jobs(count: int = 3) -> list[Job]:
    return [Job(id=f"job-{n}", url=job_url(n)) for n in range(1, count + 1)]


async def wait_for(predicate, timeout: float = 2.0, interval: float = 0.01) -> None:
    """Poll ``predicate`` until it is true or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() >= deadline:
            pytest.fail("condition not met before timeout")
        await asyncio.sleep(interval)


@pytest.fixture
def jobs():
    return make_jobs(3)
