"""Driver capability interface shared by the embedded browser and the extension peer."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..models.job import ApplicationData, ApplyOutcome, Job
from ..models.session import DriverMode


class Driver(ABC):
    """Execution surface for job pages.

    The session state machine only talks to this interface, so it is
    written once for both backends.
    """

    mode: DriverMode
    # True when login state arrives from the driver unprompted instead of
    # being polled through attempt_login().
    pushes_login: bool = False

    def __init__(self, session_id: str):
        self.session_id = session_id
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether jobs can be dispatched right now."""

    @abstractmethod
    async def acquire(self) -> bool:
        """Bring the driver up.

        Returns True when it is attached and login detection can start,
        False when attachment happens later (a peer has yet to connect).
        Raises DriverUnavailable on failure.
        """

    @abstractmethod
    async def attempt_login(self) -> bool:
        """Check once for a signed-in Upwork session."""

    async def open_job(self, job: Job) -> None:
        """Bring the job page up before challenge resolution."""

    async def resolve_challenge(self) -> None:
        """Wait out any anti-bot challenge. Raises ChallengeTimeout."""

    @abstractmethod
    async def apply_to_job(self, job: Job, application: ApplicationData) -> ApplyOutcome:
        """Classify the page, fill in and submit the proposal."""

    async def release(self) -> None:
        """Release the underlying resources. Safe to call more than once."""
        if self._released:
            return
        self._released = True
        await self._release()

    @abstractmethod
    async def _release(self) -> None: ...
