"""Driver that proxies job applications through the user's browser extension."""

from __future__ import annotations

import logging
import sys

from ..models.job import ApplicationData, ApplyOutcome, Job, JobOutcome
from ..models.messages import JobApplicationMessage
from ..models.session import DriverMode
from .broker import ConnectionBroker
from .driver import Driver

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

NOT_CONNECTED_MESSAGE = "Browser extension not connected"


class ExtensionDriver(Driver):
    """Dispatch is fire-and-forget: the peer acknowledges each job later.

    The driver does not own the connection; it only looks the session id up
    in the broker. Login state is pushed by the peer, and challenges are
    handled in the user's own browser.
    """

    mode = DriverMode.EXTENSION
    pushes_login = True

    def __init__(self, session_id: str, broker: ConnectionBroker):
        super().__init__(session_id)
        self._broker = broker

    @property
    def is_connected(self) -> bool:
        return not self.released and self._broker.is_connected(self.session_id)

    async def acquire(self) -> bool:
        logger.info(f"[{self.session_id}] Waiting for browser extension connection")
        return self.is_connected

    async def attempt_login(self) -> bool:
        return False

    async def apply_to_job(self, job: Job, application: ApplicationData) -> ApplyOutcome:
        message = JobApplicationMessage(job_data=application)
        if not await self._broker.send(self.session_id, message.to_wire()):
            return ApplyOutcome(outcome=JobOutcome.FAILED, message=NOT_CONNECTED_MESSAGE)
        logger.info(f"[{self.session_id}] Sent job {application.job_number} to extension: {job.url}")
        return ApplyOutcome(
            outcome=JobOutcome.SENT, message="Job sent to browser extension for processing"
        )

    async def _release(self) -> None:
        await self._broker.drop(self.session_id)
