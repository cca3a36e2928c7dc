"""Drains a session's job queue through its driver, one result per job."""

from __future__ import annotations

import logging
import sys
from typing import Callable, Optional

from ..content import generate_application_data
from ..errors import ChallengeTimeout, DriverUnavailable, NotFoundError
from ..models.job import (
    ApplicationData,
    ApplicationPreferences,
    Job,
    JobOutcome,
    JobResult,
)
from .driver import Driver

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

ContentGenerator = Callable[[Job, int, ApplicationPreferences], ApplicationData]


class JobDispatcher:
    """Processes jobs strictly in queue order.

    Every job ends with exactly one result. Per-job faults become ``failed``
    results (``timeout`` for a challenge that never clears) and the loop
    moves on. A DriverUnavailable is fatal: the current and all remaining
    jobs are failed with its message and the error propagates.

    In extension mode the driver reports ``sent``; ``acknowledge()`` later
    swaps in the peer's final outcome in that job's own slot.
    """

    def __init__(
        self,
        session_id: str,
        driver: Driver,
        jobs: list[Job],
        preferences: ApplicationPreferences,
        generate: ContentGenerator = generate_application_data,
        on_result: Optional[Callable[[JobResult], None]] = None,
    ):
        self.session_id = session_id
        self.driver = driver
        self.jobs = list(jobs)
        self.preferences = preferences
        self.results: list[JobResult] = []
        self._generate = generate
        self._on_result = on_result
        self._slot_by_job_id = {job.id: i for i, job in enumerate(self.jobs)}
        # Acknowledgements that arrived before their provisional result.
        self._early_acks: dict[str, tuple[bool, Optional[str]]] = {}

    @property
    def finished(self) -> bool:
        return len(self.results) == len(self.jobs)

    async def run(self) -> list[JobResult]:
        logger.info(f"[{self.session_id}] Processing {len(self.jobs)} jobs via {self.driver.mode.value} driver...")
        for number, job in enumerate(self.jobs, start=1):
            try:
                result = await self._process(number, job)
            except DriverUnavailable as e:
                logger.error(f"[{self.session_id}] Driver lost at job {number}: {e}")
                self._fail_remaining(number, f"Driver unavailable: {e.message}")
                raise
            self._append(result)
        logger.info(f"[{self.session_id}] All {len(self.jobs)} jobs processed")
        return self.results

    async def _process(self, number: int, job: Job) -> JobResult:
        logger.info(f"[{self.session_id}] Job {number}/{len(self.jobs)}: {job.url}")
        try:
            application = self._generate(job, number, self.preferences)
            await self.driver.open_job(job)
            await self.driver.resolve_challenge()
            applied = await self.driver.apply_to_job(job, application)
            outcome, message = applied.outcome, applied.message
        except DriverUnavailable:
            raise
        except ChallengeTimeout as e:
            logger.warning(f"[{self.session_id}] Job {number} timed out: {e}")
            outcome, message = JobOutcome.TIMEOUT, e.message
        except Exception as e:
            logger.error(f"[{self.session_id}] Job {number} failed: {e}", exc_info=True)
            outcome, message = JobOutcome.FAILED, f"Error: {e}"

        return JobResult(
            job_number=number, job_id=job.id, job_url=job.url, outcome=outcome, message=message
        )

    def _append(self, result: JobResult) -> None:
        self.results.append(result)
        early = self._early_acks.pop(result.job_id, None)
        if early is not None and result.outcome == JobOutcome.SENT:
            self._settle(len(self.results) - 1, *early)
        if self._on_result:
            self._on_result(self.results[-1])

    def _fail_remaining(self, start: int, message: str) -> None:
        for number in range(start, len(self.jobs) + 1):
            job = self.jobs[number - 1]
            self._append(
                JobResult(
                    job_number=number,
                    job_id=job.id,
                    job_url=job.url,
                    outcome=JobOutcome.FAILED,
                    message=message,
                )
            )

    def acknowledge(self, job_id: str, success: bool, error: Optional[str] = None) -> Optional[JobResult]:
        """Apply the peer's final outcome for ``job_id``.

        Returns the settled result, the existing one for a repeated
        acknowledgement, or None when the job has not been sent yet.
        """
        slot = self._slot_by_job_id.get(job_id)
        if slot is None:
            raise NotFoundError(f"Job {job_id!r} is not part of this session's batch")

        if slot >= len(self.results):
            self._early_acks.setdefault(job_id, (success, error))
            return None

        current = self.results[slot]
        if current.outcome != JobOutcome.SENT:
            logger.info(f"[{self.session_id}] Ignoring repeated acknowledgement for job {current.job_number}")
            return current
        return self._settle(slot, success, error)

    def _settle(self, slot: int, success: bool, error: Optional[str]) -> JobResult:
        provisional = self.results[slot]
        final = JobResult(
            job_number=provisional.job_number,
            job_id=provisional.job_id,
            job_url=provisional.job_url,
            outcome=JobOutcome.APPLIED if success else JobOutcome.FAILED,
            message="Successfully applied" if success else (error or "Application failed"),
        )
        self.results[slot] = final
        logger.info(f"[{self.session_id}] Job {final.job_number} acknowledged: {final.outcome.value}")
        return final
