"""Tests for job dispatch and out-of-order acknowledgement."""

import pytest

from conftest import FakeDriver, FakeSocket, job_url, make_jobs
from upwork_applier.errors import DriverUnavailable, NotFoundError
from upwork_applier.models.job import ApplicationPreferences, ApplyOutcome, JobOutcome
from upwork_applier.session_manager.broker import ConnectionBroker
from upwork_applier.session_manager.dispatcher import JobDispatcher
from upwork_applier.session_manager.extension import NOT_CONNECTED_MESSAGE, ExtensionDriver


def _outcomes(results):
    return [r.outcome for r in results]


class TestEmbeddedDispatch:

    @pytest.mark.asyncio
    async def test_one_result_per_job_in_order(self, jobs):
        driver = FakeDriver()
        dispatcher = JobDispatcher("s1", driver, jobs, ApplicationPreferences())

        results = await dispatcher.run()

        assert [r.job_number for r in results] == [1, 2, 3]
        assert [r.job_id for r in results] == ["job-1", "job-2", "job-3"]
        assert _outcomes(results) == [JobOutcome.APPLIED] * 3
        assert driver.applied == [job_url(1), job_url(2), job_url(3)]
        assert dispatcher.finished

    @pytest.mark.asyncio
    async def test_job_fault_is_recovered(self, jobs):
        driver = FakeDriver(outcomes={
            job_url(1): RuntimeError("selector not found"),
            job_url(2): ApplyOutcome(outcome=JobOutcome.NOT_AVAILABLE, message="closed"),
        })
        results = await JobDispatcher("s1", driver, jobs, ApplicationPreferences()).run()

        assert _outcomes(results) == [JobOutcome.FAILED, JobOutcome.NOT_AVAILABLE, JobOutcome.APPLIED]
        assert "selector not found" in results[0].message

    @pytest.mark.asyncio
    async def test_challenge_timeout_only_affects_its_job(self, jobs):
        driver = FakeDriver(challenge_urls=(job_url(2),))
        results = await JobDispatcher("s1", driver, jobs, ApplicationPreferences()).run()

        assert _outcomes(results) == [JobOutcome.APPLIED, JobOutcome.TIMEOUT, JobOutcome.APPLIED]
        assert "did not clear" in results[1].message
        assert job_url(2) not in driver.applied

    @pytest.mark.asyncio
    async def test_content_generator_fault_is_recovered(self, jobs):
        def generate(job, number, prefs):
            raise ValueError("template broken")

        results = await JobDispatcher("s1", FakeDriver(), jobs, ApplicationPreferences(), generate=generate).run()

        assert _outcomes(results) == [JobOutcome.FAILED] * 3

    @pytest.mark.asyncio
    async def test_driver_loss_fails_remaining_jobs(self, jobs):
        driver = FakeDriver(outcomes={job_url(2): DriverUnavailable("Browser is not running.")})
        dispatcher = JobDispatcher("s1", driver, jobs, ApplicationPreferences())

        with pytest.raises(DriverUnavailable):
            await dispatcher.run()

        assert _outcomes(dispatcher.results) == [JobOutcome.APPLIED, JobOutcome.FAILED, JobOutcome.FAILED]
        assert [r.job_number for r in dispatcher.results] == [1, 2, 3]
        assert "Driver unavailable" in dispatcher.results[2].message

    @pytest.mark.asyncio
    async def test_on_result_called_per_job(self, jobs):
        seen = []
        await JobDispatcher("s1", FakeDriver(), jobs, ApplicationPreferences(), on_result=seen.append).run()

        assert [r.job_number for r in seen] == [1, 2, 3]


class TestExtensionDispatch:

    async def _sent_dispatcher(self, jobs):
        broker = ConnectionBroker()
        ws = FakeSocket()
        await broker.connect("s1", ws)
        dispatcher = JobDispatcher("s1", ExtensionDriver("s1", broker), jobs, ApplicationPreferences())
        await dispatcher.run()
        return dispatcher, ws

    @pytest.mark.asyncio
    async def test_jobs_sent_in_order(self, jobs):
        dispatcher, ws = await self._sent_dispatcher(jobs)

        assert [m["type"] for m in ws.sent] == ["job_application"] * 3
        assert [m["jobData"]["jobNumber"] for m in ws.sent] == [1, 2, 3]
        assert _outcomes(dispatcher.results) == [JobOutcome.SENT] * 3

    @pytest.mark.asyncio
    async def test_out_of_order_acks_keep_ordering(self, jobs):
        dispatcher, _ = await self._sent_dispatcher(jobs)

        dispatcher.acknowledge("job-3", True)
        dispatcher.acknowledge("job-1", False, "Connects balance too low")
        dispatcher.acknowledge("job-2", True)

        assert [r.job_number for r in dispatcher.results] == [1, 2, 3]
        assert _outcomes(dispatcher.results) == [JobOutcome.FAILED, JobOutcome.APPLIED, JobOutcome.APPLIED]
        assert dispatcher.results[0].message == "Connects balance too low"

    @pytest.mark.asyncio
    async def test_repeated_ack_ignored(self, jobs):
        dispatcher, _ = await self._sent_dispatcher(jobs)
        dispatcher.acknowledge("job-1", True)
        again = dispatcher.acknowledge("job-1", False, "late failure")

        assert again.outcome == JobOutcome.APPLIED
        assert dispatcher.results[0].outcome == JobOutcome.APPLIED

    @pytest.mark.asyncio
    async def test_unknown_job_ack_rejected(self, jobs):
        dispatcher, _ = await self._sent_dispatcher(jobs)

        with pytest.raises(NotFoundError):
            dispatcher.acknowledge("job-99", True)

    @pytest.mark.asyncio
    async def test_ack_before_send_is_applied_on_append(self):
        jobs = make_jobs(2)
        broker = ConnectionBroker()
        await broker.connect("s1", FakeSocket())
        dispatcher = JobDispatcher("s1", ExtensionDriver("s1", broker), jobs, ApplicationPreferences())

        assert dispatcher.acknowledge("job-2", True) is None
        await dispatcher.run()

        assert _outcomes(dispatcher.results) == [JobOutcome.SENT, JobOutcome.APPLIED]

    @pytest.mark.asyncio
    async def test_no_peer_is_a_soft_failure(self, jobs):
        dispatcher = JobDispatcher("s1", ExtensionDriver("s1", ConnectionBroker()), jobs, ApplicationPreferences())

        results = await dispatcher.run()

        assert _outcomes(results) == [JobOutcome.FAILED] * 3
        assert all(r.message == NOT_CONNECTED_MESSAGE for r in results)
