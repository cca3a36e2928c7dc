"""Tests for the embedded Camoufox driver against a scripted Playwright page."""

import asyncio

import pytest

from upwork_applier.constants import LOGIN_INDICATOR_SELECTORS, LOGIN_INDICATOR_URL_FRAGMENT, SELECTORS
from upwork_applier.content import generate_application_data
from upwork_applier.errors import ChallengeTimeout, DriverUnavailable, JobApplicationError
from upwork_applier.models.job import ApplicationPreferences, ApplicationTiming, Job, JobOutcome
from upwork_applier.session_manager.browser import EmbeddedBrowserDriver

JOB_URL = "https://www.upwork.com/jobs/~01abc"

FORM_HTML = '<form data-test="proposal-form"><div data-test="cover-letter"><textarea></textarea></div></form>'
DETAIL_HTML = '<h1>Build a scraper</h1><button data-test="apply-button">Apply now</button>'
SUBMITTED_HTML = '<div data-test="proposal-submitted">Your proposal was submitted</div>'
CHALLENGE_HTML = "<title>Just a moment...</title><div class='cf-challenge'></div>"


class FakeElement:

    def __init__(self):
        self.value = None

    async def fill(self, value):
        self.value = value


class FakePage:
    """The slice of playwright's async Page the driver touches."""

    def __init__(self, url=JOB_URL, html=""):
        self.url = url
        self.html = html
        self.closed = False
        self.logged_in = True
        self.goto_error = None
        self.close_on_goto = False
        self.transitions = {}
        self.elements = {}
        self.clicks = []
        self.fills = {}
        self.evaluated = []

    def is_closed(self):
        return self.closed

    async def content(self):
        return self.html

    async def title(self):
        return "Upwork"

    async def evaluate(self, script, arg):
        self.evaluated.append(arg)
        return self.logged_in

    async def goto(self, url, wait_until=None, timeout=None):
        if self.close_on_goto:
            self.closed = True
        if self.goto_error:
            raise self.goto_error
        self.url = url

    async def click(self, selector):
        self.clicks.append(selector)
        if selector in self.transitions:
            self.html = self.transitions[selector]

    async def wait_for_load_state(self, state=None):
        return None

    async def fill(self, selector, value):
        self.fills[selector] = value

    async def query_selector(self, selector):
        found = self.elements.get(selector)
        return found[0] if found else None

    async def query_selector_all(self, selector):
        return list(self.elements.get(selector, []))


def _driver(page, challenge_timeout=0.05):
    driver = EmbeddedBrowserDriver("s1", headless=True, challenge_interval=0.01, challenge_timeout=challenge_timeout)
    driver._page = page
    return driver


def _application(default_bid=None):
    job = Job(id="job-1", url=JOB_URL)
    data = generate_application_data(job, 1, ApplicationPreferences(default_bid=default_bid))
    return job, data.model_copy(update={"timing": ApplicationTiming(delay_before_apply=0, delay_after_apply=0)})


class TestLogin:

    @pytest.mark.asyncio
    async def test_only_checks_on_upwork(self):
        page = FakePage(url="https://accounts.google.com/signin")

        assert await _driver(page).attempt_login() is False
        assert page.evaluated == []

    @pytest.mark.asyncio
    async def test_evaluates_login_markers(self):
        page = FakePage(url="https://www.upwork.com/nx/find-work/")

        assert await _driver(page).attempt_login() is True
        assert page.evaluated == [[LOGIN_INDICATOR_SELECTORS, LOGIN_INDICATOR_URL_FRAGMENT]]

    @pytest.mark.asyncio
    async def test_closed_page_is_driver_loss(self):
        page = FakePage()
        page.closed = True

        with pytest.raises(DriverUnavailable):
            await _driver(page).attempt_login()


class TestOpenJob:

    @pytest.mark.asyncio
    async def test_navigates(self):
        page = FakePage(url="https://www.upwork.com/nx/find-work/")
        job, _ = _application()

        await _driver(page).open_job(job)

        assert page.url == JOB_URL

    @pytest.mark.asyncio
    async def test_navigation_fault_is_per_job(self):
        page = FakePage()
        page.goto_error = RuntimeError("net::ERR_TIMED_OUT")
        job, _ = _application()

        with pytest.raises(JobApplicationError, match="ERR_TIMED_OUT"):
            await _driver(page).open_job(job)

    @pytest.mark.asyncio
    async def test_browser_closing_during_navigation_is_fatal(self):
        page = FakePage()
        page.goto_error = RuntimeError("Target closed")
        page.close_on_goto = True
        job, _ = _application()

        with pytest.raises(DriverUnavailable):
            await _driver(page).open_job(job)


class TestApplyToJob:

    def _form_page(self, html=FORM_HTML):
        page = FakePage(html=html)
        page.transitions[SELECTORS["submit_button"]] = SUBMITTED_HTML
        page.elements[SELECTORS["bid_amount"]] = [FakeElement()]
        page.elements[SELECTORS["screening_question"]] = [FakeElement(), FakeElement(), FakeElement(), FakeElement()]
        return page

    @pytest.mark.asyncio
    async def test_fills_and_submits_form(self):
        page = self._form_page()
        job, application = _application(default_bid=30)

        outcome = await _driver(page).apply_to_job(job, application)

        assert outcome.outcome == JobOutcome.APPLIED
        assert page.fills[SELECTORS["cover_letter"]] == application.cover_letter
        assert page.fills[SELECTORS["bid_amount"]] == "30.00"
        answers = [q.value for q in page.elements[SELECTORS["screening_question"]]]
        assert answers[0] == application.screening_responses.availability
        assert answers[3] == answers[0]
        assert page.clicks == [SELECTORS["submit_button"]]

    @pytest.mark.asyncio
    async def test_no_bid_leaves_rate_untouched(self):
        page = self._form_page()
        job, application = _application()

        await _driver(page).apply_to_job(job, application)

        assert SELECTORS["bid_amount"] not in page.fills

    @pytest.mark.asyncio
    async def test_apply_button_opens_form(self):
        page = self._form_page(html=DETAIL_HTML)
        page.transitions[SELECTORS["apply_button"]] = FORM_HTML
        job, application = _application()

        outcome = await _driver(page).apply_to_job(job, application)

        assert outcome.outcome == JobOutcome.APPLIED
        assert page.clicks == [SELECTORS["apply_button"], SELECTORS["submit_button"]]

    @pytest.mark.asyncio
    async def test_challenge_after_apply_click(self):
        page = self._form_page(html=DETAIL_HTML)
        page.transitions[SELECTORS["apply_button"]] = CHALLENGE_HTML
        job, application = _application()

        with pytest.raises(ChallengeTimeout):
            await _driver(page).apply_to_job(job, application)
        assert SELECTORS["submit_button"] not in page.clicks

    @pytest.mark.asyncio
    async def test_unconfirmed_submission_fails(self):
        page = self._form_page()
        page.transitions[SELECTORS["submit_button"]] = FORM_HTML
        job, application = _application()

        outcome = await _driver(page).apply_to_job(job, application)

        assert outcome.outcome == JobOutcome.FAILED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url, html, expected", [
        ("https://www.upwork.com/ab/account-security/login", "", JobOutcome.LOGIN_REQUIRED),
        (JOB_URL, "<p>This job is no longer available</p>", JobOutcome.NOT_AVAILABLE),
    ])
    async def test_page_states(self, url, html, expected):
        page = FakePage(url=url, html=html)
        job, application = _application()

        outcome = await _driver(page).apply_to_job(job, application)

        assert outcome.outcome == expected
        assert page.clicks == []

    @pytest.mark.asyncio
    async def test_missing_form_is_per_job_error(self):
        page = FakePage(html="<p>Something else entirely</p>")
        job, application = _application()

        with pytest.raises(JobApplicationError, match="No application form"):
            await _driver(page).apply_to_job(job, application)


class TestChallengeAndRelease:

    @pytest.mark.asyncio
    async def test_browser_closing_mid_challenge_fails_fast(self):
        page = FakePage(html=CHALLENGE_HTML)
        driver = _driver(page, challenge_timeout=5.0)

        waiting = asyncio.create_task(driver.resolve_challenge())
        await asyncio.sleep(0.03)
        page.closed = True

        with pytest.raises(DriverUnavailable):
            await asyncio.wait_for(waiting, timeout=1.0)

    @pytest.mark.asyncio
    async def test_release_disconnects(self):
        driver = _driver(FakePage())
        assert driver.is_connected

        await driver.release()
        await driver.release()

        assert not driver.is_connected
        assert driver.released
