"""Camoufox browser driver: launch, login detection, proposal submission."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Optional

from camoufox.async_api import AsyncCamoufox
from playwright.async_api import BrowserContext, Page

from ..config import (
    BROWSER_HEADLESS,
    BROWSER_TIMEOUT,
    CHALLENGE_POLL_INTERVAL,
    CHALLENGE_TIMEOUT,
)
from ..constants import (
    LOGIN_INDICATOR_SELECTORS,
    LOGIN_INDICATOR_URL_FRAGMENT,
    SELECTORS,
    UPWORK_DOMAIN,
    UPWORK_LOGIN_URL,
)
from ..errors import DriverUnavailable, JobApplicationError
from ..models.job import ApplicationData, ApplyOutcome, Job, JobOutcome
from ..models.session import DriverMode
from .captcha import detect_challenge
from .driver import Driver
from .monitors import ChallengeMonitor
from .parser import PageState, classify_job_page, is_submission_confirmed

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

# Evaluated in the page: any one marker means the user is signed in.
LOGIN_CHECK_SCRIPT = (
    "([selectors, fragment]) => "
    "selectors.some((s) => document.querySelector(s) !== null) || "
    "window.location.href.includes(fragment)"
)


class EmbeddedBrowserDriver(Driver):
    """Owns one Camoufox process and page for the lifetime of a session."""

    mode = DriverMode.EMBEDDED

    def __init__(
        self,
        session_id: str,
        headless: Optional[bool] = None,
        challenge_interval: float = CHALLENGE_POLL_INTERVAL,
        challenge_timeout: float = CHALLENGE_TIMEOUT,
    ):
        super().__init__(session_id)
        self._headless = headless if headless is not None else BROWSER_HEADLESS
        self._camoufox = None
        self._browser = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._challenges = ChallengeMonitor(
            session_id,
            self._detect_challenge,
            interval=challenge_interval,
            timeout=challenge_timeout,
        )

    @property
    def is_running(self) -> bool:
        return self._page is not None and not self._page.is_closed()

    @property
    def is_connected(self) -> bool:
        return self.is_running

    def _require_page(self) -> Page:
        if not self.is_running:
            raise DriverUnavailable("Browser is not running.")
        return self._page

    async def acquire(self) -> bool:
        """Launch Camoufox and open the Upwork login page."""
        if self.is_running:
            return True

        try:
            logger.info(f"[{self.session_id}] Launching Camoufox (headless={self._headless})...")
            self._camoufox = AsyncCamoufox(
                headless=self._headless,
                humanize=True,
                geoip=True,
                i_know_what_im_doing=True,
                config={"forceScopeAccess": True},
                disable_coop=True,
            )
            self._browser = await self._camoufox.__aenter__()
            self._context = await self._browser.new_context(
                viewport={"width": 1366, "height": 768},
                user_agent=None,  # Let Camoufox handle fingerprinting
            )
            self._page = await self._context.new_page()
            self._page.set_default_timeout(BROWSER_TIMEOUT)

            logger.info(f"[{self.session_id}] Navigating to Upwork login...")
            await self._goto(UPWORK_LOGIN_URL)
            logger.info(f"[{self.session_id}] Login page loaded: {self._page.url}")
            return True

        except Exception as e:
            logger.error(f"[{self.session_id}] Failed to start browser: {e}")
            await self._close_browser()
            raise DriverUnavailable(f"Failed to start browser: {e}") from e

    async def _goto(self, url: str) -> None:
        try:
            await self._page.goto(url, wait_until="domcontentloaded", timeout=BROWSER_TIMEOUT)
        except Exception as e:
            logger.warning(f"[{self.session_id}] Navigation timeout, trying with longer wait: {e}")
            await self._page.goto(url, wait_until="commit", timeout=BROWSER_TIMEOUT * 2)

    async def attempt_login(self) -> bool:
        page = self._require_page()
        if UPWORK_DOMAIN not in page.url:
            return False
        return bool(
            await page.evaluate(
                LOGIN_CHECK_SCRIPT, [LOGIN_INDICATOR_SELECTORS, LOGIN_INDICATOR_URL_FRAGMENT]
            )
        )

    async def open_job(self, job: Job) -> None:
        self._require_page()
        logger.info(f"[{self.session_id}] Opening job {job.url}")
        try:
            await self._goto(job.url)
        except Exception as e:
            if not self.is_running:
                raise DriverUnavailable(f"Browser closed while opening job: {e}") from e
            raise JobApplicationError(f"Could not open job page: {e}") from e

    async def _detect_challenge(self) -> str | None:
        return await detect_challenge(self._require_page())

    async def resolve_challenge(self) -> None:
        await self._challenges.wait_until_clear()

    async def apply_to_job(self, job: Job, application: ApplicationData) -> ApplyOutcome:
        page = self._require_page()
        state = classify_job_page(await page.content(), page.url)

        if state == PageState.APPLY_BUTTON:
            await page.click(SELECTORS["apply_button"])
            await page.wait_for_load_state("domcontentloaded")
            await self.resolve_challenge()
            state = classify_job_page(await page.content(), page.url)

        if state == PageState.LOGIN_REQUIRED:
            return ApplyOutcome(outcome=JobOutcome.LOGIN_REQUIRED, message="Login required to apply.")
        if state == PageState.NOT_AVAILABLE:
            return ApplyOutcome(outcome=JobOutcome.NOT_AVAILABLE, message="Job is no longer available.")
        if state != PageState.FORM:
            raise JobApplicationError(f"No application form found on {page.url}")

        await asyncio.sleep(application.timing.delay_before_apply / 1000)
        await self._fill_form(page, application)
        await page.click(SELECTORS["submit_button"])
        await page.wait_for_load_state("domcontentloaded")
        await asyncio.sleep(application.timing.delay_after_apply / 1000)

        if is_submission_confirmed(await page.content()):
            return ApplyOutcome(outcome=JobOutcome.APPLIED, message="Successfully applied")
        return ApplyOutcome(outcome=JobOutcome.FAILED, message="Proposal submission was not confirmed.")

    async def _fill_form(self, page: Page, application: ApplicationData) -> None:
        await page.fill(SELECTORS["cover_letter"], application.cover_letter)

        bid = application.strategy.bid_amount
        if bid is not None and await page.query_selector(SELECTORS["bid_amount"]):
            await page.fill(SELECTORS["bid_amount"], f"{bid:.2f}")

        answers = list(application.screening_responses.model_dump().values())
        questions = await page.query_selector_all(SELECTORS["screening_question"])
        for i, question in enumerate(questions):
            await question.fill(str(answers[i % len(answers)]))
        logger.info(
            f"[{self.session_id}] Filled proposal for job {application.job_number} "
            f"({len(questions)} screening questions, bid={bid})"
        )

    async def _release(self) -> None:
        await self._close_browser()

    async def _close_browser(self) -> None:
        """Close the context and terminate the Camoufox process."""
        logger.info(f"[{self.session_id}] Stopping browser...")
        try:
            if self._context:
                await self._context.close()
        except Exception as e:
            logger.warning(f"[{self.session_id}] Error closing context: {e}")
        finally:
            self._context = None
            self._page = None

        try:
            if self._camoufox:
                await self._camoufox.__aexit__(None, None, None)
        except Exception as e:
            logger.warning(f"[{self.session_id}] Error closing camoufox: {e}")
        finally:
            self._camoufox = None
            self._browser = None

        logger.info(f"[{self.session_id}] Browser stopped.")
