"""Classify Upwork job pages from their HTML.

A job page is in one of four states as far as applying is concerned:

1. Login required: redirected to, or showing, the login form
2. Not available: closed, removed, or already applied to
3. Proposal form present: ready to be filled in
4. Job detail with an "Apply now" button: the form is one click away

Anything else is UNKNOWN and treated as a failure by the driver.
"""

from __future__ import annotations

import re
from enum import Enum

from bs4 import BeautifulSoup

from ..constants import JOB_UNAVAILABLE_MESSAGES, SELECTORS
from .captcha import is_login_url


class PageState(str, Enum):
    LOGIN_REQUIRED = "login_required"
    NOT_AVAILABLE = "not_available"
    FORM = "form"
    APPLY_BUTTON = "apply_button"
    UNKNOWN = "unknown"


def _clean_text(text: str | None) -> str:
    """Strip whitespace and normalize text."""
    if not text:
        return ""
    return re.sub(r"\s+", " ", text).strip()


def classify_job_page(html: str, url: str = "") -> PageState:
    if url and is_login_url(url):
        return PageState.LOGIN_REQUIRED

    soup = BeautifulSoup(html, "html.parser")

    if soup.select_one(SELECTORS["login_username"]) or soup.select_one(SELECTORS["login_password"]):
        return PageState.LOGIN_REQUIRED

    text = _clean_text(soup.get_text(" "))
    if any(message in text for message in JOB_UNAVAILABLE_MESSAGES):
        return PageState.NOT_AVAILABLE

    if soup.select_one(SELECTORS["proposal_form"]):
        return PageState.FORM

    if soup.select_one(SELECTORS["apply_button"]):
        return PageState.APPLY_BUTTON

    return PageState.UNKNOWN


def is_submission_confirmed(html: str) -> bool:
    soup = BeautifulSoup(html, "html.parser")
    return soup.select_one(SELECTORS["submit_success"]) is not None
