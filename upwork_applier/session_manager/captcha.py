"""Cloudflare / CAPTCHA challenge and login page detection."""

from __future__ import annotations

import logging
import sys

from playwright.async_api import Page

from ..constants import (
    CAPTCHA_SELECTORS,
    CHALLENGE_TITLE_HINTS,
    CLOUDFLARE_INDICATORS,
    LOGIN_PAGE_URL_FRAGMENTS,
)

logger = logging.getLogger(__name__)
# MCP servers MUST NOT write to stdout
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


async def detect_cloudflare(page: Page) -> bool:
    """Check if the current page shows a Cloudflare interstitial."""
    try:
        content = await page.content()
        if any(indicator in content for indicator in CLOUDFLARE_INDICATORS):
            return True
        title = (await page.title()).lower()
        return any(hint in title for hint in CHALLENGE_TITLE_HINTS)
    except Exception:
        return False


async def detect_captcha_element(page: Page) -> str | None:
    """Detect specific CAPTCHA elements on the page.

    Returns the type of CAPTCHA found, or None.
    """
    for selector, captcha_type in CAPTCHA_SELECTORS:
        try:
            element = await page.query_selector(selector)
            if element:
                logger.info(f"Detected CAPTCHA type: {captcha_type}")
                return captcha_type
        except Exception:
            continue
    return None


async def detect_challenge(page: Page) -> str | None:
    """Return the kind of challenge blocking the page, or None when clear."""
    if await detect_cloudflare(page):
        return await detect_captcha_element(page) or "cloudflare"
    return await detect_captcha_element(page)


def is_login_url(url: str) -> bool:
    return any(fragment in url for fragment in LOGIN_PAGE_URL_FRAGMENTS)
