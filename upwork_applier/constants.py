"""Upwork URLs, CSS selectors and page markers used by the drivers."""

# ── URLs ─────────────────────────────────────────────────────────────────────

UPWORK_BASE = "https://www.upwork.com"
UPWORK_DOMAIN = "upwork.com"
UPWORK_LOGIN_URL = f"{UPWORK_BASE}/ab/account-security/login"

# ── Login Detection ──────────────────────────────────────────────────────────

# Any one of these present on an upwork.com page means the user is signed in.
LOGIN_INDICATOR_SELECTORS = [
    '[data-test="user-menu"]',
    ".user-menu",
    '[data-cy="user-menu"]',
    ".upwork-header-user",
    'a[href*="/logout"]',
]
LOGIN_INDICATOR_URL_FRAGMENT = "/nx/"

LOGIN_PAGE_URL_FRAGMENTS = ["/login", "/account-security"]

# ── Job Page Selectors ───────────────────────────────────────────────────────

SELECTORS = {
    # Login form (appears when the session expired mid-batch)
    "login_username": "#login_username",
    "login_password": "#login_password",

    # Job detail page
    "apply_button": '[data-test="apply-button"], button[aria-label="Apply now"]',

    # Proposal form
    "proposal_form": 'form[data-test="proposal-form"], [data-test="cover-letter"], textarea[aria-labelledby*="cover_letter"]',
    "cover_letter": '[data-test="cover-letter"] textarea, textarea[aria-labelledby*="cover_letter"]',
    "bid_amount": '[data-test="bid-amount"] input, input#step-rate',
    "screening_question": '[data-test="question"] textarea',
    "submit_button": '[data-test="submit-proposal"], button[type="submit"]',
    "submit_success": '[data-test="proposal-submitted"], .air3-alert-success',
}

JOB_UNAVAILABLE_MESSAGES = [
    "This job is no longer available",
    "This job posting has been removed",
    "Job is no longer accepting proposals",
    "You have already submitted a proposal",
]

# ── Cloudflare / Challenge Detection ─────────────────────────────────────────

CLOUDFLARE_INDICATORS = [
    "Just a moment...",
    "Checking your browser",
    "cf-challenge",
    "challenge-platform",
    "turnstile",
]

CHALLENGE_TITLE_HINTS = [
    "just a moment",
    "attention required",
    "security check",
]

CAPTCHA_SELECTORS = [
    ("iframe[src*='hcaptcha']", "hcaptcha"),
    ("iframe[src*='recaptcha']", "recaptcha"),
    ("#cf-turnstile", "cloudflare_turnstile"),
    (".cf-challenge", "cloudflare_challenge"),
    ("[data-testid='challenge']", "upwork_challenge"),
]
