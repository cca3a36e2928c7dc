"""Application configuration loaded from environment variables."""

import os

from dotenv import load_dotenv

load_dotenv()

# Session manager
SESSION_MANAGER_HOST = os.getenv("SESSION_MANAGER_HOST", "127.0.0.1")
SESSION_MANAGER_PORT = int(os.getenv("SESSION_MANAGER_PORT", "8024"))
SESSION_MANAGER_URL = f"http://{SESSION_MANAGER_HOST}:{SESSION_MANAGER_PORT}"

# Driver
DRIVER_MODE = os.getenv("DRIVER_MODE", "extension").lower()  # "embedded" or "extension"

# Browser
BROWSER_HEADLESS = os.getenv("BROWSER_HEADLESS", "true").lower() == "true"
BROWSER_TIMEOUT = int(os.getenv("BROWSER_TIMEOUT", "30000"))

# Login detection (seconds)
LOGIN_POLL_INTERVAL = float(os.getenv("LOGIN_POLL_INTERVAL", "5"))
LOGIN_TIMEOUT = float(os.getenv("LOGIN_TIMEOUT", "600"))  # 10 minutes

# Challenge handling (seconds)
CHALLENGE_POLL_INTERVAL = float(os.getenv("CHALLENGE_POLL_INTERVAL", "2"))
CHALLENGE_TIMEOUT = float(os.getenv("CHALLENGE_TIMEOUT", "120"))

# Session cleanup (seconds)
CLEANUP_INTERVAL = float(os.getenv("CLEANUP_INTERVAL", "300"))  # 5 minutes
INACTIVITY_THRESHOLD = float(os.getenv("INACTIVITY_THRESHOLD", "1800"))  # 30 minutes

SERVICE_NAME = "Upwork Auto Applier Session Manager"
SERVICE_VERSION = "1.1.0"
