"""Error taxonomy shared by the session manager and its HTTP surface."""

from __future__ import annotations


class ApplierError(Exception):
    """Base error carrying a machine-readable kind and an HTTP status."""

    kind = "applier_error"
    status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


class ValidationError(ApplierError):
    """Malformed request body, job list or peer message."""

    kind = "validation_error"
    status = 400


class NotFoundError(ApplierError):
    kind = "not_found"
    status = 404


class InvalidSessionState(ApplierError):
    """The session is not in a state that accepts the requested operation."""

    kind = "invalid_session_state"
    status = 409


class DriverUnavailable(ApplierError):
    """The browser failed to launch or went away, or no peer is connected."""

    kind = "driver_unavailable"
    status = 503


class LoginTimeout(ApplierError):
    kind = "login_timeout"
    status = 408


class ChallengeTimeout(ApplierError):
    """An anti-bot challenge did not clear in time. Recovered per job."""

    kind = "challenge_timeout"
    status = 408


class JobApplicationError(ApplierError):
    """A single job could not be applied to. Recovered per job."""

    kind = "job_application_error"
    status = 500
