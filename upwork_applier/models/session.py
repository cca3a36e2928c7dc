"""Pydantic models for session state and session requests."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field, model_validator

from .job import ApplicationPreferences, CamelModel, Job, JobResult


class SessionStatus(str, Enum):
    CREATED = "created"
    WAITING_FOR_DRIVER = "waiting_for_driver"
    WAITING_FOR_LOGIN = "waiting_for_login"
    LOGGED_IN = "logged_in"
    PROCESSING = "processing"
    COMPLETED = "completed"
    READY = "ready"
    ERROR = "error"


class DriverMode(str, Enum):
    EMBEDDED = "embedded"
    EXTENSION = "extension"


def _check_unique_ids(jobs: list[Job]) -> None:
    seen: set[str] = set()
    for job in jobs:
        if job.id in seen:
            raise ValueError(f"duplicate jobId {job.id!r}")
        seen.add(job.id)


class CreateSessionRequest(CamelModel):
    jobs: list[Job] = Field(min_length=1)
    application_preferences: ApplicationPreferences = Field(default_factory=ApplicationPreferences)
    keep_alive: bool = False
    close_after_run: bool = True
    driver_mode: Optional[DriverMode] = None

    @model_validator(mode="after")
    def _unique_jobs(self) -> "CreateSessionRequest":
        _check_unique_ids(self.jobs)
        return self


class ReuseSessionRequest(CamelModel):
    jobs: list[Job] = Field(min_length=1)
    application_preferences: ApplicationPreferences = Field(default_factory=ApplicationPreferences)

    @model_validator(mode="after")
    def _unique_jobs(self) -> "ReuseSessionRequest":
        _check_unique_ids(self.jobs)
        return self


class SessionView(CamelModel):
    """Read-only view of a session returned by the status endpoint."""

    session_id: str
    status: SessionStatus
    driver_mode: DriverMode
    is_logged_in: bool = False
    extension_connected: bool = False
    login_timed_out: bool = False
    keep_alive: bool = False
    close_after_run: bool = True
    jobs_count: int = 0
    current_job: int = 0
    results: list[JobResult] = Field(default_factory=list)
    created_at: datetime
    last_activity: datetime
    error: Optional[str] = None


class ResultsSummary(CamelModel):
    total: int = 0
    completed: int = 0
    pending: int = 0
    errors: int = 0
    by_outcome: dict[str, int] = Field(default_factory=dict)


class ProcessJobRequest(CamelModel):
    """Single job pushed to a session's extension outside its batch."""

    session_id: str = Field(min_length=1)
    job: Job
