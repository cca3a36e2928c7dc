"""Pydantic models for jobs, application data and job results."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from urllib.parse import urlparse

import pydantic
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..errors import ValidationError


class CamelModel(BaseModel):
    """Snake_case attributes, camelCase on the wire; either is accepted as input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def parse_payload(model: type[BaseModel], data: Any) -> Any:
    """Validate request data into ``model``, raising the service ValidationError."""
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}" for err in e.errors()
        )
        raise ValidationError(f"Invalid payload: {details}") from e


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class Job(CamelModel):
    """One job posting to apply to."""

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        validation_alias=AliasChoices("jobId", "job_id", "id"),
        serialization_alias="jobId",
    )
    url: str = Field(
        validation_alias=AliasChoices("jobUrl", "job_url", "url"),
        serialization_alias="jobUrl",
    )
    cover_letter: Optional[str] = None
    bid_amount: Optional[float] = Field(default=None, gt=0)

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        value = value.strip()
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"not an absolute http(s) URL: {value!r}")
        return value


class ApplicationPreferences(CamelModel):
    """Per-batch preferences forwarded to the content generator."""

    model_config = ConfigDict(extra="allow")

    profile: str = "default"
    signature: str = "[Your Name]"
    default_bid: Optional[float] = Field(default=None, gt=0)
    priority: str = "high"


class JobOutcome(str, Enum):
    SENT = "sent"
    APPLIED = "applied"
    FAILED = "failed"
    SKIPPED = "skipped"
    LOGIN_REQUIRED = "login_required"
    NOT_AVAILABLE = "not_available"
    TIMEOUT = "timeout"


ERROR_OUTCOMES = {JobOutcome.FAILED, JobOutcome.TIMEOUT}


class JobResult(CamelModel):
    """Terminal outcome record for one job attempt. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    job_number: int = Field(ge=1)
    job_id: str
    job_url: str
    outcome: JobOutcome
    message: str = ""
    processed_at: datetime = Field(default_factory=utcnow)


class ApplyOutcome(BaseModel):
    """What a driver reports back for a single job."""

    outcome: JobOutcome
    message: str = ""


# ── Content generator output ─────────────────────────────────────────────────


class ApplicationStrategy(CamelModel):
    use_profile: str = "default"
    bid_amount: Optional[float] = None
    priority: str = "high"


class ScreeningResponses(CamelModel):
    model_config = ConfigDict(extra="allow")

    availability: str = "I can start immediately"
    experience: str = "I have extensive experience in this field"
    budget: str = "I understand the budget and timeline"


class ApplicationTiming(CamelModel):
    delay_before_apply: int = 2000  # ms
    delay_after_apply: int = 3000  # ms


class ApplicationData(CamelModel):
    """Everything needed to fill in one proposal, sent to the peer as ``jobData``."""

    job_id: str
    job_number: int
    job_url: str
    cover_letter: str
    strategy: ApplicationStrategy = Field(default_factory=ApplicationStrategy)
    screening_responses: ScreeningResponses = Field(default_factory=ScreeningResponses)
    timing: ApplicationTiming = Field(default_factory=ApplicationTiming)
