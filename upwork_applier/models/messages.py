"""Peer (browser extension) WebSocket protocol messages.

Inbound messages are a tagged union on ``type``. Anything that does not
match one of the variants is rejected with a ValidationError.
"""

from __future__ import annotations

import json
from typing import Annotated, Literal, Optional, Union

import pydantic
from pydantic import Field, TypeAdapter

from ..errors import ValidationError
from .job import ApplicationData, CamelModel


class JobApplied(CamelModel):
    type: Literal["job_applied"]
    job_id: str
    success: bool
    error: Optional[str] = None


class LoginStatus(CamelModel):
    type: Literal["login_status"]
    is_logged_in: bool


class ExtensionConnected(CamelModel):
    type: Literal["extension_connected"]


PeerMessage = Annotated[
    Union[JobApplied, LoginStatus, ExtensionConnected],
    Field(discriminator="type"),
]

_peer_message_adapter: TypeAdapter[PeerMessage] = TypeAdapter(PeerMessage)


def parse_peer_message(raw: str | bytes | dict) -> JobApplied | LoginStatus | ExtensionConnected:
    """Decode and validate one inbound peer frame."""
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Peer message is not valid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise ValidationError("Peer message must be a JSON object")
    try:
        return _peer_message_adapter.validate_python(raw)
    except pydantic.ValidationError as e:
        tag = raw.get("type")
        if tag not in ("job_applied", "login_status", "extension_connected"):
            raise ValidationError(f"Unrecognized peer message type: {tag!r}") from e
        raise ValidationError(f"Malformed {tag} message: {e.errors()[0]['msg']}") from e


# ── Outbound ─────────────────────────────────────────────────────────────────


class JobApplicationMessage(CamelModel):
    type: Literal["job_application"] = "job_application"
    job_data: ApplicationData


class ErrorMessage(CamelModel):
    type: Literal["error"] = "error"
    error: str
    message: str
