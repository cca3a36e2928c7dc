"""Session id -> browser extension WebSocket mapping."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from ..models.job import utcnow

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

# Close code sent to a connection replaced by a newer one for the same session.
SUPERSEDED_CLOSE_CODE = 4000


class PeerConnection(Protocol):
    """The subset of ``aiohttp.web.WebSocketResponse`` the broker relies on."""

    @property
    def closed(self) -> bool: ...

    async def send_json(self, data: Any) -> None: ...

    async def close(self, *, code: int = ..., message: bytes = ...) -> bool: ...


@dataclass
class ExtensionLink:
    session_id: str
    connection: PeerConnection
    connected_at: datetime = field(default_factory=utcnow)


class ConnectionBroker:
    """Holds at most one live extension link per session id.

    A new connection for a session id replaces the previous one. A
    disconnect only removes the mapping if it still points at the
    disconnecting connection, so a late close of a superseded socket never
    unmaps its replacement.
    """

    def __init__(self):
        self._links: dict[str, ExtensionLink] = {}

    def __len__(self) -> int:
        return len(self._links)

    def get(self, session_id: str) -> ExtensionLink | None:
        return self._links.get(session_id)

    def is_connected(self, session_id: str) -> bool:
        link = self._links.get(session_id)
        return link is not None and not link.connection.closed

    async def connect(self, session_id: str, connection: PeerConnection) -> ExtensionLink:
        previous = self._links.get(session_id)
        link = ExtensionLink(session_id=session_id, connection=connection)
        self._links[session_id] = link
        logger.info(f"[{session_id}] Extension connected")

        if previous is not None and previous.connection is not connection:
            logger.info(f"[{session_id}] Replacing previous extension connection")
            try:
                await previous.connection.close(
                    code=SUPERSEDED_CLOSE_CODE, message=b"Superseded by a newer connection"
                )
            except Exception as e:
                logger.warning(f"[{session_id}] Error closing superseded connection: {e}")
        return link

    def disconnect(self, session_id: str, connection: PeerConnection) -> bool:
        link = self._links.get(session_id)
        if link is None or link.connection is not connection:
            return False
        del self._links[session_id]
        logger.info(f"[{session_id}] Extension disconnected")
        return True

    async def send(self, session_id: str, message: dict) -> bool:
        """Send a JSON message to the session's extension.

        Returns False, without raising, when no live connection exists or
        the transport fails.
        """
        link = self._links.get(session_id)
        if link is None or link.connection.closed:
            logger.warning(f"[{session_id}] Cannot send {message.get('type')}: extension not connected")
            return False
        try:
            await link.connection.send_json(message)
            return True
        except (ConnectionError, RuntimeError) as e:
            logger.warning(f"[{session_id}] Send failed, dropping connection: {e}")
            self.disconnect(session_id, link.connection)
            return False

    async def drop(self, session_id: str) -> bool:
        """Remove and close the session's link, if any."""
        link = self._links.pop(session_id, None)
        if link is None:
            return False
        try:
            await link.connection.close()
        except Exception as e:
            logger.warning(f"[{session_id}] Error closing extension connection: {e}")
        logger.info(f"[{session_id}] Extension link dropped")
        return True

    async def close(self) -> None:
        for session_id in list(self._links):
            await self.drop(session_id)
