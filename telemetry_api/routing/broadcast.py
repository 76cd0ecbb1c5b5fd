"""Broadcast engine: fan-out of snapshots and messages to connections.

Sends are concurrent (`asyncio.gather`) and read-only with respect to the
aggregated state. A failed send is logged and skipped; a failure in the
fatal set is re-raised as `FatalTransportError`.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..core.errors import FatalTransportError, is_fatal_transport_error
from ..monitoring import metrics
from .connections import ClientConnection
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def system_message(entry: Dict[str, Any]) -> Dict[str, Any]:
    """Device-side `{Message, MessageType, Source, Timestamp}` -> wire shape."""
    return {
        "type": "systemMessage",
        "message": entry.get("Message"),
        "messageType": entry.get("MessageType"),
        "source": entry.get("Source"),
        "timestamp": entry.get("Timestamp"),
    }


class BroadcastEngine:
    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry

    async def _send(self, conn: ClientConnection, text: str) -> bool:
        try:
            await conn.send_text(text)
            return True
        except Exception as e:
            if is_fatal_transport_error(e):
                raise FatalTransportError(f"Send to {conn!r} failed: {e}") from e
            logger.warning("[BROADCAST] Error sending to %r: %s", conn, e)
            return False

    async def _deliver(self, outgoing: List[Tuple[ClientConnection, str]]) -> int:
        """Send each (connection, text) pair concurrently; returns successful sends."""
        if not outgoing:
            return 0
        results = await asyncio.gather(*[self._send(c, text) for c, text in outgoing], return_exceptions=True)
        for result in results:
            if isinstance(result, FatalTransportError):
                raise result
        return sum(1 for r in results if r is True)

    async def send_to(self, recipients: Iterable[ClientConnection], text: str) -> int:
        """Send `text` to every recipient; returns the number of successful sends."""
        return await self._deliver([(c, text) for c in recipients])

    # ------------------------------------------------------------------
    # State snapshots
    # ------------------------------------------------------------------

    async def publish_state(self, system_id: str, payload: str) -> int:
        """Live update: watchers of the system plus unassigned viewers."""
        metrics.BROADCASTS.labels(kind="state").inc()
        return await self.send_to(self._registry.state_recipients(system_id), payload)

    async def publish_stale(self, system_id: str, payload: str) -> int:
        """Stale rebroadcast: only the system's own watchers."""
        metrics.BROADCASTS.labels(kind="stale").inc()
        return await self.send_to(self._registry.watchers(system_id), payload)

    # ------------------------------------------------------------------
    # Registry events
    # ------------------------------------------------------------------

    async def broadcast_systems_list(self) -> int:
        message = {
            "type": "systems_list",
            "systems": self._registry.systems(),
            "timestamp": utc_now_iso(),
        }
        metrics.BROADCASTS.labels(kind="systems_list").inc()
        return await self.send_to(self._registry.connections, json.dumps(message))

    # ------------------------------------------------------------------
    # Operator / device messages
    # ------------------------------------------------------------------

    async def relay_operator_message(
        self,
        sender: Optional[ClientConnection],
        username: str,
        text: Any,
        recipients: Optional[Iterable[ClientConnection]] = None,
    ) -> int:
        """Relay one operator message, marking the copy that goes back to the sender."""
        targets = list(self._registry.connections if recipients is None else recipients)
        timestamp = utc_now_iso()
        metrics.BROADCASTS.labels(kind="operator").inc()

        def render(conn: ClientConnection) -> str:
            return json.dumps({
                "type": "deviceMessage",
                "timestamp": timestamp,
                "username": username,
                "message": text,
                "self": conn is sender,
            })

        return await self._deliver([(c, render(c)) for c in targets])

    async def relay_system_messages(
        self,
        sender: ClientConnection,
        system_id: str,
        entries: List[Dict[str, Any]],
    ) -> int:
        watchers = [c for c in self._registry.watchers(system_id) if c is not sender]
        sent = 0
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            metrics.BROADCASTS.labels(kind="system_message").inc()
            sent += await self.send_to(watchers, json.dumps(system_message(entry)))
        return sent

    async def forward_status(self, sender: ClientConnection, system_id: str, status: Dict[str, Any]) -> int:
        watchers = [c for c in self._registry.watchers(system_id) if c is not sender]
        metrics.BROADCASTS.labels(kind="status").inc()
        return await self.send_to(watchers, json.dumps(status))
