"""Connection handles and connection parameters."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol
from urllib.parse import unquote

from ..core.domain.message_types import ConnectionRole

logger = logging.getLogger(__name__)

UNKNOWN_DEVICE = "Unknown Device"
ANONYMOUS_VIEWER = "Someone"


class TextTransport(Protocol):
    """What the registry needs from a socket (Starlette's WebSocket fits)."""

    async def send_text(self, data: str) -> None: ...


def format_display_name(email: Optional[str], org_domain: str) -> str:
    """'jane.doe@<org_domain>' -> 'Jane Doe'; other addresses unchanged."""
    if not email:
        return ANONYMOUS_VIEWER
    local, _, domain = email.partition("@")
    if domain.lower() == org_domain:
        first, _, last = local.partition(".")
        if first and last:
            return f"{first[:1].upper()}{first[1:]} {last[:1].upper()}{last[1:]}"
    return email


def clean_device_name(raw: Optional[str]) -> str:
    if not raw:
        return UNKNOWN_DEVICE
    name = unquote(raw).split("?")[0].strip()
    return name or UNKNOWN_DEVICE


@dataclass(frozen=True)
class ConnectionParams:
    role: ConnectionRole
    system_id: Optional[str] = None
    label: str = ANONYMOUS_VIEWER
    email: Optional[str] = None

    @classmethod
    def from_query(cls, query: Mapping[str, Any], *, org_domain: str) -> "ConnectionParams":
        """Build params from the WebSocket URL query string.

        Devices declare `SystemId`; viewers may pin one with `systemId`.
        """
        if query.get("type") == ConnectionRole.DEVICE.value:
            return cls(
                role=ConnectionRole.DEVICE,
                system_id=query.get("SystemId") or query.get("systemId") or None,
                label=clean_device_name(query.get("device-name")),
            )
        email = query.get("email") or None
        return cls(
            role=ConnectionRole.VIEWER,
            system_id=query.get("systemId") or None,
            label=format_display_name(email, org_domain),
            email=email,
        )


@dataclass(eq=False)
class ClientConnection:
    """One open WebSocket, device or viewer.

    `system_id` is the device identity or the viewer's pinned system;
    `watching` is the watch set a viewer currently belongs to (None while
    parked in the waiting set).
    """

    transport: TextTransport
    role: ConnectionRole
    label: str
    system_id: Optional[str] = None
    email: Optional[str] = None
    watching: Optional[str] = None
    connection_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @classmethod
    def from_params(cls, transport: TextTransport, params: ConnectionParams) -> "ClientConnection":
        return cls(
            transport=transport,
            role=params.role,
            label=params.label,
            system_id=params.system_id,
            email=params.email,
        )

    @property
    def is_device(self) -> bool:
        return self.role is ConnectionRole.DEVICE

    @property
    def is_viewer(self) -> bool:
        return self.role is ConnectionRole.VIEWER

    async def send_text(self, text: str) -> None:
        await self.transport.send_text(text)

    def __repr__(self) -> str:
        return f"<{self.role.value} {self.connection_id} label={self.label!r} system={self.system_id!r}>"
