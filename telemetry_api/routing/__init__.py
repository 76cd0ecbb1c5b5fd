"""Connection registry and broadcast fan-out."""

from .broadcast import BroadcastEngine, system_message, utc_now_iso
from .connections import (
    ClientConnection,
    ConnectionParams,
    TextTransport,
    clean_device_name,
    format_display_name,
)
from .registry import ConnectionRegistry

__all__ = [
    "BroadcastEngine",
    "system_message",
    "utc_now_iso",
    "ClientConnection",
    "ConnectionParams",
    "TextTransport",
    "clean_device_name",
    "format_display_name",
    "ConnectionRegistry",
]
