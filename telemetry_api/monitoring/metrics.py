"""Métricas Prometheus del servicio de telemetría."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

FRAMES_RECEIVED = Counter(
    "telemetry_frames_received_total",
    "Frames received over WebSocket connections",
    ["kind"],  # telemetry, status, system_messages, operator, free_text, ignored
)
FRAMES_REJECTED = Counter(
    "telemetry_frames_rejected_total",
    "Telemetry frames dropped by the frame validator",
    ["reason"],
)
FRAMES_APPLIED = Counter(
    "telemetry_frames_applied_total",
    "Telemetry frames applied to an aggregated state",
    ["message_type"],
)
BUFFER_EVICTIONS = Counter(
    "telemetry_buffer_evictions_total",
    "Frames evicted from the ordering buffer before being applied",
)
BROADCASTS = Counter(
    "telemetry_broadcasts_total",
    "Outbound broadcast fan-outs",
    ["kind"],  # state, stale, systems_list, operator, system_message, status
)
CONNECTIONS = Gauge(
    "telemetry_connections",
    "Open WebSocket connections",
    ["role"],
)
BUFFER_SIZE = Gauge(
    "telemetry_buffer_size",
    "Frames currently waiting in the ordering buffer",
)
