"""Domain layer - wire vocabularies and the aggregated state tree."""

from .message_types import (
    SUPPORTED_MESSAGE_TYPES,
    ConnectionRole,
    MessageType,
    PumpSide,
    Severity,
    TelemetrySource,
)
from .state import (
    AggregatedState,
    ChamberState,
    SensorReading,
    StatusIndicator,
    StreamingPressureBuffer,
    SystemStatus,
    TelemetryAvailability,
)

__all__ = [
    "SUPPORTED_MESSAGE_TYPES",
    "ConnectionRole",
    "MessageType",
    "PumpSide",
    "Severity",
    "TelemetrySource",
    "AggregatedState",
    "ChamberState",
    "SensorReading",
    "StatusIndicator",
    "StreamingPressureBuffer",
    "SystemStatus",
    "TelemetryAvailability",
]
