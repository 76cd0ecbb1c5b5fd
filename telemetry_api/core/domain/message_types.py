"""Closed vocabularies of the telemetry wire protocol."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class MessageType(str, Enum):
    """Telemetry message types accepted by the frame validator.

    The set is closed: a frame whose `messageType` is not listed here is
    rejected before it reaches the ordering buffer.
    """

    MOTOR_CURRENT = "MotorCurrent"
    ACCELEROMETER = "Accelerometer"
    INSTANTANEOUS_ATRIAL_PRESSURE = "InstantaneousAtrialPressure"
    SUPPLY_VOLTAGE = "SupplyVoltage"
    CPU_DATA = "CPUData"
    ADDITIONAL_TEMPERATURES = "AdditionalTemperatures"
    MANUAL_PHYSIOLOGICAL_SETTINGS = "ManualPhysiologicalSettings"
    VOLTAGE = "Voltage"
    TEMPERATURE = "Temperature"
    MOTOR_TUNING_PID = "MotorTuningPid"
    MOTOR_TUNING_FEED_FORWARD = "MotorTuningFeedForward"
    STROKEWISE_ATRIAL_PRESSURE = "StrokewiseAtrialPressure"
    ACTUAL_STROKE_LENGTH = "ActualStrokeLength"
    ALIVE_COUNTER = "AliveCounter"
    PUMP_CONTROL = "PumpControl"
    STROKEWISE_PRESSURE = "StrokewisePressure"
    STREAMING_PRESSURE = "StreamingPressure"
    AUTO_PHYSIOLOGICAL_SETTINGS = "AutoPhysiologicalSettings"

    @classmethod
    def values(cls) -> frozenset[str]:
        return frozenset(m.value for m in cls)


SUPPORTED_MESSAGE_TYPES = MessageType.values()


class TelemetrySource(str, Enum):
    """Gateway the frame travelled through."""

    CAN = "CAN"
    UDP = "UDP"


class PumpSide(str, Enum):
    LEFT = "Left"
    RIGHT = "Right"
    ALL = "All"

    @classmethod
    def parse(cls, raw) -> Optional["PumpSide"]:
        """Map a payload `pumpSide` value to a side; anything unknown is None."""
        if not isinstance(raw, str):
            return None
        try:
            return cls(raw)
        except ValueError:
            return None


class Severity(str, Enum):
    """Colour tokens the dashboard renders status badges with."""

    INFO = "badge-info"
    NORMAL = "badge-success"
    ABNORMAL = "badge-warning"
    HIGH = "badge-error"


class ConnectionRole(str, Enum):
    DEVICE = "device"
    VIEWER = "viewer"
