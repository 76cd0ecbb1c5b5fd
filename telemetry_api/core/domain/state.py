"""Aggregated per-system state tree.

Every field starts populated (numbers at 0, status texts at "-", badges at
info level) so a snapshot can be serialised before the first frame arrives.
`to_dict()` produces the wire shape the dashboard consumes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .message_types import PumpSide, Severity

DEFAULT_PRESSURE_UNIT = "mmHg"
PLACEHOLDER = "-"


@dataclass
class SensorReading:
    """One displayed pressure sensor slot."""

    name: str
    primary_value: Union[float, str] = 0.0
    secondary_value: Optional[float] = None
    display_color: Optional[str] = None
    unit: str = DEFAULT_PRESSURE_UNIT
    # Only strokewise readings carry a range
    min_value: Optional[float] = None
    max_value: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "Name": self.name,
            "PrimaryValue": self.primary_value,
            "SecondaryValue": self.secondary_value,
            "BackColor": self.display_color,
            "unit": self.unit,
        }
        if self.min_value is not None:
            out["min"] = self.min_value
        if self.max_value is not None:
            out["max"] = self.max_value
        return out


@dataclass
class ChamberState:
    """Measurements of one heart side."""

    power_consumption: float = 0.0
    atrial_pressure: float = 0.0
    cardiac_output: float = 0.0
    target_stroke_len: float = 0.0
    actual_stroke_len: float = 0.0
    int_pressure: float = 0.0
    int_pressure_min: float = 0.0
    int_pressure_max: float = 0.0
    medical_pressure: SensorReading = field(
        default_factory=lambda: SensorReading("MedicalPressure", primary_value=PLACEHOLDER)
    )

    def set_int_pressure(self, average: float, minimum: float, maximum: float) -> None:
        # min/max only ever move together with the average
        self.int_pressure = average
        self.int_pressure_min = minimum
        self.int_pressure_max = maximum

    @property
    def effective_stroke_len(self) -> float:
        """Actual stroke length, falling back to the target when actual is 0."""
        return self.actual_stroke_len or self.target_stroke_len

    def to_dict(self) -> Dict[str, Any]:
        return {
            "PowerConsumption": self.power_consumption,
            "AtrialPressure": self.atrial_pressure,
            "CardiacOutput": self.cardiac_output,
            "TargetStrokeLen": self.target_stroke_len,
            "ActualStrokeLen": self.actual_stroke_len,
            "IntPressure": self.int_pressure,
            "IntPressureMin": self.int_pressure_min,
            "IntPressureMax": self.int_pressure_max,
            "MedicalPressure": self.medical_pressure.to_dict(),
        }


@dataclass
class StatusIndicator:
    display_text: str = PLACEHOLDER
    severity: Severity = Severity.INFO

    def to_dict(self) -> Dict[str, str]:
        return {"Text": self.display_text, "Color": self.severity.value}


@dataclass
class SystemStatus:
    temperature: StatusIndicator = field(default_factory=StatusIndicator)
    voltage: StatusIndicator = field(default_factory=StatusIndicator)
    cpu_load: StatusIndicator = field(default_factory=StatusIndicator)
    accelerometer: StatusIndicator = field(default_factory=StatusIndicator)

    def to_dict(self) -> Dict[str, Dict[str, str]]:
        return {
            "Temperature": self.temperature.to_dict(),
            "Voltage": self.voltage.to_dict(),
            "CPULoad": self.cpu_load.to_dict(),
            "Accelerometer": self.accelerometer.to_dict(),
        }


@dataclass
class StreamingPressureBuffer:
    """Latest raw waveform samples per channel.

    Kept beside the snapshot, not inside it.
    """

    CHANNELS = (
        "leftAtrial",
        "rightAtrial",
        "leftVentricular",
        "rightVentricular",
        "aortic",
        "pulmonaryArterial",
    )

    samples: Dict[str, List[float]] = field(
        default_factory=lambda: {name: [] for name in StreamingPressureBuffer.CHANNELS}
    )
    sample_rate: float = 0.0
    unit: str = DEFAULT_PRESSURE_UNIT

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {name: list(values) for name, values in self.samples.items()}
        out["sampleRate"] = self.sample_rate
        out["unit"] = self.unit
        return out


@dataclass(frozen=True)
class TelemetryAvailability:
    no_data_received: bool
    left_heart_available: bool
    right_heart_available: bool
    last_telemetry_time: float
    left_heart_last_update: float
    right_heart_last_update: float

    def to_dict(self) -> Dict[str, Any]:
        # Instants on the wire are epoch milliseconds
        return {
            "noDataReceived": self.no_data_received,
            "leftHeartAvailable": self.left_heart_available,
            "rightHeartAvailable": self.right_heart_available,
            "lastTelemetryTime": int(self.last_telemetry_time * 1000),
            "leftHeartLastUpdate": int(self.left_heart_last_update * 1000),
            "rightHeartLastUpdate": int(self.right_heart_last_update * 1000),
        }


def _sensor_slots() -> Dict[str, SensorReading]:
    return {
        "CVPSensor": SensorReading("CVP"),
        "PAPSensor": SensorReading("PAP"),
        "AoPSensor": SensorReading("AoP"),
        "ArtPressSensor": SensorReading("ArtPress"),
        "IvcPressSensor": SensorReading("IvcPress"),
    }


@dataclass
class AggregatedState:
    system_id: str = ""
    heart_rate: float = 0.0
    left_heart: ChamberState = field(default_factory=ChamberState)
    right_heart: ChamberState = field(default_factory=ChamberState)
    sensors: Dict[str, SensorReading] = field(default_factory=_sensor_slots)
    status: SystemStatus = field(default_factory=SystemStatus)
    operation_state: str = PLACEHOLDER
    heart_status: str = PLACEHOLDER
    flow_limit_state: str = PLACEHOLDER
    flow_limit: float = 0.0
    use_medical_sensor: bool = False
    timestamp: int = 0

    def chamber(self, side: Optional[PumpSide]) -> Optional[ChamberState]:
        if side is PumpSide.LEFT:
            return self.left_heart
        if side is PumpSide.RIGHT:
            return self.right_heart
        return None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "SystemId": self.system_id,
            "HeartRate": self.heart_rate,
            "LeftHeart": self.left_heart.to_dict(),
            "RightHeart": self.right_heart.to_dict(),
        }
        for slot, reading in self.sensors.items():
            out[slot] = reading.to_dict()
        out.update(
            {
                "StatusData": self.status.to_dict(),
                "OperationState": self.operation_state,
                "HeartStatus": self.heart_status,
                "FlowLimitState": self.flow_limit_state,
                "FlowLimit": self.flow_limit,
                "UseMedicalSensor": self.use_medical_sensor,
                "Timestamp": self.timestamp,
            }
        )
        return out
