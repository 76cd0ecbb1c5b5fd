"""Intérpretes por tipo de mensaje.

One function per message type folds a validated payload into the aggregated
state. Interpreters read only the fields they understand (missing numbers
count as 0, missing objects are skipped) and write only to the slots they
own. Side routing is done by the aggregator: chamber-scoped interpreters get
the resolved side and never look at `pumpSide` themselves.
"""

from __future__ import annotations

import logging
import math
import re
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional

from ..core.domain.message_types import MessageType, PumpSide, Severity
from ..core.domain.state import DEFAULT_PRESSURE_UNIT, SensorReading, StatusIndicator

if TYPE_CHECKING:
    from .aggregator import StateAggregator

logger = logging.getLogger(__name__)

Interpreter = Callable[[Mapping[str, Any], "StateAggregator", Optional[PumpSide]], None]

TEMPERATURE_HIGH_C = 60.0
VOLTAGE_MIN_V = 12.0
VOLTAGE_MAX_V = 18.0
ACCELERATION_HIGH_G = 2.0

_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _number(data: Mapping[str, Any], key: str, default: float = 0.0) -> float:
    value = data.get(key)
    return float(value) if _is_number(value) else default


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def supply_voltage_from_status(aggregator: "StateAggregator") -> float:
    """Last displayed supply voltage, or the configured default."""
    match = _NUMBER.search(aggregator.state.status.voltage.display_text)
    if match:
        return float(match.group(0))
    return aggregator.default_supply_voltage


# ---------------------------------------------------------------------------
# Chamber-scoped
# ---------------------------------------------------------------------------

def interpret_motor_current(data, aggregator, side) -> None:
    chamber = aggregator.state.chamber(side)
    if chamber is None:
        return
    chamber.power_consumption = supply_voltage_from_status(aggregator) * _number(data, "combinedCurrent")


def interpret_instantaneous_atrial_pressure(data, aggregator, side) -> None:
    chamber = aggregator.state.chamber(side)
    if chamber is None:
        return
    chamber.atrial_pressure = _number(data, "averagePressure")


def interpret_strokewise_atrial_pressure(data, aggregator, side) -> None:
    chamber = aggregator.state.chamber(side)
    if chamber is None:
        return
    chamber.set_int_pressure(
        _number(data, "averagePressure"),
        _number(data, "minPressure"),
        _number(data, "maxPressure"),
    )


def interpret_actual_stroke_length(data, aggregator, side) -> None:
    chamber = aggregator.state.chamber(side)
    if chamber is None:
        return
    chamber.actual_stroke_len = _number(data, "strokeLength")


# ---------------------------------------------------------------------------
# Shared / system-scoped
# ---------------------------------------------------------------------------

def interpret_manual_physiological_settings(data, aggregator, side) -> None:
    state = aggregator.state
    # Each field is applied only when present
    if _is_number(data.get("heartRate")):
        state.heart_rate = float(data["heartRate"])
    if _is_number(data.get("leftStrokeLength")):
        state.left_heart.target_stroke_len = float(data["leftStrokeLength"])
    if _is_number(data.get("rightStrokeLength")):
        state.right_heart.target_stroke_len = float(data["rightStrokeLength"])


def _strokewise_reading(name: str, reading: Mapping[str, Any]) -> SensorReading:
    return SensorReading(
        name=name,
        primary_value=_number(reading, "average"),
        unit=reading.get("unit") or DEFAULT_PRESSURE_UNIT,
        min_value=_number(reading, "min"),
        max_value=_number(reading, "max"),
    )


def interpret_strokewise_pressure(data, aggregator, side) -> None:
    state = aggregator.state
    left = data.get("leftAtrial")
    if isinstance(left, dict):
        state.left_heart.medical_pressure = _strokewise_reading("Left Atrial", left)
    right = data.get("rightAtrial")
    if isinstance(right, dict):
        state.right_heart.medical_pressure = _strokewise_reading("Right Atrial", right)
    pap = data.get("pulmonaryArterial")
    if isinstance(pap, dict):
        state.sensors["PAPSensor"] = _strokewise_reading("PAP", pap)
    aortic = data.get("aortic")
    if isinstance(aortic, dict):
        state.sensors["AoPSensor"] = _strokewise_reading("AoP", aortic)


def interpret_streaming_pressure(data, aggregator, side) -> None:
    buffer = aggregator.streaming_pressure
    for channel in buffer.CHANNELS:
        samples = data.get(channel)
        if isinstance(samples, list):
            buffer.samples[channel] = list(samples)
    if _is_number(data.get("sampleRate")) and data["sampleRate"]:
        buffer.sample_rate = float(data["sampleRate"])
    if isinstance(data.get("unit"), str) and data["unit"]:
        buffer.unit = data["unit"]


def interpret_temperature(data, aggregator, side) -> None:
    temps = [float(data[k]) for k in ("temp1", "temp2", "temp3", "temp4") if _is_number(data.get(k))]
    average = sum(temps) / len(temps) if temps else 0.0
    aggregator.state.status.temperature = StatusIndicator(
        display_text=f"{average:.1f}",
        severity=Severity.HIGH if average > TEMPERATURE_HIGH_C else Severity.NORMAL,
    )


def interpret_supply_voltage(data, aggregator, side) -> None:
    voltage = _number(data, "meanSupplyVoltage")
    abnormal = voltage < VOLTAGE_MIN_V or voltage > VOLTAGE_MAX_V
    aggregator.state.status.voltage = StatusIndicator(
        display_text=f"{voltage:.1f}",
        severity=Severity.ABNORMAL if abnormal else Severity.NORMAL,
    )


def interpret_cpu_data(data, aggregator, side) -> None:
    aggregator.state.status.cpu_load = StatusIndicator(
        display_text=str(_round_half_up(_number(data, "cpuLoad"))),
        severity=Severity.INFO,
    )


def interpret_accelerometer(data, aggregator, side) -> None:
    x = _number(data, "xAxis")
    y = _number(data, "yAxis")
    z = _number(data, "zAxis")
    magnitude = math.sqrt(x * x + y * y + z * z)
    aggregator.state.status.accelerometer = StatusIndicator(
        display_text=f"{magnitude:.2f}",
        severity=Severity.HIGH if magnitude > ACCELERATION_HIGH_G else Severity.NORMAL,
    )


INTERPRETERS: Dict[str, Interpreter] = {
    MessageType.MOTOR_CURRENT.value: interpret_motor_current,
    MessageType.INSTANTANEOUS_ATRIAL_PRESSURE.value: interpret_instantaneous_atrial_pressure,
    MessageType.STROKEWISE_ATRIAL_PRESSURE.value: interpret_strokewise_atrial_pressure,
    MessageType.MANUAL_PHYSIOLOGICAL_SETTINGS.value: interpret_manual_physiological_settings,
    MessageType.ACTUAL_STROKE_LENGTH.value: interpret_actual_stroke_length,
    MessageType.STROKEWISE_PRESSURE.value: interpret_strokewise_pressure,
    MessageType.STREAMING_PRESSURE.value: interpret_streaming_pressure,
    MessageType.TEMPERATURE.value: interpret_temperature,
    MessageType.SUPPLY_VOLTAGE.value: interpret_supply_voltage,
    MessageType.CPU_DATA.value: interpret_cpu_data,
    MessageType.ACCELEROMETER.value: interpret_accelerometer,
}


def get_interpreter(message_type: str) -> Optional[Interpreter]:
    return INTERPRETERS.get(message_type)
