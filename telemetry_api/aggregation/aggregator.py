"""Agregador de estado por sistema.

FUENTE ÚNICA DE VERDAD para el estado de un sistema (un dispositivo).

- Aplica intérpretes con enrutamiento por lado de bomba (Left/Right/All)
- Recalcula el gasto cardíaco tras cada frame aplicado
- Registra la última recepción global y por lado para la disponibilidad

Availability is derived when the state is read, not when it is written, so
the passage of time alone degrades it.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional

from ..core.domain.message_types import PumpSide
from ..core.domain.state import (
    AggregatedState,
    ChamberState,
    StreamingPressureBuffer,
    TelemetryAvailability,
)
from ..core.validation.frame_validator import TelemetryEnvelope
from .interpreters import get_interpreter

logger = logging.getLogger(__name__)

# Pump cross-section area in cm²; yields cardiac output in L/min
PUMP_CROSS_SECTION_AREA = 5.0

DEFAULT_TELEMETRY_TIMEOUT_S = 30.0
DEFAULT_SIDE_TIMEOUT_S = 10.0
DEFAULT_SUPPLY_VOLTAGE = 12.0


def calculate_cardiac_output(heart_rate: float, chamber: ChamberState) -> float:
    """(HeartRate × StrokeLength × CrossSectionArea) / 1000.

    Holds the previous value when heart rate or the resolved stroke length
    is zero.
    """
    stroke_len = chamber.effective_stroke_len
    if not heart_rate or not stroke_len:
        return chamber.cardiac_output
    return (heart_rate * stroke_len * PUMP_CROSS_SECTION_AREA) / 1000


class StateAggregator:
    """Gestor del estado agregado de un sistema.

    ÚNICO PUNTO DE ESCRITURA sobre `AggregatedState`: los intérpretes solo
    se invocan desde `update_state`.
    """

    def __init__(
        self,
        system_id: str = "",
        *,
        clock: Callable[[], float] = time.time,
        telemetry_timeout_s: float = DEFAULT_TELEMETRY_TIMEOUT_S,
        side_timeout_s: float = DEFAULT_SIDE_TIMEOUT_S,
        default_supply_voltage: float = DEFAULT_SUPPLY_VOLTAGE,
    ) -> None:
        self._clock = clock
        self._system_id = system_id
        self._telemetry_timeout_s = float(telemetry_timeout_s)
        self._side_timeout_s = float(side_timeout_s)
        self.default_supply_voltage = float(default_supply_voltage)

        self.state = self._initial_state()
        self.streaming_pressure = StreamingPressureBuffer()

        now = self._clock()
        self.last_telemetry_time = now
        self.left_heart_last_update = now
        self.right_heart_last_update = now

    @property
    def system_id(self) -> str:
        return self._system_id

    def _initial_state(self) -> AggregatedState:
        return AggregatedState(system_id=self._system_id, timestamp=int(self._clock() * 1000))

    def reset(self) -> None:
        """Restore defaults (test isolation; not used by the live service)."""
        self.state = self._initial_state()
        self.streaming_pressure = StreamingPressureBuffer()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def update_state(self, envelope: TelemetryEnvelope) -> bool:
        """Apply one validated frame.

        Returns:
            True if an interpreter handled the frame, False for an accepted
            type without interpreter (no-op).
        """
        now = self._clock()
        self.state.timestamp = int(envelope.timestamp_utc) if envelope.timestamp_utc else int(now * 1000)
        self.last_telemetry_time = now

        interpreter = get_interpreter(envelope.message_type)
        if interpreter is None:
            logger.debug("[AGGREGATOR] No interpreter for message type: %s", envelope.message_type)
            return False

        side = PumpSide.parse(envelope.pump_side)
        if envelope.pump_side is not None and side is None:
            logger.debug("[AGGREGATOR] Unknown pumpSide %r treated as absent", envelope.pump_side)

        if side in (PumpSide.LEFT, PumpSide.ALL):
            self.left_heart_last_update = now
        if side in (PumpSide.RIGHT, PumpSide.ALL):
            self.right_heart_last_update = now

        if side is PumpSide.ALL:
            interpreter(envelope.data, self, PumpSide.LEFT)
            interpreter(envelope.data, self, PumpSide.RIGHT)
        else:
            interpreter(envelope.data, self, side)

        self.update_cardiac_output()
        return True

    def update_cardiac_output(self) -> None:
        heart_rate = self.state.heart_rate
        self.state.left_heart.cardiac_output = calculate_cardiac_output(heart_rate, self.state.left_heart)
        self.state.right_heart.cardiac_output = calculate_cardiac_output(heart_rate, self.state.right_heart)

    def apply_status(self, status: Dict[str, Any]) -> None:
        """Fold the operational fields of a device status frame."""
        state = self.state
        if isinstance(status.get("OperationState"), str):
            state.operation_state = status["OperationState"]
        if isinstance(status.get("HeartStatus"), str):
            state.heart_status = status["HeartStatus"]
        if isinstance(status.get("FlowLimitState"), str):
            state.flow_limit_state = status["FlowLimitState"]
        flow_limit = status.get("FlowLimit")
        if isinstance(flow_limit, (int, float)) and not isinstance(flow_limit, bool):
            state.flow_limit = float(flow_limit)
        if "UseMedicalSensor" in status:
            state.use_medical_sensor = coerce_flag(status["UseMedicalSensor"])

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def availability(self) -> TelemetryAvailability:
        now = self._clock()
        return TelemetryAvailability(
            no_data_received=(now - self.last_telemetry_time) >= self._telemetry_timeout_s,
            left_heart_available=(now - self.left_heart_last_update) < self._side_timeout_s,
            right_heart_available=(now - self.right_heart_last_update) < self._side_timeout_s,
            last_telemetry_time=self.last_telemetry_time,
            left_heart_last_update=self.left_heart_last_update,
            right_heart_last_update=self.right_heart_last_update,
        )

    def get_state(self) -> Dict[str, Any]:
        """Snapshot of the aggregated state plus `_telemetryStatus`."""
        snapshot = self.state.to_dict()
        snapshot["_telemetryStatus"] = self.availability().to_dict()
        return snapshot


def coerce_flag(value: Any) -> bool:
    return value is True or value == "true"
