"""Validador de frames de telemetría.

Schema-shape checking of one raw text frame into a typed envelope. It
never raises: every failure comes back as a rejected `ValidationResult`
and callers drop the frame. The payload's inner fields are left to the
interpreters.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr, ValidationError, field_validator

from ..domain.message_types import SUPPORTED_MESSAGE_TYPES, TelemetrySource
from ...monitoring import metrics

logger = logging.getLogger(__name__)


class TelemetryEnvelope(BaseModel):
    """Envelope de una medición de telemetría.

    Formato esperado:
    {
        "messageType": "MotorCurrent",
        "timestampUtc": 1763720006423,
        "source": "CAN",
        "data": {"combinedCurrent": 0.125, "pumpSide": "Right"}
    }
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    message_type: StrictStr = Field(..., alias="messageType")
    timestamp_utc: Union[StrictInt, StrictFloat] = Field(..., alias="timestampUtc")
    source: TelemetrySource
    data: Dict[str, Any]

    @field_validator("message_type")
    @classmethod
    def validate_message_type(cls, v: str) -> str:
        if not v:
            raise ValueError("messageType is required")
        if v not in SUPPORTED_MESSAGE_TYPES:
            raise ValueError(f"Unsupported message type: {v}")
        return v

    @field_validator("timestamp_utc")
    @classmethod
    def validate_timestamp(cls, v):
        if isinstance(v, float) and not math.isfinite(v):
            raise ValueError("timestampUtc must be finite")
        return v

    @field_validator("source", mode="before")
    @classmethod
    def validate_source(cls, v):
        # Exact match only: no coercion from other types or casing
        if not isinstance(v, str) or v not in ("CAN", "UDP"):
            raise ValueError(f"source must be CAN or UDP, got {v!r}")
        return v

    @field_validator("data", mode="before")
    @classmethod
    def validate_data(cls, v):
        if not isinstance(v, dict):
            raise ValueError("data must be an object")
        return v

    @property
    def pump_side(self) -> Any:
        return self.data.get("pumpSide")


class RejectReason(str, Enum):
    MALFORMED_JSON = "malformed_json"
    NOT_AN_OBJECT = "not_an_object"
    UNSUPPORTED_TYPE = "unsupported_type"
    INVALID_ENVELOPE = "invalid_envelope"


@dataclass
class ValidationResult:
    """Resultado de validación."""

    valid: bool
    envelope: Optional[TelemetryEnvelope] = None
    reason: Optional[RejectReason] = None
    error: Optional[str] = None

    @classmethod
    def rejected(cls, reason: RejectReason, error: str) -> "ValidationResult":
        return cls(valid=False, reason=reason, error=error)


class FrameValidator:
    """Valida frames de telemetría entrantes.

    Responsabilidades:
    - JSON sintácticamente válido
    - Objeto en el nivel superior
    - messageType dentro de la lista cerrada
    - timestampUtc numérico, source CAN/UDP, data objeto
    """

    def parse(self, raw: Union[str, bytes]) -> ValidationResult:
        """Parse raw frame text into an envelope.

        Args:
            raw: Texto del frame tal como llegó por la conexión

        Returns:
            ValidationResult con envelope validado o rechazo
        """
        try:
            message = json.loads(raw)
        except (ValueError, TypeError, RecursionError) as e:
            return self._reject(RejectReason.MALFORMED_JSON, f"Malformed JSON: {e}")
        return self.validate(message)

    def validate(self, message: Any) -> ValidationResult:
        """Validate an already-decoded JSON value."""
        if not isinstance(message, dict):
            return self._reject(RejectReason.NOT_AN_OBJECT, "Frame is not an object")

        message_type = message.get("messageType")
        if isinstance(message_type, str) and message_type and message_type not in SUPPORTED_MESSAGE_TYPES:
            return self._reject(RejectReason.UNSUPPORTED_TYPE, f"Unsupported message type: {message_type}")

        try:
            envelope = TelemetryEnvelope.model_validate(message)
        except ValidationError as e:
            return self._reject(RejectReason.INVALID_ENVELOPE, _summarize(e))

        return ValidationResult(valid=True, envelope=envelope)

    def _reject(self, reason: RejectReason, error: str) -> ValidationResult:
        logger.warning("[VALIDATOR] Frame rejected (%s): %s", reason.value, error)
        metrics.FRAMES_REJECTED.labels(reason=reason.value).inc()
        return ValidationResult.rejected(reason, error)


def _summarize(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item.get("loc", ()))
        parts.append(f"{loc}: {item.get('msg')}")
    return "; ".join(parts)
