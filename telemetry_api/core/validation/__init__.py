"""Validation layer."""

from .frame_validator import FrameValidator, RejectReason, TelemetryEnvelope, ValidationResult

__all__ = ["FrameValidator", "RejectReason", "TelemetryEnvelope", "ValidationResult"]
