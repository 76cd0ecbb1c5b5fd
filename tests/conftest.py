"""Fixtures compartidos: reloj simulado, transporte en memoria, settings."""

from __future__ import annotations

import errno
import json
from dataclasses import replace
from typing import Any, Dict, List, Optional

import pytest

from common.config import Settings, get_settings
from telemetry_api.aggregation import StateAggregator
from telemetry_api.core.domain.message_types import ConnectionRole
from telemetry_api.hub import TelemetryHub
from telemetry_api.routing import ClientConnection


class FakeClock:
    """Manually advanced clock (seconds)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTransport:
    """Collects every text frame sent to it."""

    def __init__(self, fail_with: Optional[BaseException] = None):
        self.sent: List[str] = []
        self.fail_with = fail_with

    async def send_text(self, data: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(data)

    @property
    def messages(self) -> List[Any]:
        return [json.loads(s) for s in self.sent]

    def of_type(self, message_type: str) -> List[Dict[str, Any]]:
        return [m for m in self.messages if isinstance(m, dict) and m.get("type") == message_type]

    def states(self) -> List[Dict[str, Any]]:
        return [m for m in self.messages if isinstance(m, dict) and "HeartRate" in m]


class ExitRecorder:
    def __init__(self):
        self.reasons: List[str] = []

    def __call__(self, reason: str) -> None:
        self.reasons.append(reason)


def make_frame(message_type: str, timestamp: float, data: Optional[Dict[str, Any]] = None,
               source: str = "CAN") -> Dict[str, Any]:
    return {"messageType": message_type, "timestampUtc": timestamp, "source": source, "data": data or {}}


def make_connection(role: ConnectionRole, system_id: Optional[str] = None, label: str = "tester",
                    transport: Optional[FakeTransport] = None) -> ClientConnection:
    return ClientConnection(transport=transport or FakeTransport(), role=role, label=label, system_id=system_id)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return replace(
        get_settings(),
        buffer_capacity=100,
        stale_threshold_ms=5000,
        telemetry_timeout_s=30.0,
        side_timeout_s=10.0,
        default_supply_voltage=12.0,
        memory_limit_mb=400.0,
        max_connections=100,
        operator_email_domain="realheart.se",
        cors_allow_origins=("*",),
    )


@pytest.fixture
def aggregator(clock) -> StateAggregator:
    return StateAggregator("SYS-1", clock=clock)


@pytest.fixture
def exit_recorder() -> ExitRecorder:
    return ExitRecorder()


@pytest.fixture
def hub(settings, clock, exit_recorder) -> TelemetryHub:
    return TelemetryHub(settings, clock=clock, exit_process=exit_recorder)


@pytest.fixture
def broken_pipe() -> OSError:
    return OSError(errno.EPIPE, "Broken pipe")
