"""Tests de clasificación de errores fatales, límites de recursos y tareas periódicas."""

import asyncio
import errno
from types import SimpleNamespace

import pytest

from telemetry_api.core.errors import FatalTransportError, ResourceLimitExceeded, is_fatal_transport_error
from telemetry_api.monitoring.resources import ResourceGuard
from telemetry_api.scheduler import PeriodicTask, build_scheduler


class FakeProcess:
    def __init__(self, rss_mb: float):
        self.rss = int(rss_mb * 1024 * 1024)

    def memory_info(self):
        return SimpleNamespace(rss=self.rss)


# =============================================================================
# FATAL CLASSIFICATION
# =============================================================================

class TestFatalClassification:

    @pytest.mark.parametrize("code", [errno.ECONNRESET, errno.EPIPE])
    def test_fatal_errnos(self, code):
        assert is_fatal_transport_error(OSError(code, "boom")) is True

    def test_other_errors_are_not_fatal(self):
        assert is_fatal_transport_error(OSError(errno.ETIMEDOUT, "slow")) is False
        assert is_fatal_transport_error(RuntimeError("closed")) is False

    def test_cause_chain_is_followed(self, broken_pipe):
        try:
            try:
                raise broken_pipe
            except OSError as e:
                raise RuntimeError("send failed") from e
        except RuntimeError as wrapped:
            assert is_fatal_transport_error(wrapped) is True

    def test_fatal_transport_error_is_fatal(self):
        assert is_fatal_transport_error(FatalTransportError("x")) is True


# =============================================================================
# RESOURCE GUARD
# =============================================================================

class TestResourceGuard:

    def test_within_limits(self):
        guard = ResourceGuard(
            memory_limit_mb=400, max_connections=100, connection_count=lambda: 3, process=FakeProcess(120)
        )
        usage = guard.check()
        assert usage.connections == 3
        assert usage.memory_mb == pytest.approx(120.0)

    def test_memory_ceiling(self):
        guard = ResourceGuard(
            memory_limit_mb=400, max_connections=100, connection_count=lambda: 3, process=FakeProcess(401)
        )
        with pytest.raises(ResourceLimitExceeded, match="Memory"):
            guard.check()

    def test_connection_ceiling(self):
        guard = ResourceGuard(
            memory_limit_mb=400, max_connections=2, connection_count=lambda: 3, process=FakeProcess(10)
        )
        with pytest.raises(ResourceLimitExceeded, match="connections"):
            guard.check()


# =============================================================================
# PERIODIC TASKS
# =============================================================================

class TestPeriodicTask:

    @pytest.mark.asyncio
    async def test_failing_tick_is_logged_and_counted(self):
        fatal = []

        def tick():
            raise RuntimeError("boom")

        task = PeriodicTask("t", 1.0, tick, on_fatal=fatal.append)
        await task.run_once()

        assert task.errors == 1
        assert fatal == []

    @pytest.mark.asyncio
    async def test_fatal_tick_calls_on_fatal(self):
        fatal = []

        async def tick():
            raise FatalTransportError("EPIPE")

        task = PeriodicTask("drain", 1.0, tick, on_fatal=fatal.append)
        await task.run_once()

        assert fatal == ["drain: EPIPE"]

    @pytest.mark.asyncio
    async def test_loop_runs_until_stopped(self):
        calls = []
        task = PeriodicTask("t", 0.01, lambda: calls.append(1), on_fatal=lambda reason: None)

        task.start()
        await asyncio.sleep(0.1)
        await task.stop()

        assert calls
        assert task.running is False

    def test_interval_must_be_positive(self):
        with pytest.raises(ValueError):
            PeriodicTask("t", 0, lambda: None, on_fatal=lambda reason: None)

    def test_service_schedules_three_timers(self, hub):
        tasks = build_scheduler(hub).tasks
        assert [t.name for t in tasks] == ["buffer-drain", "stale-rebroadcast", "resource-check"]
        assert tasks[0].interval_s == pytest.approx(hub.settings.buffer_drain_interval_ms / 1000.0)
