"""Tests del buffer de ordenamiento."""

import pytest

from telemetry_api.aggregation import BufferedFrame, OrderingBuffer
from telemetry_api.core.validation import TelemetryEnvelope

from conftest import make_frame


def frame(timestamp, message_type="CPUData", data=None, system_id="SYS-1"):
    envelope = TelemetryEnvelope.model_validate(make_frame(message_type, timestamp, data or {"cpuLoad": timestamp}))
    return BufferedFrame(system_id, envelope)


class TestOrdering:

    def test_drain_applies_in_timestamp_order(self, aggregator):
        buffer = OrderingBuffer()
        for ts in (1500, 500, 1000):
            buffer.enqueue(frame(ts))
        seen = []

        def apply(f):
            seen.append(f.envelope.timestamp_utc)
            aggregator.update_state(f.envelope)

        applied = buffer.drain(apply)

        assert applied == 3
        assert seen == [500, 1000, 1500]
        assert len(buffer) == 0
        assert aggregator.get_state()["Timestamp"] == 1500
        assert aggregator.state.status.cpu_load.display_text == "1500"

    def test_equal_timestamps_keep_arrival_order(self):
        buffer = OrderingBuffer()
        buffer.enqueue(frame(100, data={"cpuLoad": 1}))
        buffer.enqueue(frame(100, data={"cpuLoad": 2}))
        seen = []

        buffer.drain(lambda f: seen.append(f.envelope.data["cpuLoad"]))

        assert seen == [1, 2]

    def test_order_holds_only_within_one_cycle(self):
        buffer = OrderingBuffer()
        seen = []
        buffer.enqueue(frame(2000))
        buffer.drain(lambda f: seen.append(f.envelope.timestamp_utc))
        buffer.enqueue(frame(1000))
        buffer.drain(lambda f: seen.append(f.envelope.timestamp_utc))

        assert seen == [2000, 1000]

    def test_empty_drain(self):
        assert OrderingBuffer().drain(lambda f: None) == 0


class TestCapacity:

    def test_full_buffer_evicts_oldest_arrival(self):
        buffer = OrderingBuffer(capacity=3)
        for ts in (10, 20, 30):
            assert buffer.enqueue(frame(ts)) is None

        evicted = buffer.enqueue(frame(5))

        assert evicted is not None
        assert evicted.envelope.timestamp_utc == 10
        assert len(buffer) == 3
        assert buffer.stats.evicted == 1
        seen = []
        buffer.drain(lambda f: seen.append(f.envelope.timestamp_utc))
        assert seen == [5, 20, 30]

    def test_discard_drops_only_that_system(self):
        buffer = OrderingBuffer()
        buffer.enqueue(frame(1, system_id="A"))
        buffer.enqueue(frame(2, system_id="B"))
        buffer.enqueue(frame(3, system_id="A"))

        assert buffer.discard("A") == 2
        assert buffer.discard("A") == 0
        seen = []
        buffer.drain(lambda f: seen.append(f.system_id))
        assert seen == ["B"]

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            OrderingBuffer(capacity=0)


class TestFailures:

    def test_failing_frame_does_not_stop_the_cycle(self):
        buffer = OrderingBuffer()
        for ts in (1, 2, 3):
            buffer.enqueue(frame(ts))
        seen = []

        def apply(f):
            if f.envelope.timestamp_utc == 2:
                raise RuntimeError("boom")
            seen.append(f.envelope.timestamp_utc)

        applied = buffer.drain(apply)

        assert applied == 2
        assert seen == [1, 3]
        assert buffer.stats.failed == 1
        assert len(buffer) == 0
