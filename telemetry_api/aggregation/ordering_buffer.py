"""Buffer de ordenamiento por timestamp.

Frames from the CAN and UDP gateways converge on one connection out of
order. The buffer holds them until the next drain tick, then applies them
sorted by `timestampUtc`. Ordering holds within one drain cycle only; a late
frame older than material already applied in a previous cycle is applied
late rather than held back.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Optional

from ..core.validation.frame_validator import TelemetryEnvelope
from ..monitoring import metrics

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100


@dataclass(frozen=True)
class BufferedFrame:
    system_id: str
    envelope: TelemetryEnvelope
    received_at: float = field(default_factory=time.time)


@dataclass
class BufferStats:
    """Estadísticas del buffer."""
    enqueued: int = 0
    applied: int = 0
    evicted: int = 0
    failed: int = 0
    current_size: int = 0
    capacity: int = 0


class OrderingBuffer:
    """Cola acotada; al llenarse descarta el frame más antiguo (por llegada)."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = int(capacity)
        self._frames: Deque[BufferedFrame] = deque()
        self._stats = BufferStats(capacity=self._capacity)

    def __len__(self) -> int:
        return len(self._frames)

    @property
    def stats(self) -> BufferStats:
        return self._stats

    def enqueue(self, frame: BufferedFrame) -> Optional[BufferedFrame]:
        """Add a frame; returns the evicted frame when the buffer was full."""
        evicted = None
        if len(self._frames) >= self._capacity:
            evicted = self._frames.popleft()
            self._stats.evicted += 1
            metrics.BUFFER_EVICTIONS.inc()
            logger.debug(
                "[BUFFER] Full (%d), evicted %s ts=%s",
                self._capacity,
                evicted.envelope.message_type,
                evicted.envelope.timestamp_utc,
            )
        self._frames.append(frame)
        self._stats.enqueued += 1
        self._stats.current_size = len(self._frames)
        metrics.BUFFER_SIZE.set(len(self._frames))
        return evicted

    def discard(self, system_id: str) -> int:
        """Drop every buffered frame of `system_id`; returns how many."""
        kept = deque(f for f in self._frames if f.system_id != system_id)
        dropped = len(self._frames) - len(kept)
        if dropped:
            self._frames = kept
            self._stats.current_size = len(self._frames)
            metrics.BUFFER_SIZE.set(len(self._frames))
            logger.debug("[BUFFER] Discarded %d frames of system=%r", dropped, system_id)
        return dropped

    def drain(self, apply: Callable[[BufferedFrame], None]) -> int:
        """Apply every buffered frame in ascending `timestampUtc` order.

        Frames are removed as they are applied. A frame whose application
        raises is logged and skipped; the rest of the cycle continues.

        Returns:
            Number of frames applied without error.
        """
        if not self._frames:
            return 0

        # sorted() is stable: equal timestamps keep arrival order
        ordered = deque(sorted(self._frames, key=lambda f: f.envelope.timestamp_utc))
        self._frames.clear()

        applied = 0
        while ordered:
            frame = ordered.popleft()
            try:
                apply(frame)
                applied += 1
            except Exception as e:
                self._stats.failed += 1
                logger.exception(
                    "[BUFFER] Error applying %s for system=%r: %s",
                    frame.envelope.message_type,
                    frame.system_id,
                    e,
                )

        self._stats.applied += applied
        self._stats.current_size = len(self._frames)
        metrics.BUFFER_SIZE.set(len(self._frames))
        return applied
