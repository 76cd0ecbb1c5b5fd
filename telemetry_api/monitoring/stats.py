"""Statistics for the telemetry hub."""

from __future__ import annotations


class HubStats:
    """Contadores del hub de telemetría."""

    def __init__(self):
        self.received = 0
        self.accepted = 0
        self.rejected = 0
        self.applied = 0
        self.evicted = 0
        self.operator_messages = 0
        self.stale_rebroadcasts = 0
        self.last_frame_at: float = 0

    def __str__(self) -> str:
        return (
            f"Stats: received={self.received} accepted={self.accepted} "
            f"rejected={self.rejected} applied={self.applied} evicted={self.evicted}"
        )

    def to_dict(self) -> dict:
        """Convert stats to dictionary."""
        return {
            "received": self.received,
            "accepted": self.accepted,
            "rejected": self.rejected,
            "applied": self.applied,
            "evicted": self.evicted,
            "operator_messages": self.operator_messages,
            "stale_rebroadcasts": self.stale_rebroadcasts,
            "last_frame_at": self.last_frame_at,
        }
