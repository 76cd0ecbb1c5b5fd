"""Resource ceilings checked on a timer.

Crossing either ceiling is fatal on purpose: the process is restarted by its
supervisor instead of degrading unpredictably.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import psutil

from ..core.errors import ResourceLimitExceeded

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResourceUsage:
    memory_mb: float
    connections: int

    def to_dict(self) -> dict:
        return {"memory_mb": round(self.memory_mb, 1), "connections": self.connections}


class ResourceGuard:
    def __init__(
        self,
        *,
        memory_limit_mb: float,
        max_connections: int,
        connection_count: Callable[[], int],
        process: Optional[psutil.Process] = None,
    ) -> None:
        self._memory_limit_mb = float(memory_limit_mb)
        self._max_connections = int(max_connections)
        self._connection_count = connection_count
        self._process = process or psutil.Process()

    def usage(self) -> ResourceUsage:
        rss = self._process.memory_info().rss
        return ResourceUsage(memory_mb=rss / 1024 / 1024, connections=self._connection_count())

    def check(self) -> ResourceUsage:
        """Raise ResourceLimitExceeded when a ceiling is crossed."""
        usage = self.usage()
        if usage.memory_mb > self._memory_limit_mb:
            raise ResourceLimitExceeded(
                f"Memory threshold exceeded: {usage.memory_mb:.1f}MB > {self._memory_limit_mb:.0f}MB"
            )
        if usage.connections > self._max_connections:
            raise ResourceLimitExceeded(
                f"Too many WebSocket connections: {usage.connections} > {self._max_connections}"
            )
        logger.debug("[RESOURCES] memory=%.1fMB connections=%d", usage.memory_mb, usage.connections)
        return usage
