"""Registro de conexiones y enrutamiento por sistema.

Tracks which connections are devices (data sources keyed by system id) and
which are viewers (data sinks), and keeps one watch set per system id.

Reglas:
- A viewer belongs to at most one watch set.
- A watch set exists while it has watchers or a registered device.
- Viewers without a system wait in the waiting set and receive every
  system's updates until a device shows up and claims them.
"""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, List, Optional, Set

from ..core.domain.message_types import ConnectionRole
from ..monitoring import metrics
from .connections import ClientConnection

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    def __init__(self) -> None:
        self._connections: Set[ClientConnection] = set()
        # system_id -> viewers; dict order doubles as registration order
        self._watch_sets: Dict[str, Set[ClientConnection]] = {}
        self._devices: Dict[str, Set[ClientConnection]] = {}
        self._waiting: Set[ClientConnection] = set()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, conn: ClientConnection) -> bool:
        return conn in self._connections

    @property
    def connections(self) -> FrozenSet[ClientConnection]:
        return frozenset(self._connections)

    @property
    def waiting(self) -> FrozenSet[ClientConnection]:
        return frozenset(self._waiting)

    def systems(self) -> List[str]:
        return sorted(self._watch_sets)

    def has_device(self, system_id: str) -> bool:
        return bool(self._devices.get(system_id))

    def first_available_system(self) -> Optional[str]:
        return next(iter(self._watch_sets), None)

    def watchers(self, system_id: str) -> FrozenSet[ClientConnection]:
        return frozenset(self._watch_sets.get(system_id, ()))

    def unassigned_viewers(self) -> FrozenSet[ClientConnection]:
        return frozenset(c for c in self._connections if c.is_viewer and c.watching is None)

    def state_recipients(self, system_id: str) -> FrozenSet[ClientConnection]:
        """Watchers of `system_id` plus every viewer not watching anything."""
        return self.watchers(system_id) | self.unassigned_viewers()

    def count_by_role(self) -> Dict[str, int]:
        counts = {role.value: 0 for role in ConnectionRole}
        for conn in self._connections:
            counts[conn.role.value] += 1
        return counts

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def register(self, conn: ClientConnection) -> None:
        """Add a new connection and place it according to its role."""
        self._connections.add(conn)
        if conn.is_device:
            if conn.system_id:
                self.register_device(conn, conn.system_id)
        elif conn.system_id:
            self.watch(conn, conn.system_id)
        else:
            first = self.first_available_system()
            if first is not None:
                self.watch(conn, first)
            else:
                self._waiting.add(conn)
                logger.info("[REGISTRY] No systems available, %r added to waiting list", conn)
        self._update_gauges()

    def register_device(self, conn: ClientConnection, system_id: str) -> List[ClientConnection]:
        """Record `conn` as the source of `system_id` and claim waiting viewers.

        Returns:
            Viewers migrated from the waiting set onto `system_id`.
        """
        self._connections.add(conn)
        # a connection that identifies itself mid-session stops being a viewer
        self._waiting.discard(conn)
        for other_id in list(self._watch_sets):
            self._discard_watcher(conn, other_id)
        conn.role = ConnectionRole.DEVICE
        conn.system_id = system_id
        self._devices.setdefault(system_id, set()).add(conn)
        self._watch_sets.setdefault(system_id, set())
        logger.info("[REGISTRY] Device registered as system: %s", system_id)

        migrated = list(self._waiting)
        if migrated:
            logger.info("[REGISTRY] Connecting %d waiting clients to %s", len(migrated), system_id)
        for viewer in migrated:
            self.watch(viewer, system_id)
        self._waiting.clear()
        self._update_gauges()
        return migrated

    def watch(self, viewer: ClientConnection, system_id: str) -> None:
        """Move `viewer` into `system_id`'s watch set, out of every other one."""
        for other_id in list(self._watch_sets):
            if other_id != system_id:
                self._discard_watcher(viewer, other_id)
        self._watch_sets.setdefault(system_id, set()).add(viewer)
        viewer.watching = system_id
        self._waiting.discard(viewer)

    def unregister(self, conn: ClientConnection) -> Optional[str]:
        """Remove a connection from every set it belongs to.

        Returns:
            The system id torn down because its last device left, if any.
        """
        self._connections.discard(conn)
        self._waiting.discard(conn)
        for system_id in list(self._watch_sets):
            self._discard_watcher(conn, system_id)

        torn_down = None
        if conn.is_device and conn.system_id:
            devices = self._devices.get(conn.system_id)
            if devices is not None:
                devices.discard(conn)
                if not devices:
                    del self._devices[conn.system_id]
                    torn_down = conn.system_id
                    self._tear_down(conn.system_id)
        self._update_gauges()
        return torn_down

    def _tear_down(self, system_id: str) -> None:
        watchers = self._watch_sets.pop(system_id, set())
        for viewer in watchers:
            viewer.watching = None
            self._waiting.add(viewer)
        logger.info(
            "[REGISTRY] System %s disconnected, moved %d clients to waiting list",
            system_id,
            len(watchers),
        )

    def _discard_watcher(self, conn: ClientConnection, system_id: str) -> None:
        watchers = self._watch_sets.get(system_id)
        if watchers is None or conn not in watchers:
            return
        watchers.discard(conn)
        if conn.watching == system_id:
            conn.watching = None
        if not watchers and not self._devices.get(system_id):
            del self._watch_sets[system_id]

    def _update_gauges(self) -> None:
        for role, count in self.count_by_role().items():
            metrics.CONNECTIONS.labels(role=role).set(count)
