"""Telemetry hub: one object wiring the pipeline for the whole service.

Frame → FrameValidator → OrderingBuffer → (drain tick) → StateAggregator
→ BroadcastEngine → viewers registered in the ConnectionRegistry.

Everything here runs on the event loop; no locking.
"""

from __future__ import annotations

import copy
import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from common.config import Settings

from .aggregation import BufferedFrame, OrderingBuffer, StateAggregator
from .aggregation.aggregator import coerce_flag
from .core.errors import FatalTransportError, ResourceLimitExceeded, terminate_process
from .core.validation import FrameValidator, RejectReason
from .monitoring import metrics
from .monitoring.resources import ResourceGuard, ResourceUsage
from .monitoring.stats import HubStats
from .routing import BroadcastEngine, ClientConnection, ConnectionRegistry, format_display_name

logger = logging.getLogger(__name__)

# Key for telemetry from a device that never identified itself
UNIDENTIFIED_SYSTEM = ""

SCOPE_ALL = "all"
SCOPE_SYSTEM = "system"


def _looks_like_telemetry(message: Any) -> bool:
    """Envelope-shaped objects go through the validator, even when broken."""
    if not isinstance(message, dict):
        return False
    return "messageType" in message or ("timestampUtc" in message and "source" in message)


class TelemetryHub:
    def __init__(
        self,
        settings: Settings,
        *,
        clock: Callable[[], float] = time.time,
        exit_process: Callable[[str], None] = terminate_process,
        resource_guard: Optional[ResourceGuard] = None,
    ) -> None:
        self.settings = settings
        self._clock = clock
        self._exit_process = exit_process

        self.registry = ConnectionRegistry()
        self.broadcaster = BroadcastEngine(self.registry)
        self.validator = FrameValidator()
        self.buffer = OrderingBuffer(settings.buffer_capacity)
        self.stats = HubStats()
        self.resources = resource_guard or ResourceGuard(
            memory_limit_mb=settings.memory_limit_mb,
            max_connections=settings.max_connections,
            connection_count=lambda: len(self.registry),
        )

        self._aggregators: Dict[str, StateAggregator] = {}
        self._last_snapshots: Dict[str, Dict[str, Any]] = {}
        self._last_applied: Dict[str, float] = {}

    # ------------------------------------------------------------------
    # Aggregators
    # ------------------------------------------------------------------

    def aggregator_for(self, system_id: str) -> StateAggregator:
        """Lazily create the aggregated state for a system."""
        aggregator = self._aggregators.get(system_id)
        if aggregator is None:
            aggregator = StateAggregator(
                system_id,
                clock=self._clock,
                telemetry_timeout_s=self.settings.telemetry_timeout_s,
                side_timeout_s=self.settings.side_timeout_s,
                default_supply_voltage=self.settings.default_supply_voltage,
            )
            self._aggregators[system_id] = aggregator
            logger.info("[HUB] Created aggregated state for system=%r", system_id)
        return aggregator

    def get_aggregator(self, system_id: str) -> Optional[StateAggregator]:
        return self._aggregators.get(system_id)

    def _drop_system(self, system_id: str) -> None:
        self.buffer.discard(system_id)
        self._aggregators.pop(system_id, None)
        self._last_snapshots.pop(system_id, None)
        self._last_applied.pop(system_id, None)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self, conn: ClientConnection) -> None:
        self.registry.register(conn)
        logger.info("[HUB] Connected %r (total=%d)", conn, len(self.registry))
        if conn.is_device and conn.system_id:
            self.aggregator_for(conn.system_id)
        await self.broadcaster.broadcast_systems_list()
        await self.broadcaster.relay_operator_message(None, conn.label, f"{conn.label} just connected")

    async def disconnect(self, conn: ClientConnection) -> None:
        if conn not in self.registry:
            return
        torn_down = self.registry.unregister(conn)
        logger.info("[HUB] Disconnected %r (total=%d)", conn, len(self.registry))
        if torn_down is not None:
            self._drop_system(torn_down)
        await self.broadcaster.broadcast_systems_list()

    # ------------------------------------------------------------------
    # Inbound frames
    # ------------------------------------------------------------------

    async def handle_frame(self, conn: ClientConnection, raw: str) -> None:
        """Route one inbound text frame by its shape."""
        try:
            message = json.loads(raw)
        except RecursionError:
            self.stats.rejected += 1
            metrics.FRAMES_REJECTED.labels(reason=RejectReason.MALFORMED_JSON.value).inc()
            logger.warning("[HUB] Dropped frame from %r: nesting too deep (%d chars)", conn, len(raw))
            return
        except ValueError:
            await self._relay_free_text(conn, raw)
            return

        if _looks_like_telemetry(message):
            self.accept_telemetry(conn, message)
        elif isinstance(message, list):
            await self._handle_system_messages(conn, message)
        elif isinstance(message, dict) and message.get("type") == "deviceMessage":
            await self._handle_operator_message(conn, message)
        elif isinstance(message, dict) and message.get("SystemId"):
            await self._handle_status(conn, message)
        else:
            metrics.FRAMES_RECEIVED.labels(kind="ignored").inc()
            logger.debug("[HUB] Ignoring frame from %r: %.80s", conn, raw)

    def accept_telemetry(self, conn: ClientConnection, message: Any) -> bool:
        """Validate and buffer one telemetry frame; False when rejected."""
        metrics.FRAMES_RECEIVED.labels(kind="telemetry").inc()
        self.stats.received += 1
        self.stats.last_frame_at = self._clock()

        result = self.validator.validate(message)
        if not result.valid:
            self.stats.rejected += 1
            return False

        system_id = conn.system_id if conn.is_device and conn.system_id else UNIDENTIFIED_SYSTEM
        evicted = self.buffer.enqueue(BufferedFrame(system_id, result.envelope, self._clock()))
        if evicted is not None:
            self.stats.evicted += 1
        self.stats.accepted += 1
        return True

    async def _relay_free_text(self, conn: ClientConnection, text: str) -> None:
        metrics.FRAMES_RECEIVED.labels(kind="free_text").inc()
        self.stats.operator_messages += 1
        await self.broadcaster.relay_operator_message(conn, conn.label, text)

    async def _handle_operator_message(self, conn: ClientConnection, message: Dict[str, Any]) -> None:
        metrics.FRAMES_RECEIVED.labels(kind="operator").inc()
        self.stats.operator_messages += 1

        email = message.get("email")
        if isinstance(email, str) and email:
            username = format_display_name(email, self.settings.operator_email_domain)
        else:
            username = conn.label

        recipients = None
        if message.get("scope") == SCOPE_SYSTEM:
            system_id = message.get("systemId") or conn.watching or conn.system_id
            recipients = set(self.registry.watchers(system_id)) if system_id else set()
            recipients.add(conn)
        await self.broadcaster.relay_operator_message(conn, username, message.get("message"), recipients)

    async def _handle_system_messages(self, conn: ClientConnection, entries: List[Any]) -> None:
        if not entries or not isinstance(entries[0], dict) or entries[0].get("Type") != "systemMessage":
            metrics.FRAMES_RECEIVED.labels(kind="ignored").inc()
            return
        metrics.FRAMES_RECEIVED.labels(kind="system_messages").inc()
        if not (conn.is_device and conn.system_id):
            logger.debug("[HUB] System messages from unidentified %r dropped", conn)
            return
        await self.broadcaster.relay_system_messages(conn, conn.system_id, entries)

    async def _handle_status(self, conn: ClientConnection, message: Dict[str, Any]) -> None:
        """Device status frame: identification, operational fields, messages."""
        metrics.FRAMES_RECEIVED.labels(kind="status").inc()
        system_id = str(message["SystemId"])

        if not (conn.is_device and conn.system_id):
            self.registry.register_device(conn, system_id)
            await self.broadcaster.broadcast_systems_list()
        elif conn.system_id != system_id:
            logger.warning(
                "[HUB] Status for %s on connection registered as %s; using connection identity",
                system_id,
                conn.system_id,
            )
            system_id = conn.system_id

        self.aggregator_for(system_id).apply_status(message)

        status = dict(message)
        if "UseMedicalSensor" in status:
            status["UseMedicalSensor"] = coerce_flag(status["UseMedicalSensor"])
        await self.broadcaster.forward_status(conn, system_id, status)

        entries = message.get("Messages")
        if isinstance(entries, list) and entries:
            await self.broadcaster.relay_system_messages(conn, system_id, entries)

    # ------------------------------------------------------------------
    # Periodic work
    # ------------------------------------------------------------------

    async def drain_buffer(self) -> int:
        """Apply buffered frames in timestamp order, then broadcast each snapshot."""
        snapshots: List[Tuple[str, Dict[str, Any]]] = []

        def apply(frame: BufferedFrame) -> None:
            # identified systems only live while a device is registered
            if frame.system_id and not self.registry.has_device(frame.system_id):
                logger.debug("[HUB] Skipping frame of torn-down system=%r", frame.system_id)
                return
            aggregator = self.aggregator_for(frame.system_id)
            if not aggregator.update_state(frame.envelope):
                return
            metrics.FRAMES_APPLIED.labels(message_type=frame.envelope.message_type).inc()
            snapshot = aggregator.get_state()
            self._last_snapshots[frame.system_id] = snapshot
            self._last_applied[frame.system_id] = self._clock()
            snapshots.append((frame.system_id, snapshot))

        applied = self.buffer.drain(apply)
        self.stats.applied += applied

        for system_id, snapshot in snapshots:
            await self.broadcaster.publish_state(system_id, json.dumps(snapshot))
        return applied

    async def rebroadcast_stale(self) -> int:
        """Re-send the last snapshot of every quiet system to its watchers.

        The copy carries `Timestamp` = now and fresh availability flags.
        """
        now = self._clock()
        threshold_s = self.settings.stale_threshold_ms / 1000.0
        sent = 0
        for system_id, snapshot in list(self._last_snapshots.items()):
            if now - self._last_applied.get(system_id, now) < threshold_s:
                continue
            if not self.registry.watchers(system_id):
                continue
            stale = copy.deepcopy(snapshot)
            stale["Timestamp"] = int(now * 1000)
            aggregator = self._aggregators.get(system_id)
            if aggregator is not None:
                stale["_telemetryStatus"] = aggregator.availability().to_dict()
            await self.broadcaster.publish_stale(system_id, json.dumps(stale))
            self.stats.stale_rebroadcasts += 1
            sent += 1
        return sent

    def check_resources(self) -> Optional[ResourceUsage]:
        try:
            return self.resources.check()
        except ResourceLimitExceeded as e:
            self.fail(str(e))
            return None

    def fail(self, reason: str) -> None:
        logger.critical("[HUB] Fatal condition: %s", reason)
        self._exit_process(reason)

    def on_fatal_transport(self, error: FatalTransportError) -> None:
        self.fail(f"Fatal transport error: {error}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def health(self) -> Dict[str, Any]:
        return {
            "status": "ok",
            "timestamp": int(self._clock() * 1000),
            "connections": self.registry.count_by_role(),
            "systems": self.registry.systems(),
            "stats": self.stats.to_dict(),
        }
