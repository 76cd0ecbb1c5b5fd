"""Tests del registro de conexiones y parámetros de conexión."""

import pytest

from telemetry_api.core.domain.message_types import ConnectionRole
from telemetry_api.routing import ConnectionParams, ConnectionRegistry, clean_device_name, format_display_name

from conftest import make_connection

DEVICE = ConnectionRole.DEVICE
VIEWER = ConnectionRole.VIEWER


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


# =============================================================================
# CONNECTION PARAMETERS
# =============================================================================

class TestConnectionParams:

    def test_device_params(self):
        params = ConnectionParams.from_query(
            {"type": "device", "SystemId": "RH-7", "device-name": "Bench%20Rig?x=1"}, org_domain="realheart.se"
        )
        assert params.role is DEVICE
        assert params.system_id == "RH-7"
        assert params.label == "Bench Rig"

    def test_device_without_name(self):
        params = ConnectionParams.from_query({"type": "device"}, org_domain="realheart.se")
        assert params.system_id is None
        assert params.label == "Unknown Device"

    def test_viewer_params(self):
        params = ConnectionParams.from_query(
            {"systemId": "RH-7", "email": "jane.doe@realheart.se"}, org_domain="realheart.se"
        )
        assert params.role is VIEWER
        assert params.system_id == "RH-7"
        assert params.label == "Jane Doe"
        assert params.email == "jane.doe@realheart.se"

    def test_anonymous_viewer(self):
        params = ConnectionParams.from_query({}, org_domain="realheart.se")
        assert params.role is VIEWER
        assert params.system_id is None
        assert params.label == "Someone"

    @pytest.mark.parametrize(
        "email, expected",
        [
            ("john.smith@realheart.se", "John Smith"),
            ("john.smith@REALHEART.SE", "John Smith"),
            ("john@realheart.se", "john@realheart.se"),
            ("john.smith@example.com", "john.smith@example.com"),
            (None, "Someone"),
        ],
    )
    def test_format_display_name(self, email, expected):
        assert format_display_name(email, "realheart.se") == expected

    def test_clean_device_name(self):
        assert clean_device_name("  Pump%20A  ") == "Pump A"
        assert clean_device_name("") == "Unknown Device"
        assert clean_device_name("?only=query") == "Unknown Device"


# =============================================================================
# REGISTRATION
# =============================================================================

class TestRegistration:

    def test_viewer_without_systems_waits(self, registry):
        viewer = make_connection(VIEWER)
        registry.register(viewer)

        assert viewer in registry.waiting
        assert viewer.watching is None
        assert registry.systems() == []

    def test_device_creates_watch_set_and_claims_waiting(self, registry):
        v1, v2 = make_connection(VIEWER), make_connection(VIEWER)
        registry.register(v1)
        registry.register(v2)
        device = make_connection(DEVICE, "RH-1")

        registry.register(device)

        assert registry.systems() == ["RH-1"]
        assert registry.has_device("RH-1")
        assert registry.watchers("RH-1") == {v1, v2}
        assert registry.waiting == frozenset()
        assert v1.watching == "RH-1"

    def test_unpinned_viewer_gets_first_system(self, registry):
        registry.register(make_connection(DEVICE, "RH-2"))
        registry.register(make_connection(DEVICE, "RH-1"))
        viewer = make_connection(VIEWER)

        registry.register(viewer)

        assert viewer.watching == "RH-2"

    def test_pinned_viewer_watches_exactly_one_system(self, registry):
        registry.register(make_connection(DEVICE, "A"))
        registry.register(make_connection(DEVICE, "B"))
        viewer = make_connection(VIEWER, "A")
        registry.register(viewer)

        registry.watch(viewer, "B")

        assert viewer not in registry.watchers("A")
        assert viewer in registry.watchers("B")
        assert viewer.watching == "B"

    def test_viewer_pinned_to_unknown_system_creates_watch_set(self, registry):
        viewer = make_connection(VIEWER, "FUTURE")
        registry.register(viewer)

        assert registry.systems() == ["FUTURE"]
        assert not registry.has_device("FUTURE")

    def test_device_identified_later(self, registry):
        device = make_connection(DEVICE)
        registry.register(device)
        assert registry.systems() == []

        registry.register_device(device, "RH-9")

        assert registry.systems() == ["RH-9"]
        assert device.system_id == "RH-9"

    def test_viewer_promoted_to_device_leaves_watch_sets(self, registry):
        registry.register(make_connection(DEVICE, "A"))
        conn = make_connection(VIEWER)
        registry.register(conn)
        assert conn in registry.watchers("A")

        registry.register_device(conn, "B")

        assert conn.is_device
        assert conn not in registry.watchers("A")
        assert registry.systems() == ["A", "B"]

    def test_count_by_role(self, registry):
        registry.register(make_connection(DEVICE, "A"))
        registry.register(make_connection(VIEWER))
        registry.register(make_connection(VIEWER))

        assert registry.count_by_role() == {"device": 1, "viewer": 2}
        assert len(registry) == 3


# =============================================================================
# DISCONNECTION
# =============================================================================

class TestDisconnection:

    def test_device_leaving_moves_watchers_to_waiting(self, registry):
        device = make_connection(DEVICE, "A")
        viewer = make_connection(VIEWER, "A")
        registry.register(device)
        registry.register(viewer)

        torn_down = registry.unregister(device)

        assert torn_down == "A"
        assert registry.systems() == []
        assert viewer in registry.waiting
        assert viewer.watching is None

    def test_viewer_leaving_prunes_empty_deviceless_set(self, registry):
        viewer = make_connection(VIEWER, "GHOST")
        registry.register(viewer)

        assert registry.unregister(viewer) is None
        assert registry.systems() == []
        assert viewer not in registry

    def test_viewer_leaving_keeps_set_with_device(self, registry):
        registry.register(make_connection(DEVICE, "A"))
        viewer = make_connection(VIEWER, "A")
        registry.register(viewer)

        registry.unregister(viewer)

        assert registry.systems() == ["A"]
        assert registry.watchers("A") == frozenset()

    def test_second_device_keeps_system_alive(self, registry):
        d1, d2 = make_connection(DEVICE, "A"), make_connection(DEVICE, "A")
        registry.register(d1)
        registry.register(d2)

        assert registry.unregister(d1) is None
        assert registry.systems() == ["A"]
        assert registry.unregister(d2) == "A"

    def test_unregister_unknown_connection_is_harmless(self, registry):
        assert registry.unregister(make_connection(VIEWER)) is None
