from __future__ import annotations

import logging
from datetime import timedelta

import requests

from windscribe_port_sync.forwarding import CachedPort
from windscribe_port_sync.health import HealthServer, HealthState
from tests.unit._fakes import NOW

logger = logging.getLogger("test")


def test_health_state_starts_unhealthy():
    healthy, details = HealthState().get_status()
    assert not healthy
    assert details["reason"] == "Starting up"
    assert details["port"] is None


def test_health_endpoint_reports_active_port():
    state = HealthState()
    state.set_active_port(CachedPort(7000, NOW + timedelta(days=7)))
    state.set_next_wake(NOW + timedelta(days=7, minutes=1), "normal")
    state.set_healthy(True)

    server = HealthServer(0, state, logger)
    server.start()
    try:
        port = server._server.server_address[1]
        response = requests.get(f"http://127.0.0.1:{port}/health", timeout=5)
        missing = requests.get(f"http://127.0.0.1:{port}/metrics", timeout=5)
    finally:
        server.stop()

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["port"] == 7000
    assert body["next_wake_kind"] == "normal"
    assert missing.status_code == 404


def test_unhealthy_reports_reason():
    state = HealthState()
    state.set_healthy(False, "Last update failed, retry pending")
    healthy, details = state.get_status()
    assert not healthy
    assert details["reason"] == "Last update failed, retry pending"
