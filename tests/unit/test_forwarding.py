from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import pytest

from windscribe_port_sync.cache import PortCache
from windscribe_port_sync.errors import ForwardingError, TransportError
from windscribe_port_sync.forwarding import CachedPort, ForwardingLifecycleManager
from windscribe_port_sync.session import CredentialCache
from windscribe_port_sync.windscribe import ForwardingState
from tests.unit._fakes import FakeClock, FakeTransport, NOW, expired_session

logger = logging.getLogger("test")

NOW_TS = int(NOW.timestamp())


def make_manager(states=None, requested=None):
    clock = FakeClock()
    transport = FakeTransport(clock, states=states, requested=requested)
    cache = PortCache(clock=clock)
    sessions = CredentialCache(transport, cache, logger)
    return ForwardingLifecycleManager(transport, sessions, cache, logger), transport, cache


def test_requests_port_when_none_active():
    manager, transport, _ = make_manager(
        states=[ForwardingState(0, [])],
        requested=ForwardingState(1000, [51413, 51413]),
    )
    result = manager.reconcile_forwarding()

    assert result == CachedPort(
        port=51413,
        expires_at=datetime.fromtimestamp(1000 + 604800, tz=timezone.utc),
    )
    assert transport.calls.count("request") == 1


def test_mismatched_ports_are_deleted_before_requesting():
    manager, transport, cache = make_manager(
        states=[ForwardingState(500, [40000, 40001])],
        requested=ForwardingState(NOW_TS, [40002, 40002]),
    )
    cache.set("port", 40000, timedelta(days=1))

    result = manager.reconcile_forwarding()

    assert transport.calls.index("delete") < transport.calls.index("request")
    assert result.port == 40002


def test_mismatch_always_healed_across_passes():
    manager, transport, _ = make_manager(
        states=[
            ForwardingState(500, [40000, 40001]),
            ForwardingState(600, [40010, 40011]),
        ],
        requested=ForwardingState(NOW_TS, [40002, 40002]),
    )
    for _ in range(2):
        transport.calls.clear()
        result = manager.reconcile_forwarding()
        assert transport.calls.index("delete") < transport.calls.index("request")
        assert result.port == 40002


def test_failed_heal_is_fatal_and_skips_request():
    manager, transport, _ = make_manager(states=[ForwardingState(500, [40000, 40001])])
    transport.delete_error = TransportError("success = 0; No message")

    with pytest.raises(ForwardingError):
        manager.reconcile_forwarding()
    assert "request" not in transport.calls


def test_existing_port_is_kept_and_cached():
    manager, transport, _ = make_manager(states=[ForwardingState(NOW_TS, [7000, 7000])])
    result = manager.reconcile_forwarding()

    assert "request" not in transport.calls
    assert result.port == 7000
    assert result.expires_at == NOW + timedelta(days=7)
    assert manager.get_cached_port() == result


def test_expired_lease_is_not_cached():
    manager, _, _ = make_manager(
        states=[ForwardingState(0, [])],
        requested=ForwardingState(1000, [51413, 51413]),
    )
    manager.reconcile_forwarding()
    assert manager.get_cached_port() is None


def test_session_rejected_once_logs_in_again():
    manager, transport, _ = make_manager(states=[ForwardingState(NOW_TS, [7000, 7000])])
    transport.csrf_failures = [expired_session()]

    assert manager.reconcile_forwarding().port == 7000
    assert transport.logins == 2
    assert transport.calls[:4] == ["login", "csrf:token-1", "login", "csrf:token-2"]


def test_session_rejected_twice_fails_pass():
    manager, transport, _ = make_manager()
    transport.csrf_failures = [expired_session(), expired_session()]

    with pytest.raises(ForwardingError):
        manager.reconcile_forwarding()
    assert transport.logins == 2


def test_generic_csrf_failure_is_not_retried():
    manager, transport, _ = make_manager()
    transport.csrf_failures = [TransportError("Failed to find csrf token")]

    with pytest.raises(ForwardingError):
        manager.reconcile_forwarding()
    assert transport.logins == 1


def test_request_without_ports_is_an_error():
    manager, _, _ = make_manager(requested=ForwardingState(NOW_TS, []))
    with pytest.raises(ForwardingError):
        manager.reconcile_forwarding()


def test_cached_port_absent_without_any_pass():
    manager, _, _ = make_manager()
    assert manager.get_cached_port() is None
