from __future__ import annotations

import logging
from datetime import timedelta

import pytest

from windscribe_port_sync.errors import ClientError, ReconcileError
from windscribe_port_sync.forwarding import CachedPort
from windscribe_port_sync.reconciler import PortReconciler
from tests.unit._fakes import FakeTorrentClient, NOW

logger = logging.getLogger("test")


def desired(port):
    return CachedPort(port=port, expires_at=NOW + timedelta(days=7))


def test_matching_port_is_not_updated():
    client = FakeTorrentClient(port=6881)
    assert PortReconciler(client, logger).reconcile(desired(6881)) is False
    assert client.updates == []


def test_update_happens_once_for_repeated_reconcile():
    client = FakeTorrentClient(port=6881)
    reconciler = PortReconciler(client, logger)

    assert reconciler.reconcile(desired(7000)) is True
    assert reconciler.reconcile(desired(7000)) is False
    assert client.updates == [7000]


def test_update_that_does_not_stick_raises():
    client = FakeTorrentClient(port=6881, sticky=False)
    with pytest.raises(ReconcileError):
        PortReconciler(client, logger).reconcile(desired(7000))
    assert client.updates == [7000]


def test_unknown_port_leaves_client_alone():
    client = FakeTorrentClient(port=6881)
    assert PortReconciler(client, logger).reconcile(None) is False
    assert client.updates == []
    assert client.reads == 1


def test_client_failure_becomes_reconcile_error():
    client = FakeTorrentClient()
    client.error = ClientError("Connection error")
    with pytest.raises(ReconcileError):
        PortReconciler(client, logger).reconcile(desired(7000))


def test_rejected_login_is_reported_as_authentication_failure(caplog):
    client = FakeTorrentClient()
    client.error = ClientError("Failed to log into deluge", is_auth_error=True)

    with caplog.at_level(logging.ERROR, logger="test"):
        with pytest.raises(ReconcileError, match="authentication failed"):
            PortReconciler(client, logger).reconcile(desired(7000))

    assert "check the configured credentials" in caplog.text


def test_connection_failure_is_not_reported_as_authentication_failure(caplog):
    client = FakeTorrentClient()
    client.error = ClientError("Connection error")

    with caplog.at_level(logging.ERROR, logger="test"):
        with pytest.raises(ReconcileError, match="update failed"):
            PortReconciler(client, logger).reconcile(desired(7000))

    assert "credentials" not in caplog.text
