"""Apply the forwarded port to the torrent client."""

import logging

from .errors import ClientError, ReconcileError
from .forwarding import CachedPort
from .torrent_client import TorrentClient


class PortReconciler:
    """Pushes the desired port to the torrent client only when it differs."""

    def __init__(self, client: TorrentClient, logger: logging.Logger):
        self.client = client
        self.logger = logger

    def reconcile(self, desired: CachedPort | None) -> bool:
        """
        Bring the client's listening port in line with ``desired``.

        Returns True when the client was updated. With no desired port the
        client is left alone. A write that does not stick raises ReconcileError.
        """
        name = self.client.name
        try:
            current = self.client.get_port()

            if desired is None:
                self.logger.info(
                    f"Windscribe port is unknown, current {name} port is {current}"
                )
                return False

            if current == desired.port:
                self.logger.info(
                    f"Current {name} port ({current}) already matches windscribe port"
                )
                return False

            self.logger.info(
                f"Current {name} port ({current}) does not match windscribe port ({desired.port})"
            )
            self.client.update_port(desired.port)

            current = self.client.get_port()
        except ClientError as e:
            if e.is_auth_error:
                self.logger.error(f"{name} rejected the login, check the configured credentials")
                raise ReconcileError(f"{name} authentication failed: {e}") from e
            raise ReconcileError(f"{name} update failed: {e}") from e

        if current != desired.port:
            raise ReconcileError(f"Unable to set {name} port! Current {name} port: {current}")

        self.logger.info(f"{name} port updated to {desired.port}")
        return True
