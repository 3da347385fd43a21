"""Common interface for the torrent clients whose listening port we manage."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from .config import Config


@dataclass
class ConnectionInfo:
    """Which daemon/instance the client is talking to."""

    host_id: str | None
    version: str | None = None


class TorrentClient(ABC):
    """
    A torrent client that exposes a single listening port.

    Implementations authenticate lazily: every public call makes sure the
    client is logged in and connected before doing its work, so callers never
    need an explicit login step. Failures raise ClientError.
    """

    name = "torrent client"

    @abstractmethod
    def update_connection(self) -> ConnectionInfo:
        """Log in if needed and select the host whose port is managed."""

    @abstractmethod
    def get_port(self) -> int:
        """Return the current listening port, 0 if the client picks one at random."""

    @abstractmethod
    def update_port(self, port: int) -> None:
        """Set the listening port and turn off random port selection."""

    def check_ready(self) -> ConnectionInfo:
        """Confirm the client answers and accepts our credentials."""
        return self.update_connection()


def create_torrent_client(config: Config, logger: logging.Logger) -> TorrentClient:
    """Build the torrent client selected by TORRENT_CLIENT."""
    if config.torrent_client == "qbittorrent":
        from .qbittorrent import QBittorrentClient

        return QBittorrentClient(config, logger)

    if config.torrent_client == "deluge":
        from .deluge import DelugeClient

        return DelugeClient(config, logger)

    if config.torrent_client == "transmission":
        from .transmission import TransmissionClient

        return TransmissionClient(config, logger)

    if config.torrent_client == "exec":
        from .exec_client import ExecClient

        return ExecClient(config, logger)

    raise ValueError(f"Unsupported torrent client: {config.torrent_client}")
