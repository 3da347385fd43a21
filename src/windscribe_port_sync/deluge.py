"""Deluge Web UI JSON-RPC client."""

import logging
from typing import Any

import requests

from .config import Config
from .errors import ClientError
from .torrent_client import ConnectionInfo, TorrentClient

CONNECTED_STATUSES = ("Connected", "Online")


class DelugeClient(TorrentClient):
    """
    Client for the Deluge Web UI.

    The Web UI can manage several daemons. The managed host is DELUGE_HOST_ID
    when set, otherwise the only host the Web UI knows about; with more than one
    host and no id configured the client refuses to guess.
    """

    name = "Deluge"

    def __init__(
        self,
        config: Config,
        logger: logging.Logger,
        session: requests.Session | None = None,
    ):
        self.config = config
        self.logger = logger
        self._session = session or requests.Session()
        self._url = f"{config.deluge_url}/json"
        self._request_id = 0
        self.current_host: str | None = None

    def _rpc(self, method: str, params: list | None = None) -> Any:
        """Call a JSON-RPC method and return its result."""
        self._request_id += 1
        payload = {"method": method, "params": params or [], "id": self._request_id}

        self.logger.debug(f"POST {self._url} ({method})")

        try:
            response = self._session.post(
                self._url,
                json=payload,
                timeout=self.config.request_timeout,
                verify=self.config.deluge_verify_ssl,
            )
        except requests.exceptions.Timeout:
            raise ClientError(f"Deluge {method} timed out")
        except requests.exceptions.ConnectionError as e:
            raise ClientError(f"Connection error: {e}")
        except requests.exceptions.RequestException as e:
            raise ClientError(f"Deluge {method} failed: {e}")

        self.logger.debug(f"Response: {response.status_code}")

        if response.status_code != 200:
            raise ClientError(f"Deluge {method} failed: {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise ClientError(f"Invalid response format: {e}")

        if not isinstance(data, dict):
            raise ClientError(f"Deluge {method} returned unexpected payload")

        error = data.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else error
            raise ClientError(f"Deluge {method} error: {message}")

        return data.get("result")

    def _login(self) -> None:
        if self._rpc("auth.check_session"):
            return

        if not self._rpc("auth.login", [self.config.deluge_password]):
            raise ClientError("Failed to log into deluge", is_auth_error=True)

        self.logger.debug("Deluge login successful")

    def select_host(self, hosts: list[list[Any]]) -> str:
        """Pick the daemon to manage from the Web UI host list."""
        if not hosts:
            raise ClientError("No deluge hosts available")

        host_id = self.current_host or self.config.deluge_host_id
        if host_id:
            if not any(host[0] == host_id for host in hosts):
                raise ClientError(f"Deluge host with id {host_id} does not exist")
            return host_id

        if len(hosts) == 1:
            host_id = hosts[0][0]
            self.logger.info(f"Selecting the only available deluge host: {host_id}")
            return host_id

        listing = "\n".join(
            f"\t{host[0]}: {host[1]}:{host[2]} - {host[3] if len(host) > 3 else ''}"
            for host in hosts
        )
        self.logger.info(f"Found {len(hosts)} deluge hosts (id: host:port - status):\n{listing}")
        raise ClientError(
            "Found more than one deluge host, select one via DELUGE_HOST_ID env variable"
        )

    def update_connection(self) -> ConnectionInfo:
        """Log in, connect to the managed daemon and make sure it is online."""
        self._login()

        if not self.current_host or not self._rpc("web.connected"):
            host_id = self.select_host(self._rpc("web.get_hosts") or [])
            self._rpc("web.connect", [host_id])
            self.current_host = host_id

        status = self._rpc("web.get_host_status", [self.current_host]) or []
        if len(status) < 2 or status[1] not in CONNECTED_STATUSES:
            raise ClientError("Not connected to deluge")

        return ConnectionInfo(
            host_id=status[0],
            version=status[2] if len(status) > 2 else None,
        )

    def get_port(self) -> int:
        self.update_connection()

        config = self._rpc("core.get_config_values", [["random_port", "listen_ports"]])
        if not isinstance(config, dict) or not config.get("listen_ports"):
            raise ClientError("listen_ports not in deluge config")

        if config.get("random_port"):
            return 0
        return int(config["listen_ports"][0])

    def update_port(self, port: int) -> None:
        self.update_connection()

        self._rpc(
            "core.set_config",
            [{"listen_ports": [port, port], "random_port": False}],
        )
        self.logger.info("Deluge port successfully updated")
