"""Transmission RPC client."""

import logging
from typing import Any

import requests

from .config import Config
from .errors import ClientError
from .torrent_client import ConnectionInfo, TorrentClient

SESSION_HEADER = "X-Transmission-Session-Id"
RPC_PATH = "/transmission/rpc"


def rpc_url(base_url: str) -> str:
    """Accept either the daemon root or the full RPC endpoint."""
    if base_url.endswith(RPC_PATH):
        return base_url
    if base_url.endswith("/"):
        return f"{base_url}{RPC_PATH.lstrip('/')}"
    return f"{base_url}{RPC_PATH}"


class TransmissionClient(TorrentClient):
    """
    Client for the Transmission RPC interface.

    Transmission answers 409 with a fresh X-Transmission-Session-Id until the
    request carries it; the id is remembered and the request sent once more.
    """

    name = "Transmission"

    def __init__(
        self,
        config: Config,
        logger: logging.Logger,
        session: requests.Session | None = None,
    ):
        self.config = config
        self.logger = logger
        self._session = session or requests.Session()
        self._url = rpc_url(config.transmission_url)
        self._session_id: str | None = None

        if config.transmission_username and config.transmission_password:
            self._session.auth = (config.transmission_username, config.transmission_password)

    def _post(self, method: str, arguments: dict[str, Any]) -> requests.Response:
        headers = {SESSION_HEADER: self._session_id} if self._session_id else {}

        self.logger.debug(f"POST {self._url} ({method})")

        try:
            response = self._session.post(
                self._url,
                json={"method": method, "arguments": arguments},
                headers=headers,
                timeout=self.config.request_timeout,
                verify=self.config.transmission_verify_ssl,
            )
        except requests.exceptions.Timeout:
            raise ClientError(f"Transmission {method} timed out")
        except requests.exceptions.ConnectionError as e:
            raise ClientError(f"Connection error: {e}")
        except requests.exceptions.RequestException as e:
            raise ClientError(f"Transmission {method} failed: {e}")

        self.logger.debug(f"Response: {response.status_code}")

        session_id = response.headers.get(SESSION_HEADER)
        if session_id:
            self._session_id = session_id

        return response

    def _rpc(self, method: str, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
        """Call an RPC method and return its arguments."""
        arguments = arguments or {}
        response = self._post(method, arguments)

        if response.status_code == 409:
            if not response.headers.get(SESSION_HEADER):
                raise ClientError("Transmission session ID is missing")
            self.logger.debug("Got 409, retrying with new session id")
            response = self._post(method, arguments)

        if response.status_code == 401:
            raise ClientError("Authentication failed", is_auth_error=True)

        if response.status_code != 200:
            raise ClientError(f"Transmission {method} failed: {response.status_code}")

        try:
            data = response.json()
            result = data.get("result")
        except (ValueError, AttributeError) as e:
            raise ClientError(f"Invalid response format: {e}")

        if result != "success":
            raise ClientError(f"Transmission request error: {result}")

        return data.get("arguments") or {}

    def update_connection(self) -> ConnectionInfo:
        arguments = self._rpc("session-get", {"fields": ["version"]})
        return ConnectionInfo(host_id=self._url, version=arguments.get("version"))

    def get_port(self) -> int:
        arguments = self._rpc(
            "session-get", {"fields": ["peer-port", "peer-port-random-on-start"]}
        )

        port = arguments.get("peer-port")
        if port is None:
            raise ClientError("peer-port not in transmission session")

        if arguments.get("peer-port-random-on-start"):
            return 0
        return int(port)

    def update_port(self, port: int) -> None:
        self.logger.debug(f"Setting peer-port={port}")
        self._rpc("session-set", {"peer-port": port, "peer-port-random-on-start": False})
        self.logger.info("Transmission port successfully updated")
