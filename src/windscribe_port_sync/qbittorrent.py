"""qBittorrent Web API client."""

import json
import logging
from typing import Any

import requests

from .config import Config
from .errors import ClientError
from .torrent_client import ConnectionInfo, TorrentClient


class QBittorrentClient(TorrentClient):
    """
    Client for qBittorrent Web API.

    A WebUI always fronts exactly one qBittorrent instance, so host selection
    is trivial: the configured URL is the host.
    """

    name = "qBittorrent"

    def __init__(
        self,
        config: Config,
        logger: logging.Logger,
        session: requests.Session | None = None,
    ):
        self.config = config
        self.logger = logger
        self._session = session or requests.Session()
        self._authenticated = False

    def _login(self) -> None:
        """Authenticate with qBittorrent if credentials are configured."""
        if not self.config.qbittorrent_username:
            self._authenticated = True
            return

        if self._authenticated:
            return

        url = f"{self.config.qbittorrent_url}/api/v2/auth/login"

        self.logger.debug(f"POST {url} (login)")

        try:
            response = self._session.post(
                url,
                data={
                    "username": self.config.qbittorrent_username,
                    "password": self.config.qbittorrent_password,
                },
                timeout=self.config.request_timeout,
                verify=self.config.qbittorrent_verify_ssl,
            )
        except requests.exceptions.Timeout:
            raise ClientError("Login request timed out")
        except requests.exceptions.ConnectionError as e:
            raise ClientError(f"Connection error: {e}")
        except requests.exceptions.RequestException as e:
            raise ClientError(f"Login request failed: {e}")

        self.logger.debug(f"Response: {response.status_code} {response.text}")

        if response.status_code == 403:
            raise ClientError("Authentication failed", is_auth_error=True)

        if response.status_code != 200:
            raise ClientError(f"Login failed: {response.status_code}")

        if response.text.strip().lower() != "ok.":
            raise ClientError(
                "Authentication failed (invalid credentials)", is_auth_error=True
            )

        self._authenticated = True
        self.logger.debug("qBittorrent login successful")

    def _request(
        self,
        method: str,
        endpoint: str,
        retry_auth: bool = True,
        **kwargs: Any,
    ) -> requests.Response:
        """Make authenticated request with auto re-auth on 403."""
        self._login()

        url = f"{self.config.qbittorrent_url}{endpoint}"
        self.logger.debug(f"{method.upper()} {url}")

        try:
            response = self._session.request(
                method,
                url,
                timeout=self.config.request_timeout,
                verify=self.config.qbittorrent_verify_ssl,
                **kwargs,
            )
        except requests.exceptions.Timeout:
            raise ClientError("Request timed out")
        except requests.exceptions.ConnectionError as e:
            raise ClientError(f"Connection error: {e}")
        except requests.exceptions.RequestException as e:
            raise ClientError(f"Request failed: {e}")

        self.logger.debug(f"Response: {response.status_code}")

        if response.status_code == 403 and retry_auth:
            self.logger.debug("Got 403, retrying with fresh login")
            self._authenticated = False
            return self._request(method, endpoint, retry_auth=False, **kwargs)

        return response

    def update_connection(self) -> ConnectionInfo:
        response = self._request("GET", "/api/v2/app/version")

        if response.status_code != 200:
            raise ClientError(f"Failed to get version: {response.status_code}")

        return ConnectionInfo(host_id=self.config.qbittorrent_url, version=response.text.strip())

    def get_port(self) -> int:
        """Get the current listening port from qBittorrent."""
        response = self._request("GET", "/api/v2/app/preferences")

        if response.status_code != 200:
            raise ClientError(f"Failed to get preferences: {response.status_code}")

        try:
            data = response.json()
            port = data.get("listen_port")
        except (ValueError, AttributeError) as e:
            raise ClientError(f"Invalid response format: {e}")

        if port is None:
            raise ClientError("listen_port not in response")

        self.logger.debug(f"Current listen port: {port}")
        return int(port)

    def update_port(self, port: int) -> None:
        """Set the listening port in qBittorrent."""
        self.logger.debug(f"Setting listen_port={port}")

        response = self._request(
            "POST",
            "/api/v2/app/setPreferences",
            data={"json": json.dumps({"listen_port": port, "random_port": False})},
        )

        if response.status_code != 200:
            raise ClientError(f"Failed to set port: {response.status_code}")

        self.logger.info("qBittorrent port successfully updated")
