"""Windscribe website client: login, CSRF scraping and ephemeral port management."""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import requests

from .errors import AuthError, SessionExpiredError, TransportError

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/104.0.0.0 Safari/537.36"
)

LOGIN_TOKEN_URL = "https://res.windscribe.com/res/logintoken"
BASE_URL = "https://windscribe.com"
SESSION_COOKIE = "ws_session_auth_hash"

_LOGIN_ERROR_RE = re.compile(r'<div class="content_message error">.*>(.*)</div')
_CSRF_TIME_RE = re.compile(r"csrf_time = (\d+);")
_CSRF_TOKEN_RE = re.compile(r"csrf_token = '(\w+)';")
_EPF_EXPIRES_RE = re.compile(r"epfExpires = (\d+);")
_PORT_RE = re.compile(r"<span>(\d+)</span>")


@dataclass(frozen=True)
class Credential:
    """Windscribe session cookie and the instant it stops being valid."""

    token: str
    expires_at: datetime


@dataclass(frozen=True)
class CsrfInfo:
    issued_at: int
    token: str


@dataclass
class ForwardingState:
    """
    Ephemeral port state as shown on the static IPs page.

    ``expires_at`` is the server timestamp the lease started at, 0 when no
    port is forwarded. ``ports`` holds the external and internal port.
    """

    expires_at: int = 0
    ports: list[int] = field(default_factory=list)

    @property
    def is_mismatched(self) -> bool:
        return len(self.ports) == 2 and self.ports[0] != self.ports[1]


class WindscribeTransport:
    """Scrapes the Windscribe account pages using a cookie-authenticated session."""

    def __init__(
        self,
        username: str,
        password: str,
        logger: logging.Logger,
        timeout: int = 10,
        session: requests.Session | None = None,
    ):
        self.username = username
        self.password = password
        self.logger = logger
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers["User-Agent"] = USER_AGENT

    def _send(
        self,
        method: str,
        url: str,
        credential: Credential | None = None,
        **kwargs: Any,
    ) -> requests.Response:
        """Send a request, turning transport failures into TransportError."""
        if credential is not None:
            kwargs["cookies"] = {SESSION_COOKIE: credential.token}

        self.logger.debug(f"{method.upper()} {url}")

        try:
            response = self._session.request(
                method, url, timeout=self.timeout, **kwargs
            )
        except requests.exceptions.Timeout:
            raise TransportError(f"Request to {url} timed out")
        except requests.exceptions.ConnectionError as e:
            raise TransportError(f"Connection error: {e}")
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Request failed: {e}")

        self.logger.debug(f"Response: {response.status_code}")
        return response

    def _json(self, response: requests.Response, what: str) -> dict[str, Any]:
        if response.status_code != 200:
            raise TransportError(f"{what} failed: {response.status_code}")
        try:
            data = response.json()
        except ValueError as e:
            raise TransportError(f"{what} returned invalid JSON: {e}")
        if not isinstance(data, dict):
            raise TransportError(f"{what} returned unexpected payload")
        return data

    def login(self) -> Credential:
        """Log in with username and password, returning the session cookie."""
        try:
            token_response = self._send("POST", LOGIN_TOKEN_URL)
            csrf = self._json(token_response, "Login token request")

            response = self._send(
                "POST",
                f"{BASE_URL}/login",
                data={
                    "login": "1",
                    "upgrade": "0",
                    "csrf_time": csrf.get("csrf_time"),
                    "csrf_token": csrf.get("csrf_token"),
                    "username": self.username,
                    "password": self.password,
                    "code": "",
                },
                allow_redirects=False,
            )
        except TransportError as e:
            raise AuthError(f"Failed to log into windscribe: {e}") from e

        if response.status_code == 200:
            match = _LOGIN_ERROR_RE.search(response.text)
            message = match.group(1) if match and match.group(1) else "Unknown error"
            raise AuthError(f"Failed to log into windscribe: {message}")

        if response.status_code != 302:
            raise AuthError(
                f"Failed to log into windscribe: unexpected status {response.status_code}"
            )

        cookie = next(
            (c for c in response.cookies if c.name == SESSION_COOKIE and c.value),
            None,
        )
        if cookie is None:
            raise AuthError("Failed to log into windscribe: no session cookie found")
        if cookie.expires is None:
            raise AuthError(
                "Failed to log into windscribe: session cookie has no expiration date"
            )

        # The cookie is sent explicitly on every request
        self._session.cookies.clear()

        return Credential(
            token=cookie.value,
            expires_at=datetime.fromtimestamp(cookie.expires, tz=timezone.utc),
        )

    def fetch_csrf(self, credential: Credential) -> CsrfInfo:
        """Read the CSRF token and time from the my account page."""
        response = self._send(
            "GET", f"{BASE_URL}/myaccount", credential, allow_redirects=False
        )

        if response.status_code == 302:
            raise SessionExpiredError("Session is no longer valid")

        if response.status_code != 200:
            raise TransportError(
                f"Failed to get csrf token from my account page: {response.status_code}"
            )

        time_match = _CSRF_TIME_RE.search(response.text)
        token_match = _CSRF_TOKEN_RE.search(response.text)
        if not time_match or not token_match:
            raise TransportError("Failed to find csrf token on my account page")

        return CsrfInfo(issued_at=int(time_match.group(1)), token=token_match.group(1))

    def fetch_forwarding_state(self, credential: Credential) -> ForwardingState:
        """Read the current ephemeral port state."""
        response = self._send("GET", f"{BASE_URL}/staticips/load", credential)

        if response.status_code != 200:
            raise TransportError(
                f"Failed to get port forwarding info: {response.status_code}"
            )

        body = response.text
        if "/login?auth_required" in body:
            raise SessionExpiredError("Session is no longer valid")

        # epfExpires is always present, 0 when no port is active
        expires_match = _EPF_EXPIRES_RE.search(body)
        if not expires_match:
            raise TransportError("Failed to find epfExpires in port forwarding info")

        return ForwardingState(
            expires_at=int(expires_match.group(1)),
            ports=[int(port) for port in _PORT_RE.findall(body)],
        )

    def delete_forwarded_port(self, credential: Credential, csrf: CsrfInfo) -> None:
        """Remove the current ephemeral port."""
        response = self._send(
            "POST",
            f"{BASE_URL}/staticips/deleteEphPort",
            credential,
            data={"ctime": csrf.issued_at, "ctoken": csrf.token},
        )
        data = self._json(response, "Delete ephemeral port")

        if data.get("success") == 0:
            raise TransportError(
                f"Failed to delete ephemeral port: {data.get('message') or 'No message'}"
            )

        if data.get("epf") is False:
            self.logger.warning("Tried to remove a non-existent ephemeral port, ignoring")
        else:
            self.logger.info("Deleted ephemeral port")

    def request_matching_port(
        self, credential: Credential, csrf: CsrfInfo
    ) -> ForwardingState:
        """Request a new ephemeral port whose internal and external numbers match."""
        response = self._send(
            "POST",
            f"{BASE_URL}/staticips/postEphPort",
            credential,
            # an empty port asks for a matching one
            data={"ctime": csrf.issued_at, "ctoken": csrf.token, "port": ""},
        )
        data = self._json(response, "Request ephemeral port")

        if data.get("success") == 0:
            raise TransportError(
                f"Failed to request matching ephemeral port: {data.get('message') or 'No message'}"
            )

        epf = data.get("epf")
        if not epf:
            return ForwardingState(expires_at=0, ports=[])

        try:
            state = ForwardingState(
                expires_at=int(epf["start_ts"]),
                ports=[int(epf["ext"]), int(epf["int"])],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise TransportError(f"Invalid ephemeral port response: {e}")

        self.logger.info(f"Created new matching ephemeral port: {state.ports[0]}")
        return state
