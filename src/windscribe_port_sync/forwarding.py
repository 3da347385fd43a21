"""Ephemeral port lifecycle: read, heal and request the Windscribe forwarded port."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol

from .cache import PortCache
from .errors import AuthError, ForwardingError, SessionExpiredError, TransportError
from .session import CredentialCache
from .windscribe import Credential, CsrfInfo, ForwardingState

PORT_KEY = "port"

# Windscribe keeps an ephemeral port for a week after it was created
LEASE_LENGTH = timedelta(days=7)


@dataclass(frozen=True)
class CachedPort:
    port: int
    expires_at: datetime


class ForwardingTransport(Protocol):
    def fetch_csrf(self, credential: Credential) -> CsrfInfo: ...

    def fetch_forwarding_state(self, credential: Credential) -> ForwardingState: ...

    def delete_forwarded_port(self, credential: Credential, csrf: CsrfInfo) -> None: ...

    def request_matching_port(
        self, credential: Credential, csrf: CsrfInfo
    ) -> ForwardingState: ...


class ForwardingLifecycleManager:
    """Produces a consistent (port, expiry) pair from the Windscribe account."""

    def __init__(
        self,
        transport: ForwardingTransport,
        sessions: CredentialCache,
        cache: PortCache,
        logger: logging.Logger,
    ):
        self.transport = transport
        self.sessions = sessions
        self.cache = cache
        self.logger = logger

    def _fetch_csrf(self) -> tuple[Credential, CsrfInfo]:
        credential = self.sessions.get_session()
        try:
            return credential, self.transport.fetch_csrf(credential)
        except SessionExpiredError:
            self.logger.info("Windscribe session rejected, logging in again")

        credential = self.sessions.get_session(force_refresh=True)
        return credential, self.transport.fetch_csrf(credential)

    def reconcile_forwarding(self) -> CachedPort:
        """
        Make sure exactly one consistent ephemeral port is active and return it.

        A half-applied rotation shows up as two different ports; that state is
        deleted before anything else happens. When no port is active a new
        matching one is requested. The result is cached until it expires.
        """
        try:
            credential, csrf = self._fetch_csrf()
            state = self.transport.fetch_forwarding_state(credential)

            if state.is_mismatched:
                self.logger.warning(
                    f"Detected mismatched ports {state.ports[0]} != {state.ports[1]}, removing existing ports"
                )
                self.transport.delete_forwarded_port(credential, csrf)
                state = ForwardingState(expires_at=0, ports=[])
                self.cache.delete(PORT_KEY)

            if state.expires_at == 0:
                self.logger.info(
                    "No windscribe port configured, requesting new matching ephemeral port"
                )
                state = self.transport.request_matching_port(credential, csrf)
                if not state.ports:
                    raise ForwardingError(
                        "Windscribe accepted the port request but returned no port"
                    )
            else:
                self.logger.info(
                    f"Using existing windscribe ephemeral port: {state.ports[0] if state.ports else 'unknown'}"
                )
        except (AuthError, TransportError) as e:
            raise ForwardingError(f"Windscribe update failed: {e}") from e

        if not state.ports:
            raise ForwardingError(
                f"Windscribe reports an active port (epfExpires={state.expires_at}) but lists none"
            )

        result = CachedPort(
            port=state.ports[0],
            expires_at=datetime.fromtimestamp(state.expires_at, tz=timezone.utc)
            + LEASE_LENGTH,
        )
        self.cache.set(PORT_KEY, result.port, result.expires_at - self.cache.clock.now())
        return result

    def get_cached_port(self) -> CachedPort | None:
        """Return the last known port without touching the network."""
        entry = self.cache.get_entry(PORT_KEY)
        if entry is None or entry.expires_at is None:
            return None
        return CachedPort(port=int(entry.value), expires_at=entry.expires_at)
