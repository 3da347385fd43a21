"""Cached Windscribe session with single-flight login."""

import logging
import threading
from typing import Protocol

from .cache import PortCache
from .errors import AuthError, TransportError
from .windscribe import Credential

SESSION_KEY = "session"


class LoginTransport(Protocol):
    def login(self) -> Credential: ...


class CredentialCache:
    """
    Hands out the cached session credential, logging in when needed.

    Every acquisition runs under the ``session`` lock, so callers racing on an
    empty cache wait for the first login and then reuse its result.
    """

    def __init__(self, transport: LoginTransport, cache: PortCache, logger: logging.Logger):
        self.transport = transport
        self.cache = cache
        self.logger = logger
        self._locks = {SESSION_KEY: threading.Lock()}

    def get_session(self, force_refresh: bool = False) -> Credential:
        with self._locks[SESSION_KEY]:
            if not force_refresh:
                entry = self.cache.get_entry(SESSION_KEY)
                if entry is not None and entry.expires_at is not None:
                    return Credential(token=entry.value, expires_at=entry.expires_at)

            self.cache.delete(SESSION_KEY)

            self.logger.info("Invalid/missing session cookie, logging into windscribe")
            try:
                credential = self.transport.login()
            except AuthError:
                raise
            except TransportError as e:
                raise AuthError(f"Failed to log into windscribe: {e}") from e

            if credential is None or not credential.token:
                raise AuthError("Windscribe login returned no session token")

            ttl = credential.expires_at - self.cache.clock.now()
            if self.cache.set(SESSION_KEY, credential.token, ttl):
                minutes = ttl.total_seconds() / 60
                self.logger.info(
                    f"Successfully logged into windscribe, session expires in {minutes:.1f} minutes"
                )
            else:
                self.logger.warning(
                    "Windscribe session cookie is already expired, not caching it"
                )

            return credential
