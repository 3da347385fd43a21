"""Exception types shared across the port sync service."""


class PortSyncError(Exception):
    """Base class for all port sync errors."""


class TransportError(PortSyncError):
    """A Windscribe web request failed or returned something unexpected."""


class SessionExpiredError(TransportError):
    """Windscribe rejected the session cookie and wants a fresh login."""


class AuthError(PortSyncError):
    """Logging into Windscribe failed."""


class ForwardingError(PortSyncError):
    """The ephemeral port state could not be read, healed or requested."""


class ClientError(PortSyncError):
    """A torrent client call failed."""

    def __init__(self, message: str, is_auth_error: bool = False):
        super().__init__(message)
        self.is_auth_error = is_auth_error


class ReconcileError(PortSyncError):
    """The torrent client port could not be read, updated or verified."""


class InvariantViolation(PortSyncError):
    """The scheduler reached a state that should be impossible."""
