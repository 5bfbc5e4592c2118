"""Exceptions shared by the session controller and the gateway."""


class SessionError(Exception):
    """Base class for workout session failures."""


class SessionValidationError(SessionError):
    """Raised when an intent is rejected before any remote call is made."""


class GatewayError(SessionError):
    """Raised when a remote call fails.

    ``status_code`` carries the HTTP status when the remote answered, and is
    ``None`` for transport failures such as timeouts or refused connections.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
