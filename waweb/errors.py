from __future__ import annotations


class WawebError(Exception):
    """Base class for relay errors."""


class NotReady(WawebError):
    """Raised when a message is sent while the session is not ready."""

    def __init__(self, status: str) -> None:
        super().__init__("client_not_ready")
        self.status = status


class DeliveryError(WawebError):
    """Raised when the network call for a send attempt fails."""

    def __init__(self, cause: BaseException) -> None:
        super().__init__(str(cause).strip() or cause.__class__.__name__)
        self.cause = cause


class InitializationError(WawebError):
    """Raised when the browser layer cannot start."""


class AuthFailure(WawebError):
    """Credentials were rejected; needs operator action."""


class NotificationDeliveryError(WawebError):
    """QR email could not be delivered."""


class ArtifactCleanupError(WawebError):
    """Rendered QR file could not be removed."""


__all__ = [
    "WawebError",
    "NotReady",
    "DeliveryError",
    "InitializationError",
    "AuthFailure",
    "NotificationDeliveryError",
    "ArtifactCleanupError",
]
