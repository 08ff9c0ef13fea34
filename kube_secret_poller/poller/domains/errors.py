"""Exceptions raised while synchronizing a secret."""
from typing import Optional


class PollerError(Exception):
    """Base class for secret synchronization failures."""
    pass


class BackendError(PollerError):
    """Backend could not provide the secret properties."""
    pass


class UnknownBackendError(BackendError):
    """Descriptor names a backend that is not configured."""
    pass


class PermissionDenied(PollerError):
    """Role may not be assumed for secrets in this namespace."""
    pass


class InvalidPermissionPattern(PollerError):
    """Namespace permission annotation is not a valid regular expression."""
    pass


class RemoteError(PollerError):
    """Kubernetes API call failed; status is the HTTP status when known."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RemoteReadError(RemoteError):
    """Lookup against the Kubernetes API failed (other than not found)."""
    pass


class RemoteWriteError(RemoteError):
    """Create or replace against the Kubernetes API failed."""
    pass
