from __future__ import annotations

from typing import Optional

from .models import ErrorKind


class ApuntesError(Exception):
    kind: ErrorKind = ErrorKind.STORE_UNAVAILABLE

    def __init__(self, message: str, *, prefix: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.prefix = prefix


class StoreUnavailable(ApuntesError):
    """The object store could not be reached or refused the request."""

    kind = ErrorKind.STORE_UNAVAILABLE


class InvalidPrefix(ApuntesError):
    """A caller-supplied prefix escapes the configured root."""

    kind = ErrorKind.INVALID_PREFIX


class DepthExceeded(ApuntesError):
    """A recursive walk went deeper than the configured ceiling."""

    kind = ErrorKind.DEPTH_EXCEEDED


class OperationCancelled(ApuntesError):
    kind = ErrorKind.CANCELLED


class ConfigError(Exception):
    pass
