"""Domain errors raised by the Mirako core.

Everything here propagates unmodified to the command layer, which prints one
line and exits with status 1. Transport failures keep their HTTP-layer type
(``ApiError`` and subclasses), re-exported as ``TransportError``.
"""

from __future__ import annotations

from mirako.core.api.http.errors import ApiError

TransportError = ApiError


class MirakoError(Exception):
    """Base class for all non-transport errors raised by the core."""


class AuthenticationError(MirakoError):
    """No API token is configured, so no request can be attempted."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message or "API token is required. Run 'mirako auth login' to authenticate"
        )


class ValidationError(MirakoError):
    """Caller input violates a documented constraint."""


class ConfigError(MirakoError):
    """The configuration file could not be read, parsed or written."""


class JobFailureError(MirakoError):
    """A remote job reached a failure, cancellation or timeout state.

    Args:
        state: Literal wire status reported by the service (e.g. "TIMEDOUT")
        detail: The job's own error detail, if the service sent one
    """

    def __init__(self, state: str, detail: str | None = None) -> None:
        self.state = state
        self.detail = detail
        if detail:
            message = f"Task failed: {detail}"
        else:
            message = f"Task ended with status {state}"
        super().__init__(message)


class DecodeError(MirakoError):
    """A result payload is malformed or missing (e.g. invalid base64)."""


class DownloadError(MirakoError):
    """A result URL could not be fetched."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to download {url}: {reason}")


class ArtifactWriteError(MirakoError):
    """Local filesystem failure while saving an artifact."""

    def __init__(self, path: str, cause: OSError) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to write {path}: {cause.strerror or cause}")


class CancellationError(MirakoError):
    """The operation was aborted before the remote job reached a terminal state."""

    def __init__(self, cause: str = "cancelled by user") -> None:
        self.cause = cause
        super().__init__(f"Operation aborted: {cause}")


__all__ = [
    "TransportError",
    "MirakoError",
    "AuthenticationError",
    "ValidationError",
    "ConfigError",
    "JobFailureError",
    "DecodeError",
    "DownloadError",
    "ArtifactWriteError",
    "CancellationError",
]
