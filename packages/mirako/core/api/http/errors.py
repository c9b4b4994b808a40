from __future__ import annotations

from pydantic import BaseModel, Field

BILLING_URL = "https://mirako.ai/billing"


class ApiErrorData(BaseModel):
    """Structured data for HTTP API errors.

    Args:
        message: Human-readable error description
        method: HTTP method (GET, POST, etc.)
        url: Request URL
        status_code: HTTP status code (if available)
        detail: ``detail`` field of the service's JSON error body (if any)
        request_id: Request ID for tracing (from X-Request-Id header)
        response_body_snippet: Truncated response body for debugging
        cause: Original exception that caused this error
    """

    model_config = {"arbitrary_types_allowed": True}

    message: str
    method: str
    url: str
    status_code: int | None = None
    detail: str | None = None
    request_id: str | None = None
    response_headers: dict[str, str] | None = None
    response_body_snippet: str | None = None
    cause: BaseException | None = Field(default=None, repr=False)


class ApiError(Exception):
    """Base exception for all transport-level failures.

    Covers network errors, timeouts, undecodable bodies and non-2xx responses
    from any Mirako endpoint. The fields of ``ApiErrorData`` are mirrored as
    attributes for convenience.
    """

    def __init__(
        self,
        *,
        message: str,
        method: str,
        url: str,
        status_code: int | None = None,
        detail: str | None = None,
        request_id: str | None = None,
        response_headers: dict[str, str] | None = None,
        response_body_snippet: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.data = ApiErrorData(
            message=message,
            method=method,
            url=url,
            status_code=status_code,
            detail=detail,
            request_id=request_id,
            response_headers=response_headers,
            response_body_snippet=response_body_snippet,
            cause=cause,
        )
        self.message = self.data.message
        self.method = self.data.method
        self.url = self.data.url
        self.status_code = self.data.status_code
        self.detail = self.data.detail
        self.request_id = self.data.request_id
        self.response_headers = self.data.response_headers
        self.response_body_snippet = self.data.response_body_snippet
        self.cause = self.data.cause

        super().__init__(str(self))

    def __str__(self) -> str:
        """Format error for logging and display."""
        parts = [self.message, f"{self.method} {self.url}"]
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        if self.detail:
            parts.append(f"detail={self.detail}")
        if self.request_id:
            parts.append(f"request_id={self.request_id}")
        return " | ".join(parts)


class NetworkError(ApiError):
    """Network-level error (DNS, connection reset, etc.)."""


class TimeoutError(ApiError):
    """Request timed out."""


class ResponseDecodeError(ApiError):
    """Failed to decode response body (JSON/schema)."""


class RateLimitError(ApiError):
    """HTTP 429 rate limit error."""


class AuthError(ApiError):
    """HTTP 401/403 authentication or authorization error."""


class PaymentRequiredError(ApiError):
    """HTTP 402: the account has run out of credits."""


class NotFoundError(ApiError):
    """HTTP 404: the task, avatar, session or profile does not exist."""


class ClientError(ApiError):
    """HTTP 4xx client error (excluding the categories above)."""


class ServerError(ApiError):
    """HTTP 5xx server error."""


class UnexpectedStatusError(ApiError):
    """Non-2xx status that doesn't match a more specific category."""


def categorize_status(status_code: int) -> type[ApiError]:
    """Map HTTP status code to the matching error class."""
    if status_code in (401, 403):
        return AuthError
    if status_code == 402:
        return PaymentRequiredError
    if status_code == 404:
        return NotFoundError
    if status_code == 429:
        return RateLimitError
    if 400 <= status_code < 500:
        return ClientError
    if 500 <= status_code < 600:
        return ServerError
    return UnexpectedStatusError


def friendly_message(error: ApiError) -> str:
    """Translate a transport error into the one-line message shown to users.

    Args:
        error: Any ApiError raised by the HTTP layer

    Returns:
        Human-readable message
    """
    if isinstance(error, PaymentRequiredError):
        return (
            "Insufficient credits. Please upgrade your plan or purchase more credits "
            f"at {BILLING_URL}"
        )
    if isinstance(error, AuthError):
        return "Authentication failed. Please run 'mirako auth login' to authenticate"
    if isinstance(error, RateLimitError):
        return "Rate limit exceeded. Please wait a moment and try again"
    if isinstance(error, NotFoundError):
        return "Resource not found. Please check the ID and try again"
    if error.detail:
        return error.detail
    if isinstance(error, TimeoutError):
        return "The request timed out. Please check your connection and try again"
    if isinstance(error, NetworkError):
        return f"Could not reach the Mirako API at {error.url}"
    if error.status_code is not None:
        return f"API request failed with status {error.status_code}"
    return error.message
