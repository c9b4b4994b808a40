from __future__ import annotations

from typing import Any
from urllib.parse import urlsplit

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

# Generation endpoints answer quickly; uploads and downloads override this
DEFAULT_TIMEOUT = httpx.Timeout(60.0, connect=10.0)


class HttpClientConfig(BaseModel):
    """Settings for one AsyncApiClient instance.

    Args:
        base_url: Scheme and host requests are sent to (e.g. "https://mirako.co")
        timeout: Default per-request timeout
        limits: Connection pool limits
        follow_redirects: Follow 3xx responses (result downloads redirect to storage)
        headers: Extra headers sent with every request
        user_agent: User-Agent header value
        redact_headers: Header names masked in debug logs (case-insensitive)
        max_response_body_for_error: Bytes of an error body kept on ApiError
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    base_url: str
    timeout: httpx.Timeout = DEFAULT_TIMEOUT
    limits: httpx.Limits = Field(
        default_factory=lambda: httpx.Limits(max_keepalive_connections=5, max_connections=10)
    )
    follow_redirects: bool = True
    headers: dict[str, str] = Field(default_factory=dict)
    user_agent: str = "mirako-cli"
    redact_headers: tuple[str, ...] = ("authorization", "cookie", "set-cookie")
    max_response_body_for_error: int = 4096

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")

    @classmethod
    def for_origin(cls, url: str, **overrides: Any) -> HttpClientConfig:
        """Config whose base URL is the scheme and host of an absolute ``url``.

        Raises:
            ValueError: If ``url`` is not an absolute http(s) URL
        """
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError(f"not an absolute http(s) URL: {url}")
        return cls(base_url=f"{parts.scheme}://{parts.netloc}", **overrides)
