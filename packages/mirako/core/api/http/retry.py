from __future__ import annotations

import random

from pydantic import BaseModel, Field, field_validator


class RetryPolicy(BaseModel):
    """Retry policy for Mirako API requests.

    The default policy makes a single attempt. Task status fetches must fail
    fast so the poller can surface transport errors verbatim; callers that want
    backoff opt in with ``RetryPolicy(max_attempts=3)``.

    Args:
        max_attempts: Maximum number of attempts (including initial request)
        base_delay_s: Base delay in seconds for exponential backoff
        max_delay_s: Maximum delay in seconds (caps exponential growth)
        jitter: Jitter as fraction of delay (0.15 = +/-15% randomization)
        retry_on_status: HTTP status codes that trigger retries
        retry_methods: HTTP methods eligible for retry (idempotent only)
    """

    model_config = {"frozen": True}

    max_attempts: int = Field(default=1, ge=1)
    base_delay_s: float = Field(default=0.5, ge=0.0)
    max_delay_s: float = Field(default=8.0, ge=0.0)
    jitter: float = Field(default=0.15, ge=0.0, le=1.0)
    retry_on_status: tuple[int, ...] = (429, 500, 502, 503, 504)
    retry_methods: tuple[str, ...] = ("GET", "HEAD", "DELETE")

    @field_validator("max_delay_s")
    @classmethod
    def validate_max_delay(cls, v: float, info) -> float:
        """Ensure max_delay_s >= base_delay_s."""
        base = info.data.get("base_delay_s", 0.5)
        if v < base:
            raise ValueError("max_delay_s must be >= base_delay_s")
        return v

    def should_retry(self, method: str, attempt: int, status_code: int | None = None) -> bool:
        """Decide whether a failed attempt may be repeated.

        Args:
            method: HTTP method of the failed request
            attempt: Number of attempts made so far (1-indexed)
            status_code: HTTP status of the failure, or None for transport errors

        Returns:
            True if another attempt is allowed
        """
        if attempt >= self.max_attempts:
            return False
        if method.upper() not in self.retry_methods:
            return False
        return status_code is None or status_code in self.retry_on_status

    def compute_delay(self, attempt: int) -> float:
        """Compute retry delay with exponential backoff and jitter.

        Args:
            attempt: Attempt number (1-indexed, 1 = first retry after initial failure)

        Returns:
            Delay in seconds before next retry
        """
        delay: float = min(self.max_delay_s, self.base_delay_s * (2 ** (attempt - 1)))
        if self.jitter > 0:
            spread: float = delay * self.jitter
            delay = max(0.0, delay + random.uniform(-spread, spread))
        return delay


def parse_retry_after_seconds(value: str | None) -> float | None:
    """Parse a numeric Retry-After header value to seconds."""
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None
