"""DEBUG-level request/response logging for the HTTP layer.

Records carry structured ``extra`` fields (method, url, status_code,
elapsed_ms, ...) so ``StructuredJSONFormatter`` can emit them as JSON context
when ``mirako --debug`` is combined with structured logging.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger("mirako.core.api.http")

REDACTED = "***"


def redact_headers(headers: Mapping[str, str], redact: tuple[str, ...]) -> dict[str, str]:
    """Mask sensitive header values.

    The auth scheme of an ``Authorization`` header is kept (``Bearer ***``) so
    logs still show which kind of credential was sent.
    """
    names = {n.lower() for n in redact}
    out: dict[str, str] = {}
    for key, value in headers.items():
        if key.lower() not in names:
            out[key] = value
            continue
        scheme, sep, _ = value.partition(" ")
        out[key] = f"{scheme} {REDACTED}" if sep else REDACTED
    return out


class RequestLogContext(BaseModel):
    """Identifies one attempt of one request across its two log records."""

    model_config = ConfigDict(frozen=True)

    method: str
    url: str
    attempt: int = 1
    request_id: str | None = None


def log_request(
    ctx: RequestLogContext, headers: Mapping[str, str], redact: tuple[str, ...]
) -> float:
    """Log an outgoing request; returns a ``perf_counter`` start time."""
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            f"--> {ctx.method} {ctx.url} (attempt {ctx.attempt})",
            extra={
                "method": ctx.method,
                "url": ctx.url,
                "attempt": ctx.attempt,
                "request_id": ctx.request_id,
                "headers": redact_headers(headers, redact),
            },
        )
    return time.perf_counter()


def log_response(ctx: RequestLogContext, status_code: int, elapsed_s: float) -> None:
    elapsed_ms = int(elapsed_s * 1000)
    logger.debug(
        f"<-- {ctx.method} {ctx.url} {status_code} ({elapsed_ms} ms)",
        extra={
            "method": ctx.method,
            "url": ctx.url,
            "attempt": ctx.attempt,
            "request_id": ctx.request_id,
            "status_code": status_code,
            "elapsed_ms": elapsed_ms,
        },
    )
