"""Utility functions for HTTP client operations."""

from __future__ import annotations

import json
from collections.abc import Mapping
from urllib.parse import urljoin


def join_url(base_url: str, path: str) -> str:
    """Join base URL with path in a predictable way.

    Args:
        base_url: Base URL (e.g. "https://mirako.co")
        path: Request path (e.g. "/v1/avatar/list" or "v1/avatar/list")

    Returns:
        Joined URL (e.g. "https://mirako.co/v1/avatar/list")
    """
    base = base_url if base_url.endswith("/") else base_url + "/"
    return urljoin(base, path.lstrip("/"))


def safe_snippet(content: bytes, limit: int) -> str:
    """Decode at most ``limit`` bytes of a response body for error messages."""
    if not content:
        return ""
    return content[:limit].decode("utf-8", errors="replace")


def get_request_id(headers: Mapping[str, str]) -> str | None:
    """Extract request ID from common tracing headers (case-insensitive)."""
    for key in ("x-request-id", "x-correlation-id", "request-id", "trace-id"):
        for hk, hv in headers.items():
            if hk.lower() == key:
                return hv
    return None


def extract_error_detail(content: bytes | None) -> str | None:
    """Pull the ``detail`` message out of a JSON error body.

    The service answers failures with ``{"detail": "...", "status": ...}``.
    Bodies that are not JSON objects, or whose detail is not a string, yield None.

    Args:
        content: Raw response body

    Returns:
        The detail string, or None
    """
    if not content:
        return None
    try:
        body = json.loads(content)
    except (ValueError, UnicodeDecodeError):
        return None
    if not isinstance(body, dict):
        return None
    detail = body.get("detail")
    if isinstance(detail, str) and detail.strip():
        return detail.strip()
    return None
