from __future__ import annotations

from collections.abc import AsyncGenerator, Generator

import httpx


class BearerAuth(httpx.Auth):
    """Static bearer-token authentication.

    Mirako API tokens are long-lived and issued from the dashboard, so there is
    no refresh flow: a 401 surfaces as an AuthError and the user logs in again.

    Args:
        token: API token value
        header_name: Header name for the token (default: "Authorization")

    Example:
        >>> auth = BearerAuth("mk_live_...")
    """

    def __init__(self, token: str, header_name: str = "Authorization") -> None:
        self._token = token
        self._header_name = header_name

    def __repr__(self) -> str:
        return f"BearerAuth(header_name={self._header_name!r})"

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers[self._header_name] = f"Bearer {self._token}"
        yield request

    async def async_auth_flow(
        self, request: httpx.Request
    ) -> AsyncGenerator[httpx.Request, httpx.Response]:
        request.headers[self._header_name] = f"Bearer {self._token}"
        yield request
