"""Async HTTP client wrapper built on HTTPX.

Provides:
- Structured error handling (every failure is an ApiError subclass)
- Request/response logging with header redaction
- Optional retries with exponential backoff
- Pydantic response parsing
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel

from mirako.core.api.http.config import HttpClientConfig
from mirako.core.api.http.errors import (
    ApiError,
    NetworkError,
    ResponseDecodeError,
    TimeoutError,
    categorize_status,
)
from mirako.core.api.http.logging_utils import RequestLogContext, log_request, log_response
from mirako.core.api.http.retry import RetryPolicy, parse_retry_after_seconds
from mirako.core.api.http.utils import (
    extract_error_detail,
    get_request_id,
    join_url,
    safe_snippet,
)

M = TypeVar("M", bound=BaseModel)


def _default_request_id() -> str:
    """Generate simple timestamp-based request ID."""
    return f"req_{int(time.time() * 1000)}"


def _is_json_response(resp: httpx.Response) -> bool:
    """Check if response content-type indicates JSON."""
    ctype = resp.headers.get("content-type", "")
    return "application/json" in ctype or "+json" in ctype


def _build_api_error(
    *,
    exc_type: type[ApiError],
    message: str,
    method: str,
    url: str,
    response: httpx.Response | None = None,
    request_id: str | None = None,
    body_snippet_limit: int = 4096,
    cause: BaseException | None = None,
) -> ApiError:
    """Build an API error carrying whatever response context is available."""
    status_code: int | None = None
    headers: dict[str, str] | None = None
    snippet: str | None = None
    detail: str | None = None
    if response is not None:
        status_code = response.status_code
        headers = dict(response.headers)
        content = response.content or b""
        snippet = safe_snippet(content, body_snippet_limit)
        detail = extract_error_detail(content)
        request_id = request_id or get_request_id(response.headers)

    return exc_type(
        message=message,
        method=method,
        url=url,
        status_code=status_code,
        detail=detail,
        request_id=request_id,
        response_headers=headers,
        response_body_snippet=snippet,
        cause=cause,
    )


class AsyncApiClient:
    """Asynchronous HTTP API client.

    Built on httpx.AsyncClient with structured errors and observability. The
    connection pool is shared by every request made through one instance and
    is safe for concurrent use.

    Args:
        config: Client configuration
        auth: Optional authentication handler (e.g. BearerAuth)
        retry_policy: Retry policy (defaults to a single attempt)
        transport: Optional custom transport (useful for testing)

    Example:
        >>> config = HttpClientConfig(base_url="https://mirako.co")
        >>> async with AsyncApiClient(config, auth=BearerAuth(token)) as client:
        ...     resp = await client.get("/v1/avatar/list")
        ...     data = client.json(resp)
    """

    def __init__(
        self,
        config: HttpClientConfig,
        *,
        auth: httpx.Auth | None = None,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.retry_policy = retry_policy or RetryPolicy()
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            headers={"User-Agent": config.user_agent, **config.headers},
            timeout=config.timeout,
            limits=config.limits,
            follow_redirects=config.follow_redirects,
            auth=auth,
            transport=transport,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client and release resources."""
        await self._client.aclose()

    async def __aenter__(self) -> AsyncApiClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        json_body: Any = None,
        data: Any = None,
        files: Any = None,
        timeout: httpx.Timeout | None = None,
        expected_status: Sequence[int] | None = None,
    ) -> httpx.Response:
        """Send a request and return the response, raising ApiError on failure.

        Args:
            method: HTTP method
            path: Request path relative to base_url
            params: Query parameters
            headers: Extra request headers
            json_body: JSON-serializable body
            data: Form fields (for multipart uploads together with ``files``)
            files: Multipart files
            timeout: Per-request timeout override
            expected_status: Accepted status codes (default: any 2xx/3xx)

        Returns:
            HTTP response

        Raises:
            ApiError: On transport failure or unexpected status
        """
        method_u = method.upper()
        url = join_url(str(self._client.base_url), path)
        req_id = (headers or {}).get("X-Request-Id") or _default_request_id()
        merged_headers = {**(headers or {}), "X-Request-Id": req_id}
        limit = self.config.max_response_body_for_error

        attempts = 0
        while True:
            attempts += 1
            ctx = RequestLogContext(method=method_u, url=url, attempt=attempts, request_id=req_id)
            start = log_request(
                ctx, {**self._client.headers, **merged_headers}, self.config.redact_headers
            )

            try:
                resp = await self._client.request(
                    method_u,
                    url,
                    params=params,
                    headers=merged_headers,
                    json=json_body,
                    data=data,
                    files=files,
                    timeout=timeout or self.config.timeout,
                )
            except httpx.TimeoutException as e:
                if self.retry_policy.should_retry(method_u, attempts):
                    await self._backoff(attempts)
                    continue
                raise _build_api_error(
                    exc_type=TimeoutError,
                    message="Request timed out",
                    method=method_u,
                    url=url,
                    request_id=req_id,
                    cause=e,
                ) from e
            except httpx.RequestError as e:
                if self.retry_policy.should_retry(method_u, attempts):
                    await self._backoff(attempts)
                    continue
                raise _build_api_error(
                    exc_type=NetworkError,
                    message="Network error while sending request",
                    method=method_u,
                    url=url,
                    request_id=req_id,
                    cause=e,
                ) from e

            log_response(ctx, resp.status_code, time.perf_counter() - start)

            if expected_status is not None:
                ok = resp.status_code in expected_status
            else:
                ok = resp.status_code < 400
            if ok:
                return resp

            if self.retry_policy.should_retry(method_u, attempts, resp.status_code):
                await self._backoff(attempts, resp)
                continue

            message = (
                f"Unexpected status code (expected {list(expected_status)})"
                if expected_status is not None
                else "HTTP error response"
            )
            raise _build_api_error(
                exc_type=categorize_status(resp.status_code),
                message=message,
                method=method_u,
                url=url,
                response=resp,
                request_id=req_id,
                body_snippet_limit=limit,
            )

    async def _backoff(self, attempt: int, response: httpx.Response | None = None) -> None:
        """Sleep before the next attempt, honoring a numeric Retry-After."""
        retry_after = None
        if response is not None:
            retry_after = parse_retry_after_seconds(response.headers.get("Retry-After"))
        if retry_after is None:
            retry_after = self.retry_policy.compute_delay(attempt)
        await asyncio.sleep(retry_after)

    @asynccontextmanager
    async def stream(self, method: str, path: str, **kwargs: Any) -> AsyncIterator[httpx.Response]:
        """Open a streaming response (body not read) for large downloads.

        Connection failures and retryable statuses are retried according to
        the retry policy until the response is handed to the caller. Errors
        raised while the caller reads the body are never retried.

        Args:
            method: HTTP method
            path: Path relative to base_url, or an absolute URL
            **kwargs: Passed to ``httpx.AsyncClient.build_request``

        Yields:
            Response whose body can be consumed with ``aiter_bytes()``

        Raises:
            ApiError: On transport failure or non-2xx status
        """
        method_u = method.upper()
        url = join_url(str(self._client.base_url), path)
        limit = self.config.max_response_body_for_error

        attempts = 0
        while True:
            attempts += 1
            ctx = RequestLogContext(method=method_u, url=url, attempt=attempts)
            start = log_request(ctx, self._client.headers, self.config.redact_headers)
            request = self._client.build_request(method_u, url, **kwargs)
            try:
                resp = await self._client.send(request, stream=True)
            except httpx.TimeoutException as e:
                if self.retry_policy.should_retry(method_u, attempts):
                    await self._backoff(attempts)
                    continue
                raise _build_api_error(
                    exc_type=TimeoutError,
                    message="Request timed out",
                    method=method_u,
                    url=url,
                    cause=e,
                ) from e
            except httpx.RequestError as e:
                if self.retry_policy.should_retry(method_u, attempts):
                    await self._backoff(attempts)
                    continue
                raise _build_api_error(
                    exc_type=NetworkError,
                    message="Network error while opening stream",
                    method=method_u,
                    url=url,
                    cause=e,
                ) from e

            log_response(ctx, resp.status_code, time.perf_counter() - start)
            if resp.status_code < 400:
                break

            try:
                await resp.aread()
            finally:
                await resp.aclose()
            if self.retry_policy.should_retry(method_u, attempts, resp.status_code):
                await self._backoff(attempts, resp)
                continue
            raise _build_api_error(
                exc_type=categorize_status(resp.status_code),
                message="HTTP error response",
                method=method_u,
                url=url,
                response=resp,
                body_snippet_limit=limit,
            )

        try:
            yield resp
        except httpx.TimeoutException as e:
            raise _build_api_error(
                exc_type=TimeoutError,
                message="Timed out while streaming response",
                method=method_u,
                url=url,
                cause=e,
            ) from e
        except httpx.RequestError as e:
            raise _build_api_error(
                exc_type=NetworkError,
                message="Network error while streaming response",
                method=method_u,
                url=url,
                cause=e,
            ) from e
        finally:
            await resp.aclose()
    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        """Perform async GET request."""
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> httpx.Response:
        """Perform async POST request."""
        return await self.request("POST", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> httpx.Response:
        """Perform async DELETE request."""
        return await self.request("DELETE", path, **kwargs)

    def json(self, response: httpx.Response) -> Any:
        """Decode JSON response with structured error handling.

        Args:
            response: HTTP response to decode

        Returns:
            Decoded JSON data (dict, list, etc.), or None for empty bodies

        Raises:
            ResponseDecodeError: If response is not JSON or parsing fails
        """
        if response.status_code == 204 or not response.content:
            return None
        if not _is_json_response(response):
            raise _build_api_error(
                exc_type=ResponseDecodeError,
                message="Response is not JSON (content-type mismatch)",
                method=response.request.method,
                url=str(response.request.url),
                response=response,
                body_snippet_limit=self.config.max_response_body_for_error,
            )
        try:
            return response.json()
        except ValueError as e:
            raise _build_api_error(
                exc_type=ResponseDecodeError,
                message="Failed to parse JSON response",
                method=response.request.method,
                url=str(response.request.url),
                response=response,
                body_snippet_limit=self.config.max_response_body_for_error,
                cause=e,
            ) from e

    def parse_pydantic(self, response: httpx.Response, model: type[M]) -> M:
        """Parse and validate JSON response with a Pydantic model.

        Raises:
            ResponseDecodeError: If JSON parsing or validation fails
        """
        data = self.json(response)
        try:
            return model.model_validate(data)
        except ValueError as e:
            raise _build_api_error(
                exc_type=ResponseDecodeError,
                message=f"Failed to validate response as {model.__name__}",
                method=response.request.method,
                url=str(response.request.url),
                response=response,
                body_snippet_limit=self.config.max_response_body_for_error,
                cause=e,
            ) from e
