"""HTTP client wrapper built on HTTPX for cache service traffic.

Provides:
- Typed JSON responses that carry the status instead of raising on it
- Raw byte uploads and streamed downloads for archive transfer
- Structured transport errors (timeouts, network failures, bad JSON)
- Request/response logging with header redaction and signed-URL masking

Retrying is deliberately left to callers (see ``stashr.core.api.http.retry``)
because the cache protocol classifies statuses per operation.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from typing import Any

import httpx
from pydantic import BaseModel, Field

from stashr.core.api.http.config import HttpClientConfig
from stashr.core.api.http.errors import ApiError, DecodeError, NetworkError, TimeoutError
from stashr.core.api.http.logging_utils import RequestLogContext, log_request, log_response
from stashr.core.api.http.utils import get_request_id, join_url, safe_snippet
from stashr.core.logging.sanitize import mask_signed_url


class JsonResponse(BaseModel):
    """Decoded JSON response with its status.

    Args:
        status_code: HTTP status code
        result: Decoded body for 2xx responses (None for empty/204 bodies)
        headers: Response headers
        error_message: Server-provided message for non-2xx responses
    """

    model_config = {"frozen": True}

    status_code: int
    result: Any = None
    headers: dict[str, str] = Field(default_factory=dict)
    error_message: str | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def _merge_headers(base: Mapping[str, str], extra: Mapping[str, str] | None) -> dict[str, str]:
    """Merge base headers with request-specific headers."""
    out = dict(base)
    if extra:
        out.update(extra)
    return out


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
    status_code: int | None = None,
    response: httpx.Response | None = None,
    body_snippet_limit: int = 4096,
    cause: BaseException | None = None,
) -> ApiError:
    """Build API error with response context.

    Args:
        exc_type: Error class to instantiate
        message: Human-readable error message
        method: HTTP method
        url: Request URL (masked before it is stored)
        status_code: HTTP status code (if available)
        response: HTTP response (if available)
        body_snippet_limit: Max bytes to include in error
        cause: Original exception that triggered this error

    Returns:
        Constructed API error
    """
    snippet: str | None = None
    request_id: str | None = None
    if response is not None:
        snippet = safe_snippet(response.content or b"", body_snippet_limit)
        request_id = get_request_id(response.headers)

    return exc_type(
        message=message,
        method=method,
        url=mask_signed_url(url),
        status_code=status_code,
        request_id=request_id,
        response_body_snippet=snippet,
        cause=cause,
    )


class CacheHttpClient:
    """Asynchronous HTTP client used by the cache backends and transfer engine.

    Built on httpx.AsyncClient. Non-2xx statuses are returned, not raised;
    only transport failures become exceptions.

    Args:
        config: Client configuration
        auth: Optional authentication handler (e.g. RuntimeTokenAuth)
        transport: Optional custom transport (useful for testing)

    Example:
        >>> config = HttpClientConfig(base_url="https://cache.example.com/_apis/artifactcache/")
        >>> async with CacheHttpClient(config, auth=RuntimeTokenAuth(token="t")) as client:
        ...     resp = await client.get_json("cache?keys=k&version=v")
    """

    def __init__(
        self,
        config: HttpClientConfig | None = None,
        *,
        auth: httpx.Auth | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or HttpClientConfig()
        self.auth = auth
        self._client = httpx.AsyncClient(
            headers={"User-Agent": self.config.user_agent, **self.config.headers},
            timeout=self.config.timeout,
            limits=self.config.limits,
            follow_redirects=self.config.follow_redirects,
            auth=auth,
            transport=transport,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client and release resources."""
        await self._client.aclose()

    async def __aenter__(self) -> CacheHttpClient:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        """Async context manager exit."""
        await self.aclose()

    def url_for(self, path: str) -> str:
        """Resolve ``path`` against the configured base URL."""
        return join_url(self.config.base_url, path)

    async def request(
        self,
        method: str,
        path: str,
        *,
        headers: Mapping[str, str] | None = None,
        json_body: Any = None,
        content: bytes | None = None,
        timeout: httpx.Timeout | None = None,
    ) -> httpx.Response:
        """Send a single request and return the response whatever its status.

        Raises:
            TimeoutError: On connect/read/pool timeout
            NetworkError: On any other transport failure
        """
        method_u = method.upper()
        url = self.url_for(path)
        merged_headers = _merge_headers(self._client.headers, headers)

        ctx = RequestLogContext.for_request(method_u, url)
        start = log_request(ctx, merged_headers, self.config.redact_headers)

        try:
            resp = await self._client.request(
                method_u,
                url,
                headers=headers,
                json=json_body,
                content=content,
                timeout=timeout or self.config.timeout,
            )
        except httpx.TimeoutException as e:
            raise _build_api_error(
                exc_type=TimeoutError,
                message="Request timed out",
                method=method_u,
                url=url,
                cause=e,
            ) from e
        except httpx.RequestError as e:
            raise _build_api_error(
                exc_type=NetworkError,
                message="Network error while sending request",
                method=method_u,
                url=url,
                cause=e,
            ) from e

        log_response(ctx, resp.status_code, time.perf_counter() - start)
        return resp

    async def get_json(
        self, path: str, *, headers: Mapping[str, str] | None = None
    ) -> JsonResponse:
        """Perform GET and decode the JSON body."""
        resp = await self.request("GET", path, headers=_json_headers(headers))
        return self._to_json_response(resp)

    async def post_json(
        self, path: str, body: Any, *, headers: Mapping[str, str] | None = None
    ) -> JsonResponse:
        """Perform POST with a JSON body and decode the JSON response."""
        resp = await self.request("POST", path, headers=_json_headers(headers), json_body=body)
        return self._to_json_response(resp)

    async def patch_json(
        self, path: str, body: Any, *, headers: Mapping[str, str] | None = None
    ) -> JsonResponse:
        """Perform PATCH with a JSON body and decode the JSON response."""
        resp = await self.request("PATCH", path, headers=_json_headers(headers), json_body=body)
        return self._to_json_response(resp)

    async def send_bytes(
        self,
        method: str,
        path: str,
        content: bytes,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        """Send a raw byte payload (e.g. an archive chunk)."""
        return await self.request(method, path, headers=headers, content=content)

    async def open_stream(
        self,
        method: str,
        path: str,
        *,
        headers: Mapping[str, str] | None = None,
        timeout: httpx.Timeout | None = None,
    ) -> httpx.Response:
        """Send a request and return the response with an unread body.

        The caller owns the response and must ``await response.aclose()``.

        Raises:
            TimeoutError: If the response headers do not arrive in time
            NetworkError: On any other transport failure
        """
        method_u = method.upper()
        url = self.url_for(path)
        ctx = RequestLogContext.for_request(method_u, url)
        start = log_request(
            ctx, _merge_headers(self._client.headers, headers), self.config.redact_headers
        )

        request = self._client.build_request(
            method_u, url, headers=headers, timeout=timeout or self.config.timeout
        )
        try:
            resp = await self._client.send(request, stream=True)
        except httpx.TimeoutException as e:
            raise _build_api_error(
                exc_type=TimeoutError,
                message="Request timed out",
                method=method_u,
                url=url,
                cause=e,
            ) from e
        except httpx.RequestError as e:
            raise _build_api_error(
                exc_type=NetworkError,
                message="Network error while sending request",
                method=method_u,
                url=url,
                cause=e,
            ) from e

        log_response(ctx, resp.status_code, time.perf_counter() - start)
        return resp

    def _to_json_response(self, response: httpx.Response) -> JsonResponse:
        headers = dict(response.headers)
        if not response.is_success:
            return JsonResponse(
                status_code=response.status_code,
                headers=headers,
                error_message=self._error_message(response),
            )
        return JsonResponse(
            status_code=response.status_code,
            result=self.json(response),
            headers=headers,
        )

    def _error_message(self, response: httpx.Response) -> str | None:
        """Pull the service's ``message`` field out of an error body, if any."""
        if not response.content:
            return None
        if _is_json_response(response):
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and isinstance(body.get("message"), str):
                return body["message"]
        return safe_snippet(response.content, self.config.max_response_body_for_error)

    def json(self, response: httpx.Response) -> Any:
        """Decode JSON response with structured error handling.

        Args:
            response: HTTP response to decode

        Returns:
            Decoded JSON data (dict, list, etc.), None for empty bodies

        Raises:
            DecodeError: If parsing fails
        """
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise _build_api_error(
                exc_type=DecodeError,
                message="Failed to parse JSON response",
                method=response.request.method,
                url=str(response.request.url),
                status_code=response.status_code,
                response=response,
                body_snippet_limit=self.config.max_response_body_for_error,
                cause=e,
            ) from e


def _json_headers(extra: Mapping[str, str] | None) -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if extra:
        headers.update(extra)
    return headers
