from __future__ import annotations

from collections.abc import AsyncGenerator, Generator

import httpx
from pydantic import BaseModel, Field


class RuntimeTokenAuth(httpx.Auth, BaseModel):
    """Static bearer authentication with the runner's runtime token.

    Supports both sync and async requests. Signed blob URLs carry their own
    authorization and must be fetched with a client that does not use this.

    Args:
        token: Runtime token value
        header_name: Header name for the token (default: "Authorization")

    Example:
        >>> auth = RuntimeTokenAuth(token="...")
    """

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    token: str = Field(repr=False)  # Don't leak secrets in repr
    header_name: str = "Authorization"

    def _value(self) -> str:
        return f"Bearer {self.token}"

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        """Apply bearer token to request (sync)."""
        request.headers[self.header_name] = self._value()
        yield request

    async def async_auth_flow(
        self, request: httpx.Request
    ) -> AsyncGenerator[httpx.Request, httpx.Response]:
        """Apply bearer token to request (async)."""
        request.headers[self.header_name] = self._value()
        yield request
