"""The only network capability handed to ability code.

``NetworkPrimitive`` owns the ``httpx.AsyncClient`` used for outgoing ability
requests. Each invocation gets a bound ``fetch`` coroutine that runs every
request through that invocation's :class:`HeaderCompositor`, so secrets are
attached on the way out and never appear in the sandbox namespace.
"""

from __future__ import annotations

import json as jsonlib
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional
from urllib.parse import urlsplit

import httpx

from .headers import HeaderCompositor

ALLOWED_SCHEMES = ("http", "https")

FetchFunction = Callable[..., Awaitable["SandboxResponse"]]


class SandboxResponse:
    """Response object returned to ability code by ``fetch``."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response

    @property
    def status(self) -> int:
        return self._response.status_code

    @property
    def ok(self) -> bool:
        return 200 <= self._response.status_code < 300

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self._response.headers)

    @property
    def url(self) -> str:
        return str(self._response.url)

    @property
    def content_type(self) -> str:
        return self._response.headers.get("content-type", "").lower()

    async def json(self) -> Any:
        return self._response.json()

    async def text(self) -> str:
        return self._response.text

    async def body(self) -> Any:
        """Parse the body according to its content type.

        JSON is decoded (falling back to text if it is malformed), textual types
        are returned as strings and anything else is returned as text as well.
        An empty body is ``None``.
        """
        if not self._response.content:
            return None
        if "json" in self.content_type:
            try:
                return self._response.json()
            except ValueError:
                return self._response.text
        return self._response.text

    def __repr__(self) -> str:
        return f"SandboxResponse(status={self.status}, url={self.url!r})"


class NetworkPrimitive:
    """Timeout-bounded HTTP access for sandboxed ability code.

    Args:
        timeout: Per-request timeout in seconds. Required; there is no unbounded mode.
        proxy: Optional forward proxy URL for all outgoing requests.
        client: Pre-built client, mainly for tests (e.g. with ``httpx.MockTransport``).
    """

    def __init__(
        self,
        *,
        timeout: float,
        proxy: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if timeout is None or timeout <= 0:
            raise ValueError("NetworkPrimitive requires a positive timeout")
        self._timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=timeout, proxy=proxy, follow_redirects=True)
        self._logger = logging.getLogger(__name__)

    @property
    def timeout(self) -> float:
        return self._timeout

    async def aclose(self) -> None:
        await self._client.aclose()

    def bind(self, compositor: HeaderCompositor) -> FetchFunction:
        """Return a ``fetch`` coroutine function bound to one invocation's headers."""

        async def fetch(
            url: str,
            *,
            method: str = "GET",
            headers: Optional[Mapping[str, Any]] = None,
            params: Optional[Mapping[str, Any]] = None,
            json: Any = None,
            data: Any = None,
        ) -> SandboxResponse:
            return await self.fetch(
                compositor,
                url,
                method=method,
                headers=headers,
                params=params,
                json=json,
                data=data,
            )

        return fetch

    async def fetch(
        self,
        compositor: HeaderCompositor,
        url: str,
        *,
        method: str = "GET",
        headers: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
        data: Any = None,
    ) -> SandboxResponse:
        scheme = urlsplit(str(url)).scheme.lower()
        if scheme not in ALLOWED_SCHEMES:
            raise ValueError(f"fetch only supports http and https URLs, got {scheme or 'no scheme'!r}")

        composed = compositor.compose(headers)
        content: Optional[bytes] = None
        if json is not None:
            content = jsonlib.dumps(json).encode("utf-8")
            if not any(name.lower() == "content-type" for name in composed):
                composed["Content-Type"] = "application/json"
        elif isinstance(data, str):
            content = data.encode("utf-8")
            data = None

        self._logger.debug("NetworkPrimitive.fetch: %s %s headers=%s", method.upper(), url, sorted(composed.keys()))
        response = await self._client.request(
            method.upper(),
            str(url),
            headers=composed,
            params=dict(params) if params else None,
            content=content,
            data=data,
            timeout=self._timeout,
        )
        self._logger.debug("NetworkPrimitive.fetch: %s %s -> %s", method.upper(), url, response.status_code)
        return SandboxResponse(response)
