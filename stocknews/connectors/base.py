"""Network collaborator and connector errors."""

from __future__ import annotations

from typing import Dict, Mapping, Optional, Protocol

import httpx

DEFAULT_USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"
DEFAULT_TIMEOUT_SECONDS = 15.0


class ConnectorError(Exception):
    """Base connector error."""


class NetworkError(ConnectorError):
    """Transport level failure (DNS, refused, timeout, HTTP error status)."""


class ParseError(ConnectorError):
    """The response could not be read as a syndication document."""


class ContentFetchError(ConnectorError):
    """Every client identity failed to retrieve an article page."""


class Fetcher(Protocol):
    async def get(
        self,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> bytes: ...  # noqa: D401


class HttpxFetcher:
    """``Fetcher`` backed by a shared ``httpx.AsyncClient``.

    Raises ``NetworkError`` for transport errors, timeouts and HTTP status
    codes >= 400 so callers see a single failure type.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": user_agent},
        )

    async def get(
        self,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> bytes:
        merged: Dict[str, str] = dict(headers or {})
        try:
            resp = await self._client.get(url, headers=merged, timeout=timeout or self._timeout)
        except httpx.TimeoutException as exc:
            raise NetworkError(f"timed out after {timeout or self._timeout:g}s") from exc
        except httpx.HTTPError as exc:
            raise NetworkError(str(exc) or exc.__class__.__name__) from exc
        if resp.status_code >= 400:
            raise NetworkError(f"HTTP {resp.status_code}")
        return resp.content

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpxFetcher":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.aclose()
