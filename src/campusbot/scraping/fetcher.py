"""
Fetcher Module - Async HTTP client wrapper for platform sessions.
=================================================================

Thin layer over httpx.AsyncClient:
- Browser-like headers, timeout and redirect policy
- Cookie jar owned by the fetcher (one per platform session)
- Transport failures and non-2xx responses mapped to NetworkError
- No retries here; see campusbot.scraping.retry
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Mapping, Optional

import httpx

from campusbot.shared.errors import NetworkError, NetworkErrorKind
from campusbot.shared.logging import get_logger

logger = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Data Classes
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class FetchedPage:
    """A successfully fetched response body."""

    url: str
    body: str
    status_code: int
    content_type: str = ""
    fetched_at: datetime = field(default_factory=datetime.now)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_json(self) -> bool:
        return "json" in self.content_type.lower()

    def json(self) -> Any:
        """Decode the body as JSON."""
        return json.loads(self.body)


@dataclass
class FetcherStats:
    """Request counters for one fetcher."""

    total_requests: int = 0
    successful: int = 0
    failed: int = 0
    total_bytes: int = 0
    requests_by_method: dict[str, int] = field(default_factory=dict)

    def record(self, method: str) -> None:
        self.total_requests += 1
        self.requests_by_method[method] = self.requests_by_method.get(method, 0) + 1


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """
    Decode a Retry-After header (delta-seconds or HTTP-date) into seconds.

    Example:
        >>> parse_retry_after("120")
        120.0
    """
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0.0, (when - now).total_seconds())


def _kind_for_status(status_code: int) -> NetworkErrorKind:
    if status_code == 429:
        return NetworkErrorKind.RATE_LIMIT
    if status_code == 408:
        return NetworkErrorKind.TIMEOUT
    return NetworkErrorKind.UNKNOWN


# ─────────────────────────────────────────────────────────────────────────────
# Fetcher Class
# ─────────────────────────────────────────────────────────────────────────────


class PageFetcher:
    """
    Async page fetcher with typed error mapping.

    Example:
        >>> async with PageFetcher(headers=HEADERS) as fetcher:
        ...     page = await fetcher.fetch_page("https://portal.yonsei.ac.kr/notices")
        ...     print(page.status_code)
    """

    def __init__(
        self,
        headers: Optional[Mapping[str, str]] = None,
        timeout: float = 10.0,
        max_redirects: int = 5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the fetcher.

        Args:
            headers: Default request headers
            timeout: Per-request timeout in seconds
            max_redirects: Redirects followed before failing
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        self.headers = dict(headers or {})
        self.timeout = timeout
        self.max_redirects = max_redirects
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.stats = FetcherStats()

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the underlying client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=self.headers,
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                max_redirects=self.max_redirects,
                transport=self._transport,
            )
        return self._client

    @property
    def cookies(self) -> httpx.Cookies:
        return self.client.cookies

    def clear_cookies(self) -> None:
        """Drop the session credential held in the cookie jar."""
        if self._client is not None:
            self._client.cookies.clear()

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        self.stats.record(method)
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            self.stats.failed += 1
            raise NetworkError(
                f"Request timed out after {self.timeout}s: {url}",
                kind=NetworkErrorKind.TIMEOUT,
            ) from e
        except httpx.TransportError as e:
            self.stats.failed += 1
            raise NetworkError(
                f"Connection failed for {url}: {e}",
                kind=NetworkErrorKind.CONNECTION,
            ) from e
        except httpx.HTTPError as e:
            self.stats.failed += 1
            raise NetworkError(
                f"Request failed for {url}: {e}",
                kind=NetworkErrorKind.UNKNOWN,
            ) from e

        if not response.is_success:
            self.stats.failed += 1
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            raise NetworkError(
                f"HTTP {response.status_code} for {url}",
                kind=_kind_for_status(response.status_code),
                retry_after=retry_after,
                status_code=response.status_code,
                details={"url": str(response.url)},
            )

        self.stats.successful += 1
        self.stats.total_bytes += len(response.content)
        logger.debug(f"{method} {url} -> {response.status_code} ({len(response.content)} bytes)")
        return response

    def _to_page(self, response: httpx.Response) -> FetchedPage:
        return FetchedPage(
            url=str(response.url),
            body=response.text,
            status_code=response.status_code,
            content_type=response.headers.get("Content-Type", ""),
        )

    async def fetch_page(self, url: str) -> FetchedPage:
        """
        GET a page carrying the session's cookies and headers.

        Raises:
            NetworkError: On transport failure or non-2xx status
        """
        response = await self._send("GET", url)
        return self._to_page(response)

    async def fetch_binary(self, url: str) -> bytes:
        """GET raw bytes (attachment downloads)."""
        response = await self._send("GET", url)
        return response.content

    async def submit_form(self, url: str, form_fields: Mapping[str, Any]) -> FetchedPage:
        """POST an application/x-www-form-urlencoded body."""
        data = {key: "" if value is None else str(value) for key, value in form_fields.items()}
        response = await self._send("POST", url, data=data)
        return self._to_page(response)

    async def close(self) -> None:
        """Close the underlying client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "PageFetcher":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()
