"""HTTP fetcher with retry, manual redirects and response size limits.

Public API::

    from lrn_crawl.fetcher import Fetcher

    async with Fetcher() as fetcher:
        result = await fetcher.fetch("https://docs.example.com/llms.txt")
        print(result.final_url, result.content_type)
"""

from __future__ import annotations

import asyncio
import logging
import random
import ssl
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Awaitable, Callable, List, Optional, Tuple, Union
from urllib.parse import urljoin, urlsplit, urlunsplit

import httpx

from . import config
from .errors import (
    CrawlError,
    FetchTimeoutError,
    HTTPStatusCrawlError,
    NetworkCrawlError,
    ResponseDecodingError,
    ResponseTooLargeError,
    RETRYABLE_STATUS_CODES,
    TLSCrawlError,
    TooManyRedirectsError,
    UnsupportedContentTypeError,
)
from .models import FetchResult

LOGGER = logging.getLogger(__name__)

REQUEST_HEADERS = {
    "User-Agent": config.USER_AGENT,
    "Accept": config.ACCEPT_HEADER,
}

BACKOFF_BASE = 1.0

_ALLOWED_MIME_TYPES = frozenset({"application/json", "application/xml"})
_DEFAULT_PORTS = {"http": 80, "https": 443}


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------


def is_valid_url(url: str) -> bool:
    """Return True for absolute http(s) URLs with a host."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return parts.scheme.lower() in ("http", "https") and bool(parts.hostname)


def normalize_url(url: str) -> str:
    """Strip the fragment and canonicalise scheme and host case.

    Trailing slashes are kept since they can be significant to servers.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.scheme or not parts.netloc:
        return url
    path = parts.path or "/"
    return urlunsplit(
        (parts.scheme.lower(), parts.netloc.lower(), path, parts.query, "")
    )


def get_origin(url: str) -> str:
    """Scheme, host and non-default port of *url*."""
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return url
    if not parts.scheme or not parts.hostname:
        return url
    scheme = parts.scheme.lower()
    host = parts.hostname.lower()
    if ":" in host:
        host = f"[{host}]"
    if port is not None and port != _DEFAULT_PORTS.get(scheme):
        return f"{scheme}://{host}:{port}"
    return f"{scheme}://{host}"


def is_same_origin(url1: str, url2: str) -> bool:
    return get_origin(url1) == get_origin(url2)


# ---------------------------------------------------------------------------
# Header parsing
# ---------------------------------------------------------------------------


def parse_content_type(value: Optional[str]) -> Tuple[str, Optional[str]]:
    """Split a Content-Type header into ``(mime_type, charset)``."""
    if not value:
        return "", None
    mime, _, params = value.partition(";")
    charset = None
    for param in params.split(";"):
        key, _, param_value = param.partition("=")
        if key.strip().lower() == "charset":
            charset = param_value.strip().strip('"') or None
    return mime.strip().lower(), charset


def is_allowed_content_type(mime_type: str) -> bool:
    """Text-like MIME types the crawler is willing to read."""
    if mime_type.startswith("text/"):
        return True
    if mime_type.startswith("application/xhtml+"):
        return True
    return mime_type in _ALLOWED_MIME_TYPES


def parse_retry_after(value: Optional[str], *, now: Optional[datetime] = None) -> Optional[float]:
    """Parse a Retry-After header (delta-seconds or HTTP date) into seconds."""
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    current = now or datetime.now(timezone.utc)
    return max(0.0, (when - current).total_seconds())


def _is_tls_failure(exc: BaseException) -> bool:
    seen: List[BaseException] = []
    current: Optional[BaseException] = exc
    while current is not None and current not in seen:
        if isinstance(current, ssl.SSLError):
            return True
        seen.append(current)
        current = current.__cause__ or current.__context__
    text = str(exc)
    return "SSL" in text or "certificate" in text.lower()


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------


class Fetcher:
    """Fetch single URLs over a shared ``httpx.AsyncClient``.

    Redirects are followed by hand so that the hop count and the final URL
    are under the crawler's control. Transient failures (timeouts, network
    errors, 429 and 5xx gateway statuses) are retried with exponential
    backoff; everything else fails immediately.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        max_body_size: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        jitter: Callable[[], float] = random.random,
    ):
        self._owns_client = client is None
        self._client = client if client is not None else httpx.AsyncClient(
            transport=transport,
            headers=REQUEST_HEADERS,
            follow_redirects=False,
        )
        self.timeout = timeout if timeout is not None else config.get_fetch_timeout()
        self.max_retries = max_retries if max_retries is not None else config.get_max_retries()
        self.max_body_size = (
            max_body_size if max_body_size is not None else config.get_max_body_bytes()
        )
        self._sleep = sleep
        self._jitter = jitter

    async def __aenter__(self) -> "Fetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def backoff_delay(self, attempt: int) -> float:
        """Exponential backoff with up to one second of jitter."""
        return BACKOFF_BASE * (2 ** attempt) + self._jitter()

    async def fetch(
        self,
        url: str,
        *,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
    ) -> FetchResult:
        """
        Fetch *url*, following up to five redirects.

        Args:
            url: Absolute http(s) URL.
            timeout: Base timeout in seconds; attempt ``n`` gets ``timeout * (n + 1)``.
            max_retries: Retry budget for transient failures.

        Returns:
            FetchResult with the decoded body and the post-redirect URL.

        Raises:
            CrawlError: A subclass describing why the fetch failed.
        """
        base_timeout = timeout if timeout is not None else self.timeout
        retries = max_retries if max_retries is not None else self.max_retries

        attempt = 0
        redirects = 0
        current_url = url

        while True:
            attempt_timeout = base_timeout * (attempt + 1)
            try:
                outcome = await self._request(url, current_url, attempt_timeout)
            except CrawlError as exc:
                if not exc.retryable:
                    raise
                if attempt >= retries:
                    if isinstance(exc, HTTPStatusCrawlError):
                        raise HTTPStatusCrawlError(
                            f"HTTP {exc.status_code} after {retries} retries",
                            url=url,
                            status_code=exc.status_code,
                        ) from exc
                    raise
                delay = getattr(exc, "retry_after", None)
                if delay is None:
                    delay = self.backoff_delay(attempt)
                attempt += 1
                LOGGER.debug(
                    "Retrying %s in %.2fs (attempt %d/%d): %s",
                    url,
                    delay,
                    attempt,
                    retries,
                    exc,
                )
                await self._sleep(delay)
                continue

            if isinstance(outcome, str):
                redirects += 1
                if redirects > config.MAX_REDIRECTS:
                    raise TooManyRedirectsError(
                        f"Too many redirects (>{config.MAX_REDIRECTS})", url=url
                    )
                LOGGER.debug("Redirect %s -> %s", current_url, outcome)
                current_url = outcome
                continue

            return outcome

    async def _request(
        self, url: str, current_url: str, timeout: float
    ) -> Union[FetchResult, str]:
        """Perform one HTTP exchange; a ``str`` return is a redirect target."""
        try:
            async with self._client.stream(
                "GET",
                current_url,
                headers=REQUEST_HEADERS,
                timeout=timeout,
                follow_redirects=False,
            ) as response:
                status = response.status_code

                if 300 <= status < 400:
                    location = response.headers.get("location")
                    if location:
                        return urljoin(current_url, location.strip())

                if status in RETRYABLE_STATUS_CODES:
                    raise HTTPStatusCrawlError(
                        f"HTTP {status}: {response.reason_phrase}",
                        url=url,
                        status_code=status,
                        retry_after=parse_retry_after(response.headers.get("retry-after")),
                    )

                if not 200 <= status < 300:
                    raise HTTPStatusCrawlError(
                        f"HTTP {status}: {response.reason_phrase}",
                        url=url,
                        status_code=status,
                    )

                content_type = response.headers.get("content-type", "")
                mime_type, charset = parse_content_type(content_type)
                if not is_allowed_content_type(mime_type):
                    raise UnsupportedContentTypeError(
                        f"Non-text content type: {content_type or '(missing)'}",
                        url=url,
                        status_code=status,
                    )

                body = await self._read_body(response, url, charset)
                return FetchResult(
                    url=url,
                    final_url=current_url,
                    status=status,
                    headers=dict(response.headers),
                    body=body,
                    content_type=content_type,
                )
        except httpx.TimeoutException as exc:
            raise FetchTimeoutError(
                f"Request timeout after {timeout:g}s", url=url
            ) from exc
        except httpx.TransportError as exc:
            if _is_tls_failure(exc):
                raise TLSCrawlError(f"SSL error: {exc}", url=url) from exc
            raise NetworkCrawlError(f"Network error: {exc}", url=url) from exc
        except httpx.DecodingError as exc:
            raise ResponseDecodingError(f"Could not decode response: {exc}", url=url) from exc
        except httpx.RequestError as exc:
            raise CrawlError(f"Request failed: {exc}", url=url) from exc

    async def _read_body(
        self, response: httpx.Response, url: str, charset: Optional[str]
    ) -> str:
        limit = self.max_body_size
        declared = response.headers.get("content-length", "").strip()
        if declared.isdigit() and int(declared) > limit:
            raise ResponseTooLargeError(
                f"Response too large: {declared} bytes (max {limit})",
                url=url,
                status_code=response.status_code,
            )

        chunks: List[bytes] = []
        total = 0
        async for chunk in response.aiter_bytes():
            total += len(chunk)
            if total > limit:
                raise ResponseTooLargeError(
                    f"Response too large: >{limit} bytes",
                    url=url,
                    status_code=response.status_code,
                )
            chunks.append(chunk)

        raw = b"".join(chunks)
        try:
            return raw.decode(charset or "utf-8", errors="replace")
        except LookupError:
            LOGGER.debug("Unknown charset %r for %s; decoding as UTF-8", charset, url)
            return raw.decode("utf-8", errors="replace")
