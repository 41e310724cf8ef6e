"""Exception hierarchy for the documentation crawler.

Every failure raised by the crawler derives from :class:`CrawlError`. Each
class carries the process exit code the CLI should use when the error is
fatal, and whether the fetcher may retry the request that produced it.
"""

from __future__ import annotations

from typing import Optional

GENERAL_ERROR = 1
NETWORK_ERROR = 4


class CrawlError(Exception):
    """Base class for crawler failures."""

    exit_code: int = NETWORK_ERROR
    retryable: bool = False

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.url = url
        self.status_code = status_code
        super().__init__(message)

    @property
    def message(self) -> str:
        return str(self)


# ---------------------------------------------------------------------------
# Invalid input (raised before any network I/O)
# ---------------------------------------------------------------------------


class InvalidInputError(CrawlError):
    """The caller supplied something the crawler cannot work with."""

    exit_code = GENERAL_ERROR


class InvalidURLError(InvalidInputError):
    """The seed URL is not an absolute http(s) URL."""


class UnsupportedManifestError(InvalidInputError):
    """The seed URL does not point at a recognised manifest."""


# ---------------------------------------------------------------------------
# Fetch failures
# ---------------------------------------------------------------------------


class ManifestFetchError(CrawlError):
    """The seed manifest could not be fetched or parsed."""


class HTTPStatusCrawlError(CrawlError):
    """The server answered with a non-success status."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, url=url, status_code=status_code)
        self.retryable = status_code in RETRYABLE_STATUS_CODES
        # Seconds requested by the server via Retry-After, if any.
        self.retry_after = retry_after


class FetchTimeoutError(CrawlError):
    """The request did not complete within its timeout."""

    retryable = True


class NetworkCrawlError(CrawlError):
    """Connection-level failure (reset, refused, DNS)."""

    retryable = True


class TLSCrawlError(CrawlError):
    """TLS handshake or certificate verification failed."""


class UnsupportedContentTypeError(CrawlError):
    """The response MIME type is not in the allow-list."""


class ResponseTooLargeError(CrawlError):
    """The response body exceeded the configured ceiling."""


class TooManyRedirectsError(CrawlError):
    """The redirect chain exceeded the hop limit."""


class ResponseDecodingError(CrawlError):
    """The response body could not be decoded (for example a corrupt gzip stream)."""


RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

# Statuses for which the orchestrator re-queues the page for a later attempt.
REQUEUE_STATUS_CODES = frozenset({429, 503})
