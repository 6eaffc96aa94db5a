"""
HTTP fetch client.

One GET per call with a fixed desktop-browser header profile and explicit
connect/read/write timeouts. There are no retries here: every failure is raised
as a typed FetchError and the caller decides what happens next.
"""
import time
import logging
from typing import Dict, Optional

import httpx

import metrics
from core.config import ScraperSettings
from core.models import RawPage

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate, br",
    "DNT": "1",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "sec-ch-ua": '"Not_A Brand";v="8", "Chromium";v="120", "Google Chrome";v="120"',
    "sec-ch-ua-mobile": "?0",
    "sec-ch-ua-platform": '"macOS"',
}


class FetchError(Exception):
    """A single fetch failed."""

    kind = "fetch"

    def __init__(self, url: str, message: str):
        super().__init__(message)
        self.url = url
        self.message = message


class TransportError(FetchError):
    """No HTTP response: timeout, DNS failure, connection reset."""

    kind = "transport"


class HttpStatusError(FetchError):
    """Server answered with a non-2xx status."""

    kind = "http_status"

    # Statuses the site uses to push back on automated traffic
    BLOCKING_STATUSES = (401, 403, 429)

    def __init__(self, url: str, status_code: int):
        super().__init__(url, f"HTTP {status_code} for URL: {url}")
        self.status_code = status_code

    @property
    def is_blocked(self) -> bool:
        return self.status_code in self.BLOCKING_STATUSES

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_server_error(self) -> bool:
        return 500 <= self.status_code < 600


class EmptyResponseError(FetchError):
    """2xx response with nothing in the body."""

    kind = "empty_body"


class FetchClient:
    """Blocking page fetcher shared by all fetch workers."""

    def __init__(self, settings: ScraperSettings, client: Optional[httpx.Client] = None):
        """
        Args:
            settings: Resolved scraper settings (timeouts, user agent)
            client: Pre-built httpx client; one is created when omitted
        """
        self.settings = settings
        self.headers: Dict[str, str] = {"User-Agent": settings.user_agent, **BROWSER_HEADERS}
        self.timeout = httpx.Timeout(
            settings.connect_timeout,
            connect=settings.connect_timeout,
            read=settings.read_timeout,
            write=settings.write_timeout,
        )
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=self.timeout, follow_redirects=True)

    def fetch(self, url: str) -> RawPage:
        """
        GET a page.

        Returns:
            RawPage with the decoded body

        Raises:
            TransportError, HttpStatusError, EmptyResponseError
        """
        start = time.time()
        try:
            response = self._client.get(url, headers=self.headers, timeout=self.timeout)
        except httpx.TimeoutException as e:
            metrics.incr_fetched(TransportError.kind)
            logger.error(f"[net] Timeout fetching {url}: {e.__class__.__name__}")
            raise TransportError(url, f"Timeout: {e.__class__.__name__}") from e
        except httpx.TransportError as e:
            metrics.incr_fetched(TransportError.kind)
            logger.error(f"[net] Transport error fetching {url}: {e}")
            raise TransportError(url, str(e) or e.__class__.__name__) from e
        except httpx.RequestError as e:
            # Redirect loops and undecodable bodies
            metrics.incr_fetched(TransportError.kind)
            logger.error(f"[net] Request failed for {url}: {e.__class__.__name__}: {e}")
            raise TransportError(url, f"{e.__class__.__name__}: {e}") from e

        elapsed_ms = int((time.time() - start) * 1000)
        status = response.status_code

        if not response.is_success:
            error = HttpStatusError(url, status)
            metrics.incr_fetched(HttpStatusError.kind)
            if error.is_blocked:
                metrics.incr_blocked(status)
                logger.warning(f"[net] Blocked with HTTP {status} fetching {url} ({elapsed_ms}ms)")
            else:
                logger.error(f"[net] HTTP {status} fetching {url} ({elapsed_ms}ms)")
            raise error

        html = response.text
        if not html or not html.strip():
            metrics.incr_fetched(EmptyResponseError.kind)
            logger.warning(f"[net] Empty body from {url}")
            raise EmptyResponseError(url, f"Empty response body for URL: {url}")

        metrics.incr_fetched("ok")
        logger.info(f"[net] GET {status} {url} ({len(html)} chars, {elapsed_ms}ms)")
        return RawPage(url=url, html=html, status_code=status)

    def close(self):
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "FetchClient":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
