"""HTTP substrate: turns a :class:`CrawlTask` into an HTML document.

Owns retries, the per-domain politeness delay and the classification of
failures into :class:`FetchError` / :class:`BotDetectionError`.  A single
``httpx.AsyncClient`` is shared by all workers so cookies set by the search
form survive into the follow-up submission.
"""

from __future__ import annotations

import asyncio
import time
import urllib.parse as urlparse
from dataclasses import dataclass
from typing import Callable, Optional

import httpx
import structlog

from .errors import BotDetectionError, FetchError
from .models import CrawlTask

logger = structlog.get_logger(__name__)

RETRYABLE_STATUSES = {403, 429, 500, 502, 503, 504}


@dataclass
class FetchResult:
    status: int
    url: str
    html: str


class DomainThrottle:
    """Keep at least ``delay`` seconds between request starts per host."""

    def __init__(self, delay: float) -> None:
        self.delay = delay
        self._last: dict[str, float] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def wait(self, url: str) -> None:
        if self.delay <= 0:
            return
        host = urlparse.urlsplit(url).hostname or ""
        lock = self._locks.setdefault(host, asyncio.Lock())
        async with lock:
            elapsed = time.monotonic() - self._last.get(host, 0.0)
            if elapsed < self.delay:
                await asyncio.sleep(self.delay - elapsed)
            self._last[host] = time.monotonic()


class HttpFetcher:
    """Fetch documents with bounded retries.

    Accepts an optional ``client_factory`` so tests can inject an
    ``httpx.AsyncClient`` backed by ``MockTransport``.
    """

    def __init__(
        self,
        *,
        user_agent: str,
        referer: str | None = None,
        timeout: float = 15.0,
        max_retries: int = 3,
        retry_backoff: float = 1.0,
        domain_delay: float = 0.0,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
    ) -> None:
        self.headers = {
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9,ms;q=0.8",
        }
        self.referer = referer
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self.retry_backoff = retry_backoff
        self.throttle = DomainThrottle(domain_delay)
        self._client_factory = client_factory
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "HttpFetcher":
        if self._client_factory is not None:
            self._client = self._client_factory()
        else:
            self._client = httpx.AsyncClient(
                headers=self.headers,
                timeout=self.timeout,
                follow_redirects=True,
            )
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _send(self, task: CrawlTask) -> httpx.Response:
        if self._client is None:
            raise RuntimeError("HttpFetcher used outside 'async with'")
        headers = dict(self.headers)
        if task.method == "POST":
            if self.referer:
                headers["Referer"] = self.referer
            origin = urlparse.urlsplit(task.url)
            headers["Origin"] = f"{origin.scheme}://{origin.netloc}"
            return await self._client.post(task.url, data=task.payload or {}, headers=headers)
        return await self._client.get(task.url, headers=headers)

    async def fetch(self, task: CrawlTask) -> FetchResult:
        """Return the document for ``task`` or raise after the last retry."""
        last_error: FetchError | None = None
        for attempt in range(self.max_retries + 1):
            if attempt:
                await asyncio.sleep(self.retry_backoff * attempt)
            await self.throttle.wait(task.url)
            try:
                resp = await self._send(task)
            except httpx.HTTPError as exc:
                last_error = FetchError(task.url, f"transport error: {exc}")
                logger.warning("fetch_retry", url=task.url, attempt=attempt + 1, error=str(exc))
                continue

            if resp.is_success:
                return FetchResult(status=resp.status_code, url=str(resp.url), html=resp.text)

            if resp.status_code == 403:
                last_error = BotDetectionError(task.url, "access refused", status=403)
                logger.warning(
                    "fetch_blocked",
                    url=task.url,
                    attempt=attempt + 1,
                    method=task.method,
                    server=resp.headers.get("server"),
                    cookies=len(self._client.cookies) if self._client is not None else 0,
                )
            else:
                last_error = FetchError(task.url, f"HTTP {resp.status_code}", status=resp.status_code)
                logger.warning("fetch_retry", url=task.url, attempt=attempt + 1, status=resp.status_code)
            if resp.status_code not in RETRYABLE_STATUSES:
                break

        if last_error is None:
            raise RuntimeError(f"no fetch attempt was made for {task.url}")
        raise last_error
