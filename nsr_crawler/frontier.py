"""Task frontier: FORM -> LISTING -> DETAIL for every target.

The frontier owns deduplication and the task ceiling, and turns a fetched
document into follow-up tasks and finished records.  It never performs I/O
itself; :mod:`nsr_crawler.run_crawl` feeds it documents.
"""

from __future__ import annotations

import asyncio
import urllib.parse as urlparse
from collections import Counter
from enum import Enum

import structlog
from bs4 import BeautifulSoup

from settings import CrawlerSettings

from .errors import PaginationGuardTrip, ParseError
from .forms import extract_form_fields, find_form_action
from .listing import has_results, parse_listing
from .models import (
    CrawlTask,
    DetailTask,
    EntityTarget,
    FormTask,
    ListingTask,
    Outcome,
    TaskKind,
)
from .normalize import region_from_text
from .pagination import PaginationEngine, set_query_param
from .profile import parse_profile
from .targets import region_for_target, target_from_url

logger = structlog.get_logger(__name__)


class Admission(Enum):
    ADDED = "added"
    DUPLICATE = "duplicate"
    FULL = "full"


class DedupSet:
    """Set of dedup keys with an atomic check-and-insert.

    ``limit`` caps how many keys are ever admitted (0 means unbounded).
    """

    def __init__(self, limit: int = 0) -> None:
        self.limit = limit
        self._keys: set[str] = set()
        self._lock = asyncio.Lock()

    async def add(self, key: str) -> Admission:
        async with self._lock:
            if key in self._keys:
                return Admission.DUPLICATE
            if self.limit and len(self._keys) >= self.limit:
                return Admission.FULL
            self._keys.add(key)
            return Admission.ADDED

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)


class Frontier:
    """Expands targets into tasks and fetched documents into outcomes."""

    def __init__(self, settings: CrawlerSettings, *, engine: PaginationEngine | None = None) -> None:
        self.settings = settings
        self.engine = engine or PaginationEngine(
            page_param=settings.page_param,
            filter_param=settings.filter_param,
            threshold=settings.unfiltered_page_threshold,
        )
        self.seen = DedupSet(settings.max_tasks)
        self.accepted: Counter[TaskKind] = Counter()
        self.saturated = False

    async def offer(self, task: CrawlTask) -> bool:
        """Admit ``task`` unless it was seen before or the ceiling is reached."""
        admission = await self.seen.add(task.dedup_key)
        if admission is Admission.ADDED:
            self.accepted[task.kind] += 1
            return True
        if admission is Admission.FULL and not self.saturated:
            self.saturated = True
            logger.warning("task_ceiling_reached", max_tasks=self.settings.max_tasks, dropped=task.dedup_key)
        return False

    # --- seeds ---
    def listing_url_for(self, target: EntityTarget) -> str:
        if target.filter_value is None:
            return self.settings.listing_url
        return set_query_param(self.settings.listing_url, self.settings.filter_param, target.filter_value)

    def initial_task(self, target: EntityTarget) -> CrawlTask:
        if self.settings.use_search_form:
            return FormTask(url=self.settings.search_url, target=target)
        return ListingTask(url=self.listing_url_for(target), target=target, page=1)

    def seed_task(self, url: str) -> ListingTask:
        """Listing task for an explicit start URL (page taken from the URL)."""
        target = target_from_url(url, filter_param=self.settings.filter_param)
        query = urlparse.parse_qs(urlparse.urlsplit(url).query)
        raw_page = (query.get(self.settings.page_param) or ["1"])[0]
        page = int(raw_page) if raw_page.isdigit() else 1
        return ListingTask(url=url, target=target, page=max(page, 1))

    # --- transitions ---
    def advance(self, task: CrawlTask, html: str, url: str) -> Outcome:
        """Follow-up tasks and records for the document fetched for ``task``.

        ``url`` is the final URL of the response (after redirects).
        """

        soup = BeautifulSoup(html, "html.parser")
        match task:
            case FormTask():
                return self._after_form(task, soup, url)
            case ListingTask():
                return self._after_listing(task, soup, url)
            case DetailTask():
                return self._after_detail(task, soup)
        raise TypeError(f"unknown task type: {type(task).__name__}")

    def _after_form(self, task: FormTask, soup: BeautifulSoup, url: str) -> Outcome:
        target = task.target
        payload = extract_form_fields(soup)
        if target.filter_value is not None:
            payload[self.settings.filter_param] = target.filter_value
        action = find_form_action(soup, self.settings.filter_param)
        action_url = urlparse.urljoin(url, action) if action else self.settings.listing_url
        logger.info("search_form_ready", target=target.key, action=action_url, fields=len(payload))
        return Outcome(
            tasks=[ListingTask(url=action_url, target=target, page=1, method="POST", payload=payload)]
        )

    def _after_listing(self, task: ListingTask, soup: BeautifulSoup, url: str) -> Outcome:
        target = task.target
        try:
            stubs = parse_listing(soup, url)
        except ParseError as exc:
            logger.info("listing_without_table", target=target.key, page=task.page, error=str(exc))
            stubs = []

        if not stubs and not has_results(soup):
            logger.info("listing_exhausted", target=target.key, page=task.page)
            return Outcome()

        tasks: list[CrawlTask] = [
            DetailTask(url=stub.profile_url, target=target, nsr_no=stub.nsr_no, stub=stub)
            for stub in stubs
        ]
        logger.info("listing_parsed", target=target.key, page=task.page, stubs=len(stubs))

        if not self.settings.paginate:
            return Outcome(tasks=tasks)

        try:
            found = self.engine.discover(soup, url, task.page, filter_value=target.filter_value)
        except PaginationGuardTrip as trip:
            logger.info(
                "pagination_complete",
                target=target.key,
                page=task.page,
                reason="guard",
                rejected=[reason for _, reason in trip.rejected],
            )
            found = None
        else:
            if found is None:
                logger.info("pagination_complete", target=target.key, page=task.page, reason="no_candidate")

        if found is not None:
            tasks.append(ListingTask(url=found.url, target=target, page=found.page))
        return Outcome(tasks=tasks)

    def _after_detail(self, task: DetailTask, soup: BeautifulSoup) -> Outcome:
        stub = task.stub
        listing_region = region_from_text(stub.location) if stub else None
        if listing_region is None:
            listing_region = region_for_target(task.target)
        record = parse_profile(
            soup,
            task.nsr_no,
            stub=stub,
            listing_region=listing_region,
            region_precedence=self.settings.region_precedence,
        )
        return Outcome(records=[record])
