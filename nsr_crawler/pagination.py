"""Next-page discovery for results documents.

The register's navigation is inconsistent: some pages have a "Next" link,
some only numbered links, some omit the page parameter, and very high page
numbers belong to an unrelated unfiltered listing.  :class:`PaginationEngine`
tries, in order, a labelled "next" link, the closest numbered link, and a
constructed URL (only when a pagination summary says more pages exist).
Every candidate passes through a validity guard so a walk strictly advances
and stops below the unfiltered-listing threshold.
"""

from __future__ import annotations

import urllib.parse as urlparse

import structlog
from bs4 import BeautifulSoup, Tag

from .constants import (
    FILTER_PARAM,
    NEXT_LABEL_RE,
    PAGE_PARAM,
    PAGE_SUMMARY_RE,
    PAGINATION_CONTAINER_SELECTOR,
    UNFILTERED_PAGE_THRESHOLD,
)
from .errors import PaginationGuardTrip
from .models import NextPage, PaginationState
from .normalize import clean_text

logger = structlog.get_logger(__name__)


def _query_value(url: str, param: str) -> str | None:
    values = urlparse.parse_qs(urlparse.urlsplit(url).query, keep_blank_values=True).get(param)
    return values[0] if values else None


def _as_int(value: str | None) -> int | None:
    value = (value or "").strip()
    return int(value) if value.isdigit() else None


def set_query_param(url: str, param: str, value: str) -> str:
    parts = urlparse.urlsplit(url)
    pairs = [(k, v) for k, v in urlparse.parse_qsl(parts.query, keep_blank_values=True) if k != param]
    pairs.append((param, value))
    return urlparse.urlunsplit(parts._replace(query=urlparse.urlencode(pairs)))


def _is_disabled(anchor: Tag) -> bool:
    for node in (anchor, anchor.parent):
        if not isinstance(node, Tag):
            continue
        if "disabled" in (node.get("class") or []) or node.has_attr("disabled"):
            return True
        if (node.get("aria-disabled") or "").lower() == "true":
            return True
    return False


def _usable_href(anchor: Tag) -> str | None:
    href = (anchor.get("href") or "").strip()
    if not href or href.startswith("#") or href.lower().startswith("javascript:"):
        return None
    return href


def _is_next_control(anchor: Tag) -> bool:
    if "next" in (anchor.get("rel") or []):
        return True
    if NEXT_LABEL_RE.match(clean_text(anchor.get_text(" "))):
        return True
    parent = anchor.parent
    return isinstance(parent, Tag) and any("next" in c.lower() for c in parent.get("class") or [])


def parse_pagination_info(soup: BeautifulSoup) -> PaginationState:
    """Best-effort reading of the pagination controls.

    An explicit "Page X of Y" text wins over what the containers suggest.
    """

    state = PaginationState()
    containers = soup.select(PAGINATION_CONTAINER_SELECTOR)
    if containers:
        for container in containers:
            active = container.select_one(".active, .current, [class*=active]")
            if active is not None:
                number = _as_int(clean_text(active.get_text(" ")))
                if number is not None:
                    state.current_page = number
                    break
        numbers = [
            n
            for container in containers
            for el in container.select("a, button, [data-page]")
            if (n := _as_int(clean_text(el.get_text(" ")))) is not None
        ]
        if numbers:
            state.total_pages = max(numbers + [state.current_page])
        state.has_next = any(
            _is_next_control(a) and not _is_disabled(a)
            for container in containers
            for a in container.find_all("a")
        )

    summary = PAGE_SUMMARY_RE.search(soup.get_text(" "))
    if summary:
        state.current_page = int(summary.group(1))
        state.total_pages = max(int(summary.group(2)), 1)
        state.has_next = state.current_page < state.total_pages
    return state


class PaginationEngine:
    """Decide which URL holds the page after ``current_page``."""

    def __init__(
        self,
        *,
        page_param: str = PAGE_PARAM,
        filter_param: str = FILTER_PARAM,
        threshold: int = UNFILTERED_PAGE_THRESHOLD,
    ) -> None:
        self.page_param = page_param
        self.filter_param = filter_param
        self.threshold = threshold

    # --- guard ---
    def rejection_reason(
        self,
        candidate: str,
        page: int | None,
        *,
        current_url: str,
        current_page: int,
        filter_value: str | None = None,
    ) -> str | None:
        """Return why ``candidate`` is unacceptable, or ``None`` if it is fine."""
        if page is None:
            return "no_page_number"
        if page >= self.threshold:
            return "unfiltered_listing"
        if page <= current_page:
            return "not_forward"
        if candidate == current_url:
            return "same_url"
        active = _query_value(current_url, self.filter_param)
        found = _query_value(candidate, self.filter_param)
        if active is not None and found != active:
            return "filter_dropped"
        if filter_value is not None and found is not None and found != filter_value:
            return "filter_changed"
        return None

    def _page_of(self, url: str) -> int | None:
        return _as_int(_query_value(url, self.page_param))

    # --- strategies ---
    def _label_candidates(self, soup: BeautifulSoup, current_url: str, current_page: int):
        for anchor in soup.find_all("a"):
            if not _is_next_control(anchor) or _is_disabled(anchor):
                continue
            href = _usable_href(anchor)
            if href is None:
                continue
            url = urlparse.urljoin(current_url, href)
            page = self._page_of(url)
            if page is None and current_page == 1:
                # page 1 links often omit the parameter; "next" then means 2
                page = 2
            yield url, page

    def _numbered_candidates(self, soup: BeautifulSoup, current_url: str):
        for anchor in soup.find_all("a"):
            href = _usable_href(anchor)
            if href is None or _is_disabled(anchor):
                continue
            url = urlparse.urljoin(current_url, href)
            page = self._page_of(url)
            if page is None:
                page = _as_int(clean_text(anchor.get_text(" ")))
            if page is not None:
                yield url, page

    def next_page(
        self,
        soup: BeautifulSoup,
        current_url: str,
        current_page: int,
        *,
        filter_value: str | None = None,
    ) -> NextPage | None:
        """Like :meth:`discover` but a guard trip simply means "no next page"."""
        try:
            return self.discover(soup, current_url, current_page, filter_value=filter_value)
        except PaginationGuardTrip as trip:
            logger.info("pagination_guard_trip", url=current_url, page=current_page, rejected=len(trip.rejected))
            return None

    def discover(
        self,
        soup: BeautifulSoup,
        current_url: str,
        current_page: int,
        *,
        filter_value: str | None = None,
    ) -> NextPage | None:
        """Return the next page, or ``None`` when no candidate exists at all.

        Raises :class:`PaginationGuardTrip` when candidates existed but the
        validity guard rejected every one of them.
        """

        rejected: list[tuple[str, str]] = []

        def accept(url: str, page: int | None) -> bool:
            reason = self.rejection_reason(
                url, page, current_url=current_url, current_page=current_page, filter_value=filter_value
            )
            if reason:
                rejected.append((url, reason))
                return False
            return True

        for url, page in self._label_candidates(soup, current_url, current_page):
            if accept(url, page):
                logger.debug("pagination_next", strategy="label", url=url, page=page)
                return NextPage(url=url, page=page)

        # links back to earlier pages are normal navigation, not guard rejections
        numbered = [(page, url) for url, page in self._numbered_candidates(soup, current_url) if page > current_page]
        accepted = [(page, url) for page, url in numbered if accept(url, page)]
        if accepted:
            page, url = min(accepted)
            logger.debug("pagination_next", strategy="numbered", url=url, page=page)
            return NextPage(url=url, page=page)

        summary = parse_pagination_info(soup)
        more = summary.has_next and current_page < summary.total_pages
        if more:
            url = set_query_param(current_url, self.page_param, str(current_page + 1))
            if filter_value is not None and _query_value(url, self.filter_param) is None:
                url = set_query_param(url, self.filter_param, filter_value)
            if accept(url, current_page + 1):
                logger.debug("pagination_next", strategy="constructed", url=url, page=current_page + 1)
                return NextPage(url=url, page=current_page + 1)

        if rejected:
            raise PaginationGuardTrip(rejected)
        return None
