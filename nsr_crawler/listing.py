"""Results-page parsing: specialist stubs and the "has results" check."""

from __future__ import annotations

import urllib.parse as urlparse

import structlog
from bs4 import BeautifulSoup, Tag

from .constants import (
    HEADER_ROW_CLASS,
    MIN_LISTING_COLUMNS,
    NO_RECORDS_PHRASES,
    RESULTS_TABLE_SELECTOR,
)
from .errors import ParseError
from .models import EntityStub
from .normalize import build_profile_url, clean_text, is_valid_nsr_number

logger = structlog.get_logger(__name__)


def _is_header_row(row: Tag) -> bool:
    if HEADER_ROW_CLASS in (row.get("class") or []):
        return True
    return not row.find("td", recursive=False)


def _result_rows(soup: BeautifulSoup) -> list[Tag]:
    table = soup.select_one(RESULTS_TABLE_SELECTOR)
    if table is None:
        raise ParseError("results table not found")
    return [row for row in table.find_all("tr") if not _is_header_row(row)]


def _cell_text(cell: Tag) -> str | None:
    return clean_text(cell.get_text(" ")) or None


def parse_listing(soup: BeautifulSoup, base_url: str) -> list[EntityStub]:
    """Return stubs for every valid data row, in document order.

    Raises :class:`ParseError` when the page has no results table at all.
    Rows that are too short or carry an invalid register number are skipped.
    """

    stubs: list[EntityStub] = []
    for row in _result_rows(soup):
        cells = row.find_all("td", recursive=False)
        if len(cells) < MIN_LISTING_COLUMNS:
            logger.debug("listing_row_skipped", reason="too_few_columns", columns=len(cells))
            continue
        nsr_no = clean_text(cells[0].get_text(" "))
        if not is_valid_nsr_number(nsr_no):
            logger.warning("listing_row_invalid_id", nsr_no=nsr_no)
            continue

        name_cell = cells[2]
        link = name_cell.find("a")
        name = clean_text(link.get_text(" ")) if link else ""
        if not name:
            name = clean_text(name_cell.get_text(" "))
        href = (link.get("href") or "").strip() if link else ""
        if href and not href.lower().startswith("javascript:"):
            profile_url = urlparse.urljoin(base_url, href)
        else:
            profile_url = build_profile_url(nsr_no)

        stubs.append(
            EntityStub(
                nsr_no=nsr_no,
                name=name,
                profile_url=profile_url,
                title=_cell_text(cells[1]),
                gender=_cell_text(cells[3]),
                location=_cell_text(cells[4]),
                specialty=_cell_text(cells[5]),
            )
        )
    return stubs


def has_results(soup: BeautifulSoup) -> bool:
    """True only when at least one non-header result row is present.

    Absence of rows means "no results" whether or not one of the known
    "no records" phrases is shown; the phrase only changes what is logged.
    """

    table = soup.select_one(RESULTS_TABLE_SELECTOR)
    if table is not None and any(not _is_header_row(row) for row in table.find_all("tr")):
        return True
    body = soup.body or soup
    text = body.get_text(" ").lower()
    phrase = next((p for p in NO_RECORDS_PHRASES if p in text), None)
    if phrase:
        logger.debug("listing_no_records", phrase=phrase)
    else:
        logger.debug("listing_no_signal")
    return False
