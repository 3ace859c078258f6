"""Detail-page parsing.

A profile is scattered over several ``table-bordered`` tables whose meaning is
only given by free-text headings ("Personal Data", "Clinical Practice",
"Qualifications").  Extraction runs as an ordered list of strategies; each one
returns a partial mapping of record fields and the first non-empty value per
field wins.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Callable

import structlog
from bs4 import BeautifulSoup, Tag

from .constants import (
    DETAIL_TABLE_SELECTOR,
    MISSING_STATE_ID,
    NAME_ELEMENT_SELECTOR,
    SPECIALTY_ELEMENT_SELECTOR,
)
from .models import EntityStub, Qualification, Record, Region
from .normalize import (
    build_profile_url,
    clean_text,
    extract_city,
    extract_gender,
    extract_region,
    is_valid_nsr_number,
    parse_date,
    parse_qualifications,
)

logger = structlog.get_logger(__name__)

Partial = dict[str, Any]
Strategy = Callable[[BeautifulSoup], Partial]

_YEAR_RE = re.compile(r"\b(\d{4})\b")
_QUALIFICATION_HEADER_TOKENS = ("degree/membership", "basic degree", "specialist degree")


class Section(Enum):
    NONE = "none"
    PERSONAL = "personal"
    PRACTICE = "practice"
    QUALIFICATIONS = "qualifications"


def _section_for(table_text: str, current: Section) -> Section:
    if "Personal Data" in table_text:
        return Section.PERSONAL
    if "Clinical Practice" in table_text:
        return Section.PRACTICE
    if "Qualifications" in table_text or "Degree/Membership/Fellowship" in table_text:
        return Section.QUALIFICATIONS
    return current


def _region_fields(region: Region) -> Partial:
    return {"state": region.state, "state_id": region.state_id, "state_category": region.category}


def _address_fields(address: str) -> Partial:
    fields: Partial = {"address": address, "city": extract_city(address)}
    fields.update(_region_fields(extract_region(address)))
    return fields


def _qualification_row(cells: list[Tag]) -> tuple[str, Qualification] | None:
    degree, body, year_text = (clean_text(c.get_text(" ")) for c in cells)
    if not degree or not body:
        return None
    if any(token in degree.lower() for token in _QUALIFICATION_HEADER_TOKENS):
        return None
    if "awarding body" in body.lower():
        return None
    match = _YEAR_RE.search(year_text)
    year = int(match.group(1)) if match else None
    raw = f"{degree} ({body}, {year_text})" if year_text else f"{degree} ({body})"
    return raw, Qualification(degree=degree, awarding_body=body, year=year)


def _route_label(label: str, value: str, section: Section, fields: Partial) -> None:
    """Store ``value`` under the record field that ``label`` names."""
    label = label.rstrip(":").strip()
    if "nsr no" in label:
        fields["nsr_no"] = value
    elif label == "title" and section is Section.PERSONAL:
        fields["title"] = value
    elif label == "name" and section is Section.PERSONAL:
        fields["name"] = value
    elif label == "name" and section is Section.PRACTICE:
        fields["establishment"] = value
    elif "gender" in label:
        fields["gender"] = extract_gender(value)
    elif "field" in label and "practice" in label:
        fields["specialty"] = value
    elif "address" in label:
        fields.update(_address_fields(value))
    elif "sector" in label:
        fields["sector"] = value
    elif "renewal" in label or "last renewed" in label:
        fields["last_renewal_date"] = parse_date(value)
    elif "qualification" in label:
        parsed = parse_qualifications(value)
        fields.setdefault("qualifications", []).extend(
            f"{q.degree} ({q.awarding_body})" if q.awarding_body else q.degree for q in parsed
        )
        fields.setdefault("qualifications_structured", []).extend(parsed)


def scan_tables(soup: BeautifulSoup) -> Partial:
    fields: Partial = {}
    raw_quals: list[str] = []
    structured: list[Qualification] = []
    section = Section.NONE
    for table in soup.select(DETAIL_TABLE_SELECTOR):
        section = _section_for(table.get_text(" "), section)
        for row in table.find_all("tr"):
            cells = row.find_all("td")
            if section is Section.QUALIFICATIONS and len(cells) == 3:
                parsed = _qualification_row(cells)
                if parsed:
                    raw_quals.append(parsed[0])
                    structured.append(parsed[1])
                continue
            if len(cells) < 2:
                continue
            label = clean_text(cells[-2].get_text(" ")).lower()
            value = clean_text(cells[-1].get_text(" "))
            if value:
                _route_label(label, value, section, fields)
    if raw_quals:
        fields["qualifications"] = raw_quals + fields.get("qualifications", [])
        fields["qualifications_structured"] = structured + fields.get("qualifications_structured", [])
    return fields


def scan_marked_elements(soup: BeautifulSoup) -> Partial:
    fields: Partial = {}
    name = soup.select_one(NAME_ELEMENT_SELECTOR)
    if name is not None:
        fields["name"] = clean_text(name.get_text(" "))
    specialty = soup.select_one(SPECIALTY_ELEMENT_SELECTOR)
    if specialty is not None:
        fields["specialty"] = clean_text(specialty.get_text(" "))
    return fields


def scan_definition_lists(soup: BeautifulSoup) -> Partial:
    fields: Partial = {}
    for dl in soup.find_all("dl"):
        for dt, dd in zip(dl.find_all("dt"), dl.find_all("dd")):
            label = clean_text(dt.get_text(" ")).lower()
            value = clean_text(dd.get_text(" "))
            if not value:
                continue
            if "name" in label:
                fields.setdefault("name", value)
            elif "specialty" in label:
                fields.setdefault("specialty", value)
            elif "address" in label and "address" not in fields:
                fields.update(_address_fields(value))
    return fields


STRATEGIES: tuple[Strategy, ...] = (scan_tables, scan_marked_elements, scan_definition_lists)


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == []


def merge_partials(partials: list[Partial]) -> Partial:
    """Combine partial mappings; the first non-empty value per field wins."""
    merged: Partial = {}
    for partial in partials:
        for key, value in partial.items():
            if _is_empty(merged.get(key)) and not _is_empty(value):
                merged[key] = value
    return merged


def _stub_fields(stub: EntityStub | None) -> Partial:
    if stub is None:
        return {}
    return {
        "name": stub.name,
        "title": stub.title,
        "gender": extract_gender(stub.gender),
        "specialty": stub.specialty,
    }


def parse_profile(
    soup: BeautifulSoup,
    nsr_no: str,
    *,
    stub: EntityStub | None = None,
    listing_region: Region | None = None,
    region_precedence: str = "address",
) -> Record:
    """Build a :class:`Record` from a detail page.

    ``listing_region`` is the region known from the listing that led here.
    When the address yields a real state as well and the two disagree,
    ``region_precedence`` (``"address"`` or ``"listing"``) picks the winner.
    A mostly empty page still produces a record carrying the id and URL.
    """

    partials = [strategy(soup) for strategy in STRATEGIES]
    partials.append(_stub_fields(stub))
    fields = merge_partials(partials)

    override = fields.pop("nsr_no", None)
    if override and override != nsr_no:
        if is_valid_nsr_number(override):
            logger.info("profile_id_override", expected=nsr_no, found=override)
            nsr_no = override
        else:
            logger.warning("profile_id_override_ignored", expected=nsr_no, found=override)

    if not fields.get("state") and fields.get("address"):
        fields.update(_region_fields(extract_region(fields["address"])))

    address_region = None
    if fields.get("state_id") not in (None, MISSING_STATE_ID):
        address_region = Region(fields["state_id"], fields["state"], fields["state_category"])
    if listing_region is not None and address_region != listing_region:
        if address_region is None or region_precedence == "listing":
            fields.update(_region_fields(listing_region))
        if address_region is not None:
            logger.info(
                "profile_region_conflict",
                nsr_no=nsr_no,
                address_state=address_region.state,
                listing_state=listing_region.state,
                kept=region_precedence,
            )

    return Record(nsr_no=nsr_no, profile_url=build_profile_url(nsr_no), **fields)
