"""Pure helpers that turn raw register text into typed values."""

from __future__ import annotations

import re

import structlog
from dateutil import parser as date_parser

from .constants import (
    GENDER_RE,
    MALAYSIAN_STATES,
    MIN_NSR_DIGITS,
    MISSING_STATE_ID,
    NSR_PROFILE_URL,
    POSTCODE_RE,
    QUALIFICATION_RE,
    STATE_FULL_RE,
    STATE_NAME_TO_ID,
    STATE_RE,
)
from .errors import ValidationError
from .models import Qualification, Region

logger = structlog.get_logger(__name__)

_WS_RE = re.compile(r"\s+")
_SPLIT_QUALIFICATIONS_RE = re.compile(r"[,;\n]+")
_SPLIT_ADDRESS_RE = re.compile(r"[,\n]+")


def clean_text(text: str | None) -> str:
    """Collapse internal whitespace and strip the ends."""
    if not text:
        return ""
    return _WS_RE.sub(" ", text).strip()


def is_valid_nsr_number(value: str | None) -> bool:
    if not value:
        return False
    digits = re.sub(r"\D", "", value)
    return len(digits) >= MIN_NSR_DIGITS


def ensure_valid_nsr_number(value: str | None) -> str:
    """Return ``value`` unchanged or raise :class:`ValidationError`."""
    if not is_valid_nsr_number(value):
        raise ValidationError(value)
    return value  # type: ignore[return-value]


def extract_gender(text: str | None) -> str | None:
    if not text:
        return None
    match = GENDER_RE.search(text)
    if not match:
        return None
    return match.group(1).capitalize()


def parse_date(text: str | None) -> str | None:
    """Return the calendar date in ``text`` as ``YYYY-MM-DD`` or ``None``.

    Register dates are written day first (``05/03/2024`` is 5 March).
    """
    value = clean_text(text)
    if not value:
        return None
    try:
        parsed = date_parser.parse(value, dayfirst=True)
    except (ValueError, OverflowError):
        logger.debug("date_unparsable", value=value)
        return None
    return parsed.date().isoformat()


def parse_qualifications(text: str | None) -> list[Qualification]:
    """Split free-text qualifications into ``degree (awarding body)`` pairs."""
    if not text:
        return []
    out: list[Qualification] = []
    for segment in _SPLIT_QUALIFICATIONS_RE.split(text):
        segment = clean_text(segment)
        if not segment:
            continue
        match = QUALIFICATION_RE.match(segment)
        if match:
            out.append(Qualification(degree=match.group(1).strip(), awarding_body=match.group(2).strip()))
        else:
            out.append(Qualification(degree=segment, awarding_body=None))
    return out


def region_by_id(state_id: int) -> Region:
    info = MALAYSIAN_STATES[state_id]
    return Region(state_id=state_id, state=info["display_name"], category=info["category"])


MISSING_REGION = region_by_id(MISSING_STATE_ID)


def lookup_state_id(name: str | None) -> int | None:
    """Resolve a state name, alias or numeric id to its register id."""
    if not name:
        return None
    key = clean_text(name).lower()
    if key.isdigit():
        return int(key) if int(key) in MALAYSIAN_STATES else None
    return STATE_NAME_TO_ID.get(key)


def region_from_text(text: str | None) -> Region | None:
    """Return the first known state mentioned anywhere in ``text``."""
    if not text:
        return None
    match = STATE_RE.search(text)
    if not match:
        return None
    state_id = lookup_state_id(match.group(1))
    if state_id is None:
        return None
    return region_by_id(state_id)


def extract_region(address: str | None) -> Region:
    """Region for an address; the ``Missing`` sentinel when nothing matches."""
    return region_from_text(address) or MISSING_REGION


def extract_city(address: str | None) -> str | None:
    if not address:
        return None
    cleaned = POSTCODE_RE.sub("", address)
    parts = [p.strip() for p in _SPLIT_ADDRESS_RE.split(cleaned)]
    parts = [p for p in parts if p]
    if len(parts) < 2:
        return None
    candidate = parts[-2]
    if STATE_FULL_RE.match(candidate):
        return None
    return candidate


def build_profile_url(nsr_no: str) -> str:
    return f"{NSR_PROFILE_URL}?nsrNo={nsr_no}"
