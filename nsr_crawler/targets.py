"""Resolve configured states and seed URLs into crawl targets."""

from __future__ import annotations

import urllib.parse as urlparse
from typing import Iterable

import structlog

from .constants import FILTER_PARAM, MALAYSIAN_STATES, SPECIAL_CATEGORY
from .models import EntityTarget, Region
from .normalize import lookup_state_id, region_by_id

logger = structlog.get_logger(__name__)


def target_for_state(state_id: int) -> EntityTarget:
    info = MALAYSIAN_STATES[state_id]
    return EntityTarget(
        key=str(state_id),
        label=info["display_name"],
        category=info["category"],
        filter_value=str(state_id),
    )


def targets_for(states: Iterable[str] | None = None) -> list[EntityTarget]:
    """Targets for the requested state names, aliases or ids.

    With nothing requested every state except the special buckets is
    returned; special buckets are only crawled when asked for by name.
    """

    requested = [s for s in (states or []) if s and s.strip()]
    if not requested:
        return [
            target_for_state(state_id)
            for state_id, info in MALAYSIAN_STATES.items()
            if info["category"] != SPECIAL_CATEGORY
        ]

    targets: list[EntityTarget] = []
    seen: set[int] = set()
    for name in requested:
        state_id = lookup_state_id(name)
        if state_id is None:
            logger.warning("unknown_state", state=name)
            continue
        if state_id in seen:
            continue
        seen.add(state_id)
        targets.append(target_for_state(state_id))
    return targets


def target_from_url(url: str, *, filter_param: str = FILTER_PARAM) -> EntityTarget:
    """Target for an explicit seed URL.

    A seed whose filter parameter names a known state belongs to that state;
    anything else becomes its own bucket keyed by the URL.
    """

    query = urlparse.parse_qs(urlparse.urlsplit(url).query)
    value = (query.get(filter_param) or [None])[0]
    state_id = lookup_state_id(value)
    if state_id is not None:
        return target_for_state(state_id)
    return EntityTarget(key=url, label=url, category="regular", filter_value=value)


def region_for_target(target: EntityTarget) -> Region | None:
    state_id = lookup_state_id(target.filter_value)
    if state_id is None or MALAYSIAN_STATES[state_id]["category"] == SPECIAL_CATEGORY:
        return None
    return region_by_id(state_id)
