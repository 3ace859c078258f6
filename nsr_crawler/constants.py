"""Static knowledge about the National Specialist Register site.

State table, URL layout, CSS selectors and the regular expressions shared by the
parsers and normalizers live here so that a markup change on the register only
needs an edit in one place.
"""

from __future__ import annotations

import re

# ----------------------------- States ----------------------------- #
# id -> (canonical lower-case name, display name, category, aliases)
MALAYSIAN_STATES: dict[int, dict] = {
    1: {"name": "johor", "display_name": "Johor", "category": "regular"},
    2: {"name": "kedah", "display_name": "Kedah", "category": "regular"},
    3: {"name": "kelantan", "display_name": "Kelantan", "category": "regular"},
    4: {"name": "melaka", "display_name": "Melaka", "category": "regular"},
    5: {"name": "negeri sembilan", "display_name": "Negeri Sembilan", "category": "regular"},
    6: {"name": "pahang", "display_name": "Pahang", "category": "regular"},
    7: {"name": "perak", "display_name": "Perak", "category": "regular"},
    8: {"name": "perlis", "display_name": "Perlis", "category": "regular"},
    9: {
        "name": "pulau pinang",
        "display_name": "Pulau Pinang",
        "category": "regular",
        "aliases": ("penang",),
    },
    10: {"name": "sabah", "display_name": "Sabah", "category": "regular"},
    11: {"name": "sarawak", "display_name": "Sarawak", "category": "regular"},
    12: {"name": "selangor", "display_name": "Selangor", "category": "regular"},
    13: {"name": "terengganu", "display_name": "Terengganu", "category": "regular"},
    14: {"name": "kuala lumpur", "display_name": "Kuala Lumpur", "category": "federal_territory"},
    15: {"name": "labuan", "display_name": "Labuan", "category": "federal_territory"},
    16: {"name": "putrajaya", "display_name": "Putrajaya", "category": "federal_territory"},
    20: {"name": "foreign", "display_name": "Foreign, specify", "category": "special"},
    9999: {"name": "missing", "display_name": "Missing", "category": "special"},
}

MISSING_STATE_ID = 9999
SPECIAL_CATEGORY = "special"

STATE_NAME_TO_ID: dict[str, int] = {}
for _state_id, _info in MALAYSIAN_STATES.items():
    STATE_NAME_TO_ID[_info["name"]] = _state_id
    for _alias in _info.get("aliases", ()):
        STATE_NAME_TO_ID[_alias] = _state_id

# Only real geographic states are matched inside addresses.
_ADDRESS_STATE_NAMES = sorted(
    (name for name, sid in STATE_NAME_TO_ID.items() if MALAYSIAN_STATES[sid]["category"] != SPECIAL_CATEGORY),
    key=len,
    reverse=True,
)
STATE_PATTERN_SOURCE = "|".join(r"\s+".join(map(re.escape, n.split())) for n in _ADDRESS_STATE_NAMES)
STATE_RE = re.compile(rf"\b({STATE_PATTERN_SOURCE})\b", re.IGNORECASE)
STATE_FULL_RE = re.compile(rf"^(?:{STATE_PATTERN_SOURCE})$", re.IGNORECASE)

# ------------------------------ URLs ------------------------------ #
NSR_BASE_URL = "https://nsr.org.my"
NSR_SEARCH_URL = f"{NSR_BASE_URL}/list11.asp"
NSR_LISTING_URL = f"{NSR_BASE_URL}/list1pview.asp"
NSR_PROFILE_URL = f"{NSR_BASE_URL}/nsr/ViewSpecialistProfile.jsp"

FILTER_PARAM = "state_ForSearch"
PAGE_PARAM = "page"
UNFILTERED_PAGE_THRESHOLD = 1000

# ---------------------------- Selectors --------------------------- #
RESULTS_TABLE_SELECTOR = "table.searchlist"
HEADER_ROW_CLASS = "table-heading"
MIN_LISTING_COLUMNS = 6
DETAIL_TABLE_SELECTOR = "table.table-bordered"
PAGINATION_CONTAINER_SELECTOR = ".pagination, .paging, [class*=page]"
NAME_ELEMENT_SELECTOR = "#specialistName, .specialist-name, [data-field=name]"
SPECIALTY_ELEMENT_SELECTOR = "#specialty, .specialty, [data-field=specialty]"

NO_RECORDS_PHRASES: tuple[str, ...] = (
    "no records found",
    "no results",
    "no specialist found",
    "tidak ada rekod",
    "no data available",
)

# ----------------------------- Patterns --------------------------- #
QUALIFICATION_RE = re.compile(r"^([^()]+?)\s*\(([^()]+)\)$")
GENDER_RE = re.compile(r"\b(female|male)\b", re.IGNORECASE)
POSTCODE_RE = re.compile(r"\d{5,}")
NEXT_LABEL_RE = re.compile(r"^(?:next\b.*|seterusnya\b.*|›|»|>>|>|→)$", re.IGNORECASE)
PAGE_SUMMARY_RE = re.compile(r"(?:page|halaman)\s+(\d+)\s+(?:of|dari|daripada)\s+(\d+)", re.IGNORECASE)

MIN_NSR_DIGITS = 6
