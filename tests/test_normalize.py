from datetime import date

import pytest

from nsr_crawler.constants import MISSING_STATE_ID
from nsr_crawler.errors import ValidationError
from nsr_crawler.models import Record
from nsr_crawler.normalize import (
    clean_text,
    ensure_valid_nsr_number,
    extract_city,
    extract_gender,
    extract_region,
    is_valid_nsr_number,
    lookup_state_id,
    parse_date,
    parse_qualifications,
    region_from_text,
)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("123456", True),
        ("NSR 1234567", True),
        ("NSR 004821", True),
        ("12345", False),
        ("", False),
        (None, False),
        ("abcdef", False),
    ],
)
def test_nsr_number_needs_six_digits(value, expected):
    assert is_valid_nsr_number(value) is expected


def test_ensure_valid_nsr_number_raises():
    assert ensure_valid_nsr_number("654321") == "654321"
    with pytest.raises(ValidationError) as exc:
        ensure_valid_nsr_number("123")
    assert exc.value.value == "123"


def test_qualifications_split_into_degree_and_body():
    quals = parse_qualifications("MBBS (UM), MRCP (UK); FRCS")
    assert [(q.degree, q.awarding_body) for q in quals] == [
        ("MBBS", "UM"),
        ("MRCP", "UK"),
        ("FRCS", None),
    ]
    assert parse_qualifications("") == []
    assert parse_qualifications(None) == []


def test_address_resolves_state_and_city():
    address = "Johor Bahru, Johor 80100"
    region = extract_region(address)
    assert region.state == "Johor"
    assert region.category == "regular"
    assert extract_city(address) == "Johor Bahru"


def test_address_without_state_gets_missing_sentinel():
    region = extract_region("123 Unknown Road")
    assert region.state_id == MISSING_STATE_ID
    assert region.state == "Missing"
    assert region.category == "special"
    assert extract_city("Somewhere") is None


def test_city_is_not_a_state_name():
    assert extract_city("Lot 5, Kuala Lumpur, Selangor") is None
    assert extract_city("Lot 5, Selangor, 40000") == "Lot 5"


def test_multi_word_state_matches_across_whitespace():
    region = region_from_text("Jalan Sultan, 10200 George Town, Pulau\n Pinang")
    assert region is not None and region.state == "Pulau Pinang"


def test_state_lookup_by_name_alias_and_id():
    assert lookup_state_id("Penang") == 9
    assert lookup_state_id(" kuala  lumpur ") == 14
    assert lookup_state_id("12") == 12
    assert lookup_state_id("77") is None
    assert lookup_state_id("Atlantis") is None


def test_gender_and_text_cleanup():
    assert extract_gender("FEMALE") == "Female"
    assert extract_gender("Gender: male") == "Male"
    assert extract_gender("n/a") is None
    assert clean_text("  Dr\n  Tan \t Ah  Kow ") == "Dr Tan Ah Kow"


def test_dates_are_day_first():
    assert parse_date("05/03/2024") == "2024-03-05"
    assert parse_date("12 January 2023") == "2023-01-12"
    assert parse_date("not a date") is None
    assert parse_date("") is None


def test_record_document_has_iso_dates():
    record = Record(nsr_no="123456", profile_url="https://nsr.test/p", last_renewal_date="2024-03-05")
    assert record.last_renewal_date == date(2024, 3, 5)
    assert record.to_document()["last_renewal_date"] == "2024-03-05"
