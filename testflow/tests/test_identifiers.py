# testflow/tests/test_identifiers.py

import re

import pytest

from testflow.errors import FormatError
from testflow.identifiers import (
    format_atl_id,
    format_request_id,
    is_atl_id,
    is_date,
    is_request_id,
    max_suffix,
    next_atl_sequence,
    next_request_sequence,
    proforma_number,
    ror_number,
    split_request_id,
    validate_atl_id,
    validate_date,
    validate_request_id,
)


@pytest.mark.parametrize(
    "value,expected",
    [
        ("ATL/24/05/T_12", True),
        ("ATL/24/05/T_", False),
        ("ATL/2024/05/T_1", False),
        ("ATL/24/05/12", False),
        (None, False),
    ],
)
def test_request_id_format(value, expected):
    assert is_request_id(value) is expected


def test_atl_id_and_date_formats():
    assert is_atl_id("ATL/24/05/3")
    assert not is_atl_id("ATL/24/05/T_3")
    assert is_date("2024-05-14")
    assert not is_date("14/05/2024")


def test_validators_raise_format_error():
    with pytest.raises(FormatError):
        validate_request_id("ATL-24-05-T_1")
    with pytest.raises(FormatError):
        validate_atl_id("ATL/24/5/1")
    with pytest.raises(FormatError) as exc:
        validate_date("2024/05/14")
    assert exc.value.kind == "format_error"
    assert "YYYY-MM-DD" in exc.value.message


def test_formatting_accepts_long_years_and_single_digit_months():
    assert format_atl_id("2024", "5", 3) == "ATL/24/05/3"
    assert format_request_id(24, 11, 10) == "ATL/24/11/T_10"


def test_document_numbers_reuse_request_count():
    assert split_request_id("ATL/24/05/T_7") == ("24", "05", "7")
    assert ror_number("ATL/24/05/T_7") == "ROR/24/05/7"
    assert proforma_number("ATL/24/05/T_7") == "ATL/24/05/7"


def test_max_suffix_skips_malformed_values():
    pattern = re.compile(r"^ATL/24/05/(?P<seq>\d+)$")
    values = ["ATL/24/05/2", "ATL/24/05/x", "garbage", None, "ATL/24/05/10", "ATL/24/06/99"]
    assert max_suffix(values, pattern) == 10
    assert max_suffix([], pattern) == 0


@pytest.mark.django_db
def test_next_atl_sequence_starts_at_one_then_follows_highest(make_request):
    assert next_atl_sequence("24", "05") == 1

    make_request()
    assert next_atl_sequence("24", "05") == 2
    assert next_atl_sequence("2024", "05") == 2
    assert next_atl_sequence("24", "06") == 1


@pytest.mark.django_db
def test_next_request_sequence(make_request):
    assert next_request_sequence("24", "05") == 1
    make_request(request_id="ATL/24/05/T_9")
    assert next_request_sequence("24", "05") == 10
