# testflow/identifiers.py
"""
Structured identifiers used across the lab.

  ATL/YY/MM/<seq>     material-level id (one per sub-test material)
  ATL/YY/MM/T_<seq>   request-level id
  ROR/YY/MM/<seq>     Review of Request number, reuses the request count

The predicates are pure. The ``validate_*`` callables raise FormatError and
are attached to model fields and used by the store at write time.
"""
from __future__ import annotations

import re
from typing import Iterable, Tuple

from .errors import FormatError

REQUEST_ID_RE = re.compile(r"^ATL/\d{2}/\d{2}/T_\d+$")
ATL_ID_RE = re.compile(r"^ATL/\d{2}/\d{2}/\d+$")
DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


# ===============================================================
# Predicates
# ===============================================================

def is_request_id(value) -> bool:
    return isinstance(value, str) and bool(REQUEST_ID_RE.match(value))


def is_atl_id(value) -> bool:
    return isinstance(value, str) and bool(ATL_ID_RE.match(value))


def is_date(value) -> bool:
    return isinstance(value, str) and bool(DATE_RE.match(value))


# ===============================================================
# Field validators
# ===============================================================

def validate_request_id(value) -> None:
    if not is_request_id(value):
        raise FormatError(f"{value} is not a valid Test ID format! Use ATL/YY/MM/T_<n>")


def validate_atl_id(value) -> None:
    if not is_atl_id(value):
        raise FormatError(f"{value} is not a valid ATL ID format! Use ATL/YY/MM/<n>")


def validate_date(value) -> None:
    if not is_date(value):
        raise FormatError(f"{value} is not a valid date format! Use YYYY-MM-DD")


# ===============================================================
# Formatting
# ===============================================================

def _two_digits(value, name: str) -> str:
    text = str(value if value is not None else "").strip()
    if not text.isdigit() or len(text) > 4:
        raise FormatError(f"{name} must be numeric, got {value!r}")
    # Accept 2024 as well as 24.
    return text[-2:].zfill(2)


def format_atl_id(year, month, seq: int) -> str:
    return f"ATL/{_two_digits(year, 'year')}/{_two_digits(month, 'month')}/{int(seq)}"


def format_request_id(year, month, seq: int) -> str:
    return f"ATL/{_two_digits(year, 'year')}/{_two_digits(month, 'month')}/T_{int(seq)}"


def split_request_id(request_id: str) -> Tuple[str, str, str]:
    """
    Returns (year, month, count) of a request id.
    """
    validate_request_id(request_id)
    _, year, month, count = request_id.split("/")
    return year, month, count[len("T_"):]


def ror_number(request_id: str) -> str:
    year, month, count = split_request_id(request_id)
    return f"ROR/{year}/{month}/{count}"


def proforma_number(request_id: str) -> str:
    year, month, count = split_request_id(request_id)
    return f"ATL/{year}/{month}/{count}"


# ===============================================================
# Sequence lookup
# ===============================================================

def max_suffix(values: Iterable[str], pattern: "re.Pattern[str]") -> int:
    """
    Largest trailing integer among values matching pattern.
    Non-matching or malformed values are skipped.
    """
    highest = 0
    for value in values:
        if not isinstance(value, str):
            continue
        match = pattern.match(value)
        if not match:
            continue
        try:
            number = int(match.group("seq"))
        except (TypeError, ValueError):
            continue
        if number > highest:
            highest = number
    return highest


def next_atl_sequence(year, month) -> int:
    """
    Next material sequence within ATL/<year>/<month>/*. 1 when none exist.
    """
    from .models import SubTest

    yy = _two_digits(year, "year")
    mm = _two_digits(month, "month")
    prefix = f"ATL/{yy}/{mm}/"
    pattern = re.compile(rf"^ATL/{yy}/{mm}/(?P<seq>\d+)$")

    ids = SubTest.objects.filter(atl_id__startswith=prefix).values_list("atl_id", flat=True)
    return max_suffix(ids.iterator(), pattern) + 1


def next_request_sequence(year, month) -> int:
    from .models import TestRequest

    yy = _two_digits(year, "year")
    mm = _two_digits(month, "month")
    prefix = f"ATL/{yy}/{mm}/T_"
    pattern = re.compile(rf"^ATL/{yy}/{mm}/T_(?P<seq>\d+)$")

    ids = TestRequest.objects.filter(request_id__startswith=prefix).values_list("request_id", flat=True)
    return max_suffix(ids.iterator(), pattern) + 1
