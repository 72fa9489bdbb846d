# testflow/store.py
"""
Persistence for the test-request aggregate.

All writes that touch a request and its sub-tests happen inside one
transaction. Workflow fields (status, documents, job cards, approvals)
are not writable here; they belong to testflow.workflows.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from django.db import IntegrityError, transaction
from django.db.models import F, Q, QuerySet
from django.utils.dateparse import parse_date

from .errors import ConflictError, FormatError, NotFoundError, ValidationError
from .identifiers import (
    format_atl_id,
    format_request_id,
    next_atl_sequence,
    next_request_sequence,
    validate_atl_id,
    validate_date,
    validate_request_id,
)
from .models import Client, Counter, Equipment, SubTest, TestRequest
from .workflows import normalize_state, statuses_in_bucket
from .workflows.executor import locked_test_request

logger = logging.getLogger(__name__)

TEST_REQUEST_COUNTER = "test_request"

CONTACT_FIELDS = ("client_name", "contact_no", "email", "address")


PATCHABLE_FIELDS = set(CONTACT_FIELDS) | set(TestRequest.REQUIREMENT_FIELDS) | {
    "request_date",
    "completion_date",
    "material_received",
    "payment_received",
    "sub_tests",
}

ORDERING_FIELDS = {"id", "sequence_number", "request_date", "created_at", "updated_at", "status", "request_id"}


# ===============================================================
# Counter
# ===============================================================

def next_sequence_number(name: str = TEST_REQUEST_COUNTER) -> int:
    """
    Atomic increment-and-read on the named counter row.
    """
    with transaction.atomic():
        counter, _ = Counter.objects.select_for_update().get_or_create(name=name)
        Counter.objects.filter(pk=counter.pk).update(value=F("value") + 1)
        counter.refresh_from_db(fields=["value"])
        return counter.value


# ===============================================================
# Field cleaning
# ===============================================================

def _text(data: Dict[str, Any], key: str, *, required: bool = True, label: Optional[str] = None) -> str:
    value = data.get(key)
    text = str(value).strip() if value is not None else ""
    if required and not text:
        raise ValidationError({key: f"{label or key} is required."})
    return text


def _yes_no(value: Any, key: str) -> str:
    if value in (None, ""):
        return ""
    if isinstance(value, bool):
        return "yes" if value else "no"
    text = str(value).strip().lower()
    if text not in {"yes", "no"}:
        raise ValidationError({key: "Answer must be 'yes' or 'no'."})
    return text


def _optional_date(value: Any, key: str):
    if value in (None, ""):
        return None
    if hasattr(value, "year"):
        return value
    try:
        parsed = parse_date(str(value))
    except ValueError:
        # well-formed but impossible, e.g. 2024-02-30
        parsed = None
    if parsed is None:
        raise FormatError({key: f"{value} is not a valid date format! Use YYYY-MM-DD"})
    return parsed


def _clean_measurements(value: Any) -> List[Dict[str, Any]]:
    if value in (None, ""):
        return []
    if not isinstance(value, (list, tuple)):
        raise ValidationError({"measurements": "Measurements must be a list."})

    cleaned: List[Dict[str, Any]] = []
    for idx, item in enumerate(value):
        if not isinstance(item, dict):
            raise ValidationError({"measurements": f"Measurement #{idx + 1} must be an object."})
        test = str(item.get("test") or "").strip()
        standard = str(item.get("standard") or "").strip()
        if not test or not standard:
            raise ValidationError(
                {"measurements": f"Measurement #{idx + 1} requires both 'test' and 'standard'."}
            )
        entry = dict(item)
        entry["test"] = test
        entry["standard"] = standard
        entry.setdefault("result", "")
        entry.setdefault("unit", "")
        entry.setdefault("values", [])
        cleaned.append(entry)
    return cleaned


def _clean_sub_test(item: Any, idx: int) -> Dict[str, Any]:
    if not isinstance(item, dict):
        raise ValidationError({"sub_tests": f"Sub-test #{idx + 1} must be an object."})

    data = {
        "atl_id": _text(item, "atl_id", required=False),
        "material": _text(item, "material", label="Material"),
        "material_id": _text(item, "material_id", label="Material ID"),
        "test_date": _text(item, "test_date", label="Test date"),
        "quantity": _text(item, "quantity", label="Quantity"),
        "test_type": _text(item, "test_type", label="Test type"),
        "from_date": _optional_date(item.get("from_date"), "from_date"),
        "to_date": _optional_date(item.get("to_date"), "to_date"),
        "measurements": _clean_measurements(item.get("measurements")),
    }

    validate_date(data["test_date"])
    if data["atl_id"]:
        validate_atl_id(data["atl_id"])

    if data["from_date"] and data["to_date"] and data["to_date"] < data["from_date"]:
        raise ValidationError({"to_date": "Test period end is before its start."})
    return data


def _clean_sub_tests(items: Any, request_date: str) -> List[Dict[str, Any]]:
    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError({"sub_tests": "At least one sub-test is required."})

    cleaned = [_clean_sub_test(item, idx) for idx, item in enumerate(items)]
    _assign_atl_ids(cleaned, request_date)

    seen = set()
    for data in cleaned:
        key = (data["atl_id"], data["test_type"], data["material"])
        if key in seen:
            raise ValidationError(
                {"sub_tests": f"Duplicate sub-test {data['atl_id']} / {data['test_type']} / {data['material']}."}
            )
        seen.add(key)
    return cleaned


def _assign_atl_ids(cleaned: Sequence[Dict[str, Any]], request_date: str) -> None:
    """
    Fill missing ATL ids from the request month, one id per material_id.
    """
    missing = [d for d in cleaned if not d["atl_id"]]
    if not missing:
        return

    year, month = request_date[2:4], request_date[5:7]
    seq = next_atl_sequence(year, month)
    taken = {d["atl_id"] for d in cleaned if d["atl_id"]}

    by_material: Dict[str, str] = {}
    for data in missing:
        if data["material_id"] in by_material:
            data["atl_id"] = by_material[data["material_id"]]
            continue
        atl_id = format_atl_id(year, month, seq)
        while atl_id in taken:
            seq += 1
            atl_id = format_atl_id(year, month, seq)
        seq += 1
        taken.add(atl_id)
        by_material[data["material_id"]] = atl_id
        data["atl_id"] = atl_id


# ===============================================================
# Clients
# ===============================================================

def create_client(data: Dict[str, Any]) -> Client:
    name = _text(data, "name", label="Client name")
    contact_no = _text(data, "contact_no", label="Contact number")
    email = _text(data, "email", label="Email").lower()
    address = _text(data, "address", label="Address")

    if Client.objects.filter(email__iexact=email).exists():
        raise ConflictError({"email": f"A client with email {email} already exists."})

    try:
        with transaction.atomic():
            return Client.objects.create(name=name, contact_no=contact_no, email=email, address=address)
    except IntegrityError as exc:
        raise ConflictError({"email": f"A client with email {email} already exists."}) from exc


def _resolve_client(draft: Dict[str, Any]) -> Client:
    ref = draft.get("client")
    if ref not in (None, ""):
        pk = getattr(ref, "pk", ref)
        client = Client.objects.filter(pk=pk).first()
        if client is None:
            raise NotFoundError(f"Client {pk} not found.")
        return client

    email = _text(draft, "email", label="Email").lower()
    client = Client.objects.filter(email__iexact=email).first()
    if client is not None:
        return client

    return create_client(
        {
            "name": draft.get("client_name"),
            "contact_no": draft.get("contact_no"),
            "email": email,
            "address": draft.get("address"),
        }
    )


# ===============================================================
# Test requests
# ===============================================================

def create_test_request(draft: Dict[str, Any], user=None) -> TestRequest:
    """
    Validate an intake draft and persist the request with its sub-tests.
    """
    if not isinstance(draft, dict):
        raise ValidationError("Request body must be an object.")

    request_date = _text(draft, "request_date", label="Request date")
    validate_date(request_date)

    completion_date = _text(draft, "completion_date", required=False)
    if completion_date:
        validate_date(completion_date)

    request_id = _text(draft, "request_id", required=False)
    if request_id:
        validate_request_id(request_id)

    requirements = {
        name: _yes_no(draft.get(name), name) for name in TestRequest.REQUIREMENT_FIELDS
    }

    with transaction.atomic():
        client = _resolve_client(draft)

        contact = {
            "client_name": _text(draft, "client_name", required=False) or client.name,
            "contact_no": _text(draft, "contact_no", required=False) or client.contact_no,
            "email": (_text(draft, "email", required=False) or client.email).lower(),
            "address": _text(draft, "address", required=False) or client.address,
        }
        for key in CONTACT_FIELDS:
            if not contact[key]:
                raise ValidationError({key: f"{key} is required."})

        if not request_id:
            year, month = request_date[2:4], request_date[5:7]
            request_id = format_request_id(year, month, next_request_sequence(year, month))
        elif TestRequest.objects.filter(request_id=request_id).exists():
            raise ConflictError({"request_id": f"Test request {request_id} already exists."})

        sub_tests = _clean_sub_tests(draft.get("sub_tests"), request_date)

        try:
            with transaction.atomic():
                test_request = TestRequest.objects.create(
                    sequence_number=next_sequence_number(TEST_REQUEST_COUNTER),
                    client=client,
                    request_id=request_id,
                    request_date=request_date,
                    completion_date=completion_date,
                    material_received=bool(draft.get("material_received", False)),
                    payment_received=bool(draft.get("payment_received", False)),
                    created_by=user if getattr(user, "is_authenticated", False) else None,
                    **contact,
                    **requirements,
                )
                SubTest.objects.bulk_create(
                    [
                        SubTest(test_request=test_request, position=idx, **data)
                        for idx, data in enumerate(sub_tests)
                    ]
                )
        except IntegrityError as exc:
            raise ConflictError(f"Test request {request_id} conflicts with an existing record.") from exc

    logger.info(
        "Created test request %s (seq=%s, %d sub-tests)",
        test_request.request_id,
        test_request.sequence_number,
        len(sub_tests),
    )
    return test_request


def get_test_request(pk) -> TestRequest:
    try:
        return TestRequest.objects.select_related("client").get(pk=pk)
    except (TestRequest.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(f"Test request {pk} not found.")


def _int_param(value: Any, key: str) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError({key: f"'{value}' is not a number."})


def list_test_requests(
    filters: Optional[Dict[str, Any]] = None,
    ordering: Optional[Iterable[str]] = None,
) -> QuerySet:
    """
    Filter keys: status (one or many), bucket, client, search, year, month.
    Ordering entries are field names with an optional '-' prefix; the
    default is newest first.
    """
    filters = filters or {}
    qs = TestRequest.objects.select_related("client").prefetch_related("sub_tests", "job_cards")

    status = filters.get("status")
    if status:
        values = status if isinstance(status, (list, tuple, set)) else [status]
        qs = qs.filter(status__in=[normalize_state(v) for v in values])

    bucket = filters.get("bucket")
    if bucket:
        qs = qs.filter(status__in=statuses_in_bucket(bucket))

    client = filters.get("client")
    if client:
        qs = qs.filter(client_id=_int_param(client, "client"))

    search = str(filters.get("search") or "").strip()
    if search:
        qs = qs.filter(
            Q(request_id__icontains=search)
            | Q(client_name__icontains=search)
            | Q(email__icontains=search)
        )

    year = filters.get("year")
    if year:
        prefix = f"{_int_param(year, 'year'):04d}-"
        month = filters.get("month")
        if month:
            prefix += f"{_int_param(month, 'month'):02d}-"
        qs = qs.filter(request_date__startswith=prefix)

    order_by = []
    for field in ordering or ():
        name = str(field).strip()
        if not name:
            continue
        if name.lstrip("-") not in ORDERING_FIELDS:
            raise ValidationError({"ordering": f"Cannot order by '{name}'."})
        order_by.append(name)
    return qs.order_by(*(order_by or ["-created_at", "-id"]))


def update_test_request(pk, patch: Dict[str, Any], user=None) -> TestRequest:
    """
    Patch intake fields. A ``sub_tests`` key replaces the whole sequence
    element-wise; workflow state of kept positions is preserved.
    """
    if not isinstance(patch, dict):
        raise ValidationError("Request body must be an object.")

    forbidden = sorted(set(patch) - PATCHABLE_FIELDS)
    if forbidden:
        raise ValidationError({name: "This field cannot be modified." for name in forbidden})

    with locked_test_request(pk) as test_request:
        changed: List[str] = []

        for key in CONTACT_FIELDS:
            if key in patch:
                value = _text(patch, key)
                setattr(test_request, key, value.lower() if key == "email" else value)
                changed.append(key)

        if "request_date" in patch:
            value = _text(patch, "request_date", label="Request date")
            validate_date(value)
            test_request.request_date = value
            changed.append("request_date")

        if "completion_date" in patch:
            value = _text(patch, "completion_date", required=False)
            if value:
                validate_date(value)
            test_request.completion_date = value
            changed.append("completion_date")

        for name in TestRequest.REQUIREMENT_FIELDS:
            if name in patch:
                setattr(test_request, name, _yes_no(patch[name], name))
                changed.append(name)

        for name in ("material_received", "payment_received"):
            if name in patch:
                setattr(test_request, name, bool(patch[name]))
                changed.append(name)

        if changed:
            test_request.save(update_fields=changed + ["updated_at"])

        if "sub_tests" in patch:
            _replace_sub_tests(test_request, patch["sub_tests"])

    logger.info("Updated test request %s fields=%s", test_request.request_id, sorted(patch))
    return test_request


def _replace_sub_tests(test_request: TestRequest, items: Any) -> None:
    cleaned = _clean_sub_tests(items, test_request.request_date)
    existing = list(test_request.sub_tests.order_by("position", "id"))
    kept = existing[: len(cleaned)]

    try:
        with transaction.atomic():
            for sub in existing[len(cleaned):]:
                sub.delete()

            # Park kept rows on temporary keys so swapped tuples do not collide.
            for sub in kept:
                SubTest.objects.filter(pk=sub.pk).update(material=f"__replace__{sub.pk}")

            for idx, data in enumerate(cleaned):
                if idx < len(kept):
                    sub = kept[idx]
                    for key, value in data.items():
                        setattr(sub, key, value)
                    sub.position = idx
                    sub.save()
                else:
                    SubTest.objects.create(test_request=test_request, position=idx, **data)
    except IntegrityError as exc:
        raise ConflictError("Sub-test replacement collides with an existing sub-test.") from exc


# ===============================================================
# Lab catalogue
# ===============================================================

def equipment_by_ids(ids: Any) -> List[Equipment]:
    """
    Equipment rows in the order requested, duplicates dropped. Used to
    fill a sub-test's equipment table; an unknown id fails the lookup.
    """
    if not isinstance(ids, (list, tuple)) or not ids:
        raise ValidationError({"equipment_ids": "A list of equipment ids is required."})

    pks: List[int] = []
    for value in ids:
        pk = _int_param(value, "equipment_ids")
        if pk not in pks:
            pks.append(pk)

    found = Equipment.objects.in_bulk(pks)
    missing = [pk for pk in pks if pk not in found]
    if missing:
        raise NotFoundError(f"Unknown equipment id(s): {', '.join(str(pk) for pk in missing)}.")
    return [found[pk] for pk in pks]


__all__ = [
    "create_client",
    "create_test_request",
    "get_test_request",
    "list_test_requests",
    "update_test_request",
    "next_sequence_number",
    "equipment_by_ids",
]
