# testflow/dashboard.py
"""
Read-only aggregates for the role dashboards.

No locking: counts are taken from whatever is committed at query time.
"""
from __future__ import annotations

import calendar
import datetime
from typing import Any, Dict, List, Optional

from django.db.models import Count, Q
from django.db.models.functions import Substr
from django.utils import timezone

from testflow.errors import ValidationError
from testflow.models import Client, SubTest, TestRequest
from testflow.workflows import (
    BUCKET_COMPLETED,
    BUCKET_IN_PROGRESS,
    BUCKET_PENDING,
    Department,
    ReportApproval,
    RequestStatus,
    department_for_test_type,
    status_bucket,
)

MONTHS = list(calendar.month_name)[1:]

# Section-head view: work is "in progress" once testers hold the job.
SECTION_PENDING = {
    RequestStatus.INTAKE_ENTERED,
    RequestStatus.ROR_GENERATED,
    RequestStatus.PROFORMA_GENERATED,
    RequestStatus.DOCUMENTS_MAILED,
    RequestStatus.JOB_CARD_CREATED,
    RequestStatus.JOB_CARD_SENT_FOR_APPROVAL,
    RequestStatus.JOB_CARD_REJECTED,
}


def _year(value) -> int:
    if value in (None, ""):
        return timezone.localdate().year
    try:
        year = int(value)
    except (TypeError, ValueError):
        raise ValidationError({"year": f"Not a year: {value!r}"})
    if not 1900 <= year <= 9999:
        raise ValidationError({"year": f"Not a year: {value!r}"})
    return year


def _department(value) -> str:
    dept = str(value or "").strip().lower()
    if dept not in Department.values:
        raise ValidationError({"department": f"Department must be one of {', '.join(Department.values)}."})
    return dept


def status_summary() -> Dict[str, Any]:
    counts = {BUCKET_PENDING: 0, BUCKET_IN_PROGRESS: 0, BUCKET_COMPLETED: 0}
    for row in TestRequest.objects.values("status").annotate(n=Count("id")):
        bucket = status_bucket(row["status"])
        if bucket:
            counts[bucket] += row["n"]

    return {
        "total_clients": Client.objects.count(),
        "total_requests": TestRequest.objects.count(),
        "statuses": counts,
    }


def monthly_trend(year=None) -> List[Dict[str, Any]]:
    """
    Requests per calendar month of their request date.
    """
    year = _year(year)
    rows = (
        TestRequest.objects.filter(request_date__startswith=f"{year:04d}-")
        .annotate(month=Substr("request_date", 6, 2))
        .values("month")
        .annotate(n=Count("id"))
    )
    by_month = {int(r["month"]): r["n"] for r in rows if str(r["month"]).isdigit()}
    return [
        {"month": name, "requests": by_month.get(idx, 0)}
        for idx, name in enumerate(MONTHS, start=1)
    ]


def department_monthly(year=None) -> List[Dict[str, Any]]:
    """
    Sub-test counts per month, split by chemical / mechanical.
    """
    year = _year(year)
    data = [{"month": name, **{d: 0 for d in Department.values}} for name in MONTHS]

    rows = SubTest.objects.filter(
        test_request__request_date__startswith=f"{year:04d}-"
    ).values_list("test_request__request_date", "test_type")

    for request_date, test_type in rows.iterator():
        dept = department_for_test_type(test_type)
        month = request_date[5:7]
        if dept and month.isdigit() and 1 <= int(month) <= 12:
            data[int(month) - 1][str(dept)] += 1
    return data


def department_summary(department) -> Dict[str, Any]:
    dept = _department(department)
    prefix = "Mechanical" if dept == Department.MECHANICAL else "Chemical"

    request_ids = (
        SubTest.objects.filter(test_type__istartswith=prefix)
        .values_list("test_request_id", flat=True)
        .distinct()
    )

    pending = in_progress = completed = 0
    for status in TestRequest.objects.filter(pk__in=request_ids).values_list("status", flat=True):
        if status == RequestStatus.COMPLETED:
            completed += 1
        elif status in SECTION_PENDING:
            pending += 1
        else:
            in_progress += 1

    return {
        "department": dept,
        "pending": pending,
        "in_progress": in_progress,
        "completed": completed,
    }


def document_summary(since: Optional[datetime.date] = None) -> Dict[str, Any]:
    """
    Receptionist counts for requests created on or after ``since``
    (first day of the current month by default).
    """
    if since is None:
        since = timezone.localdate().replace(day=1)

    qs = TestRequest.objects.filter(created_at__date__gte=since)
    agg = qs.aggregate(
        total=Count("id"),
        ror=Count("id", filter=Q(ror_document__isnull=False)),
        proforma=Count("id", filter=Q(proforma_document__isnull=False)),
        pending=Count("id", filter=Q(ror_document__isnull=True) | Q(proforma_document__isnull=True)),
        mailed=Count("id", filter=Q(documents_mailed_at__isnull=False)),
    )

    return {
        "since": since,
        "new_clients": Client.objects.filter(created_at__date__gte=since).count(),
        "total_requests": agg["total"],
        "documents_generated": agg["ror"] + agg["proforma"],
        "pending_documents": agg["pending"],
        "documents_mailed": agg["mailed"],
    }


def test_standards() -> List[Dict[str, str]]:
    """
    Distinct (material, test type, standard) combinations seen in measurements.
    """
    seen = set()
    out: List[Dict[str, str]] = []
    for material, test_type, measurements in SubTest.objects.values_list(
        "material", "test_type", "measurements"
    ).iterator():
        for m in measurements or []:
            standard = str((m or {}).get("standard") or "").strip()
            if not standard:
                continue
            key = (material, test_type, standard)
            if key in seen:
                continue
            seen.add(key)
            out.append({"material": material, "test_type": test_type, "standard": standard})
    out.sort(key=lambda r: (r["material"], r["test_type"], r["standard"]))
    return out


REVIEWED_REPORT_STATES = (
    ReportApproval.SENT_FOR_APPROVAL,
    ReportApproval.APPROVED,
    ReportApproval.REJECTED,
)


def reports_pending_approval() -> List[Dict[str, Any]]:
    """
    Requests with at least one sub-test report in the approval loop,
    carrying only those sub-tests.
    """
    subs = (
        SubTest.objects.filter(report_approval__in=REVIEWED_REPORT_STATES)
        .select_related("test_request")
        .order_by("test_request__sequence_number", "position", "id")
    )

    grouped: Dict[int, Dict[str, Any]] = {}
    for sub in subs:
        tr = sub.test_request
        entry = grouped.setdefault(
            tr.pk,
            {
                "id": tr.pk,
                "request_id": tr.request_id,
                "client_name": tr.client_name,
                "status": tr.status,
                "reports": [],
            },
        )
        entry["reports"].append(
            {
                "atl_id": sub.atl_id,
                "test_type": sub.test_type,
                "material": sub.material,
                "approval": sub.report_approval,
                "remark": sub.report_remark,
                "mailed": sub.report_mailed,
            }
        )
    return list(grouped.values())
