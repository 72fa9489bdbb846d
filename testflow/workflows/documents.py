# testflow/workflows/documents.py
"""
ROR / Proforma / report document lifecycle.

Rendering and mail delivery are slow external calls: they run before the
row lock is taken, and the guards are checked again under the lock before
anything is persisted. A collaborator failure leaves the request untouched.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional

from django.db import transaction
from django.utils import timezone

from testflow import mailer
from testflow.errors import DependencyError, NotFoundError, PreconditionError, ValidationError
from testflow.identifiers import proforma_number, ror_number, validate_date
from testflow.models import SubTest, TestRequest
from testflow.rendering import RenderError, decode_pdf, encode_pdf, proforma_totals, render
from testflow.workflows import DocumentStatus, ReportApproval, RequestStatus
from testflow.workflows.executor import (
    apply_status,
    assert_not_terminal,
    get_sub_test,
    locked_test_request,
)

logger = logging.getLogger(__name__)

DOCUMENT_KINDS = ("ror", "proforma")

REQUIREMENT_LABELS = OrderedDict(
    [
        ("test_methods", "Test methods"),
        ("laboratory_capability", "Laboratory capability"),
        ("appropriate_test_methods", "Appropriate test methods"),
        ("decision_rule", "Decision rule"),
        ("external_provider", "External provider"),
    ]
)


def _load(pk) -> TestRequest:
    test_request = TestRequest.objects.filter(pk=pk).first()
    if test_request is None:
        raise NotFoundError(f"Test request {pk} not found.")
    assert_not_terminal(test_request)
    return test_request


def _render(kind: str, context: Dict[str, Any]) -> bytes:
    try:
        return render(kind, context)
    except RenderError as exc:
        logger.error("Rendering %s failed: %s", kind, exc)
        raise DependencyError(str(exc)) from exc


def _today() -> str:
    return timezone.localdate().strftime("%d/%m/%Y")


# ===============================================================
# Context builders
# ===============================================================

def ror_context(test_request: TestRequest, form: Dict[str, Any]) -> Dict[str, Any]:
    remarks = form.get("remarks") or {}
    if not isinstance(remarks, dict):
        raise ValidationError({"remarks": "Remarks must map ATL ids to text."})

    # One line per material, listing every test requested on it.
    grouped: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    for sub in test_request.sub_tests.order_by("position", "id"):
        line = grouped.setdefault(
            sub.atl_id,
            {
                "atl_id": sub.atl_id,
                "material": sub.material,
                "material_id": sub.material_id,
                "quantity": sub.quantity,
                "tests": [],
                "standards": [],
            },
        )
        for m in sub.measurements or []:
            if m.get("test") and m["test"] not in line["tests"]:
                line["tests"].append(m["test"])
            if m.get("standard") and m["standard"] not in line["standards"]:
                line["standards"].append(m["standard"])
        if not sub.measurements and sub.test_type not in line["tests"]:
            line["tests"].append(sub.test_type)

    tests = []
    for idx, line in enumerate(grouped.values(), start=1):
        tests.append(
            {
                **line,
                "id": idx,
                "tests": ", ".join(line["tests"]),
                "standards": ", ".join(line["standards"]),
                "remarks": str(remarks.get(line["atl_id"], "")),
            }
        )

    requirements = test_request.requirements
    return {
        "ror_number": ror_number(test_request.request_id),
        "date": _today(),
        "customer_name": form.get("customer_name") or test_request.client_name,
        "project_name": form.get("project_name", ""),
        "site_address": form.get("site_address") or test_request.address,
        "billing_address": form.get("billing_address") or test_request.address,
        "email": form.get("email") or test_request.email,
        "contact_no": form.get("contact_no") or test_request.contact_no,
        "completion_date": form.get("completion_date") or test_request.completion_date,
        "days_required": form.get("days_required") or "N/A",
        "tests": tests,
        "requirements": [
            (label, (requirements.get(name) or "n/a").upper())
            for name, label in REQUIREMENT_LABELS.items()
        ],
    }


def proforma_context(test_request: TestRequest, form: Dict[str, Any]) -> Dict[str, Any]:
    items = form.get("items")
    if not isinstance(items, list) or not items:
        raise ValidationError({"items": "At least one invoice line is required."})
    for idx, item in enumerate(items, start=1):
        if not isinstance(item, dict) or not str(item.get("description") or "").strip():
            raise ValidationError({"items": f"Invoice line #{idx} needs a description."})

    try:
        totals = proforma_totals(items, form.get("sgst", 0), form.get("cgst", 0))
    except (ValueError, KeyError) as exc:
        raise ValidationError({"items": str(exc)}) from exc

    buyer = form.get("buyer") or {}
    return {
        "invoice_no": proforma_number(test_request.request_id),
        "date": _today(),
        "mode": form.get("mode") or "CASH",
        "hsn": form.get("hsn", ""),
        "buyer": {
            "name": buyer.get("name") or test_request.client_name,
            "address": buyer.get("address") or test_request.address,
            "gstin": buyer.get("gstin", ""),
            "pan": buyer.get("pan", ""),
        },
        "totals": totals,
    }


def report_context(test_request: TestRequest, sub_test: SubTest) -> Dict[str, Any]:
    period = ""
    if sub_test.from_date and sub_test.to_date:
        period = f"{sub_test.from_date:%d/%m/%Y} - {sub_test.to_date:%d/%m/%Y}"
    return {
        "request_id": test_request.request_id,
        "client_name": test_request.client_name,
        "atl_id": sub_test.atl_id,
        "material": sub_test.material,
        "material_id": sub_test.material_id,
        "test_type": sub_test.test_type,
        "quantity": sub_test.quantity,
        "test_date": sub_test.test_date,
        "test_period": period,
        "measurements": sub_test.measurements or [],
        "equipment_table": sub_test.equipment_table,
        "result_table": sub_test.result_table,
        "report_artifact": sub_test.report_artifact,
    }


# ===============================================================
# ROR / Proforma
# ===============================================================

def generate_ror(pk, form: Optional[Dict[str, Any]] = None, *, user=None) -> TestRequest:
    form = form or {}
    completion_date = str(form.get("completion_date") or "").strip()
    if completion_date:
        validate_date(completion_date)

    test_request = _load(pk)
    pdf = _render("ror", ror_context(test_request, form))

    with locked_test_request(pk) as test_request:
        fields = ["ror_document", "ror_status"]
        test_request.ror_document = encode_pdf(pdf)
        test_request.ror_status = DocumentStatus.GENERATED
        if completion_date:
            test_request.completion_date = completion_date
            fields.append("completion_date")

        apply_status(
            test_request,
            RequestStatus.ROR_GENERATED,
            action="generate_ror",
            user=user,
            comment=ror_number(test_request.request_id),
            extra_fields=fields,
        )
        transaction.on_commit(lambda: _queue_section_head_notice(test_request.pk))
    return test_request


def _queue_section_head_notice(test_request_id: int) -> None:
    from testflow.tasks import notify_section_heads

    try:
        notify_section_heads.delay(test_request_id)
    except Exception:
        logger.exception("Could not queue section-head notice for test request %s", test_request_id)


def generate_proforma(pk, form: Optional[Dict[str, Any]] = None, *, user=None) -> TestRequest:
    test_request = _load(pk)
    pdf = _render("proforma", proforma_context(test_request, form or {}))

    with locked_test_request(pk) as test_request:
        test_request.proforma_document = encode_pdf(pdf)
        test_request.proforma_status = DocumentStatus.GENERATED
        apply_status(
            test_request,
            RequestStatus.PROFORMA_GENERATED,
            action="generate_proforma",
            user=user,
            comment=proforma_number(test_request.request_id),
            extra_fields=["proforma_document", "proforma_status"],
        )
    return test_request


def delete_document(pk, kind: str, *, user=None) -> TestRequest:
    """
    Drop a ROR or Proforma and return the request to intake.
    """
    kind = str(kind or "").strip().lower()
    if kind not in DOCUMENT_KINDS:
        raise ValidationError({"kind": f"Unknown document '{kind}'. Use one of {', '.join(DOCUMENT_KINDS)}."})

    with locked_test_request(pk) as test_request:
        setattr(test_request, f"{kind}_document", None)
        setattr(test_request, f"{kind}_status", DocumentStatus.NOT_GENERATED)
        # The pair goes out together; a regenerated document has not been mailed.
        test_request.documents_mailed_at = None
        apply_status(
            test_request,
            RequestStatus.INTAKE_ENTERED,
            action=f"delete_{kind}",
            user=user,
            extra_fields=[f"{kind}_document", f"{kind}_status", "documents_mailed_at"],
        )
    return test_request


def _require_both_documents(test_request: TestRequest) -> None:
    missing = [
        label
        for label, blob in (("ROR", test_request.ror_document), ("Proforma", test_request.proforma_document))
        if not blob
    ]
    if missing:
        raise PreconditionError(f"{' and '.join(missing)} must be generated before mailing documents.")


def mail_documents(pk, cc: Optional[Iterable[str]] = None, *, user=None) -> TestRequest:
    cc = list(cc or [])
    test_request = _load(pk)
    _require_both_documents(test_request)

    try:
        mailer.send_documents(
            to=test_request.email,
            cc=cc,
            client_name=test_request.client_name,
            request_id=test_request.request_id,
            ror_pdf=decode_pdf(test_request.ror_document),
            proforma_pdf=decode_pdf(test_request.proforma_document),
        )
    except mailer.MailError as exc:
        raise DependencyError(f"Sending documents failed: {exc}") from exc

    with locked_test_request(pk) as test_request:
        _require_both_documents(test_request)
        test_request.documents_mailed_at = timezone.now()
        apply_status(
            test_request,
            RequestStatus.DOCUMENTS_MAILED,
            action="mail_documents",
            user=user,
            comment=", ".join(cc),
            extra_fields=["documents_mailed_at"],
        )
    return test_request


# ===============================================================
# Reports
# ===============================================================

def _require_mailable(sub_test: SubTest) -> None:
    if not sub_test.report_artifact:
        raise PreconditionError("Report not found for this test.")
    if sub_test.report_approval != ReportApproval.APPROVED:
        raise PreconditionError("This specific report must be approved before sending as email.")


def mail_report(pk, key, cc: Optional[Iterable[str]] = None, *, user=None) -> TestRequest:
    cc = list(cc or [])
    test_request = _load(pk)
    sub_test = get_sub_test(test_request, key)
    _require_mailable(sub_test)

    pdf = _render("report", report_context(test_request, sub_test))
    try:
        mailer.send_report(
            to=test_request.email,
            cc=cc,
            client_name=test_request.client_name,
            request_id=test_request.request_id,
            atl_id=sub_test.atl_id,
            report_pdf=pdf,
        )
    except mailer.MailError as exc:
        raise DependencyError(f"Sending report failed: {exc}") from exc

    with locked_test_request(pk) as test_request:
        sub_test = get_sub_test(test_request, key, lock=True)
        _require_mailable(sub_test)
        sub_test.report_mailed = True
        sub_test.save(update_fields=["report_mailed", "updated_at"])

        pending = test_request.sub_tests.filter(
            report_approval=ReportApproval.APPROVED, report_mailed=False
        )
        if not pending.exists():
            apply_status(
                test_request,
                RequestStatus.REPORT_MAILED,
                action="mail_report",
                user=user,
                comment=sub_test.atl_id,
            )
    return test_request


# ===============================================================
# State view
# ===============================================================

def _document_state(generated: bool, mailed: bool) -> str:
    if not generated:
        return "absent"
    return "mailed" if mailed else "generated"


def document_states(test_request: TestRequest) -> Dict[str, Any]:
    mailed = test_request.documents_mailed_at is not None
    reports: List[Dict[str, Any]] = []
    for sub in test_request.sub_tests.order_by("position", "id"):
        reports.append(
            {
                "atl_id": sub.atl_id,
                "test_type": sub.test_type,
                "material": sub.material,
                "state": _document_state(bool(sub.report_artifact), sub.report_mailed),
                "approval": sub.report_approval,
            }
        )
    return {
        "ror": {
            "number": ror_number(test_request.request_id),
            "status": test_request.ror_status,
            "state": _document_state(bool(test_request.ror_document), mailed),
        },
        "proforma": {
            "number": proforma_number(test_request.request_id),
            "status": test_request.proforma_status,
            "state": _document_state(bool(test_request.proforma_document), mailed),
        },
        "reports": reports,
    }


__all__ = [
    "generate_ror",
    "generate_proforma",
    "delete_document",
    "mail_documents",
    "mail_report",
    "document_states",
    "ror_context",
    "proforma_context",
    "report_context",
]
