# testflow/workflows/engine.py
"""
Workflow transitions for job cards, test results and reports.

Every public function locks the request row, evaluates its guards against
the locked state and persists sub-entity changes together with any status
change in one transaction.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from testflow.errors import NotFoundError, PreconditionError, ValidationError
from testflow.models import JobCard, SubTest, TestRequest
from testflow.workflows import (
    JobCardStatus,
    ReportApproval,
    ReportStatus,
    RequestStatus,
    ResultStatus,
    departments_for_test_types,
    normalize_state,
)
from testflow.workflows.executor import apply_status, get_sub_test, locked_test_request

logger = logging.getLogger(__name__)


def _required_remark(remark: Optional[str], what: str) -> str:
    text = str(remark or "").strip()
    if not text:
        raise ValidationError({"remark": f"A remark is required to reject {what}."})
    return text


def _sub_tests(test_request: TestRequest) -> List[SubTest]:
    return list(test_request.sub_tests.order_by("position", "id"))


def _derive_departments(test_request: TestRequest) -> List[str]:
    departments = departments_for_test_types(
        test_request.sub_tests.values_list("test_type", flat=True)
    )
    if not departments:
        raise PreconditionError(
            "None of the sub-test types carries a CHEMICAL or MECHANICAL prefix; no department to assign."
        )
    return departments


# ===============================================================
# Job cards
# ===============================================================

def create_job_card(pk, *, user=None) -> TestRequest:
    """
    Recompute required departments and open one pending card per department.
    """
    with locked_test_request(pk) as test_request:
        departments = _derive_departments(test_request)

        test_request.job_cards.exclude(department__in=departments).delete()
        for department in departments:
            JobCard.objects.update_or_create(
                test_request=test_request,
                department=department,
                defaults={"status": JobCardStatus.PENDING, "assigned_to": "", "remark": ""},
            )

        test_request.required_departments = departments
        apply_status(
            test_request,
            RequestStatus.JOB_CARD_CREATED,
            action="create_job_card",
            user=user,
            comment=", ".join(departments),
            extra_fields=["required_departments"],
        )
    return test_request


def send_job_card(pk, *, user=None) -> TestRequest:
    with locked_test_request(pk) as test_request:
        extra = []
        departments = list(test_request.required_departments or [])
        if not departments:
            departments = _derive_departments(test_request)
            test_request.required_departments = departments
            extra.append("required_departments")

        existing = set(test_request.job_cards.values_list("department", flat=True))
        for department in departments:
            if department not in existing:
                JobCard.objects.create(test_request=test_request, department=department)

        apply_status(
            test_request,
            RequestStatus.JOB_CARD_SENT_FOR_APPROVAL,
            action="send_job_card",
            user=user,
            extra_fields=extra,
        )
    return test_request


def _job_card(test_request: TestRequest, department: str, *, backfill: bool) -> JobCard:
    dept = str(department or "").strip().lower()
    if not dept:
        raise ValidationError({"department": "This field is required."})

    card = test_request.job_cards.select_for_update().filter(department=dept).first()
    if card is not None:
        return card

    if backfill and dept in (test_request.required_departments or []):
        return JobCard.objects.create(test_request=test_request, department=dept)

    raise NotFoundError(f"No job card for department '{dept}' on {test_request.request_id}.")


def approve_job_card(pk, department: str, assignee: str, *, user=None) -> TestRequest:
    assigned_to = str(assignee or "").strip()
    if not assigned_to:
        raise ValidationError({"assigned_to": "An assignee is required to approve a job card."})

    with locked_test_request(pk) as test_request:
        card = _job_card(test_request, department, backfill=True)
        card.status = JobCardStatus.APPROVED
        card.assigned_to = assigned_to
        card.save(update_fields=["status", "assigned_to", "updated_at"])

        required = list(test_request.required_departments or [])
        approved = set(
            test_request.job_cards.filter(status=JobCardStatus.APPROVED).values_list("department", flat=True)
        )
        if required and all(dept in approved for dept in required):
            apply_status(
                test_request,
                RequestStatus.JOB_CARDS_ASSIGNED,
                action="approve_job_card",
                user=user,
                comment=f"{card.department} -> {assigned_to}",
            )
        else:
            logger.info(
                "Job card %s approved on %s; waiting for %s",
                card.department,
                test_request.request_id,
                sorted(set(required) - approved),
            )
    return test_request


def reject_job_card(pk, department: str, remark: str = "", *, user=None) -> TestRequest:
    with locked_test_request(pk) as test_request:
        card = _job_card(test_request, department, backfill=False)
        card.status = JobCardStatus.REJECTED
        card.remark = str(remark or "").strip()
        card.save(update_fields=["status", "remark", "updated_at"])

        apply_status(
            test_request,
            RequestStatus.JOB_CARD_REJECTED,
            action="reject_job_card",
            user=user,
            comment=f"{card.department}: {card.remark}".rstrip(": "),
        )
    return test_request


# ===============================================================
# Test results
# ===============================================================

def submit_result(pk, key, *, equipment_table=None, result_table=None, user=None) -> TestRequest:
    """
    Send a sub-test's values for approval. Both tables must be present,
    either already stored or supplied here. Overall status is unchanged.
    """
    with locked_test_request(pk) as test_request:
        sub_test = get_sub_test(test_request, key, lock=True)

        equipment = equipment_table if equipment_table not in (None, "") else sub_test.equipment_table
        results = result_table if result_table not in (None, "") else sub_test.result_table
        if not equipment or not results:
            raise PreconditionError("Both equipment and result tables are required before send-for-approval.")

        sub_test.equipment_table = equipment
        sub_test.result_table = results
        sub_test.result_status = ResultStatus.SENT_FOR_APPROVAL
        sub_test.result_remark = ""
        sub_test.save(
            update_fields=["equipment_table", "result_table", "result_status", "result_remark", "updated_at"]
        )
        logger.info("Results for %s on %s sent for approval", sub_test.atl_id, test_request.request_id)
    return test_request


def approve_result(pk, key, *, remark: str = "", user=None) -> TestRequest:
    with locked_test_request(pk) as test_request:
        sub_test = get_sub_test(test_request, key, lock=True)
        sub_test.result_status = ResultStatus.RESULTS_APPROVED
        sub_test.result_remark = str(remark or "").strip()
        sub_test.save(update_fields=["result_status", "result_remark", "updated_at"])

        statuses = test_request.sub_tests.values_list("result_status", flat=True)
        if all(s == ResultStatus.RESULTS_APPROVED for s in statuses):
            apply_status(
                test_request,
                RequestStatus.REPORT_GENERATED,
                action="approve_result",
                user=user,
                comment=sub_test.atl_id,
            )
    return test_request


def reject_result(pk, key, remark: str, *, user=None) -> TestRequest:
    text = _required_remark(remark, "test results")

    with locked_test_request(pk) as test_request:
        sub_test = get_sub_test(test_request, key, lock=True)
        sub_test.result_status = ResultStatus.RESULTS_REJECTED
        sub_test.result_remark = text
        sub_test.save(update_fields=["result_status", "result_remark", "updated_at"])

        apply_status(
            test_request,
            RequestStatus.RESULTS_REJECTED,
            action="reject_result",
            user=user,
            comment=f"{sub_test.atl_id}: {text}",
        )
    return test_request


# ===============================================================
# Report artifacts (status-preserving)
# ===============================================================

def upload_report(pk, key, report_markup: str, *, equipment_table=None, result_table=None, user=None) -> SubTest:
    markup = str(report_markup or "")
    if not markup.strip():
        raise ValidationError({"report": "Report markup is required."})

    with locked_test_request(pk) as test_request:
        sub_test = get_sub_test(test_request, key, lock=True)
        sub_test.report_artifact = markup
        fields = ["report_artifact", "updated_at"]
        if equipment_table not in (None, ""):
            sub_test.equipment_table = equipment_table
            fields.append("equipment_table")
        if result_table not in (None, ""):
            sub_test.result_table = result_table
            fields.append("result_table")
        sub_test.save(update_fields=fields)
    return sub_test


def update_tables(pk, key, *, equipment_table=None, result_table=None, user=None) -> SubTest:
    if equipment_table in (None, "") and result_table in (None, ""):
        raise ValidationError("At least one of equipment_table or result_table is required.")

    with locked_test_request(pk) as test_request:
        sub_test = get_sub_test(test_request, key, lock=True)
        fields = ["updated_at"]
        if equipment_table not in (None, ""):
            sub_test.equipment_table = equipment_table
            fields.append("equipment_table")
        if result_table not in (None, ""):
            sub_test.result_table = result_table
            fields.append("result_table")
        sub_test.save(update_fields=fields)
    return sub_test


def edit_report(pk, key, report_markup: str, *, user=None) -> SubTest:
    markup = str(report_markup or "")
    if not markup.strip():
        raise ValidationError({"report": "Report markup is required."})

    with locked_test_request(pk) as test_request:
        sub_test = get_sub_test(test_request, key, lock=True)
        if not sub_test.report_artifact:
            raise PreconditionError("No report has been uploaded for this sub-test yet.")
        sub_test.report_artifact = markup
        sub_test.save(update_fields=["report_artifact", "updated_at"])
    return sub_test


# ===============================================================
# Report approval
# ===============================================================

SENDABLE_REPORT_STATES = {ReportApproval.NOT_SENT, ReportApproval.REJECTED}


def send_report(pk, key, *, user=None) -> TestRequest:
    with locked_test_request(pk) as test_request:
        sub_test = get_sub_test(test_request, key, lock=True)
        if not sub_test.report_artifact:
            raise PreconditionError("A report must be uploaded before it can be sent for approval.")
        if sub_test.report_approval not in SENDABLE_REPORT_STATES:
            raise PreconditionError(
                f"Report for {sub_test.atl_id} is already {sub_test.get_report_approval_display().lower()}."
            )

        sub_test.report_approval = ReportApproval.SENT_FOR_APPROVAL
        sub_test.report_remark = ""
        sub_test.save(update_fields=["report_approval", "report_remark", "updated_at"])

        test_request.report_status = ReportStatus.PENDING
        states = test_request.sub_tests.values_list("report_approval", flat=True)
        if all(s == ReportApproval.SENT_FOR_APPROVAL for s in states):
            apply_status(
                test_request,
                RequestStatus.REPORT_SENT_FOR_APPROVAL,
                action="send_report",
                user=user,
                comment=sub_test.atl_id,
                extra_fields=["report_status"],
            )
        else:
            test_request.save(update_fields=["report_status", "updated_at"], _workflow_bypass=True)
    return test_request


def approve_report(pk, key, *, user=None) -> TestRequest:
    with locked_test_request(pk) as test_request:
        sub_test = get_sub_test(test_request, key, lock=True)
        sub_test.report_approval = ReportApproval.APPROVED
        sub_test.report_remark = ""
        sub_test.save(update_fields=["report_approval", "report_remark", "updated_at"])

        states = test_request.sub_tests.values_list("report_approval", flat=True)
        if all(s == ReportApproval.APPROVED for s in states):
            test_request.report_status = ReportStatus.APPROVED
            apply_status(
                test_request,
                RequestStatus.REPORT_APPROVED,
                action="approve_report",
                user=user,
                comment=sub_test.atl_id,
                extra_fields=["report_status"],
            )
    return test_request


def reject_report(pk, key, remark: str, *, user=None) -> TestRequest:
    text = _required_remark(remark, "a report")

    with locked_test_request(pk) as test_request:
        sub_test = get_sub_test(test_request, key, lock=True)
        sub_test.report_approval = ReportApproval.REJECTED
        sub_test.report_remark = text
        sub_test.save(update_fields=["report_approval", "report_remark", "updated_at"])

        test_request.report_status = ReportStatus.REJECTED
        apply_status(
            test_request,
            RequestStatus.REPORT_REJECTED,
            action="reject_report",
            user=user,
            comment=f"{sub_test.atl_id}: {text}",
            extra_fields=["report_status"],
        )
    return test_request


# ===============================================================
# Completion
# ===============================================================

def mark_completed(pk, *, user=None) -> TestRequest:
    with locked_test_request(pk) as test_request:
        current = normalize_state(test_request.status)
        if current != RequestStatus.REPORT_MAILED:
            raise PreconditionError(
                f"Only requests in {RequestStatus.REPORT_MAILED} can be completed (current: {current})."
            )
        apply_status(test_request, RequestStatus.COMPLETED, action="mark_completed", user=user)
    return test_request


__all__ = [
    "create_job_card",
    "send_job_card",
    "approve_job_card",
    "reject_job_card",
    "submit_result",
    "approve_result",
    "reject_result",
    "upload_report",
    "update_tables",
    "edit_report",
    "send_report",
    "approve_report",
    "reject_report",
    "mark_completed",
]
