# testflow/workflows/__init__.py
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Set

from django.db import models


# ===============================================================
# Canonical workflow definitions
# ===============================================================

class RequestStatus(models.TextChoices):
    INTAKE_ENTERED = "INTAKE_ENTERED", "Test Data Entered"
    ROR_GENERATED = "ROR_GENERATED", "ROR Generated"
    PROFORMA_GENERATED = "PROFORMA_GENERATED", "Proforma Generated"
    DOCUMENTS_MAILED = "DOCUMENTS_MAILED", "ROR and Proforma Mailed to Client"
    JOB_CARD_CREATED = "JOB_CARD_CREATED", "Job Card Created"
    JOB_CARD_SENT_FOR_APPROVAL = "JOB_CARD_SENT_FOR_APPROVAL", "Job Card Sent for Approval"
    JOB_CARD_REJECTED = "JOB_CARD_REJECTED", "Job Card Rejected"
    JOB_CARDS_ASSIGNED = "JOB_CARDS_ASSIGNED", "Job Assigned to Testers"
    RESULTS_ENTERED = "RESULTS_ENTERED", "Test Values Added"
    RESULTS_APPROVED = "RESULTS_APPROVED", "Test Values Approved"
    RESULTS_REJECTED = "RESULTS_REJECTED", "Test Values Rejected"
    REPORT_GENERATED = "REPORT_GENERATED", "Report Generated"
    REPORT_SENT_FOR_APPROVAL = "REPORT_SENT_FOR_APPROVAL", "Report Sent for Approval"
    REPORT_APPROVED = "REPORT_APPROVED", "Report Approved"
    REPORT_REJECTED = "REPORT_REJECTED", "Report Rejected"
    REPORT_MAILED = "REPORT_MAILED", "Report Mailed to Client"
    COMPLETED = "COMPLETED", "Completed"


class ResultStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    SENT_FOR_APPROVAL = "SENT_FOR_APPROVAL", "Sent for Approval"
    RESULTS_APPROVED = "RESULTS_APPROVED", "Results Approved"
    RESULTS_REJECTED = "RESULTS_REJECTED", "Results Rejected"


class ReportApproval(models.TextChoices):
    NOT_SENT = "NOT_SENT", "Not Sent"
    SENT_FOR_APPROVAL = "SENT_FOR_APPROVAL", "Sent for Approval"
    APPROVED = "APPROVED", "Approved"
    REJECTED = "REJECTED", "Rejected"


class ReportStatus(models.IntegerChoices):
    NONE = 0, "None"
    PENDING = 1, "Pending Approval"
    APPROVED = 2, "Approved"
    REJECTED = 3, "Rejected"


class JobCardStatus(models.IntegerChoices):
    PENDING = 0, "Pending"
    APPROVED = 1, "Approved"
    REJECTED = 2, "Rejected"


class DocumentStatus(models.IntegerChoices):
    NOT_GENERATED = 0, "Not Generated"
    GENERATED = 1, "Generated"


class Department(models.TextChoices):
    CHEMICAL = "chemical", "Chemical"
    MECHANICAL = "mechanical", "Mechanical"


# Forward path. Rejection states sit right after the step that produces them.
STATUS_LADDER: List[str] = [
    RequestStatus.INTAKE_ENTERED,
    RequestStatus.ROR_GENERATED,
    RequestStatus.PROFORMA_GENERATED,
    RequestStatus.DOCUMENTS_MAILED,
    RequestStatus.JOB_CARD_CREATED,
    RequestStatus.JOB_CARD_SENT_FOR_APPROVAL,
    RequestStatus.JOB_CARD_REJECTED,
    RequestStatus.JOB_CARDS_ASSIGNED,
    RequestStatus.RESULTS_ENTERED,
    RequestStatus.RESULTS_APPROVED,
    RequestStatus.RESULTS_REJECTED,
    RequestStatus.REPORT_GENERATED,
    RequestStatus.REPORT_SENT_FOR_APPROVAL,
    RequestStatus.REPORT_APPROVED,
    RequestStatus.REPORT_REJECTED,
    RequestStatus.REPORT_MAILED,
    RequestStatus.COMPLETED,
]

REWORK_STATES: Set[str] = {
    RequestStatus.JOB_CARD_REJECTED,
    RequestStatus.RESULTS_REJECTED,
    RequestStatus.REPORT_REJECTED,
}

TERMINAL_STATES: Set[str] = {RequestStatus.COMPLETED}

DEPARTMENT_PREFIXES: Dict[str, str] = {
    "CHEMICAL": Department.CHEMICAL,
    "MECHANICAL": Department.MECHANICAL,
    "MECHANICAL-NDT": Department.MECHANICAL,
}


def normalize_state(value: str) -> str:
    return str(value or "").strip().upper()


def ladder_index(status: str) -> int:
    """
    Position of a status on the ladder, -1 for unknown values.
    """
    try:
        return STATUS_LADDER.index(normalize_state(status))
    except ValueError:
        return -1


def is_terminal(status: str) -> bool:
    return normalize_state(status) in TERMINAL_STATES


# ===============================================================
# Dashboard buckets
# ===============================================================

BUCKET_PENDING = "Pending"
BUCKET_IN_PROGRESS = "In Progress"
BUCKET_COMPLETED = "Completed"


def status_bucket(status: str) -> Optional[str]:
    idx = ladder_index(status)
    if idx < 0:
        return None

    pending_end = STATUS_LADDER.index(RequestStatus.JOB_CARD_CREATED)
    completed = STATUS_LADDER.index(RequestStatus.COMPLETED)

    if idx <= pending_end:
        return BUCKET_PENDING
    if idx < completed:
        return BUCKET_IN_PROGRESS
    return BUCKET_COMPLETED


def statuses_in_bucket(bucket: str) -> List[str]:
    return [s for s in STATUS_LADDER if status_bucket(s) == bucket]


# ===============================================================
# Departments
# ===============================================================

def department_for_test_type(test_type: str) -> Optional[str]:
    """
    Map a department-prefixed test type ("Chemical - Carbon content",
    "Mechanical-NDT - Ultrasonic") onto its department tag.
    """
    head = str(test_type or "").split(" - ")[0].strip().upper()
    if head in DEPARTMENT_PREFIXES:
        return DEPARTMENT_PREFIXES[head]

    head = head.split("-")[0].strip()
    return DEPARTMENT_PREFIXES.get(head)


def departments_for_test_types(test_types: Iterable[str]) -> List[str]:
    found: Set[str] = set()
    for test_type in test_types:
        dept = department_for_test_type(test_type)
        if dept:
            found.add(str(dept))
    return sorted(found)


# ===============================================================
# Role normalization and action permissions
# ===============================================================

ROLE_ALIASES: Dict[str, str] = {
    "ADMIN": "ADMIN",
    "SUPERADMIN": "ADMIN",
    "SUPERUSER": "ADMIN",
    "CEO": "ADMIN",
    "RECEPTIONIST": "RECEPTIONIST",
    "FRONT_DESK": "RECEPTIONIST",
    "SECTION_HEAD": "SECTION_HEAD",
    "SUPERVISOR": "SECTION_HEAD",
    "TESTER": "TESTER",
    "TECHNICIAN": "TESTER",
}

ROLES: List[str] = ["ADMIN", "RECEPTIONIST", "SECTION_HEAD", "TESTER"]

ACTION_ROLES: Dict[str, Set[str]] = {
    "intake": {"RECEPTIONIST"},
    "generate_ror": {"RECEPTIONIST"},
    "generate_proforma": {"RECEPTIONIST"},
    "delete_document": {"RECEPTIONIST"},
    "mail_documents": {"RECEPTIONIST"},
    "create_job_card": {"RECEPTIONIST"},
    "send_job_card": {"RECEPTIONIST"},
    "approve_job_card": {"SECTION_HEAD"},
    "reject_job_card": {"SECTION_HEAD"},
    "upload_report": {"TESTER"},
    "submit_result": {"TESTER"},
    "approve_result": {"SECTION_HEAD"},
    "reject_result": {"SECTION_HEAD"},
    "send_report": {"TESTER"},
    "approve_report": {"SECTION_HEAD"},
    "reject_report": {"SECTION_HEAD"},
    "mail_report": {"SECTION_HEAD"},
    "mark_completed": {"RECEPTIONIST"},
    # Lab catalogue
    "manage_equipment": {"SECTION_HEAD", "TESTER"},
    "manage_test_scope": {"SECTION_HEAD"},
    "manage_roles": set(),
}


def normalize_role(value: str) -> str:
    raw = str(value or "").strip().upper().replace(" ", "_")
    return ROLE_ALIASES.get(raw, raw)


def role_allows(action: str, role: str) -> bool:
    r = normalize_role(role)
    if r == "ADMIN":
        return True
    return r in ACTION_ROLES.get(action, set())


def required_roles(action: str) -> List[str]:
    if action not in ACTION_ROLES:
        raise ValueError(f"Unknown workflow action: {action}")
    return sorted(ACTION_ROLES[action] | {"ADMIN"})


def workflow_definition() -> Dict[str, object]:
    """
    Stable JSON-serializable definition for UI.
    """
    return {
        "statuses": [
            {"value": str(s), "label": RequestStatus(s).label, "bucket": status_bucket(s)}
            for s in STATUS_LADDER
        ],
        "rework": sorted(str(s) for s in REWORK_STATES),
        "terminal": sorted(str(s) for s in TERMINAL_STATES),
        "actions": {action: required_roles(action) for action in sorted(ACTION_ROLES)},
    }


__all__ = [
    "RequestStatus",
    "ResultStatus",
    "ReportApproval",
    "ReportStatus",
    "JobCardStatus",
    "DocumentStatus",
    "Department",
    "STATUS_LADDER",
    "REWORK_STATES",
    "TERMINAL_STATES",
    "normalize_state",
    "ladder_index",
    "is_terminal",
    "status_bucket",
    "statuses_in_bucket",
    "department_for_test_type",
    "departments_for_test_types",
    "normalize_role",
    "role_allows",
    "required_roles",
    "workflow_definition",
]
