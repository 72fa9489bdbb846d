# testflow/models.py

from django.conf import settings
from django.core.validators import RegexValidator
from django.db import models
from django.db.models import Q

from testflow.identifiers import ATL_ID_RE, DATE_RE, REQUEST_ID_RE
from testflow.workflows import (
    Department,
    DocumentStatus,
    JobCardStatus,
    ReportApproval,
    ReportStatus,
    RequestStatus,
    ResultStatus,
)
from testflow.workflows.guards import WorkflowWriteGuardMixin


request_id_validator = RegexValidator(
    REQUEST_ID_RE.pattern, "Not a valid Test ID format. Use ATL/YY/MM/T_<n>."
)
atl_id_validator = RegexValidator(
    ATL_ID_RE.pattern, "Not a valid ATL ID format. Use ATL/YY/MM/<n>."
)
date_validator = RegexValidator(
    DATE_RE.pattern, "Not a valid date format. Use YYYY-MM-DD."
)

YES_NO = [("yes", "Yes"), ("no", "No")]


# ============================================================
# Base
# ============================================================
class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


# ============================================================
# Sequence counter
# ============================================================
class Counter(models.Model):
    """
    Named monotonic counter. One row per entity name.
    """
    name = models.CharField(max_length=64, unique=True)
    value = models.PositiveBigIntegerField(default=0)

    def __str__(self):
        return f"{self.name}={self.value}"


# ============================================================
# Roles
# ============================================================
class UserRole(TimeStampedModel):
    """Lab role of a user: ADMIN, RECEPTIONIST, SECTION_HEAD or TESTER."""
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="lab_roles",
    )
    role = models.CharField(max_length=50)
    department = models.CharField(
        max_length=20,
        choices=Department.choices,
        blank=True,
        help_text="Section heads and testers belong to a department.",
    )

    class Meta:
        unique_together = ("user", "role")
        ordering = ["user__username", "role"]

    def __str__(self):
        return f"{self.user.username} - {self.role}"


# ============================================================
# Client
# ============================================================
class Client(TimeStampedModel):
    name = models.CharField(max_length=255)
    contact_no = models.CharField(max_length=50)
    email = models.EmailField(unique=True)
    address = models.TextField()

    class Meta:
        ordering = ["name"]

    def save(self, *args, **kwargs):
        self.email = (self.email or "").strip().lower()
        self.name = (self.name or "").strip()
        return super().save(*args, **kwargs)

    def __str__(self):
        return self.name


# ============================================================
# Lab catalogue: equipment register and NABL test scope
# ============================================================
class Equipment(TimeStampedModel):
    """
    Calibrated instrument. Testers pick rows from here to fill a
    sub-test's equipment table.
    """
    name = models.CharField(max_length=255)
    range = models.CharField(max_length=255, blank=True)
    certificate_no = models.CharField(max_length=100, blank=True)
    calibration_date = models.DateField(null=True, blank=True)
    due_date = models.DateField(null=True, blank=True)
    calibrated_by = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ["name", "id"]
        verbose_name_plural = "equipment"
        constraints = [
            models.CheckConstraint(
                name="equipment_due_after_calibration",
                condition=Q(calibration_date__isnull=True)
                | Q(due_date__isnull=True)
                | Q(due_date__gte=models.F("calibration_date")),
            ),
        ]

    def __str__(self):
        return f"{self.name} ({self.range})" if self.range else self.name


class TestScope(TimeStampedModel):
    """One line of the lab's NABL accreditation scope."""
    s_no = models.PositiveIntegerField(unique=True)
    group = models.CharField(max_length=100, blank=True)
    main_group = models.CharField(max_length=255, blank=True)
    sub_group = models.CharField(max_length=255, blank=True)
    material_tested = models.CharField(max_length=255)
    parameters = models.TextField(blank=True)
    test_method = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ["s_no"]

    def __str__(self):
        return f"{self.s_no}. {self.material_tested}"


# ============================================================
# Test request (aggregate root)
# ============================================================
class TestRequest(WorkflowWriteGuardMixin, TimeStampedModel):
    # Written only by testflow.workflows; intake edits leave them alone.
    WORKFLOW_FIELDS = (
        "status",
        "report_status",
        "required_departments",
        "ror_status",
        "ror_document",
        "proforma_status",
        "proforma_document",
        "documents_mailed_at",
    )

    sequence_number = models.PositiveBigIntegerField(unique=True, editable=False)

    client = models.ForeignKey(
        Client,
        on_delete=models.PROTECT,
        related_name="test_requests",
    )
    client_name = models.CharField(max_length=255, blank=True)
    contact_no = models.CharField(max_length=50)
    email = models.EmailField()
    address = models.TextField()

    request_id = models.CharField(
        max_length=40,
        unique=True,
        validators=[request_id_validator],
    )
    request_date = models.CharField(max_length=10, validators=[date_validator])
    completion_date = models.CharField(
        max_length=10, blank=True, validators=[date_validator]
    )

    # Requirements questionnaire, advisory only.
    test_methods = models.CharField(max_length=3, choices=YES_NO, blank=True)
    laboratory_capability = models.CharField(max_length=3, choices=YES_NO, blank=True)
    appropriate_test_methods = models.CharField(max_length=3, choices=YES_NO, blank=True)
    decision_rule = models.CharField(max_length=3, choices=YES_NO, blank=True)
    external_provider = models.CharField(max_length=3, choices=YES_NO, blank=True)

    material_received = models.BooleanField(default=False)
    payment_received = models.BooleanField(default=False)

    required_departments = models.JSONField(default=list, blank=True)

    ror_status = models.PositiveSmallIntegerField(
        choices=DocumentStatus.choices, default=DocumentStatus.NOT_GENERATED
    )
    ror_document = models.TextField(null=True, blank=True)
    proforma_status = models.PositiveSmallIntegerField(
        choices=DocumentStatus.choices, default=DocumentStatus.NOT_GENERATED
    )
    proforma_document = models.TextField(null=True, blank=True)
    documents_mailed_at = models.DateTimeField(null=True, blank=True)

    status = models.CharField(
        max_length=40,
        choices=RequestStatus.choices,
        default=RequestStatus.INTAKE_ENTERED,
        db_index=True,
        editable=False,
    )
    report_status = models.PositiveSmallIntegerField(
        choices=ReportStatus.choices, default=ReportStatus.NONE
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="test_requests_created",
    )

    REQUIREMENT_FIELDS = (
        "test_methods",
        "laboratory_capability",
        "appropriate_test_methods",
        "decision_rule",
        "external_provider",
    )

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.CheckConstraint(
                name="test_request_ror_blob_matches_status",
                condition=Q(ror_status=DocumentStatus.NOT_GENERATED, ror_document__isnull=True)
                | Q(ror_status=DocumentStatus.GENERATED, ror_document__isnull=False),
            ),
            models.CheckConstraint(
                name="test_request_proforma_blob_matches_status",
                condition=Q(proforma_status=DocumentStatus.NOT_GENERATED, proforma_document__isnull=True)
                | Q(proforma_status=DocumentStatus.GENERATED, proforma_document__isnull=False),
            ),
        ]

    @property
    def requirements(self):
        return {name: getattr(self, name) for name in self.REQUIREMENT_FIELDS}

    def __str__(self):
        return f"{self.request_id} ({self.client_name})"


# ============================================================
# Sub-test (one material / test-type line)
# ============================================================
class SubTest(TimeStampedModel):
    test_request = models.ForeignKey(
        TestRequest,
        on_delete=models.CASCADE,
        related_name="sub_tests",
    )
    position = models.PositiveIntegerField(default=0)

    atl_id = models.CharField(max_length=40, validators=[atl_id_validator], db_index=True)
    material = models.CharField(max_length=255)
    material_id = models.CharField(max_length=255)
    test_date = models.CharField(max_length=10, validators=[date_validator])
    from_date = models.DateField(null=True, blank=True)
    to_date = models.DateField(null=True, blank=True)
    quantity = models.CharField(max_length=100)
    test_type = models.CharField(max_length=255)
    measurements = models.JSONField(default=list, blank=True)

    equipment_table = models.TextField(blank=True)
    result_table = models.TextField(blank=True)
    report_artifact = models.TextField(blank=True)

    result_status = models.CharField(
        max_length=30,
        choices=ResultStatus.choices,
        default=ResultStatus.PENDING,
    )
    result_remark = models.TextField(blank=True)

    report_approval = models.CharField(
        max_length=30,
        choices=ReportApproval.choices,
        default=ReportApproval.NOT_SENT,
    )
    report_remark = models.TextField(blank=True)
    report_mailed = models.BooleanField(default=False)

    class Meta:
        ordering = ["test_request", "position", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["test_request", "atl_id", "test_type", "material"],
                name="sub_test_unique_tuple",
            ),
            models.CheckConstraint(
                name="sub_test_remark_only_when_rejected",
                condition=Q(report_approval=ReportApproval.REJECTED) | Q(report_remark=""),
            ),
        ]

    @property
    def key(self):
        return (self.atl_id, self.test_type, self.material)

    def __str__(self):
        return f"{self.atl_id} {self.material} [{self.test_type}]"


# ============================================================
# Job card (one per required department)
# ============================================================
class JobCard(TimeStampedModel):
    test_request = models.ForeignKey(
        TestRequest,
        on_delete=models.CASCADE,
        related_name="job_cards",
    )
    department = models.CharField(max_length=20, choices=Department.choices)
    status = models.PositiveSmallIntegerField(
        choices=JobCardStatus.choices, default=JobCardStatus.PENDING
    )
    assigned_to = models.CharField(max_length=150, blank=True)
    remark = models.TextField(blank=True)

    class Meta:
        ordering = ["test_request", "department"]
        unique_together = ("test_request", "department")

    def __str__(self):
        return f"{self.test_request.request_id}:{self.department} ({self.get_status_display()})"


# ============================================================
# Status timeline
# ============================================================
class StatusTransition(models.Model):
    """
    Immutable timeline row written for every top-level status change.
    """
    test_request = models.ForeignKey(
        TestRequest,
        on_delete=models.CASCADE,
        related_name="transitions",
    )
    action = models.CharField(max_length=50)
    from_status = models.CharField(max_length=40)
    to_status = models.CharField(max_length=40)
    comment = models.TextField(blank=True)

    performed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="status_transitions",
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["test_request", "created_at"], name="transition_req_time_idx"),
        ]

    def __str__(self):
        return (
            f"{self.test_request_id} "
            f"{self.from_status} -> {self.to_status}"
        )
