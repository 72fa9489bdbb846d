from __future__ import annotations

from typing import Any, Dict

from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework import serializers

from .errors import ConflictError
from .models import Client, Equipment, JobCard, StatusTransition, SubTest, TestRequest, TestScope, UserRole
from .workflows import normalize_role, ROLES, status_bucket
from .workflows.documents import document_states

User = get_user_model()


# ===============================================================
# Helpers
# ===============================================================

class UserSlimSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ("id", "username", "email")
        read_only_fields = fields


# ===============================================================
# Clients
# ===============================================================

class ClientSerializer(serializers.ModelSerializer):
    class Meta:
        model = Client
        fields = ("id", "name", "contact_no", "email", "address", "created_at", "updated_at")
        read_only_fields = ("id", "created_at", "updated_at")
        extra_kwargs = {"email": {"validators": []}}

    def validate_email(self, value: str) -> str:
        email = (value or "").strip().lower()
        qs = Client.objects.filter(email__iexact=email)
        if self.instance is not None:
            qs = qs.exclude(pk=self.instance.pk)
        if qs.exists():
            raise ConflictError({"email": f"A client with email {email} already exists."})
        return email


# ===============================================================
# Roles
# ===============================================================

class UserRoleSerializer(serializers.ModelSerializer):
    user = UserSlimSerializer(read_only=True)
    user_id = serializers.PrimaryKeyRelatedField(source="user", queryset=User.objects.all(), write_only=True)

    class Meta:
        model = UserRole
        fields = ("id", "user", "user_id", "role", "department", "created_at")
        read_only_fields = ("id", "user", "created_at")

    def validate_role(self, value: str) -> str:
        role = normalize_role(value)
        if role not in ROLES:
            raise serializers.ValidationError(f"Unknown role. Use one of {', '.join(ROLES)}.")
        return role


# ===============================================================
# Lab catalogue
# ===============================================================

class EquipmentSerializer(serializers.ModelSerializer):
    calibration_due = serializers.SerializerMethodField()

    class Meta:
        model = Equipment
        fields = (
            "id",
            "name",
            "range",
            "certificate_no",
            "calibration_date",
            "due_date",
            "calibrated_by",
            "calibration_due",
            "created_at",
            "updated_at",
        )
        read_only_fields = ("id", "calibration_due", "created_at", "updated_at")

    def get_calibration_due(self, obj) -> bool:
        return obj.due_date is not None and obj.due_date <= timezone.localdate()

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        calibrated = attrs.get("calibration_date", getattr(self.instance, "calibration_date", None))
        due = attrs.get("due_date", getattr(self.instance, "due_date", None))
        if calibrated and due and due < calibrated:
            raise serializers.ValidationError({"due_date": "Due date is before the calibration date."})
        return attrs


class EquipmentLookupSerializer(serializers.Serializer):
    equipment_ids = serializers.ListField(child=serializers.IntegerField())


class TestScopeSerializer(serializers.ModelSerializer):
    class Meta:
        model = TestScope
        fields = (
            "id",
            "s_no",
            "group",
            "main_group",
            "sub_group",
            "material_tested",
            "parameters",
            "test_method",
        )
        read_only_fields = ("id",)
        extra_kwargs = {"s_no": {"validators": []}}

    def validate_s_no(self, value: int) -> int:
        qs = TestScope.objects.filter(s_no=value)
        if self.instance is not None:
            qs = qs.exclude(pk=self.instance.pk)
        if qs.exists():
            raise ConflictError({"s_no": f"Scope line {value} already exists."})
        return value


class TestScopeCatalogueSerializer(serializers.ModelSerializer):
    """Slim scope rows for the intake form's material / test pickers."""

    class Meta:
        model = TestScope
        fields = ("material_tested", "group", "parameters", "test_method")
        read_only_fields = fields


# ===============================================================
# Test request (read side)
# ===============================================================

class SubTestSerializer(serializers.ModelSerializer):
    result_status_label = serializers.CharField(source="get_result_status_display", read_only=True)
    report_approval_label = serializers.CharField(source="get_report_approval_display", read_only=True)

    class Meta:
        model = SubTest
        fields = (
            "id",
            "position",
            "atl_id",
            "material",
            "material_id",
            "test_date",
            "from_date",
            "to_date",
            "quantity",
            "test_type",
            "measurements",
            "equipment_table",
            "result_table",
            "report_artifact",
            "result_status",
            "result_status_label",
            "result_remark",
            "report_approval",
            "report_approval_label",
            "report_remark",
            "report_mailed",
        )
        read_only_fields = fields


class JobCardSerializer(serializers.ModelSerializer):
    status_label = serializers.CharField(source="get_status_display", read_only=True)

    class Meta:
        model = JobCard
        fields = ("department", "status", "status_label", "assigned_to", "remark", "updated_at")
        read_only_fields = fields


class StatusTransitionSerializer(serializers.ModelSerializer):
    performed_by = UserSlimSerializer(read_only=True)

    class Meta:
        model = StatusTransition
        fields = ("id", "action", "from_status", "to_status", "comment", "performed_by", "created_at")
        read_only_fields = fields


class TestRequestSerializer(serializers.ModelSerializer):
    """
    Read model of the aggregate. Document blobs are served separately.
    """
    status_label = serializers.CharField(source="get_status_display", read_only=True)
    bucket = serializers.SerializerMethodField()
    requirements = serializers.DictField(read_only=True)
    sub_tests = SubTestSerializer(many=True, read_only=True)
    job_cards = JobCardSerializer(many=True, read_only=True)
    documents = serializers.SerializerMethodField()

    class Meta:
        model = TestRequest
        fields = (
            "id",
            "sequence_number",
            "request_id",
            "client",
            "client_name",
            "contact_no",
            "email",
            "address",
            "request_date",
            "completion_date",
            "requirements",
            "material_received",
            "payment_received",
            "required_departments",
            "status",
            "status_label",
            "bucket",
            "report_status",
            "ror_status",
            "proforma_status",
            "documents_mailed_at",
            "documents",
            "sub_tests",
            "job_cards",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields

    def get_bucket(self, obj: TestRequest):
        return status_bucket(obj.status)

    def get_documents(self, obj: TestRequest) -> Dict[str, Any]:
        return document_states(obj)


class TestRequestListSerializer(serializers.ModelSerializer):
    status_label = serializers.CharField(source="get_status_display", read_only=True)
    sub_test_count = serializers.IntegerField(source="sub_tests.count", read_only=True)

    class Meta:
        model = TestRequest
        fields = (
            "id",
            "sequence_number",
            "request_id",
            "client_name",
            "request_date",
            "status",
            "status_label",
            "report_status",
            "required_departments",
            "sub_test_count",
            "created_at",
        )
        read_only_fields = fields


# ===============================================================
# Input shapes (validated by testflow.store / the workflow engine)
# ===============================================================

class MeasurementInputSerializer(serializers.Serializer):
    test = serializers.CharField()
    standard = serializers.CharField()
    result = serializers.CharField(required=False, allow_blank=True)
    unit = serializers.CharField(required=False, allow_blank=True)
    values = serializers.ListField(child=serializers.CharField(), required=False)


class SubTestInputSerializer(serializers.Serializer):
    atl_id = serializers.CharField(required=False, help_text="ATL/YY/MM/<n>; generated when omitted.")
    material = serializers.CharField()
    material_id = serializers.CharField()
    test_date = serializers.CharField(help_text="YYYY-MM-DD")
    from_date = serializers.DateField(required=False)
    to_date = serializers.DateField(required=False)
    quantity = serializers.CharField()
    test_type = serializers.CharField(help_text="Department-prefixed, e.g. 'Chemical - Carbon content'.")
    measurements = MeasurementInputSerializer(many=True, required=False)


class TestRequestInputSerializer(serializers.Serializer):
    client = serializers.IntegerField(required=False)
    client_name = serializers.CharField(required=False)
    contact_no = serializers.CharField(required=False)
    email = serializers.EmailField(required=False)
    address = serializers.CharField(required=False)
    request_id = serializers.CharField(required=False, help_text="ATL/YY/MM/T_<n>; generated when omitted.")
    request_date = serializers.CharField(help_text="YYYY-MM-DD")
    completion_date = serializers.CharField(required=False)
    test_methods = serializers.ChoiceField(choices=["yes", "no"], required=False)
    laboratory_capability = serializers.ChoiceField(choices=["yes", "no"], required=False)
    appropriate_test_methods = serializers.ChoiceField(choices=["yes", "no"], required=False)
    decision_rule = serializers.ChoiceField(choices=["yes", "no"], required=False)
    external_provider = serializers.ChoiceField(choices=["yes", "no"], required=False)
    material_received = serializers.BooleanField(required=False)
    payment_received = serializers.BooleanField(required=False)
    sub_tests = SubTestInputSerializer(many=True)


class WorkflowActionInputSerializer(serializers.Serializer):
    """
    Union of the payload fields used by workflow actions. Each action
    reads only the fields it needs.
    """
    atl_id = serializers.CharField(required=False)
    test_type = serializers.CharField(required=False)
    material = serializers.CharField(required=False)
    department = serializers.CharField(required=False)
    assigned_to = serializers.CharField(required=False)
    remark = serializers.CharField(required=False, allow_blank=True)
    equipment_table = serializers.CharField(required=False, allow_blank=True)
    result_table = serializers.CharField(required=False, allow_blank=True)
    report = serializers.CharField(required=False)
    cc = serializers.ListField(child=serializers.EmailField(), required=False)
