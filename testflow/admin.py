# testflow/admin.py

from django.contrib import admin

from .models import (
    Client,
    Counter,
    Equipment,
    JobCard,
    StatusTransition,
    SubTest,
    TestRequest,
    TestScope,
    UserRole,
)


# =============================================================
# Status transitions (READ-ONLY TIMELINE)
# =============================================================

@admin.register(StatusTransition)
class StatusTransitionAdmin(admin.ModelAdmin):
    list_display = (
        "test_request",
        "action",
        "from_status",
        "to_status",
        "performed_by",
        "created_at",
    )
    list_filter = ("action", "to_status")
    search_fields = ("test_request__request_id", "performed_by__username")
    ordering = ("-created_at",)

    readonly_fields = [f.name for f in StatusTransition._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# =============================================================
# Test requests
# =============================================================

class SubTestInline(admin.TabularInline):
    model = SubTest
    extra = 0
    fields = (
        "position",
        "atl_id",
        "material",
        "material_id",
        "test_type",
        "result_status",
        "report_approval",
        "report_mailed",
    )
    readonly_fields = ("result_status", "report_approval", "report_mailed")


class JobCardInline(admin.TabularInline):
    model = JobCard
    extra = 0
    readonly_fields = ("status",)


@admin.register(TestRequest)
class TestRequestAdmin(admin.ModelAdmin):
    list_display = ("request_id", "client_name", "request_date", "status", "report_status", "created_at")
    list_filter = ("status", "report_status", "ror_status", "proforma_status")
    search_fields = ("request_id", "client_name", "email")
    ordering = ("-created_at",)
    inlines = [SubTestInline, JobCardInline]

    # Workflow fields move only through the workflow engine.
    readonly_fields = (
        "sequence_number",
        "status",
        "report_status",
        "ror_status",
        "proforma_status",
        "documents_mailed_at",
        "created_by",
        "created_at",
        "updated_at",
    )
    exclude = ("ror_document", "proforma_document")


@admin.register(Client)
class ClientAdmin(admin.ModelAdmin):
    list_display = ("name", "email", "contact_no", "created_at")
    search_fields = ("name", "email")


@admin.register(UserRole)
class UserRoleAdmin(admin.ModelAdmin):
    list_display = ("user", "role", "department", "created_at")
    list_filter = ("role", "department")
    search_fields = ("user__username",)


@admin.register(Counter)
class CounterAdmin(admin.ModelAdmin):
    list_display = ("name", "value")
    readonly_fields = ("name", "value")


# =============================================================
# Lab catalogue
# =============================================================

@admin.register(Equipment)
class EquipmentAdmin(admin.ModelAdmin):
    list_display = ("name", "certificate_no", "calibration_date", "due_date", "calibrated_by")
    search_fields = ("name", "certificate_no")
    ordering = ("due_date",)


@admin.register(TestScope)
class TestScopeAdmin(admin.ModelAdmin):
    list_display = ("s_no", "group", "material_tested", "test_method")
    list_filter = ("group",)
    search_fields = ("material_tested", "parameters", "test_method")
