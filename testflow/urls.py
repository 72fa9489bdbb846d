# testflow/urls.py

from django.urls import path, include
from rest_framework.routers import DefaultRouter

# -------------------------------------------------
# Core API ViewSets
# -------------------------------------------------
from .views import (
    HealthCheckView,
    WhoAmIView,
    ClientViewSet,
    EquipmentViewSet,
    TestRequestViewSet,
    TestScopeViewSet,
    UserRoleViewSet,
)

# -------------------------------------------------
# Workflow runtime
# -------------------------------------------------
from .views_workflow import (
    WorkflowDefinitionView,
    WorkflowActionView,
    TimelineView,
    DocumentStateView,
    DocumentBlobView,
    NextIdentifierView,
)

# -------------------------------------------------
# Dashboards (read-only)
# -------------------------------------------------
from .views_dashboard import (
    StatusSummaryView,
    MonthlyTrendView,
    DepartmentMonthlyView,
    DepartmentSummaryView,
    DocumentSummaryView,
    TestStandardsView,
    ReportsPendingApprovalView,
)

app_name = "testflow"

router = DefaultRouter()
router.register(r"clients", ClientViewSet, basename="client")
router.register(r"test-requests", TestRequestViewSet, basename="test-request")
router.register(r"equipment", EquipmentViewSet, basename="equipment")
router.register(r"test-scopes", TestScopeViewSet, basename="test-scope")
router.register(r"roles", UserRoleViewSet, basename="role")

urlpatterns = [
    path("health/", HealthCheckView.as_view(), name="health"),
    path("whoami/", WhoAmIView.as_view(), name="whoami"),

    # Workflow
    path("workflow/", WorkflowDefinitionView.as_view(), name="workflow-definition"),
    path(
        "test-requests/<int:pk>/actions/<str:action>/",
        WorkflowActionView.as_view(),
        name="workflow-action",
    ),
    path("test-requests/<int:pk>/timeline/", TimelineView.as_view(), name="timeline"),
    path("test-requests/<int:pk>/documents/", DocumentStateView.as_view(), name="documents"),
    path(
        "test-requests/<int:pk>/documents/<str:kind>/",
        DocumentBlobView.as_view(),
        name="document-blob",
    ),
    path("identifiers/next/", NextIdentifierView.as_view(), name="next-identifier"),

    # Dashboards
    path("dashboard/status/", StatusSummaryView.as_view(), name="dashboard-status"),
    path("dashboard/monthly/", MonthlyTrendView.as_view(), name="dashboard-monthly"),
    path("dashboard/departments/monthly/", DepartmentMonthlyView.as_view(), name="dashboard-department-monthly"),
    path("dashboard/departments/summary/", DepartmentSummaryView.as_view(), name="dashboard-department-summary"),
    path("dashboard/documents/", DocumentSummaryView.as_view(), name="dashboard-documents"),
    path("dashboard/standards/", TestStandardsView.as_view(), name="dashboard-standards"),
    path("dashboard/reports/pending/", ReportsPendingApprovalView.as_view(), name="dashboard-reports-pending"),

    path("", include(router.urls)),
]
