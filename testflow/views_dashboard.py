# testflow/views_dashboard.py
from __future__ import annotations

import datetime

from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from testflow import dashboard
from testflow.errors import ValidationError


class _DashboardView(APIView):
    """
    READ-ONLY.
    No workflow mutation. Safe for dashboards and management oversight.
    """

    permission_classes = [IsAuthenticated]


class StatusSummaryView(_DashboardView):
    @extend_schema(tags=["Dashboard"])
    def get(self, request):
        return Response(dashboard.status_summary())


class MonthlyTrendView(_DashboardView):
    @extend_schema(tags=["Dashboard"], parameters=[OpenApiParameter("year", int)])
    def get(self, request):
        return Response(dashboard.monthly_trend(request.query_params.get("year")))


class DepartmentMonthlyView(_DashboardView):
    @extend_schema(tags=["Dashboard"], parameters=[OpenApiParameter("year", int)])
    def get(self, request):
        return Response(dashboard.department_monthly(request.query_params.get("year")))


class DepartmentSummaryView(_DashboardView):
    @extend_schema(tags=["Dashboard"], parameters=[OpenApiParameter("department", str, required=True)])
    def get(self, request):
        return Response(dashboard.department_summary(request.query_params.get("department")))


class DocumentSummaryView(_DashboardView):
    @extend_schema(tags=["Dashboard"], parameters=[OpenApiParameter("since", str, description="YYYY-MM-DD")])
    def get(self, request):
        raw = request.query_params.get("since")
        since = None
        if raw:
            try:
                since = datetime.date.fromisoformat(raw)
            except ValueError:
                raise ValidationError({"since": "Use YYYY-MM-DD."})
        return Response(dashboard.document_summary(since))


class TestStandardsView(_DashboardView):
    @extend_schema(tags=["Dashboard"])
    def get(self, request):
        return Response(dashboard.test_standards())


class ReportsPendingApprovalView(_DashboardView):
    @extend_schema(tags=["Dashboard"])
    def get(self, request):
        return Response(dashboard.reports_pending_approval())
