from django.conf import settings
from django.urls import reverse
from rest_framework.views import APIView
from rest_framework.response import Response

from testflow.views_workflow import ACTION_HANDLERS


class ApiHomeView(APIView):
    """Public landing document: where to log in and what the API offers."""

    authentication_classes = []
    permission_classes = []

    def get(self, request):
        version = settings.SPECTACULAR_SETTINGS.get("VERSION", "")
        return Response(
            {
                "service": "ATL-LIMS",
                "version": version,
                "auth": {
                    "token_obtain": reverse("token_obtain_pair"),
                    "token_refresh": reverse("token_refresh"),
                },
                "docs": {
                    "schema": reverse("schema"),
                    "swagger": reverse("swagger-ui"),
                    "redoc": reverse("redoc"),
                },
                "resources": {
                    "health": reverse("testflow:health"),
                    "clients": reverse("testflow:client-list"),
                    "test_requests": reverse("testflow:test-request-list"),
                    "equipment": reverse("testflow:equipment-list"),
                    "test_scopes": reverse("testflow:test-scope-list"),
                    "workflow": reverse("testflow:workflow-definition"),
                    "dashboard": reverse("testflow:dashboard-status"),
                },
                "workflow_actions": sorted(ACTION_HANDLERS),
            }
        )
