# testflow/views.py
from __future__ import annotations

from django.db.models import ProtectedError

from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from django_filters.rest_framework import DjangoFilterBackend

from . import store
from .errors import ConflictError
from .filters import ClientFilter, EquipmentFilter, TestRequestFilter, TestScopeFilter
from .models import Client, Equipment, TestRequest, TestScope, UserRole
from .permissions import WorkflowActionPermission, primary_role, user_roles
from .serializers import (
    ClientSerializer,
    EquipmentLookupSerializer,
    EquipmentSerializer,
    TestRequestInputSerializer,
    TestRequestListSerializer,
    TestRequestSerializer,
    TestScopeCatalogueSerializer,
    TestScopeSerializer,
    UserRoleSerializer,
)


# ===============================================================
# System
# ===============================================================
class HealthCheckView(APIView):
    permission_classes = [AllowAny]

    @extend_schema(tags=["System"])
    def get(self, request):
        return Response({"status": "ok", "service": "ATL-LIMS"})


class WhoAmIView(APIView):
    """
    Current user with normalized lab roles.
    """
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["System"])
    def get(self, request):
        user = request.user
        departments = (
            UserRole.objects.filter(user=user)
            .exclude(department="")
            .values_list("department", flat=True)
        )
        return Response(
            {
                "id": user.id,
                "username": user.get_username(),
                "is_superuser": bool(getattr(user, "is_superuser", False)),
                "role": primary_role(user),
                "roles": sorted(user_roles(user)),
                "departments": sorted(set(departments)),
            }
        )


# ===============================================================
# Clients
# ===============================================================
class ClientViewSet(viewsets.ModelViewSet):
    queryset = Client.objects.all().order_by("name", "id")
    serializer_class = ClientSerializer
    permission_classes = [WorkflowActionPermission]
    filterset_class = ClientFilter
    workflow_action = "intake"

    def perform_create(self, serializer):
        instance = store.create_client(serializer.validated_data)
        serializer.instance = instance

    def perform_destroy(self, instance):
        try:
            instance.delete()
        except ProtectedError:
            raise ConflictError("Client has test requests and cannot be deleted.")


# ===============================================================
# Test requests
# ===============================================================
LIST_PARAMETERS = [
    OpenApiParameter("status", str, many=True),
    OpenApiParameter("bucket", str, description="Pending, In Progress or Completed"),
    OpenApiParameter("client", int),
    OpenApiParameter("search", str, description="Request id, client name or email"),
    OpenApiParameter("year", int),
    OpenApiParameter("month", int),
    OpenApiParameter("ordering", str, description="Comma-separated, '-' for descending"),
]


class TestRequestViewSet(viewsets.ModelViewSet):
    """
    Intake CRUD. Workflow state changes go through the action endpoints.
    """
    queryset = TestRequest.objects.all()
    permission_classes = [WorkflowActionPermission]
    filter_backends = [DjangoFilterBackend]
    filterset_class = TestRequestFilter
    http_method_names = ["get", "post", "patch", "head", "options"]
    workflow_action = "intake"

    def get_queryset(self):
        params = self.request.query_params
        return store.list_test_requests(
            {
                "status": params.getlist("status"),
                "bucket": params.get("bucket"),
                "client": params.get("client"),
                "search": params.get("search"),
                "year": params.get("year"),
                "month": params.get("month"),
            },
            ordering=params.get("ordering", "").split(","),
        )

    def get_serializer_class(self):
        if self.action == "list":
            return TestRequestListSerializer
        return TestRequestSerializer

    @extend_schema(parameters=LIST_PARAMETERS)
    def list(self, request, *args, **kwargs):
        return super().list(request, *args, **kwargs)

    @extend_schema(request=TestRequestInputSerializer, responses=TestRequestSerializer)
    def create(self, request, *args, **kwargs):
        instance = store.create_test_request(request.data, user=request.user)
        instance = store.get_test_request(instance.pk)
        return Response(TestRequestSerializer(instance).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=TestRequestInputSerializer, responses=TestRequestSerializer)
    def partial_update(self, request, *args, **kwargs):
        pk = kwargs["pk"]
        store.get_test_request(pk)
        store.update_test_request(pk, request.data, user=request.user)
        return Response(TestRequestSerializer(store.get_test_request(pk)).data)


# ===============================================================
# Lab catalogue
# ===============================================================
class EquipmentViewSet(viewsets.ModelViewSet):
    """
    Calibrated equipment register. Rows are retired by editing, not deleted,
    since issued reports cite them.
    """
    queryset = Equipment.objects.all()
    serializer_class = EquipmentSerializer
    permission_classes = [WorkflowActionPermission]
    filterset_class = EquipmentFilter
    http_method_names = ["get", "post", "put", "patch", "head", "options"]
    workflow_action = "manage_equipment"

    def get_permissions(self):
        # by-ids is a POSTed lookup, not a write
        if self.action == "by_ids":
            return [IsAuthenticated()]
        return super().get_permissions()

    @extend_schema(
        request=EquipmentLookupSerializer,
        responses=EquipmentSerializer(many=True),
    )
    @action(detail=False, methods=["post"], url_path="by-ids")
    def by_ids(self, request):
        ids = request.data.get("equipment_ids") if isinstance(request.data, dict) else None
        rows = store.equipment_by_ids(ids)
        return Response(EquipmentSerializer(rows, many=True).data)


class TestScopeViewSet(viewsets.ModelViewSet):
    """NABL accreditation scope, ordered by serial number."""
    queryset = TestScope.objects.all()
    serializer_class = TestScopeSerializer
    permission_classes = [WorkflowActionPermission]
    filterset_class = TestScopeFilter
    workflow_action = "manage_test_scope"

    @extend_schema(responses=TestScopeCatalogueSerializer(many=True))
    @action(detail=False, methods=["get"], pagination_class=None)
    def catalogue(self, request):
        rows = self.filter_queryset(self.get_queryset())
        return Response(TestScopeCatalogueSerializer(rows, many=True).data)


# ===============================================================
# Roles (ADMIN only for writes)
# ===============================================================
class UserRoleViewSet(viewsets.ModelViewSet):
    queryset = UserRole.objects.select_related("user").all()
    serializer_class = UserRoleSerializer
    permission_classes = [WorkflowActionPermission]
    workflow_action = "manage_roles"
