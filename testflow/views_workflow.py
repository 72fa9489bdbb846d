# testflow/views_workflow.py

from __future__ import annotations

from typing import Any, Callable, Dict

from drf_spectacular.utils import extend_schema
from rest_framework.exceptions import NotFound
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from . import store
from .errors import NotFoundError, ValidationError
from .identifiers import (
    format_atl_id,
    format_request_id,
    next_atl_sequence,
    next_request_sequence,
)
from .permissions import WorkflowActionPermission
from .serializers import (
    StatusTransitionSerializer,
    TestRequestSerializer,
    WorkflowActionInputSerializer,
)
from .workflows import workflow_definition
from .workflows import documents, engine
from .workflows.executor import sub_test_key


# =============================================================
# Action registry
# =============================================================

def _cc(data) -> list:
    cc = data.get("cc") or []
    if isinstance(cc, str):
        cc = cc.replace(";", ",").split(",")
    if not isinstance(cc, (list, tuple)):
        raise ValidationError({"cc": "CC must be a list of email addresses."})
    return [str(c).strip() for c in cc if str(c).strip()]


ACTION_HANDLERS: Dict[str, Callable[[Any, Dict[str, Any], Any], Any]] = {
    # Documents
    "generate_ror": lambda pk, d, u: documents.generate_ror(pk, d, user=u),
    "generate_proforma": lambda pk, d, u: documents.generate_proforma(pk, d, user=u),
    "delete_ror": lambda pk, d, u: documents.delete_document(pk, "ror", user=u),
    "delete_proforma": lambda pk, d, u: documents.delete_document(pk, "proforma", user=u),
    "mail_documents": lambda pk, d, u: documents.mail_documents(pk, _cc(d), user=u),
    # Job cards
    "create_job_card": lambda pk, d, u: engine.create_job_card(pk, user=u),
    "send_job_card": lambda pk, d, u: engine.send_job_card(pk, user=u),
    "approve_job_card": lambda pk, d, u: engine.approve_job_card(
        pk, d.get("department"), d.get("assigned_to"), user=u
    ),
    "reject_job_card": lambda pk, d, u: engine.reject_job_card(
        pk, d.get("department"), d.get("remark"), user=u
    ),
    # Results
    "submit_result": lambda pk, d, u: engine.submit_result(
        pk, sub_test_key(d),
        equipment_table=d.get("equipment_table"), result_table=d.get("result_table"), user=u,
    ),
    "approve_result": lambda pk, d, u: engine.approve_result(pk, sub_test_key(d), remark=d.get("remark"), user=u),
    "reject_result": lambda pk, d, u: engine.reject_result(pk, sub_test_key(d), d.get("remark"), user=u),
    # Report artifacts
    "upload_report": lambda pk, d, u: engine.upload_report(
        pk, sub_test_key(d), d.get("report"),
        equipment_table=d.get("equipment_table"), result_table=d.get("result_table"), user=u,
    ),
    "update_tables": lambda pk, d, u: engine.update_tables(
        pk, sub_test_key(d),
        equipment_table=d.get("equipment_table"), result_table=d.get("result_table"), user=u,
    ),
    "edit_report": lambda pk, d, u: engine.edit_report(pk, sub_test_key(d), d.get("report"), user=u),
    # Report approval
    "send_report": lambda pk, d, u: engine.send_report(pk, sub_test_key(d), user=u),
    "approve_report": lambda pk, d, u: engine.approve_report(pk, sub_test_key(d), user=u),
    "reject_report": lambda pk, d, u: engine.reject_report(pk, sub_test_key(d), d.get("remark"), user=u),
    "mail_report": lambda pk, d, u: documents.mail_report(pk, sub_test_key(d), _cc(d), user=u),
    # Completion
    "mark_completed": lambda pk, d, u: engine.mark_completed(pk, user=u),
}

# URL action name -> role-map action
PERMISSION_ACTION = {
    "delete_ror": "delete_document",
    "delete_proforma": "delete_document",
    "update_tables": "upload_report",
    "edit_report": "upload_report",
}


def _permission_action(action: str) -> str:
    return PERMISSION_ACTION.get(action, action)


# =============================================================
# API: Workflow definition
# =============================================================

class WorkflowDefinitionView(APIView):
    """
    GET /api/workflow/

    Status ladder with labels and buckets, rework and terminal states,
    and the roles allowed for each action.
    """
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Workflow"])
    def get(self, request):
        payload = workflow_definition()
        payload["endpoints"] = sorted(ACTION_HANDLERS)
        return Response(payload)


# =============================================================
# API: Execute workflow action (AUTHORITATIVE)
# =============================================================

class WorkflowActionView(APIView):
    """
    POST /api/test-requests/<pk>/actions/<action>/

    This endpoint is the ONLY API-level entry point that changes
    workflow state. The body carries the fields the action needs
    (sub-test key, department, remark, tables, cc).
    """
    permission_classes = [WorkflowActionPermission]

    def get_workflow_action(self, request):
        action = self.kwargs.get("action", "")
        if action not in ACTION_HANDLERS:
            raise NotFound(f"Unknown workflow action '{action}'.")
        return _permission_action(action)

    @extend_schema(tags=["Workflow"], request=WorkflowActionInputSerializer, responses=TestRequestSerializer)
    def post(self, request, pk: int, action: str):
        data = request.data if isinstance(request.data, dict) else {}
        ACTION_HANDLERS[action](pk, data, request.user)
        return Response(
            {
                "ok": True,
                "action": action,
                "test_request": TestRequestSerializer(store.get_test_request(pk)).data,
            }
        )


# =============================================================
# API: Timeline and documents (read-only)
# =============================================================

class TimelineView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Workflow"], responses=StatusTransitionSerializer(many=True))
    def get(self, request, pk: int):
        test_request = store.get_test_request(pk)
        rows = test_request.transitions.select_related("performed_by").order_by("created_at", "id")
        return Response(StatusTransitionSerializer(rows, many=True).data)


class DocumentStateView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Documents"])
    def get(self, request, pk: int):
        return Response(documents.document_states(store.get_test_request(pk)))


class DocumentBlobView(APIView):
    """
    GET /api/test-requests/<pk>/documents/<kind>/ -> base64 PDF
    """
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Documents"])
    def get(self, request, pk: int, kind: str):
        kind = (kind or "").strip().lower()
        if kind not in documents.DOCUMENT_KINDS:
            raise NotFoundError(f"Unknown document '{kind}'.")
        test_request = store.get_test_request(pk)
        blob = getattr(test_request, f"{kind}_document")
        if not blob:
            raise NotFoundError(f"{kind.upper()} has not been generated for {test_request.request_id}.")
        return Response(
            {
                "request_id": test_request.request_id,
                "kind": kind,
                "content_type": "application/pdf",
                "data": blob,
            }
        )


# =============================================================
# API: Identifier helpers
# =============================================================

class NextIdentifierView(APIView):
    """
    GET /api/identifiers/next/?year=24&month=05

    Next free ATL id and request id for the month. Advisory only: the
    store assigns ids again at write time.
    """
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Workflow"])
    def get(self, request):
        year = request.query_params.get("year")
        month = request.query_params.get("month")
        if not year or not month:
            raise ValidationError({"year": "year and month are required."})
        return Response(
            {
                "atl_id": format_atl_id(year, month, next_atl_sequence(year, month)),
                "request_id": format_request_id(year, month, next_request_sequence(year, month)),
            }
        )


__all__ = [
    "ACTION_HANDLERS",
    "WorkflowDefinitionView",
    "WorkflowActionView",
    "TimelineView",
    "DocumentStateView",
    "DocumentBlobView",
    "NextIdentifierView",
]
