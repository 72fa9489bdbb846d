# testflow/errors.py
"""
Error taxonomy for the material-test workflow.

Every failure surfaces to API callers as a structured body with a
machine-distinguishable ``kind`` and a human-readable ``error`` message.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.core.exceptions import ValidationError as DjangoValidationError
from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class WorkflowError(exceptions.APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Workflow error."
    default_code = "workflow_error"
    kind = "workflow_error"

    def __init__(self, detail: Any = None, code: Optional[str] = None):
        super().__init__(detail=detail, code=code)
        self.message = _first_message(self.detail) or str(self.default_detail)


class ValidationError(WorkflowError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid input."
    default_code = "invalid"
    kind = "validation_error"


class FormatError(ValidationError):
    default_detail = "Identifier or date does not match the required format."
    default_code = "format"
    kind = "format_error"


class NotFoundError(WorkflowError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."
    default_code = "not_found"
    kind = "not_found"


class PreconditionError(WorkflowError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Transition precondition not met."
    default_code = "precondition_failed"
    kind = "precondition_failed"


class ConflictError(WorkflowError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Duplicate value for a unique field."
    default_code = "conflict"
    kind = "conflict"


class DependencyError(WorkflowError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "An external collaborator failed."
    default_code = "dependency_failed"
    kind = "dependency_failed"


def _first_message(detail: Any) -> str:
    if isinstance(detail, dict):
        for value in detail.values():
            msg = _first_message(value)
            if msg:
                return msg
        return ""
    if isinstance(detail, (list, tuple)):
        for value in detail:
            msg = _first_message(value)
            if msg:
                return msg
        return ""
    return str(detail) if detail is not None else ""


# ===============================================================
# DRF exception handler
# ===============================================================

_FRAMEWORK_KINDS = (
    (exceptions.NotAuthenticated, "not_authenticated"),
    (exceptions.AuthenticationFailed, "authentication_failed"),
    (exceptions.PermissionDenied, "permission_denied"),
    (exceptions.NotFound, "not_found"),
    (exceptions.MethodNotAllowed, "method_not_allowed"),
    (exceptions.ValidationError, "validation_error"),
)


def _kind_for(exc: Exception) -> str:
    if isinstance(exc, WorkflowError):
        return exc.kind
    for cls, kind in _FRAMEWORK_KINDS:
        if isinstance(exc, cls):
            return kind
    return "error"


def exception_handler(exc: Exception, context: Dict[str, Any]):
    """
    Wrap DRF's handler so every error body carries ``ok``/``kind``/``error``.
    Django-level ValidationError from model validators is mapped to 400.
    """
    if isinstance(exc, DjangoValidationError):
        detail = exc.message_dict if hasattr(exc, "error_dict") else exc.messages
        exc = ValidationError(detail)
    elif isinstance(exc, DjangoPermissionDenied):
        exc = exceptions.PermissionDenied(str(exc) or None)
    elif isinstance(exc, Http404):
        exc = NotFoundError(str(exc) or None)

    response = drf_exception_handler(exc, context)
    if response is None:
        return None

    detail = response.data
    if isinstance(exc, WorkflowError):
        message = exc.message
    else:
        message = _first_message(detail) or "Request failed."

    if response.status_code >= 500:
        logger.error("Request failed with %s: %s", _kind_for(exc), message)

    response.data = {
        "ok": False,
        "kind": _kind_for(exc),
        "error": message,
        "detail": detail,
    }
    return response
