# testflow/workflows/executor.py

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Tuple

from django.db import transaction

from testflow.errors import NotFoundError, PreconditionError, ValidationError
from testflow.models import StatusTransition, SubTest, TestRequest
from testflow.workflows import RequestStatus, is_terminal, normalize_state

logger = logging.getLogger(__name__)


def assert_not_terminal(test_request: TestRequest) -> None:
    current = normalize_state(test_request.status)
    if is_terminal(current):
        raise PreconditionError(
            f"Test request {test_request.request_id} is in terminal state '{current}' "
            "and cannot be modified."
        )


@contextmanager
def locked_test_request(pk):
    """
    Open a transaction and yield the request row under select_for_update.

    Guards must be evaluated against the yielded instance, never against a
    copy read before the lock was taken.
    """
    with transaction.atomic():
        test_request = TestRequest.objects.select_for_update().filter(pk=pk).first()
        if test_request is None:
            raise NotFoundError(f"Test request {pk} not found.")
        assert_not_terminal(test_request)
        yield test_request


def sub_test_key(data) -> Tuple[str, str, str]:
    """
    (atl_id, test_type, material) from a payload. All three are required.
    """
    missing = [name for name in ("atl_id", "test_type", "material") if not str(data.get(name) or "").strip()]
    if missing:
        raise ValidationError({name: "This field is required." for name in missing})
    return (
        str(data["atl_id"]).strip(),
        str(data["test_type"]).strip(),
        str(data["material"]).strip(),
    )


def get_sub_test(test_request: TestRequest, key: Tuple[str, str, str], *, lock: bool = False) -> SubTest:
    atl_id, test_type, material = key
    qs = SubTest.objects.filter(
        test_request=test_request,
        atl_id=atl_id,
        test_type=test_type,
        material=material,
    )
    if lock:
        qs = qs.select_for_update()
    sub_test = qs.first()
    if sub_test is None:
        raise NotFoundError(
            f"No sub-test {atl_id} / {test_type} / {material} on {test_request.request_id}."
        )
    return sub_test


def apply_status(
    test_request: TestRequest,
    to_status: str,
    *,
    action: str,
    user=None,
    comment: str = "",
    extra_fields=(),
) -> bool:
    """
    Write a new top-level status plus the timeline row. Must run inside
    the transaction opened by locked_test_request.

    Returns False when the request is already in the target status; any
    extra_fields are still saved.
    """
    current = normalize_state(test_request.status)
    target = normalize_state(to_status)

    if target not in RequestStatus.values:
        raise ValueError(f"Unknown status: {to_status}")

    update_fields = list(extra_fields)

    if current == target:
        if update_fields:
            test_request.save(update_fields=update_fields + ["updated_at"], _workflow_bypass=True)
        return False

    test_request.status = target
    test_request.save(
        update_fields=update_fields + ["status", "updated_at"],
        _workflow_bypass=True,
    )

    StatusTransition.objects.create(
        test_request=test_request,
        action=action,
        from_status=current,
        to_status=target,
        comment=comment or "",
        performed_by=user if getattr(user, "is_authenticated", False) else None,
    )

    logger.info(
        "Test request %s: %s -> %s (%s)",
        test_request.request_id,
        current,
        target,
        action,
    )
    return True
