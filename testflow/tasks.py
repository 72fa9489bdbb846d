# testflow/tasks.py
from __future__ import annotations

import logging

from celery import shared_task
from django.conf import settings

from testflow import mailer
from testflow.models import TestRequest
from testflow.workflows import departments_for_test_types

logger = logging.getLogger(__name__)


def section_head_emails(department: str):
    configured = getattr(settings, "SECTION_HEAD_EMAILS", {}) or {}
    return list(configured.get(department, []))


@shared_task
def notify_section_heads(test_request_id: int) -> int:
    """
    Tell each required department's section heads that a reviewed request is
    waiting for a job card. Best effort: failures are logged, never raised.
    """
    test_request = TestRequest.objects.filter(pk=test_request_id).first()
    if test_request is None:
        logger.warning("Section-head notice skipped: test request %s is gone", test_request_id)
        return 0

    sub_tests = list(test_request.sub_tests.order_by("position", "id"))
    departments = list(test_request.required_departments or []) or departments_for_test_types(
        s.test_type for s in sub_tests
    )

    sent = 0
    for department in departments:
        recipients = section_head_emails(department)
        if not recipients:
            logger.info("No section-head address configured for %s", department)
            continue

        tests = [
            (s.atl_id, s.material, s.test_type)
            for s in sub_tests
            if department in departments_for_test_types([s.test_type])
        ]
        try:
            sent += mailer.send_new_request_notice(
                to=recipients,
                department=department,
                request_id=test_request.request_id,
                client_name=test_request.client_name,
                tests=tests,
            )
        except mailer.MailError:
            logger.exception(
                "Section-head notice for %s on %s failed", department, test_request.request_id
            )
    return sent
