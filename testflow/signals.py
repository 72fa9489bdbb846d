# testflow/signals.py
from __future__ import annotations

import logging

from django.conf import settings
from django.core.mail import send_mail
from django.db import transaction
from django.db.models.signals import post_save
from django.dispatch import receiver

from testflow.models import StatusTransition

logger = logging.getLogger(__name__)


def _safe_username(user) -> str:
    if not user:
        return "system"
    return user.get_username()


# ===============================================================
# Status transitions
# ===============================================================
@receiver(post_save, sender=StatusTransition)
def notify_status_transition(sender, instance: StatusTransition, created: bool, **kwargs):
    """
    Side effects of a recorded status change:
    - audit line in the application log
    - optional email notification (feature-flagged), sent once the
      surrounding transaction commits

    Never raises; the transition itself is already persisted.
    """
    if not created:
        return

    request_id = instance.test_request.request_id

    logger.info(
        "Status transition on %s by %s: %s -> %s [%s]",
        request_id,
        _safe_username(instance.performed_by),
        instance.from_status,
        instance.to_status,
        instance.action,
    )

    if not getattr(settings, "WORKFLOW_EMAIL_NOTIFICATIONS", False):
        return

    recipients = getattr(settings, "WORKFLOW_NOTIFY_EMAILS", None)
    if not recipients:
        return

    subject = f"[ATL-LIMS] {request_id} {instance.from_status} -> {instance.to_status}"

    body = "\n".join(
        [
            "Workflow transition recorded.",
            "",
            f"Test request: {request_id}",
            f"Client: {instance.test_request.client_name}",
            f"Action: {instance.action}",
            f"From: {instance.from_status}",
            f"To: {instance.to_status}",
            f"Comment: {instance.comment or '-'}",
            f"By: {_safe_username(instance.performed_by)}",
            f"At: {instance.created_at}",
        ]
    )

    # The transition is written under the request row lock; SMTP waits for commit.
    transaction.on_commit(
        lambda: _send_transition_notice(request_id, subject, body, list(recipients))
    )


def _send_transition_notice(request_id: str, subject: str, body: str, recipients) -> None:
    try:
        send_mail(
            subject=subject,
            message=body,
            from_email=getattr(settings, "DEFAULT_FROM_EMAIL", None),
            recipient_list=recipients,
            fail_silently=True,
        )
    except Exception:
        logger.exception("Transition notice for %s could not be sent", request_id)
