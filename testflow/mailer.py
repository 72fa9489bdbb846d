# testflow/mailer.py
"""
Outbound lab mail: client documents, test reports and section-head notices.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from django.conf import settings
from django.core.mail import EmailMessage
from django.utils.html import format_html, format_html_join
from django.utils.safestring import mark_safe

logger = logging.getLogger(__name__)

SIGNATURE = "Best regards,<br>ATL Team"


class MailError(Exception):
    pass


def _clean_addresses(values: Optional[Iterable[str]]) -> List[str]:
    out: List[str] = []
    for value in values or []:
        addr = str(value or "").strip()
        if addr and addr not in out:
            out.append(addr)
    return out


def _attachment_name(prefix: str, request_id: str) -> str:
    return f"{prefix}_{request_id.replace('/', '_')}.pdf"


def _send(
    *,
    subject: str,
    html: str,
    to: Sequence[str],
    cc: Optional[Iterable[str]] = None,
    attachments: Sequence[Tuple[str, bytes]] = (),
) -> int:
    recipients = _clean_addresses(to)
    if not recipients:
        raise MailError("No recipient address.")

    message = EmailMessage(
        subject=subject,
        body=html,
        from_email=getattr(settings, "DEFAULT_FROM_EMAIL", None),
        to=recipients,
        cc=_clean_addresses(cc),
    )
    message.content_subtype = "html"
    for filename, content in attachments:
        message.attach(filename, content, "application/pdf")

    try:
        sent = message.send(fail_silently=False)
    except Exception as exc:
        logger.error("Mail %r to %s failed: %s", subject, recipients, exc)
        raise MailError(str(exc)) from exc

    logger.info("Mail %r sent to %s (cc=%s)", subject, recipients, message.cc)
    return sent


def send_documents(
    *,
    to: str,
    client_name: str,
    request_id: str,
    ror_pdf: bytes,
    proforma_pdf: bytes,
    cc: Optional[Iterable[str]] = None,
) -> int:
    html = format_html(
        "<h2>Test Documents from ATL</h2>"
        "<p>Dear {},</p>"
        "<p>Please find attached the following documents for your test ({}):</p>"
        "<ul><li>ROR (Review of Request)</li><li>Proforma Invoice</li></ul>"
        "<p>If you have any questions, please feel free to contact us.</p>"
        "<p>{}</p>",
        client_name,
        request_id,
        mark_safe(SIGNATURE),
    )
    return _send(
        subject="ATL - Test Documents",
        html=html,
        to=[to],
        cc=cc,
        attachments=[
            (_attachment_name("ROR", request_id), ror_pdf),
            (_attachment_name("Proforma", request_id), proforma_pdf),
        ],
    )


def send_report(
    *,
    to: str,
    client_name: str,
    request_id: str,
    atl_id: str,
    report_pdf: bytes,
    cc: Optional[Iterable[str]] = None,
) -> int:
    html = format_html(
        "<h2>Test Report from ATL</h2>"
        "<p>Dear {},</p>"
        "<p>Please find attached the test report for your test ({}, sample {}).</p>"
        "<p>If you have any questions, please feel free to contact us.</p>"
        "<p>{}</p>",
        client_name,
        request_id,
        atl_id,
        mark_safe(SIGNATURE),
    )
    return _send(
        subject="ATL - Test Report",
        html=html,
        to=[to],
        cc=cc,
        attachments=[(_attachment_name("Report", atl_id), report_pdf)],
    )


def send_new_request_notice(*, to: Sequence[str], department: str, request_id: str, client_name: str,
                            tests: Sequence[Tuple[str, str, str]]) -> int:
    rows = format_html_join(
        "",
        "<tr><td>{}</td><td>{}</td><td>{}</td></tr>",
        tests,
    )
    html = format_html(
        "<h2>New test request for the {} section</h2>"
        "<p>Test request {} from {} has been reviewed and is awaiting a job card.</p>"
        "<table><tr><th>ATL ID</th><th>Material</th><th>Test type</th></tr>{}</table>"
        "<p>{}</p>",
        department.title(),
        request_id,
        client_name,
        rows,
        mark_safe(SIGNATURE),
    )
    return _send(subject=f"ATL - New Test Request {request_id}", html=html, to=to)
