# testflow/tests/test_notifications.py

import pytest

from testflow import mailer, tasks
from testflow.workflows import engine


@pytest.mark.django_db
def test_transition_mail_is_feature_flagged(
    make_request, receptionist, settings, mailoutbox, django_capture_on_commit_callbacks
):
    test_request = make_request()
    with django_capture_on_commit_callbacks(execute=True):
        engine.create_job_card(test_request.pk, user=receptionist)
    assert mailoutbox == []

    settings.WORKFLOW_EMAIL_NOTIFICATIONS = True
    settings.WORKFLOW_NOTIFY_EMAILS = ["ops@lab.example"]
    with django_capture_on_commit_callbacks(execute=True):
        engine.send_job_card(test_request.pk, user=receptionist)

    assert len(mailoutbox) == 1
    assert "JOB_CARD_SENT_FOR_APPROVAL" in mailoutbox[0].subject
    assert "By: reception" in mailoutbox[0].body


@pytest.mark.django_db
def test_transition_mail_waits_for_commit(
    make_request, receptionist, settings, mailoutbox, django_capture_on_commit_callbacks
):
    settings.WORKFLOW_EMAIL_NOTIFICATIONS = True
    settings.WORKFLOW_NOTIFY_EMAILS = ["ops@lab.example"]
    test_request = make_request()

    with django_capture_on_commit_callbacks(execute=False) as callbacks:
        engine.create_job_card(test_request.pk, user=receptionist)

    assert mailoutbox == []
    assert len(callbacks) == 1

    callbacks[0]()
    assert len(mailoutbox) == 1
    assert "JOB_CARD_CREATED" in mailoutbox[0].subject


@pytest.mark.django_db
def test_section_head_notice_per_department(make_request, settings, mailoutbox):
    settings.SECTION_HEAD_EMAILS = {
        "chemical": ["chem.head@lab.example"],
        "mechanical": ["mech.head@lab.example", "ndt@lab.example"],
    }
    test_request = make_request()

    sent = tasks.notify_section_heads(test_request.pk)

    assert sent == 2
    assert sorted(m.to[0] for m in mailoutbox) == ["chem.head@lab.example", "mech.head@lab.example"]
    assert "Mechanical - Tensile" in mailoutbox[1].body


@pytest.mark.django_db
def test_section_head_notice_failure_is_logged(make_request, settings, monkeypatch, caplog):
    settings.SECTION_HEAD_EMAILS = {"chemical": ["chem.head@lab.example"], "mechanical": []}
    test_request = make_request()

    def boom(**kwargs):
        raise mailer.MailError("SMTP down")

    monkeypatch.setattr(mailer, "send_new_request_notice", boom)

    assert tasks.notify_section_heads(test_request.pk) == 0
    assert "Section-head notice" in caplog.text


@pytest.mark.django_db
def test_section_head_notice_for_missing_request():
    assert tasks.notify_section_heads(12345) == 0
