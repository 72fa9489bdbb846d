# testflow/tests/test_reports.py

import pytest

from testflow.errors import PreconditionError, ValidationError
from testflow.models import SubTest, TestRequest
from testflow.workflows import ReportApproval, ReportStatus, RequestStatus, engine

from .factories import CHEM_KEY, MECH_KEY


def _sub(test_request, key):
    atl_id, test_type, material = key
    return SubTest.objects.get(test_request=test_request, atl_id=atl_id, test_type=test_type, material=material)


@pytest.mark.django_db
def test_send_requires_uploaded_report(assigned_request, tester):
    with pytest.raises(PreconditionError):
        engine.send_report(assigned_request.pk, CHEM_KEY, user=tester)


@pytest.mark.django_db
def test_upload_and_edit_report(assigned_request, tester):
    with pytest.raises(PreconditionError):
        engine.edit_report(assigned_request.pk, CHEM_KEY, "<p>v2</p>", user=tester)

    sub = engine.upload_report(assigned_request.pk, CHEM_KEY, "<p>v1</p>", user=tester)
    assert sub.report_artifact == "<p>v1</p>"

    engine.edit_report(assigned_request.pk, CHEM_KEY, "<p>v2</p>", user=tester)
    assert _sub(assigned_request, CHEM_KEY).report_artifact == "<p>v2</p>"

    assigned_request.refresh_from_db()
    assert assigned_request.status == RequestStatus.JOB_CARDS_ASSIGNED


@pytest.mark.django_db
def test_update_tables_needs_a_table(assigned_request):
    with pytest.raises(ValidationError):
        engine.update_tables(assigned_request.pk, CHEM_KEY)

    engine.update_tables(assigned_request.pk, CHEM_KEY, result_table="<p>Pass</p>")
    assert _sub(assigned_request, CHEM_KEY).result_table == "<p>Pass</p>"


@pytest.mark.django_db
def test_sent_for_approval_once_every_report_is_sent(reports_uploaded, tester):
    engine.send_report(reports_uploaded.pk, CHEM_KEY, user=tester)
    reports_uploaded.refresh_from_db()
    assert reports_uploaded.report_status == ReportStatus.PENDING
    assert reports_uploaded.status == RequestStatus.JOB_CARDS_ASSIGNED

    engine.send_report(reports_uploaded.pk, MECH_KEY, user=tester)
    reports_uploaded.refresh_from_db()
    assert reports_uploaded.status == RequestStatus.REPORT_SENT_FOR_APPROVAL

    with pytest.raises(PreconditionError):
        engine.send_report(reports_uploaded.pk, MECH_KEY, user=tester)


@pytest.mark.django_db
def test_one_rejection_while_other_approved(reports_uploaded, tester, section_head):
    for key in (CHEM_KEY, MECH_KEY):
        engine.send_report(reports_uploaded.pk, key, user=tester)

    engine.approve_report(reports_uploaded.pk, CHEM_KEY, user=section_head)
    engine.reject_report(reports_uploaded.pk, MECH_KEY, "Wrong standard cited", user=section_head)

    reports_uploaded.refresh_from_db()
    assert reports_uploaded.status == RequestStatus.REPORT_REJECTED
    assert reports_uploaded.report_status == ReportStatus.REJECTED
    assert _sub(reports_uploaded, CHEM_KEY).report_approval == ReportApproval.APPROVED
    rejected = _sub(reports_uploaded, MECH_KEY)
    assert rejected.report_approval == ReportApproval.REJECTED
    assert rejected.report_remark == "Wrong standard cited"

    # Rejected reports can be sent again; the remark is cleared.
    engine.send_report(reports_uploaded.pk, MECH_KEY, user=tester)
    assert _sub(reports_uploaded, MECH_KEY).report_remark == ""


@pytest.mark.django_db
def test_reject_report_requires_remark(reports_uploaded, section_head):
    with pytest.raises(ValidationError):
        engine.reject_report(reports_uploaded.pk, CHEM_KEY, "", user=section_head)
    assert _sub(reports_uploaded, CHEM_KEY).report_approval == ReportApproval.NOT_SENT


@pytest.mark.django_db
def test_report_approved_when_all_approved(reports_uploaded, tester, section_head):
    for key in (CHEM_KEY, MECH_KEY):
        engine.send_report(reports_uploaded.pk, key, user=tester)
        engine.approve_report(reports_uploaded.pk, key, user=section_head)

    reports_uploaded.refresh_from_db()
    assert reports_uploaded.status == RequestStatus.REPORT_APPROVED
    assert reports_uploaded.report_status == ReportStatus.APPROVED


@pytest.mark.django_db
def test_mark_completed_only_after_report_mailed(make_request, receptionist):
    test_request = make_request()
    with pytest.raises(PreconditionError):
        engine.mark_completed(test_request.pk, user=receptionist)

    TestRequest.objects.filter(pk=test_request.pk).update(status=RequestStatus.REPORT_MAILED)
    engine.mark_completed(test_request.pk, user=receptionist)
    test_request.refresh_from_db()
    assert test_request.status == RequestStatus.COMPLETED


@pytest.mark.django_db
def test_completed_request_is_locked(make_request, receptionist):
    test_request = make_request()
    TestRequest.objects.filter(pk=test_request.pk).update(status=RequestStatus.COMPLETED)

    with pytest.raises(PreconditionError) as exc:
        engine.create_job_card(test_request.pk, user=receptionist)
    assert "terminal" in exc.value.message
