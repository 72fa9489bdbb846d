# testflow/tests/test_job_cards.py

import pytest

from testflow.errors import NotFoundError, PreconditionError, ValidationError
from testflow.models import JobCard, StatusTransition
from testflow.workflows import JobCardStatus, RequestStatus, department_for_test_type, engine


@pytest.mark.django_db
def test_create_job_card_opens_one_card_per_department(make_request, receptionist):
    test_request = make_request()

    engine.create_job_card(test_request.pk, user=receptionist)

    test_request.refresh_from_db()
    assert test_request.status == RequestStatus.JOB_CARD_CREATED
    assert test_request.required_departments == ["chemical", "mechanical"]
    cards = {c.department: c.status for c in test_request.job_cards.all()}
    assert cards == {"chemical": JobCardStatus.PENDING, "mechanical": JobCardStatus.PENDING}

    transition = StatusTransition.objects.get(test_request=test_request)
    assert transition.from_status == RequestStatus.INTAKE_ENTERED
    assert transition.to_status == RequestStatus.JOB_CARD_CREATED
    assert transition.performed_by == receptionist


@pytest.mark.django_db
def test_two_departments_must_both_approve(make_request, receptionist, section_head):
    test_request = make_request()
    engine.create_job_card(test_request.pk, user=receptionist)
    engine.send_job_card(test_request.pk, user=receptionist)

    engine.approve_job_card(test_request.pk, "chemical", "asha", user=section_head)
    test_request.refresh_from_db()
    assert test_request.status == RequestStatus.JOB_CARD_SENT_FOR_APPROVAL

    engine.approve_job_card(test_request.pk, "Mechanical", "ravi", user=section_head)
    test_request.refresh_from_db()
    assert test_request.status == RequestStatus.JOB_CARDS_ASSIGNED
    assigned = dict(test_request.job_cards.values_list("department", "assigned_to"))
    assert assigned == {"chemical": "asha", "mechanical": "ravi"}

    actions = list(test_request.transitions.values_list("action", flat=True))
    assert actions == ["create_job_card", "send_job_card", "approve_job_card"]


@pytest.mark.django_db
def test_single_department_request_is_assigned_after_one_approval(make_request, request_draft, receptionist):
    sub = request_draft()["sub_tests"][1]
    test_request = make_request(sub_tests=[sub])
    engine.create_job_card(test_request.pk, user=receptionist)

    engine.approve_job_card(test_request.pk, "mechanical", "ravi")
    test_request.refresh_from_db()
    assert test_request.required_departments == ["mechanical"]
    assert test_request.status == RequestStatus.JOB_CARDS_ASSIGNED


@pytest.mark.django_db
def test_ndt_and_mechanical_sub_tests_share_one_card(make_request, request_draft, receptionist):
    tensile = request_draft()["sub_tests"][1]
    ultrasonic = dict(
        tensile,
        material="Weld plate",
        material_id="M-2",
        test_type="Mechanical-NDT - Ultrasonic",
        measurements=[{"test": "Flaw detection", "standard": "IS 2595"}],
    )
    test_request = make_request(sub_tests=[ultrasonic, tensile])

    assert department_for_test_type("MECHANICAL-NDT - Radiography") == "mechanical"

    engine.create_job_card(test_request.pk, user=receptionist)

    test_request.refresh_from_db()
    assert test_request.required_departments == ["mechanical"]
    assert list(test_request.job_cards.values_list("department", flat=True)) == ["mechanical"]
    assert JobCard.objects.filter(test_request=test_request).count() == 1

@pytest.mark.django_db
def test_approve_requires_assignee(make_request, receptionist):
    test_request = make_request()
    engine.create_job_card(test_request.pk, user=receptionist)

    with pytest.raises(ValidationError):
        engine.approve_job_card(test_request.pk, "chemical", "  ")
    assert not JobCard.objects.filter(status=JobCardStatus.APPROVED).exists()


@pytest.mark.django_db
def test_send_job_card_backfills_cards(make_request, receptionist):
    test_request = make_request()

    engine.send_job_card(test_request.pk, user=receptionist)

    test_request.refresh_from_db()
    assert test_request.status == RequestStatus.JOB_CARD_SENT_FOR_APPROVAL
    assert sorted(test_request.job_cards.values_list("department", flat=True)) == ["chemical", "mechanical"]


@pytest.mark.django_db
def test_reject_job_card_records_remark(make_request, receptionist, section_head):
    test_request = make_request()
    engine.create_job_card(test_request.pk, user=receptionist)

    engine.reject_job_card(test_request.pk, "chemical", "Sample quantity too low", user=section_head)

    test_request.refresh_from_db()
    card = test_request.job_cards.get(department="chemical")
    assert card.status == JobCardStatus.REJECTED
    assert card.remark == "Sample quantity too low"
    assert test_request.status == RequestStatus.JOB_CARD_REJECTED

    # Rework: recreating resets every card to pending.
    engine.create_job_card(test_request.pk, user=receptionist)
    test_request.refresh_from_db()
    assert test_request.status == RequestStatus.JOB_CARD_CREATED
    assert set(test_request.job_cards.values_list("status", flat=True)) == {JobCardStatus.PENDING}


@pytest.mark.django_db
def test_reject_unknown_department_card(make_request):
    test_request = make_request()
    with pytest.raises(NotFoundError):
        engine.reject_job_card(test_request.pk, "chemical", "no card yet")


@pytest.mark.django_db
def test_unprefixed_test_types_have_no_department(make_request, request_draft):
    sub = request_draft()["sub_tests"][0]
    sub["test_type"] = "Visual inspection"
    test_request = make_request(sub_tests=[sub])

    with pytest.raises(PreconditionError):
        engine.create_job_card(test_request.pk)
    test_request.refresh_from_db()
    assert test_request.status == RequestStatus.INTAKE_ENTERED


@pytest.mark.django_db
def test_missing_request_is_not_found():
    with pytest.raises(NotFoundError):
        engine.create_job_card(404)
