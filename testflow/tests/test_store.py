# testflow/tests/test_store.py

import pytest
from django.core.exceptions import PermissionDenied
from django.utils import timezone

from testflow import store
from testflow.errors import ConflictError, FormatError, NotFoundError, PreconditionError, ValidationError
from testflow.models import Client, StatusTransition, SubTest, TestRequest
from testflow.workflows import RequestStatus, ResultStatus

from .factories import CHEM, MECH


@pytest.mark.django_db
def test_create_assigns_ids_sequence_and_client(make_request, receptionist):
    test_request = make_request(user=receptionist)

    assert test_request.request_id == "ATL/24/05/T_1"
    assert test_request.sequence_number == 1
    assert test_request.status == RequestStatus.INTAKE_ENTERED
    assert test_request.created_by == receptionist
    assert test_request.client.email == "qa@acme.example"
    assert test_request.requirements["test_methods"] == "yes"

    subs = list(test_request.sub_tests.order_by("position"))
    assert [s.test_type for s in subs] == [CHEM, MECH]
    # Same material id shares one ATL id.
    assert {s.atl_id for s in subs} == {"ATL/24/05/1"}


@pytest.mark.django_db
def test_sequence_numbers_are_monotonic_and_unique(make_request):
    first = make_request()
    second = make_request()
    third = make_request()

    assert [first.sequence_number, second.sequence_number, third.sequence_number] == [1, 2, 3]
    assert second.request_id == "ATL/24/05/T_2"
    assert Client.objects.count() == 1


@pytest.mark.django_db
def test_next_sequence_number_counts_per_name():
    assert store.next_sequence_number("widgets") == 1
    assert store.next_sequence_number("widgets") == 2
    assert store.next_sequence_number("gadgets") == 1


@pytest.mark.django_db
def test_duplicate_request_id_is_conflict(make_request):
    make_request(request_id="ATL/24/05/T_4")
    with pytest.raises(ConflictError):
        make_request(request_id="ATL/24/05/T_4")
    assert TestRequest.objects.count() == 1


@pytest.mark.django_db
def test_bad_date_persists_nothing(make_request):
    with pytest.raises(FormatError):
        make_request(request_date="14-05-2024")
    assert TestRequest.objects.count() == 0
    assert Client.objects.count() == 0


@pytest.mark.django_db
def test_sub_tests_are_required(make_request):
    with pytest.raises(ValidationError):
        make_request(sub_tests=[])


@pytest.mark.django_db
def test_duplicate_sub_test_tuple_rejected(make_request, request_draft):
    sub = request_draft()["sub_tests"][0]
    with pytest.raises(ValidationError) as exc:
        make_request(sub_tests=[sub, dict(sub)])
    assert "Duplicate sub-test" in exc.value.message
    assert SubTest.objects.count() == 0


@pytest.mark.django_db
def test_measurement_needs_test_and_standard(make_request, request_draft):
    sub = request_draft()["sub_tests"][0]
    sub["measurements"] = [{"test": "Carbon"}]
    with pytest.raises(ValidationError):
        make_request(sub_tests=[sub])


@pytest.mark.django_db
def test_test_period_must_be_ordered(make_request, request_draft):
    sub = request_draft()["sub_tests"][0]
    sub.update({"from_date": "2024-05-20", "to_date": "2024-05-18"})
    with pytest.raises(ValidationError):
        make_request(sub_tests=[sub])


@pytest.mark.django_db
def test_create_client_rejects_duplicate_email():
    store.create_client(
        {"name": "Acme", "contact_no": "1", "email": "Ops@Acme.example", "address": "Pune"}
    )
    with pytest.raises(ConflictError):
        store.create_client(
            {"name": "Acme 2", "contact_no": "2", "email": "ops@acme.example", "address": "Pune"}
        )


@pytest.mark.django_db
def test_update_rejects_workflow_fields(make_request):
    test_request = make_request()
    with pytest.raises(ValidationError):
        store.update_test_request(test_request.pk, {"status": RequestStatus.COMPLETED})
    test_request.refresh_from_db()
    assert test_request.status == RequestStatus.INTAKE_ENTERED


@pytest.mark.django_db
def test_update_missing_request_is_not_found():
    with pytest.raises(NotFoundError):
        store.update_test_request(999, {"contact_no": "1"})


@pytest.mark.django_db
def test_update_replaces_sub_tests_and_keeps_workflow_state(make_request, request_draft):
    test_request = make_request()
    first = test_request.sub_tests.get(position=0)
    SubTest.objects.filter(pk=first.pk).update(result_status=ResultStatus.RESULTS_APPROVED)

    sub = request_draft()["sub_tests"][0]
    sub.update({"atl_id": "ATL/24/05/1", "quantity": "5"})
    store.update_test_request(test_request.pk, {"sub_tests": [sub], "contact_no": "1111"})

    test_request.refresh_from_db()
    subs = list(test_request.sub_tests.all())
    assert len(subs) == 1
    assert subs[0].pk == first.pk
    assert subs[0].quantity == "5"
    assert subs[0].result_status == ResultStatus.RESULTS_APPROVED
    assert test_request.contact_no == "1111"


@pytest.mark.django_db
def test_direct_status_save_is_blocked(make_request):
    test_request = make_request()
    test_request.status = RequestStatus.COMPLETED
    with pytest.raises(PermissionDenied):
        test_request.save()
    assert StatusTransition.objects.count() == 0


@pytest.mark.django_db
def test_list_filters(make_request):
    a = make_request()
    b = make_request(client_name="Birla Cement", email="lab@birla.example")
    TestRequest.objects.filter(pk=b.pk).update(status=RequestStatus.RESULTS_APPROVED)

    assert list(store.list_test_requests({"search": "birla"})) == [b]
    assert list(store.list_test_requests({"bucket": "Pending"})) == [a]
    assert list(store.list_test_requests({"status": "results_approved"})) == [b]
    assert store.list_test_requests({"year": 2024, "month": 5}).count() == 2
    assert store.list_test_requests({"year": 2023}).count() == 0

    ordered = list(store.list_test_requests(ordering=["sequence_number"]))
    assert ordered == [a, b]

    with pytest.raises(ValidationError):
        store.list_test_requests(ordering=["email"])


@pytest.mark.django_db
def test_impossible_sub_test_date_is_format_error(make_request, request_draft):
    sub = request_draft()["sub_tests"][0]
    sub["from_date"] = "2024-02-30"
    with pytest.raises(FormatError) as exc:
        make_request(sub_tests=[sub])
    assert "from_date" in exc.value.detail
    assert TestRequest.objects.count() == 0


@pytest.mark.django_db
def test_completed_request_cannot_be_edited(make_request, request_draft):
    test_request = make_request()
    TestRequest.objects.filter(pk=test_request.pk).update(status=RequestStatus.COMPLETED)

    with pytest.raises(PreconditionError):
        store.update_test_request(test_request.pk, {"client_name": "Renamed Ltd"})
    with pytest.raises(PreconditionError):
        store.update_test_request(test_request.pk, {"sub_tests": request_draft()["sub_tests"][:1]})

    test_request.refresh_from_db()
    assert test_request.client_name == "Acme Steel"
    assert test_request.sub_tests.count() == 2


@pytest.mark.django_db
def test_direct_document_save_is_blocked(make_request):
    test_request = make_request()

    test_request.ror_document = "JVBERi0="
    with pytest.raises(PermissionDenied):
        test_request.save()

    test_request.refresh_from_db()
    test_request.documents_mailed_at = timezone.now()
    with pytest.raises(PermissionDenied):
        test_request.save(update_fields=["documents_mailed_at"])

    # Saving only intake columns ignores the unsaved workflow value.
    test_request.contact_no = "020-555"
    test_request.save(update_fields=["contact_no"])

    test_request.refresh_from_db()
    assert test_request.contact_no == "020-555"
    assert test_request.documents_mailed_at is None
    assert test_request.ror_document is None
