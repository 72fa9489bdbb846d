# testflow/tests/test_catalogue.py

import datetime

import pytest

from testflow import store
from testflow.errors import NotFoundError, ValidationError
from testflow.models import Equipment, TestScope


@pytest.fixture
def equipment(db):
    today = datetime.date.today()
    return [
        Equipment.objects.create(
            name="UTM",
            range="0-600 kN",
            certificate_no="CAL/101",
            calibration_date=today - datetime.timedelta(days=300),
            due_date=today + datetime.timedelta(days=65),
            calibrated_by="Metro Cal",
        ),
        Equipment.objects.create(
            name="Spectrometer",
            certificate_no="CAL/102",
            calibration_date=today - datetime.timedelta(days=400),
            due_date=today - datetime.timedelta(days=35),
        ),
    ]


@pytest.fixture
def scope(db):
    return [
        TestScope.objects.create(
            s_no=1,
            group="Mechanical",
            main_group="Metals",
            material_tested="TMT Bar",
            parameters="Yield strength, Elongation",
            test_method="IS 1608",
        ),
        TestScope.objects.create(
            s_no=2,
            group="Chemical",
            main_group="Metals",
            material_tested="Structural steel",
            parameters="Carbon, Sulphur",
            test_method="IS 228",
        ),
    ]


# ---------------------------------------------------------------
# Equipment
# ---------------------------------------------------------------
@pytest.mark.django_db
def test_tester_registers_equipment(api_for, tester, receptionist):
    payload = {
        "name": "Hardness tester",
        "range": "HRC 20-70",
        "certificate_no": "CAL/200",
        "calibration_date": "2024-01-10",
        "due_date": "2025-01-09",
        "calibrated_by": "Metro Cal",
    }

    resp = api_for(receptionist).post("/api/equipment/", payload, format="json")
    assert resp.status_code == 403
    assert resp.json()["kind"] == "permission_denied"

    resp = api_for(tester).post("/api/equipment/", payload, format="json")
    assert resp.status_code == 201
    assert resp.json()["calibration_due"] is True
    assert Equipment.objects.filter(certificate_no="CAL/200").exists()


@pytest.mark.django_db
def test_equipment_due_date_must_follow_calibration(api_for, tester):
    resp = api_for(tester).post(
        "/api/equipment/",
        {"name": "Balance", "calibration_date": "2024-06-01", "due_date": "2024-05-01"},
        format="json",
    )
    assert resp.status_code == 400
    assert resp.json()["kind"] == "validation_error"
    assert Equipment.objects.count() == 0


@pytest.mark.django_db
def test_equipment_is_not_deleted(api_for, lab_admin, equipment):
    resp = api_for(lab_admin).delete(f"/api/equipment/{equipment[0].pk}/")
    assert resp.status_code == 405
    assert Equipment.objects.count() == 2


@pytest.mark.django_db
def test_equipment_listing_flags_due_rows(api_for, receptionist, equipment):
    body = api_for(receptionist).get("/api/equipment/").json()

    due = {row["name"]: row["calibration_due"] for row in body["results"]}
    assert due == {"Spectrometer": True, "UTM": False}

    overdue = api_for(receptionist).get(
        "/api/equipment/", {"due_before": datetime.date.today().isoformat()}
    ).json()
    assert [row["name"] for row in overdue["results"]] == ["Spectrometer"]


@pytest.mark.django_db
def test_equipment_by_ids_keeps_request_order(api_for, receptionist, equipment):
    utm, spectrometer = equipment
    resp = api_for(receptionist).post(
        "/api/equipment/by-ids/",
        {"equipment_ids": [spectrometer.pk, utm.pk, spectrometer.pk]},
        format="json",
    )
    assert resp.status_code == 200
    assert [row["certificate_no"] for row in resp.json()] == ["CAL/102", "CAL/101"]


@pytest.mark.django_db
def test_equipment_by_ids_rejects_bad_input(api_for, receptionist, equipment):
    client = api_for(receptionist)

    resp = client.post("/api/equipment/by-ids/", {"equipment_ids": "1,2"}, format="json")
    assert resp.status_code == 400
    assert resp.json()["kind"] == "validation_error"

    resp = client.post(
        "/api/equipment/by-ids/", {"equipment_ids": [equipment[0].pk, 9999]}, format="json"
    )
    assert resp.status_code == 404
    assert "9999" in resp.json()["error"]


@pytest.mark.django_db
def test_store_equipment_lookup(equipment):
    rows = store.equipment_by_ids([str(equipment[1].pk)])
    assert rows == [equipment[1]]

    with pytest.raises(ValidationError):
        store.equipment_by_ids([])
    with pytest.raises(ValidationError):
        store.equipment_by_ids(["utm"])
    with pytest.raises(NotFoundError):
        store.equipment_by_ids([equipment[0].pk + 100])


# ---------------------------------------------------------------
# Test scope
# ---------------------------------------------------------------
@pytest.mark.django_db
def test_section_head_maintains_scope(api_for, section_head, tester, scope):
    payload = {"s_no": 3, "group": "Civil", "material_tested": "Cement", "test_method": "IS 4031"}

    assert api_for(tester).post("/api/test-scopes/", payload, format="json").status_code == 403

    resp = api_for(section_head).post("/api/test-scopes/", payload, format="json")
    assert resp.status_code == 201

    resp = api_for(section_head).post(
        "/api/test-scopes/", dict(payload, material_tested="Fly ash"), format="json"
    )
    assert resp.status_code == 409
    assert resp.json()["kind"] == "conflict"
    assert TestScope.objects.count() == 3


@pytest.mark.django_db
def test_receptionist_reads_scope_catalogue(api_for, receptionist, scope):
    client = api_for(receptionist)

    rows = client.get("/api/test-scopes/catalogue/").json()
    assert rows[0] == {
        "material_tested": "TMT Bar",
        "group": "Mechanical",
        "parameters": "Yield strength, Elongation",
        "test_method": "IS 1608",
    }
    assert len(rows) == 2

    rows = client.get("/api/test-scopes/catalogue/", {"search": "sulphur"}).json()
    assert [row["material_tested"] for row in rows] == ["Structural steel"]

    rows = client.get("/api/test-scopes/", {"group": "mechanical"}).json()["results"]
    assert [row["s_no"] for row in rows] == [1]
