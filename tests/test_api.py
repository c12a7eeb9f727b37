"""
HTTP tests for the hospital admissions API.

The app runs against the in-memory test database through a dependency
override; the lifespan hook is not triggered because the client is not used
as a context manager.
"""
import pytest
from fastapi.testclient import TestClient

from hms.db import get_database
from hms.main import app


@pytest.fixture
def client(db):
    app.dependency_overrides[get_database] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _patient(client, first="Jane", last="Doe"):
    res = client.post("/patients", json={"first_name": first, "last_name": last})
    assert res.status_code == 201
    return res.json()


def _ward(client, name="General Ward", beds=2):
    res = client.post("/wards", json={"name": name, "bed_count": beds})
    assert res.status_code == 201
    return res.json()


def _admit(client, patient, ward, bed_index=0):
    return client.post("/admissions", json={
        "patient_id": patient["id"],
        "ward_id": ward["ward_id"],
        "bed_id": ward["beds"][bed_index]["bed_id"],
        "admitting_doctor": "Dr. Rao",
        "reason": "Observation",
    })


class TestRoot:
    def test_root(self, client):
        res = client.get("/")
        assert res.status_code == 200
        assert "running" in res.json()["message"]


class TestIdentifiers:
    def test_allocate_with_period(self, client):
        res = client.post("/identifiers/patients", json={"period": "2024-08"})
        assert res.status_code == 200
        assert res.json() == {"id": "PT2024-08-0001"}
        assert client.post("/identifiers/patients", json={"period": "2024-08"}).json()["id"] == "PT2024-08-0002"

    def test_allocate_with_default_period(self, client):
        res = client.post("/identifiers/invoices")
        assert res.status_code == 200
        assert res.json()["id"].startswith("INV")

    def test_unknown_scope(self, client):
        res = client.post("/identifiers/prescriptions")
        assert res.status_code == 404
        assert res.json()["error"] == "NotFound"

    def test_malformed_period(self, client):
        res = client.post("/identifiers/patients", json={"period": "2024"})
        assert res.status_code == 400
        assert res.json()["error"] == "InvalidRequest"


class TestRecords:
    def test_patient_round_trip(self, client):
        created = _patient(client)
        res = client.get(f"/patients/{created['id']}")
        assert res.status_code == 200
        assert res.json()["name"] == "Jane Doe"

    def test_missing_patient(self, client):
        assert client.get("/patients/PT2024-08-9999").status_code == 404

    def test_invoice_and_lab_order(self, client):
        patient = _patient(client)
        inv = client.post("/invoices", json={
            "patient_id": patient["id"],
            "patient_name": patient["name"],
            "total_amount": 200,
            "line_items": [{"description": "Consultation", "unit_price": 200, "amount": 200}],
        })
        assert inv.status_code == 201
        assert inv.json()["id"].startswith("INV")

        lab = client.post("/lab/orders", json={
            "patient_id": patient["id"],
            "patient_name": patient["name"],
            "tests": ["CBC"],
            "invoice_id": inv.json()["id"],
        })
        assert lab.status_code == 201
        assert lab.json()["id"].startswith("LAB")

    def test_invalid_body(self, client):
        assert client.post("/invoices", json={"patient_id": "x"}).status_code == 422


class TestWards:
    def test_create_list_get(self, client):
        ward = _ward(client, beds=3)
        assert [b["status"] for b in ward["beds"]] == ["Available"] * 3
        assert [w["ward_id"] for w in client.get("/wards").json()] == [ward["ward_id"]]
        assert client.get(f"/wards/{ward['ward_id']}").json()["name"] == "General Ward"

    def test_duplicate_name(self, client):
        _ward(client)
        res = client.post("/wards", json={"name": "GENERAL WARD"})
        assert res.status_code == 409
        assert res.json()["error"] == "Conflict"

    def test_blank_names_are_rejected(self, client):
        res = client.post("/wards", json={"name": "   "})
        assert res.status_code == 400
        assert res.json()["error"] == "InvalidRequest"

        ward = _ward(client)
        assert client.post(f"/wards/{ward['ward_id']}/beds", json={"label": "  "}).status_code == 400

    def test_corrupt_stored_ward_is_a_server_error(self, db):
        ward_id = "WARD-BROKEN1"
        db.wards.insert_one({
            "_id": ward_id, "name": "Broken", "name_key": "broken", "version": 0,
            "beds": [{"bed_id": "BED-1", "label": "Bed 1", "status": "Occupied", "patient": None}],
        })
        app.dependency_overrides[get_database] = lambda: db
        try:
            res = TestClient(app, raise_server_exceptions=False).get(f"/wards/{ward_id}")
        finally:
            app.dependency_overrides.clear()
        assert res.status_code == 500

    def test_update_and_delete(self, client):
        ward = _ward(client)
        res = client.put(f"/wards/{ward['ward_id']}", json={"bed_count": 4, "description": "East wing"})
        assert res.status_code == 200
        assert len(res.json()["beds"]) == 4

        assert client.delete(f"/wards/{ward['ward_id']}").status_code == 204
        assert client.get(f"/wards/{ward['ward_id']}").status_code == 404

    def test_bed_administration(self, client):
        ward = _ward(client, beds=1)
        res = client.post(f"/wards/{ward['ward_id']}/beds", json={"label": "Isolation 1"})
        assert res.status_code == 201
        bed = res.json()["beds"][-1]

        res = client.put(f"/wards/{ward['ward_id']}/beds/{bed['bed_id']}/status", json={"status": "Maintenance"})
        assert res.status_code == 200
        assert res.json()["status"] == "Maintenance"

        res = client.put(f"/wards/{ward['ward_id']}/beds/{bed['bed_id']}/status", json={"status": "Occupied"})
        assert res.status_code == 409

        res = client.delete(f"/wards/{ward['ward_id']}/beds/{bed['bed_id']}")
        assert res.status_code == 200
        assert len(res.json()["beds"]) == 1

    def test_occupancy(self, client):
        patient, ward = _patient(client), _ward(client)
        _admit(client, patient, ward)
        summary = client.get("/wards/occupancy").json()
        assert summary["Occupied"] == 1
        assert summary["Available"] == 1
        assert summary["total"] == 2


class TestAdmissions:
    def test_admit_transfer_discharge(self, client):
        patient = _patient(client)
        ward = _ward(client)

        res = _admit(client, patient, ward)
        assert res.status_code == 201
        admission = res.json()
        assert admission["admission_id"].startswith("ADM")
        assert (admission["ward"], admission["bed"], admission["status"]) == ("General Ward", "Bed 1", "Admitted")

        res = client.post(f"/admissions/{admission['admission_id']}/transfer",
                          json={"ward_id": ward["ward_id"], "bed_id": ward["beds"][1]["bed_id"], "reason": "Window"})
        assert res.status_code == 200
        assert res.json()["bed"] == "Bed 2"
        assert len(res.json()["transfers"]) == 1

        res = client.post(f"/admissions/{admission['admission_id']}/discharge",
                          json={"diagnosis": "Recovered"})
        assert res.status_code == 200
        assert res.json()["status"] == "Discharged"
        assert res.json()["discharge_summary"]["diagnosis"] == "Recovered"

        beds = client.get(f"/wards/{ward['ward_id']}").json()["beds"]
        assert [b["status"] for b in beds] == ["Needs Cleaning", "Needs Cleaning"]

        # discharge again without a body
        again = client.post(f"/admissions/{admission['admission_id']}/discharge")
        assert again.status_code == 200
        assert again.json() == res.json()

    def test_occupied_bed_is_refused(self, client):
        ward = _ward(client)
        _admit(client, _patient(client), ward)
        res = _admit(client, _patient(client, "John", "Roe"), ward)
        assert res.status_code == 409
        assert res.json()["error"] == "BedUnavailable"

    def test_transfer_after_discharge(self, client):
        ward = _ward(client)
        admission = _admit(client, _patient(client), ward).json()
        client.post(f"/admissions/{admission['admission_id']}/discharge")
        res = client.post(f"/admissions/{admission['admission_id']}/transfer",
                          json={"ward_id": ward["ward_id"], "bed_id": ward["beds"][1]["bed_id"]})
        assert res.status_code == 409
        assert res.json()["error"] == "AlreadyDischarged"

    def test_list_and_filter(self, client):
        ward = _ward(client)
        first = _admit(client, _patient(client), ward).json()
        _admit(client, _patient(client, "John", "Roe"), ward, bed_index=1)
        client.post(f"/admissions/{first['admission_id']}/discharge")

        assert len(client.get("/admissions").json()) == 2
        admitted = client.get("/admissions", params={"status": "Admitted"}).json()
        assert [a["patient"]["name"] for a in admitted] == ["John Roe"]
        by_patient = client.get("/admissions", params={"patient_id": first["patient"]["id"]}).json()
        assert [a["admission_id"] for a in by_patient] == [first["admission_id"]]

    def test_unknown_admission(self, client):
        assert client.get("/admissions/ADM2024-99999").status_code == 404
