import base64
from datetime import datetime
from io import BytesIO

import pytest
from flask_jwt_extended import create_access_token

from wfm_api.blueprints import attendance as attendance_bp
from wfm_api.blueprints import overtime as overtime_bp

PHOTO_B64 = base64.b64encode(b"\xff\xd8api-photo").decode()


def auth(identity, *roles):
    token = create_access_token(identity=str(identity), additional_claims={"roles": list(roles) or ["employee"]})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def clock(monkeypatch):
    def _set(dt):
        monkeypatch.setattr(attendance_bp, "_now", lambda: dt)
        monkeypatch.setattr(overtime_bp, "_now", lambda: dt)
    return _set


def test_health(client):
    r = client.get("/api/v1/health")
    assert r.status_code == 200
    assert r.get_json()["data"]["status"] == "ok"


def test_check_in_and_out_over_http(client, emp, clock):
    hdr = auth(emp.id)
    clock(datetime(2025, 6, 2, 9, 5))
    r = client.post("/api/v1/attendance/check-in", headers=hdr,
                    json={"photo": PHOTO_B64, "location": {"lat": 12.9716, "lon": 77.5946, "accuracy": 10}})
    assert r.status_code == 201, r.get_json()
    body = r.get_json()
    assert body["success"] is True
    assert body["data"]["status"] == "present"
    assert body["data"]["check_in"]["accuracy_m"] == 10.0

    r = client.post("/api/v1/attendance/check-in", headers=hdr, json={"photo": PHOTO_B64})
    assert r.status_code == 409
    assert r.get_json()["error"]["code"] == "ALREADY_CHECKED_IN"

    clock(datetime(2025, 6, 2, 18, 0))
    r = client.post("/api/v1/attendance/check-out", headers=hdr, json={"photo": PHOTO_B64, "lat": 12.97, "lon": 77.59})
    assert r.status_code == 200
    assert r.get_json()["data"]["regular_hours"] == 9.0

    r = client.get("/api/v1/attendance/today?date=2025-06-02", headers=hdr)
    assert r.get_json()["data"]["check_out"]["time"] == "2025-06-02T18:00:00"


def test_multipart_check_in(client, emp, clock):
    clock(datetime(2025, 6, 2, 9, 0))
    r = client.post(
        "/api/v1/attendance/check-in", headers=auth(emp.id), content_type="multipart/form-data",
        data={"photo": (BytesIO(b"\xff\xd8form-photo"), "selfie.jpg"), "latitude": "12.9", "longitude": "77.5"},
    )
    assert r.status_code == 201, r.get_json()
    assert r.get_json()["data"]["check_in"]["lat"] == pytest.approx(12.9)


def test_check_in_requires_token(client, emp):
    r = client.post("/api/v1/attendance/check-in", json={"photo": PHOTO_B64})
    assert r.status_code == 401


def test_unknown_employee_in_token(client, emp, clock):
    clock(datetime(2025, 6, 2, 9, 0))
    r = client.post("/api/v1/attendance/check-in", headers=auth("NOBODY"), json={"photo": PHOTO_B64})
    assert r.status_code == 422
    assert r.get_json()["error"]["code"] == "IDENTITY_UNRESOLVED"


def test_overtime_over_http(client, emp, clock):
    hdr = auth(emp.id)
    clock(datetime(2025, 6, 2, 19, 0))
    r = client.post("/api/v1/overtime/start", headers=hdr, json={"photo": PHOTO_B64, "reason": "deploy"})
    assert r.status_code == 201
    assert r.get_json()["data"]["overtime"]["type"] == "late_departure"

    clock(datetime(2025, 6, 2, 21, 30))
    r = client.post("/api/v1/overtime/end", headers=hdr, json={"photo": PHOTO_B64})
    assert r.get_json()["data"]["overtime"]["hours"] == 2.5


def test_leave_flow_and_level_permissions(client, emp, make_employee):
    hr = auth("hr-user", "hr")
    r = client.post("/api/v1/leave/accrue", headers=hr, json={"year": 2025, "month": 6})
    assert r.status_code == 200
    assert r.get_json()["data"]["credited"] == [emp.id]

    me = auth(emp.id)
    r = client.post("/api/v1/leave/applications", headers=me,
                    json={"leave_type": "casual", "start_date": "2025-06-02", "end_date": "2025-06-03"})
    assert r.status_code == 201
    app_json = r.get_json()["data"]
    assert app_json["leave_type"] == "casual"
    assert app_json["linked_application"]["leave_type"] == "unpaid"

    r = client.post(f"/api/v1/leave/applications/{app_json['id']}/approve", headers=me, json={"level": "hr"})
    assert r.status_code == 403

    r = client.post(f"/api/v1/leave/applications/{app_json['id']}/approve", headers=auth("tl-user", "tl"),
                    json={"level": "tl", "comment": "ok"})
    assert r.status_code == 200
    assert r.get_json()["data"]["status"] == "pending_hr"

    r = client.get("/api/v1/leave/applications", headers=me)
    assert len(r.get_json()["data"]) == 2

    r = client.get("/api/v1/leave/balance", headers=me)
    assert r.get_json()["data"]["casual"]["available"] == 1.0


def test_missing_fields_envelope(client, emp):
    r = client.post("/api/v1/leave/applications", headers=auth(emp.id), json={})
    assert r.status_code == 422
    err = r.get_json()["error"]
    assert err["code"] == "VALIDATION_ERROR"
    assert set(err["detail"]["missing"]) == {"leave_type", "start_date"}


def test_department_timing_endpoints(client, dept):
    r = client.get(f"/api/v1/departments/{dept.id}/timing", headers=auth("x"))
    assert r.get_json()["data"]["check_in_time"] == "9:00 AM"

    r = client.put(f"/api/v1/departments/{dept.id}/timing", headers=auth("x"), json={"check_in_time": "8:00 AM"})
    assert r.status_code == 403

    r = client.put(f"/api/v1/departments/{dept.id}/timing", headers=auth("hr-user", "hr"),
                   json={"check_in_time": "21:00"})
    assert r.status_code == 422
    assert r.get_json()["error"]["code"] == "INVALID_TIME_FORMAT"

    r = client.put(f"/api/v1/departments/{dept.id}/timing", headers=auth("hr-user", "hr"),
                   json={"check_in_time": "8:30 AM"})
    assert r.status_code == 200
    r = client.get(f"/api/v1/departments/{dept.id}/timing", headers=auth("x"))
    assert r.get_json()["data"]["check_in_time"] == "8:30 AM"


def test_payroll_endpoints(client, emp, make_structure, settings):
    make_structure(emp.id)
    r = client.post("/api/v1/payroll/process", headers=auth(emp.id), json={"month": 6, "year": 2025})
    assert r.status_code == 403
    assert r.get_json()["error"]["code"] == "FORBIDDEN"

    hr = auth("hr-user", "hr")
    r = client.post("/api/v1/payroll/process", headers=hr, json={"month": 6, "year": 2025})
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert len(data["records"]) == 1 and data["errors"] == []
    rec_id = data["records"][0]["id"]

    r = client.patch(f"/api/v1/payroll/records/{rec_id}", headers=hr, json={"tds_deduction": 100, "remarks": "note"})
    assert r.status_code == 200
    assert r.get_json()["data"]["tds_deduction"] == 100.0

    r = client.post(f"/api/v1/payroll/records/{rec_id}/approve", headers=hr)
    assert r.get_json()["data"]["status"] == "approved"
    r = client.post(f"/api/v1/payroll/records/{rec_id}/pay", headers=auth("fin-user", "finance"))
    assert r.get_json()["data"]["status"] == "paid"

    r = client.get("/api/v1/payroll/records?month=6&year=2025", headers=hr)
    assert r.get_json()["meta"]["count"] == 1

    r = client.get("/api/v1/payroll/register.xlsx?month=6&year=2025", headers=hr)
    assert r.status_code == 200
    assert r.mimetype == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    assert r.data[:2] == b"PK"


def test_salary_configuration_endpoints(client, emp):
    hr = auth("hr-user", "hr")
    r = client.post("/api/v1/payroll/structures", headers=hr, json={
        "employee_id": "E001", "effective_from": "2025-01-01", "fixed_basic": "18000",
        "fixed_hra": "7200", "custom_earnings": {"Special": 1500},
    })
    assert r.status_code == 201
    st_id = r.get_json()["data"]["id"]

    r = client.post("/api/v1/payroll/structures", headers=hr, json={
        "employee_id": "E001", "effective_from": "2025-04-01", "fixed_basic": "20000",
    })
    assert r.status_code == 409
    assert r.get_json()["error"]["code"] == "STRUCTURE_OVERLAP"

    r = client.post(f"/api/v1/payroll/structures/{st_id}/close", headers=hr, json={"effective_to": "2025-04-01"})
    assert r.get_json()["data"]["effective_to"] == "2025-04-01"
    r = client.post("/api/v1/payroll/structures", headers=hr, json={
        "employee_id": "E001", "effective_from": "2025-04-01", "fixed_basic": "20000",
    })
    assert r.status_code == 201

    r = client.post("/api/v1/payroll/advances", headers=hr, json={
        "employee_id": "E001", "amount": 3000, "monthly_deduction": 1000, "number_of_installments": 3,
        "deduction_start_month": 7, "deduction_start_year": 2025,
    })
    assert r.status_code == 201
    adv_id = r.get_json()["data"]["id"]
    r = client.post(f"/api/v1/payroll/advances/{adv_id}/approve", headers=hr)
    assert r.get_json()["data"]["status"] == "approved"
    r = client.post(f"/api/v1/payroll/advances/{adv_id}/reject", headers=hr)
    assert r.status_code == 409


# ---------- CLI ----------

def test_cli_leave_accrue_and_payroll_process(app, emp, make_structure, settings):
    make_structure(emp.id)
    runner = app.test_cli_runner()

    res = runner.invoke(args=["leave", "accrue", "--year", "2025", "--month", "6"])
    assert res.exit_code == 0, res.output
    assert "2025-06: credited 1" in res.output

    res = runner.invoke(args=["payroll", "process", "--month", "6", "--year", "2025"])
    assert res.exit_code == 0, res.output
    assert "1 records, 0 errors" in res.output


def test_cli_seed_demo(app):
    res = app.test_cli_runner().invoke(args=["seed-demo"])
    assert res.exit_code == 0, res.output
    assert "employees created: 2" in res.output
    res = app.test_cli_runner().invoke(args=["seed-demo"])
    assert "employees created: 0" in res.output
