import os
from datetime import date, datetime
from decimal import Decimal

import pytest

from wfm_api import create_app
from wfm_api.common.errors import ExternalServiceError
from wfm_api.extensions import db
from wfm_api.models.attendance import AttendanceRecord
from wfm_api.models.employee import Employee
from wfm_api.models.master import Department, DepartmentTiming
from wfm_api.models.payroll import PayrollSettings, SalaryStructure


class FakeMedia:
    """Stands in for the media store + geocoder; records what was uploaded."""

    def __init__(self):
        self.address = "12 MG Road, Bengaluru"
        self.fail_upload = False
        self.uploads = []

    def upload_photo(self, content, *, folder="attendance"):
        if self.fail_upload:
            raise ExternalServiceError("PHOTO_UPLOAD_FAILED", "media store unavailable")
        self.uploads.append((folder, content))
        return f"https://media.test/{folder}/{len(self.uploads)}.jpg"

    def reverse_geocode(self, lat, lon):
        return self.address


@pytest.fixture()
def app():
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    app = create_app()
    app.config.update(
        TESTING=True,
        JWT_SECRET_KEY="test-secret-key-0123456789-0123456789-abcdef",
    )
    app.extensions["media_client"] = FakeMedia()
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def media(app):
    return app.extensions["media_client"]


@pytest.fixture()
def dept(app):
    d = Department(name="Operations")
    db.session.add(d); db.session.commit()
    db.session.add(DepartmentTiming(
        department_id=d.id, check_in_time="9:00 AM", check_out_time="6:00 PM",
        working_hours=Decimal("8"), late_threshold_minutes=15, overtime_threshold_minutes=30,
        auto_checkout_grace_minutes=120, weekly_off_days=[6],
    ))
    db.session.commit()
    return d


@pytest.fixture()
def make_employee(dept):
    def _make(code="E001", status="active", user_id=None, department_id=None):
        e = Employee(
            code=code, email=f"{code.lower()}@test.local", first_name="Test", last_name=code,
            department_id=department_id or dept.id, status=status, user_id=user_id,
            doj=date(2024, 1, 1),
        )
        db.session.add(e); db.session.commit()
        return e
    return _make


@pytest.fixture()
def emp(make_employee):
    return make_employee("E001", user_id=501)


@pytest.fixture()
def make_structure(app):
    def _make(employee_id, basic="18000", hra="7200", conveyance="1600", **kw):
        kw.setdefault("effective_from", date(2025, 1, 1))
        st = SalaryStructure(
            employee_id=employee_id, fixed_basic=Decimal(basic), fixed_hra=Decimal(hra),
            fixed_conveyance=Decimal(conveyance), **kw,
        )
        db.session.add(st); db.session.commit()
        return st
    return _make


@pytest.fixture()
def settings(app):
    s = PayrollSettings(effective_from=date(2000, 1, 1))
    db.session.add(s); db.session.commit()
    return s


@pytest.fixture()
def add_attendance(app):
    """Insert a closed attendance day directly (bypassing check-in/out)."""
    def _add(employee_id, day, status="present", **kw):
        kw.setdefault("check_in_time", datetime.combine(day, datetime.min.time()).replace(hour=9))
        kw.setdefault("check_out_time", datetime.combine(day, datetime.min.time()).replace(hour=18))
        rec = AttendanceRecord(employee_id=employee_id, work_date=day, status=status, **kw)
        db.session.add(rec); db.session.commit()
        return rec
    return _add
