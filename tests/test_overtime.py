from datetime import date, datetime
from decimal import Decimal

import pytest

from wfm_api.common.errors import ConflictError, ExternalServiceError
from wfm_api.extensions import db
from wfm_api.models.attendance import AttendanceRecord
from wfm_api.models.master import Holiday
from wfm_api.services import attendance_service, overtime_service as ot
from wfm_api.services.media import GeoPoint

MON = date(2025, 6, 2)
PHOTO = b"\xff\xd8ot-photo"
HERE = GeoPoint(lat=19.076, lon=72.8777)


def at(hh, mm=0, day=MON):
    return datetime(day.year, day.month, day.day, hh, mm)


def test_late_departure_session_adds_to_working_hours(emp):
    attendance_service.check_in(emp.id, at(9, 0), HERE, PHOTO)
    attendance_service.check_out(emp.id, at(18, 0), HERE, PHOTO)

    rec = ot.start_overtime(emp.id, at(18, 30), HERE, PHOTO, reason="release")
    assert rec.ot_status == "in_progress"
    assert rec.ot_type == "late_departure"
    assert rec.ot_start_photo_url.startswith("https://media.test/overtime/start/")

    rec = ot.end_overtime(emp.id, at(20, 45), HERE, PHOTO)
    assert rec.ot_status == "completed"
    assert rec.manual_ot_hours == Decimal("2.25")
    assert rec.working_hours == Decimal("11.25")
    assert rec.status == "present"


def test_early_arrival_creates_record_then_check_in_completes_it(emp):
    rec = ot.start_overtime(emp.id, at(7, 0), HERE, PHOTO)
    assert rec.ot_type == "early_arrival"
    assert rec.status == "overtime"
    assert rec.check_in_time is None
    ot.end_overtime(emp.id, at(8, 45), HERE, PHOTO)

    attendance_service.check_in(emp.id, at(9, 0), HERE, PHOTO)
    rec = attendance_service.check_out(emp.id, at(18, 0), HERE, PHOTO)
    assert rec.status == "present"
    assert rec.regular_hours == Decimal("9")
    assert rec.working_hours == Decimal("10.75")
    assert AttendanceRecord.query.count() == 1


def test_weekend_session_is_overtime_only(emp):
    sun = date(2025, 6, 1)
    rec = ot.start_overtime(emp.id, at(10, 0, sun), HERE, PHOTO)
    assert rec.ot_type == "weekend"
    rec = ot.end_overtime(emp.id, at(14, 0, sun), HERE, PHOTO)
    assert rec.status == "overtime"
    assert rec.overtime_hours == Decimal("4")


def test_holiday_overtime_needs_permission(emp, dept):
    hol = Holiday(department_id=dept.id, date=MON, name="Festival", allow_ot=False)
    db.session.add(hol); db.session.commit()
    with pytest.raises(ConflictError) as ei:
        ot.start_overtime(emp.id, at(10, 0), HERE, PHOTO)
    assert ei.value.code == "OT_NOT_ALLOWED"

    hol.allow_ot = True
    db.session.commit()
    rec = ot.start_overtime(emp.id, at(10, 0), HERE, PHOTO)
    assert rec.ot_type == "holiday"


def test_refused_during_regular_hours(emp):
    with pytest.raises(ConflictError) as ei:
        ot.start_overtime(emp.id, at(12, 0), HERE, PHOTO)
    assert ei.value.code == "OT_DURING_REGULAR_HOURS"


def test_only_one_session_at_a_time(emp):
    ot.start_overtime(emp.id, at(19, 0), HERE, PHOTO)
    with pytest.raises(ConflictError) as ei:
        ot.start_overtime(emp.id, at(19, 30), HERE, PHOTO)
    assert ei.value.code == "OT_IN_PROGRESS"


def test_one_completed_session_per_day(emp):
    ot.start_overtime(emp.id, at(19, 0), HERE, PHOTO)
    ot.end_overtime(emp.id, at(20, 0), HERE, PHOTO)
    with pytest.raises(ConflictError) as ei:
        ot.start_overtime(emp.id, at(21, 0), HERE, PHOTO)
    assert ei.value.code == "OT_ALREADY_COMPLETED"


def test_end_without_session(emp):
    with pytest.raises(ConflictError) as ei:
        ot.end_overtime(emp.id, at(20, 0), HERE, PHOTO)
    assert ei.value.code == "OT_NOT_IN_PROGRESS"


def test_end_must_follow_start(emp):
    ot.start_overtime(emp.id, at(19, 0), HERE, PHOTO)
    with pytest.raises(ConflictError) as ei:
        ot.end_overtime(emp.id, at(18, 59), HERE, PHOTO)
    assert ei.value.code == "INVALID_OT_END_TIME"


def test_session_past_midnight_stays_on_start_day(emp):
    ot.start_overtime(emp.id, at(22, 0), HERE, PHOTO)
    rec = ot.end_overtime(emp.id, datetime(2025, 6, 3, 1, 0), HERE, PHOTO)
    assert rec.work_date == MON
    assert rec.manual_ot_hours == Decimal("3")


def test_start_upload_failure_creates_nothing(emp, media):
    media.fail_upload = True
    with pytest.raises(ExternalServiceError):
        ot.start_overtime(emp.id, at(19, 0), HERE, PHOTO)
    assert AttendanceRecord.query.count() == 0


def test_end_upload_failure_keeps_session_running(emp, media):
    ot.start_overtime(emp.id, at(19, 0), HERE, PHOTO)
    media.fail_upload = True
    with pytest.raises(ExternalServiceError):
        ot.end_overtime(emp.id, at(20, 0), HERE, PHOTO)
    assert ot.day_session(emp.id, MON).ot_status == "in_progress"
