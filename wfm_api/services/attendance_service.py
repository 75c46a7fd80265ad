# wfm_api/services/attendance_service.py
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from wfm_api.common.errors import ConflictError, NotFoundError, ValidationError
from wfm_api.common.timeutils import hours_between, whole_minutes, dec
from wfm_api.extensions import db
from wfm_api.models.attendance import AttendanceRecord, ATTENDANCE_TYPES
from wfm_api.models.leave import LeaveApplication
from wfm_api.services.identity import resolve_employee
from wfm_api.services.media import GeoPoint, capture_evidence
from wfm_api.services.timing import get_department_timing, holiday_on

log = logging.getLogger(__name__)


# ---------- shared helpers (also used by the overtime manager) ----------

def load_record(employee_id: int, day: date, *, for_update: bool = False) -> Optional[AttendanceRecord]:
    q = AttendanceRecord.query.filter_by(employee_id=employee_id, work_date=day)
    if for_update:
        q = q.with_for_update()
    return q.first()


def commit_transition(conflict_code: str, message: str):
    """
    Commit the current unit of work. A unique-key hit (two first writes for the
    same employee/day) or a version mismatch (two updates from the same read)
    means another request won the race; report it as a conflict.
    """
    try:
        db.session.commit()
    except (IntegrityError, StaleDataError) as e:
        db.session.rollback()
        log.warning("%s: %s (%s)", conflict_code, message, e.__class__.__name__)
        raise ConflictError(conflict_code, message)


def approved_leave_on(employee_id: int, day: date) -> Optional[LeaveApplication]:
    return (
        LeaveApplication.query
        .filter(
            LeaveApplication.employee_id == employee_id,
            LeaveApplication.status == "approved",
            LeaveApplication.leave_type.in_(("casual", "unpaid")),
            LeaveApplication.start_date <= day,
            LeaveApplication.end_date >= day,
        )
        .first()
    )


def apply_evidence(rec: AttendanceRecord, prefix: str, evidence):
    setattr(rec, f"{prefix}_lat", evidence.point.lat)
    setattr(rec, f"{prefix}_lon", evidence.point.lon)
    setattr(rec, f"{prefix}_address", evidence.address)
    setattr(rec, f"{prefix}_photo_url", evidence.photo_url)
    setattr(rec, f"{prefix}_accuracy_m", evidence.point.accuracy_m)


def completed_ot_hours(rec: AttendanceRecord) -> Decimal:
    if rec.ot_status == "completed" and rec.manual_ot_hours is not None:
        return dec(rec.manual_ot_hours)
    return Decimal("0")


def _early_window_minutes() -> int:
    from flask import current_app
    return int(current_app.config.get("ATTENDANCE_EARLY_CHECKIN_MINUTES", 0) or 0)


# ---------- check-in / check-out ----------

def check_in(
    employee_ref,
    at: datetime,
    point: GeoPoint,
    photo,
    attendance_type: str = "office",
    reason: Optional[str] = None,
    customer_name: Optional[str] = None,
) -> AttendanceRecord:
    emp = resolve_employee(employee_ref)
    timing = get_department_timing(emp.department_id)
    day = at.date()

    if attendance_type not in ATTENDANCE_TYPES:
        raise ValidationError(f"attendance_type must be one of {', '.join(ATTENDANCE_TYPES)}")
    if attendance_type == "remote" and not (reason or "").strip():
        raise ValidationError("A reason is required for remote attendance")
    if attendance_type == "field_work" and not (customer_name or "").strip():
        raise ValidationError("customer_name is required for field work")

    hol = holiday_on(emp.department_id, day)
    if hol is not None:
        raise ConflictError("HOLIDAY", f"{day.isoformat()} is a holiday ({hol.name}); use overtime instead")
    if timing.is_rest_day(day):
        raise ConflictError("WEEKLY_OFF", f"{day.isoformat()} is a weekly off day; use overtime instead")
    if approved_leave_on(emp.id, day) is not None:
        raise ConflictError("ON_LEAVE", f"Employee has approved leave on {day.isoformat()}")

    rec = load_record(emp.id, day, for_update=True)
    if rec is not None and rec.check_in_time is not None:
        raise ConflictError("ALREADY_CHECKED_IN", "Already checked in today")

    expected_in = timing.check_in_at(day)
    window_opens = expected_in - timedelta(minutes=_early_window_minutes())
    if at < window_opens:
        raise ConflictError("BEFORE_CHECKIN_WINDOW", f"Check-in opens at {window_opens.strftime('%I:%M %p')}")
    if at > timing.check_out_at(day):
        raise ConflictError("PAST_CHECKOUT", "Check-in is not allowed after the department check-out time")

    evidence = capture_evidence(photo, point, folder="attendance/check-in")

    late_deadline = expected_in + timedelta(minutes=timing.late_threshold_minutes)
    is_late = at > late_deadline

    if rec is None:
        rec = AttendanceRecord(employee_id=emp.id, work_date=day, ot_status="not_started")
        db.session.add(rec)
    rec.attendance_type = attendance_type
    rec.reason = reason
    rec.customer_name = customer_name
    rec.check_in_time = at
    apply_evidence(rec, "check_in", evidence)
    rec.is_late = is_late
    rec.late_minutes = whole_minutes(expected_in, at) if is_late else 0
    rec.status = "late" if is_late else "present"

    commit_transition("ALREADY_CHECKED_IN", "Already checked in today")
    log.info("check-in emp=%s date=%s status=%s late_minutes=%s", emp.id, day, rec.status, rec.late_minutes)
    return rec


def check_out(employee_ref, at: datetime, point: GeoPoint, photo) -> AttendanceRecord:
    emp = resolve_employee(employee_ref)
    day = at.date()

    rec = load_record(emp.id, day, for_update=True)
    if rec is None or rec.check_in_time is None:
        raise ConflictError("NOT_CHECKED_IN", "No check-in found for today")
    if rec.auto_corrected:
        raise ConflictError("AUTO_CORRECTED", "Record was closed by the system and is awaiting review")
    if rec.check_out_time is not None:
        raise ConflictError("ALREADY_CHECKED_OUT", "Already checked out today")
    if at <= rec.check_in_time:
        raise ConflictError("INVALID_CHECKOUT_TIME", "Check-out time must be after check-in time")

    timing = get_department_timing(emp.department_id)
    evidence = capture_evidence(photo, point, folder="attendance/check-out")

    regular = hours_between(rec.check_in_time, at)
    rec.check_out_time = at
    apply_evidence(rec, "check_out", evidence)
    rec.regular_hours = regular
    rec.working_hours = regular + completed_ot_hours(rec)

    if regular < timing.working_hours / 2:
        rec.status = "half_day"
    elif at < timing.check_out_at(day) and rec.status == "present":
        rec.status = "early_checkout"

    commit_transition("ALREADY_CHECKED_OUT", "Already checked out today")
    log.info("check-out emp=%s date=%s hours=%s status=%s", emp.id, day, regular, rec.status)
    return rec


def get_day_record(employee_ref, day: date) -> Optional[AttendanceRecord]:
    emp = resolve_employee(employee_ref)
    return load_record(emp.id, day)


# ---------- admin review of auto-corrected records ----------

def review_auto_correction(
    record_id: int,
    decision: str,
    reviewer: str,
    adjusted_check_out: Optional[datetime] = None,
    notes: Optional[str] = None,
) -> AttendanceRecord:
    rec = AttendanceRecord.query.get(record_id)
    if rec is None:
        raise NotFoundError(f"Attendance record {record_id} not found")
    if not rec.auto_corrected or rec.admin_review_status != "pending":
        raise ConflictError("NOT_PENDING_REVIEW", "Record is not awaiting review")
    if decision not in ("accepted", "adjusted", "rejected"):
        raise ValidationError("decision must be accepted, adjusted or rejected")

    if decision == "adjusted":
        if adjusted_check_out is None:
            raise ValidationError("adjusted_check_out is required for an adjustment")
        if adjusted_check_out <= rec.check_in_time or adjusted_check_out.date() != rec.work_date:
            raise ValidationError("adjusted_check_out must fall after check-in on the same day")
        rec.check_out_time = adjusted_check_out
        rec.regular_hours = hours_between(rec.check_in_time, adjusted_check_out)
        rec.working_hours = dec(rec.regular_hours) + completed_ot_hours(rec)
    elif decision == "rejected":
        rec.status = "absent"

    rec.admin_review_status = decision
    rec.reviewed_by = reviewer
    rec.reviewed_at = datetime.utcnow()
    rec.review_notes = notes

    commit_transition("CONCURRENT_UPDATE", "Record was modified concurrently, retry")
    log.info("auto-correction review record=%s decision=%s by=%s", rec.id, decision, reviewer)
    return rec
