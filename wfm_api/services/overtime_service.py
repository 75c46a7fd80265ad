# wfm_api/services/overtime_service.py
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

from wfm_api.common.errors import ConflictError
from wfm_api.common.timeutils import hours_between, dec
from wfm_api.extensions import db
from wfm_api.models.attendance import AttendanceRecord
from wfm_api.services.attendance_service import commit_transition, load_record, apply_evidence
from wfm_api.services.identity import resolve_employee
from wfm_api.services.media import GeoPoint, capture_evidence
from wfm_api.services.timing import TimingSnapshot, get_department_timing, holiday_on

log = logging.getLogger(__name__)


def classify_ot(timing: TimingSnapshot, department_id, at: datetime) -> str:
    """
    holiday > weekend > early_arrival > late_departure.

    A holiday that does not allow overtime, or a time inside the regular
    working window, is refused.
    """
    day = at.date()
    hol = holiday_on(department_id, day)
    if hol is not None:
        if not hol.allow_ot:
            raise ConflictError("OT_NOT_ALLOWED", f"Overtime is not allowed on {hol.name}")
        return "holiday"
    if timing.is_rest_day(day):
        return "weekend"
    if at < timing.check_in_at(day):
        return "early_arrival"
    if at > timing.check_out_at(day):
        return "late_departure"
    raise ConflictError(
        "OT_DURING_REGULAR_HOURS",
        "Overtime can only start before check-in time or after check-out time on a working day",
    )


def _session_in_progress(employee_id: int) -> Optional[AttendanceRecord]:
    return (
        AttendanceRecord.query
        .filter_by(employee_id=employee_id, ot_status="in_progress")
        .first()
    )


def start_overtime(employee_ref, at: datetime, point: GeoPoint, photo, reason: Optional[str] = None) -> AttendanceRecord:
    emp = resolve_employee(employee_ref)
    timing = get_department_timing(emp.department_id)
    day = at.date()

    active = _session_in_progress(emp.id)
    if active is not None:
        raise ConflictError(
            "OT_IN_PROGRESS",
            f"An overtime session started {active.ot_start_time.isoformat()} is still in progress",
        )

    rec = load_record(emp.id, day, for_update=True)
    if rec is not None and rec.ot_status == "completed":
        raise ConflictError("OT_ALREADY_COMPLETED", "An overtime session was already completed today")

    ot_type = classify_ot(timing, emp.department_id, at)
    evidence = capture_evidence(photo, point, folder="overtime/start")

    if rec is None:
        # overtime-only day (holiday or weekend work, or early arrival before check-in)
        rec = AttendanceRecord(employee_id=emp.id, work_date=day, status="overtime", attendance_type="office")
        db.session.add(rec)
    rec.ot_status = "in_progress"
    rec.ot_type = ot_type
    rec.ot_reason = reason
    rec.ot_start_time = at
    apply_evidence(rec, "ot_start", evidence)

    commit_transition("OT_IN_PROGRESS", "An overtime session is already in progress")
    log.info("overtime start emp=%s date=%s type=%s", emp.id, day, ot_type)
    return rec


def end_overtime(employee_ref, at: datetime, point: GeoPoint, photo) -> AttendanceRecord:
    emp = resolve_employee(employee_ref)

    rec = _session_in_progress(emp.id)
    if rec is None:
        raise ConflictError("OT_NOT_IN_PROGRESS", "No overtime session in progress")
    if at <= rec.ot_start_time:
        raise ConflictError("INVALID_OT_END_TIME", "Overtime end must be after its start")

    evidence = capture_evidence(photo, point, folder="overtime/end")

    ot_hours = hours_between(rec.ot_start_time, at)
    rec.ot_end_time = at
    apply_evidence(rec, "ot_end", evidence)
    rec.manual_ot_hours = ot_hours
    rec.overtime_hours = ot_hours
    rec.working_hours = dec(rec.regular_hours) + ot_hours
    rec.ot_status = "completed"

    commit_transition("OT_NOT_IN_PROGRESS", "Overtime session was already ended")
    log.info("overtime end emp=%s date=%s hours=%s", emp.id, rec.work_date, ot_hours)
    return rec


def day_session(employee_ref, day: date) -> Optional[AttendanceRecord]:
    emp = resolve_employee(employee_ref)
    return load_record(emp.id, day)
