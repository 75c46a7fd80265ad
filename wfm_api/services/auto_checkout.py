# wfm_api/services/auto_checkout.py
"""
Closes attendance records that were left open past the department check-out
time plus its grace period.

Each run selects only open, not-yet-corrected records, so running the sweep
again (or from two workers) never touches a record twice.
"""
from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from typing import Callable, Optional

from wfm_api.common.errors import APIError
from wfm_api.common.timeutils import hours_between
from wfm_api.extensions import db
from wfm_api.models.attendance import AttendanceRecord
from wfm_api.models.employee import Employee
from wfm_api.services.attendance_service import commit_transition, completed_ot_hours
from wfm_api.services.timing import get_department_timing

log = logging.getLogger(__name__)

REASON = "Automatic check-out: no check-out recorded by {cutoff}"


def _open_records(now: datetime):
    return (
        AttendanceRecord.query
        .filter(
            AttendanceRecord.check_in_time.isnot(None),
            AttendanceRecord.check_out_time.is_(None),
            AttendanceRecord.auto_corrected.is_(False),
            AttendanceRecord.ot_status != "in_progress",
            AttendanceRecord.work_date <= now.date(),
        )
        .order_by(AttendanceRecord.work_date.asc(), AttendanceRecord.id.asc())
        .all()
    )


def run_auto_checkout_sweep(now: Optional[datetime] = None) -> dict:
    """
    One pass over open records. Returns a summary:
    {"checked": n, "corrected": [record ids], "skipped": n, "errors": [{"record_id", "error"}]}
    """
    now = now or datetime.now()
    summary = {"checked": 0, "corrected": [], "skipped": 0, "errors": []}

    for rec in _open_records(now):
        summary["checked"] += 1
        try:
            emp = db.session.get(Employee, rec.employee_id)
            timing = get_department_timing(emp.department_id if emp else None)
            cutoff = timing.check_out_at(rec.work_date)
            if now <= cutoff + timedelta(minutes=timing.auto_checkout_grace_minutes):
                summary["skipped"] += 1
                continue
            if cutoff <= rec.check_in_time:
                # checked in after the regular window; leave it for manual handling
                summary["skipped"] += 1
                continue

            rec.check_out_time = cutoff
            rec.regular_hours = hours_between(rec.check_in_time, cutoff)
            rec.working_hours = rec.regular_hours + completed_ot_hours(rec)
            rec.auto_corrected = True
            rec.auto_corrected_at = now
            rec.auto_correction_reason = REASON.format(cutoff=cutoff.strftime("%I:%M %p"))
            rec.admin_review_status = "pending"
            commit_transition("CONCURRENT_UPDATE", f"record {rec.id} changed during sweep")
            summary["corrected"].append(rec.id)
            log.info("auto-checkout record=%s emp=%s date=%s cutoff=%s",
                     rec.id, rec.employee_id, rec.work_date, cutoff)
        except APIError as e:
            # one department's broken timing, or a concurrent check-out, must not stop the sweep
            db.session.rollback()
            log.warning("auto-checkout skipped record=%s: %s", rec.id, e.message)
            summary["errors"].append({"record_id": rec.id, "error": e.message, "code": e.code})

    return summary


def run_forever(interval_seconds: float, *, sweep: Callable[[], dict] = run_auto_checkout_sweep,
                sleep: Callable[[float], None] = time.sleep, max_runs: Optional[int] = None):
    """Fixed-interval loop used by the CLI worker; one failing pass does not end the loop."""
    runs = 0
    while max_runs is None or runs < max_runs:
        try:
            result = sweep()
            log.info("auto-checkout sweep: %d checked, %d corrected, %d errors",
                     result["checked"], len(result["corrected"]), len(result["errors"]))
        except Exception:
            db.session.rollback()
            log.exception("auto-checkout sweep failed")
        runs += 1
        if max_runs is None or runs < max_runs:
            sleep(interval_seconds)
