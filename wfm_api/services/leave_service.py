# wfm_api/services/leave_service.py
from __future__ import annotations

import logging
import math
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from wfm_api.common.errors import ConfigurationError, ConflictError, NotFoundError, ValidationError
from wfm_api.common.timeutils import days_in_month, iter_days, money, dec
from wfm_api.extensions import db
from wfm_api.models.employee import Employee
from wfm_api.models.leave import (
    LEAVE_TYPES,
    LeaveAccrual,
    LeaveApplication,
    LeaveApprovalAction,
    LeaveBalance,
)
from wfm_api.models.payroll.structure import SalaryStructure
from wfm_api.services.identity import resolve_employee
from wfm_api.services.timing import get_department_timing, holiday_on

log = logging.getLogger(__name__)

CLOSED_STATUSES = ("cancelled", "rejected_by_tl", "rejected_by_hr")


# ---------- balances & accrual ----------

def ensure_balance(employee_id: int) -> LeaveBalance:
    bal = LeaveBalance.query.filter_by(employee_id=employee_id).first()
    if bal is None:
        bal = LeaveBalance(
            employee_id=employee_id,
            casual_accrued=Decimal("0"), casual_used=Decimal("0"),
            permission_hours_accrued=Decimal("0"), permission_hours_used=Decimal("0"),
        )
        db.session.add(bal)
        db.session.flush()
    return bal


def get_balance(employee_ref) -> LeaveBalance:
    emp = resolve_employee(employee_ref, require_active=False)
    bal = ensure_balance(emp.id)
    db.session.commit()
    return bal


def _monthly_allotment():
    cfg = current_app.config
    return (
        dec(cfg.get("LEAVE_MONTHLY_CASUAL_DAYS", 1)),
        dec(cfg.get("LEAVE_MONTHLY_PERMISSION_HOURS", 2)),
    )


def accrue_monthly(year: int, month: int) -> dict:
    """
    Credit the monthly casual day and permission hours to every active
    employee. Safe to re-run: an employee already credited for the period is
    skipped (unique employee/period key).
    """
    period = f"{year:04d}-{month:02d}"
    casual, hours = _monthly_allotment()
    credited, skipped = [], []

    for emp in Employee.query.filter_by(status="active").order_by(Employee.id.asc()).all():
        if LeaveAccrual.query.filter_by(employee_id=emp.id, period=period).first():
            skipped.append(emp.id)
            continue
        bal = ensure_balance(emp.id)
        db.session.add(LeaveAccrual(employee_id=emp.id, period=period, casual_days=casual, permission_hours=hours))
        bal.casual_accrued = dec(bal.casual_accrued) + casual
        bal.permission_hours_accrued = dec(bal.permission_hours_accrued) + hours
        try:
            db.session.commit()
        except IntegrityError:
            # a concurrent accrual run credited this employee first
            db.session.rollback()
            skipped.append(emp.id)
            continue
        credited.append(emp.id)

    log.info("leave accrual %s: credited=%d skipped=%d", period, len(credited), len(skipped))
    return {"period": period, "credited": credited, "skipped": skipped}


# ---------- salary helpers ----------

def active_structure(employee_id: int, day: date) -> Optional[SalaryStructure]:
    return (
        SalaryStructure.query
        .filter(
            SalaryStructure.employee_id == employee_id,
            SalaryStructure.effective_from <= day,
            db.or_(SalaryStructure.effective_to.is_(None), SalaryStructure.effective_to > day),
        )
        .order_by(SalaryStructure.effective_from.desc())
        .first()
    )


def per_day_salary(structure: SalaryStructure, day: date) -> Decimal:
    basic = dec(structure.fixed_basic)
    hra = dec(structure.fixed_hra)
    base = structure.per_day_salary_base or "basic_hra"
    if base == "basic":
        amount = basic
    elif base == "basic_hra":
        amount = basic + hra
    elif base == "gross":
        amount = basic + hra + dec(structure.fixed_conveyance) + sum(
            (dec(v) for v in (structure.custom_earnings or {}).values()), Decimal("0")
        )
    else:
        raise ConfigurationError("INVALID_SALARY_STRUCTURE", f"Unknown per_day_salary_base {base!r}")
    return amount / Decimal(days_in_month(day.year, day.month))


def unpaid_deduction_by_month(employee_id: int, start: date, end: date) -> Dict[str, Decimal]:
    """Each day priced against its own month's length, rounded per payroll month."""
    raw: Dict[str, Decimal] = {}
    for d in iter_days(start, end):
        st = active_structure(employee_id, d)
        if st is None:
            raise ConfigurationError(
                "NO_SALARY_STRUCTURE",
                f"No active salary structure for employee {employee_id} on {d.isoformat()}",
            )
        key = f"{d.year}-{d.month:02d}"
        raw[key] = raw.get(key, Decimal("0")) + per_day_salary(st, d)
    return {k: money(v) for k, v in raw.items()}


def unpaid_deduction(employee_id: int, start: date, end: date) -> Decimal:
    return sum(unpaid_deduction_by_month(employee_id, start, end).values(), Decimal("0"))


# ---------- apply ----------

def _overlapping(employee_id: int, start: date, end: date) -> Optional[LeaveApplication]:
    return (
        LeaveApplication.query
        .filter(
            LeaveApplication.employee_id == employee_id,
            LeaveApplication.status.notin_(CLOSED_STATUSES),
            LeaveApplication.start_date <= end,
            LeaveApplication.end_date >= start,
        )
        .first()
    )


def _pending_casual_days(employee_id: int) -> Decimal:
    rows = LeaveApplication.query.filter(
        LeaveApplication.employee_id == employee_id,
        LeaveApplication.leave_type == "casual",
        LeaveApplication.status.in_(("pending_tl", "pending_hr")),
    ).all()
    return sum((dec(r.total_days) for r in rows), Decimal("0"))


def _log_action(app: LeaveApplication, level: str, action: str, actor: Optional[str], comment: Optional[str] = None):
    db.session.add(LeaveApprovalAction(
        leave_application_id=app.id, level=level, action=action, acted_by=actor, comment=comment,
    ))


def apply_leave(
    employee_ref,
    leave_type: str,
    start_date: date,
    end_date: Optional[date] = None,
    reason: Optional[str] = None,
    permission_hours=None,
    actor: Optional[str] = None,
) -> LeaveApplication:
    emp = resolve_employee(employee_ref)
    if leave_type not in LEAVE_TYPES:
        raise ValidationError(f"leave_type must be one of {', '.join(LEAVE_TYPES)}")
    end_date = end_date or start_date
    if start_date > end_date:
        raise ValidationError("start_date cannot be after end_date")

    clash = _overlapping(emp.id, start_date, end_date)
    if clash is not None:
        raise ConflictError(
            "LEAVE_OVERLAP",
            f"Overlaps leave application {clash.id} ({clash.start_date} to {clash.end_date}, {clash.status})",
        )

    bal = ensure_balance(emp.id)

    if leave_type == "permission":
        if start_date != end_date:
            raise ValidationError("Permission applies to a single day")
        hours = dec(permission_hours, default="0")
        _, monthly_hours = _monthly_allotment()
        if hours <= 0 or hours > monthly_hours:
            raise ValidationError(f"Permission hours must be between 0 and {monthly_hours}")
        if hours > bal.permission_hours_available:
            raise ConflictError(
                "INSUFFICIENT_PERMISSION_BALANCE",
                f"Only {bal.permission_hours_available} permission hours available",
            )
        app = LeaveApplication(
            employee_id=emp.id, leave_type="permission", start_date=start_date, end_date=end_date,
            total_days=Decimal("0"), permission_date=start_date, permission_hours=hours,
            reason=reason, status="pending_tl",
        )
        db.session.add(app)
        db.session.flush()
        _log_action(app, "employee", "applied", actor)
        db.session.commit()
        log.info("permission applied emp=%s date=%s hours=%s", emp.id, start_date, hours)
        return app

    timing = get_department_timing(emp.department_id)
    days = list(iter_days(start_date, end_date))
    for d in days:
        hol = holiday_on(emp.department_id, d)
        if hol is not None or timing.is_rest_day(d):
            what = f"holiday ({hol.name})" if hol is not None else "weekly off"
            raise ValidationError("NON_WORKING_DAY", f"{d.isoformat()} is a {what}; leave cannot include it")

    requested = len(days)
    paid_days = 0
    if leave_type == "casual":
        available = bal.casual_available - _pending_casual_days(emp.id)
        paid_days = max(0, min(requested, math.floor(available)))

    if leave_type == "unpaid" or paid_days == 0:
        app = LeaveApplication(
            employee_id=emp.id, leave_type="unpaid", start_date=start_date, end_date=end_date,
            total_days=Decimal(requested), reason=reason, status="pending_tl",
        )
        db.session.add(app)
        db.session.flush()
        _log_action(app, "employee", "applied", actor,
                    None if leave_type == "unpaid" else "no casual balance; re-typed as unpaid")
    else:
        split_at = start_date + timedelta(days=paid_days)
        app = LeaveApplication(
            employee_id=emp.id, leave_type="casual", start_date=start_date,
            end_date=split_at - timedelta(days=1), total_days=Decimal(paid_days),
            reason=reason, status="pending_tl",
        )
        db.session.add(app)
        if paid_days < requested:
            overage = LeaveApplication(
                employee_id=emp.id, leave_type="unpaid", start_date=split_at, end_date=end_date,
                total_days=Decimal(requested - paid_days), reason=reason, status="pending_tl",
            )
            db.session.add(overage)
            db.session.flush()
            app.linked_application_id = overage.id
            _log_action(overage, "employee", "applied", actor, f"overage of application {app.id}")
        db.session.flush()
        _log_action(app, "employee", "applied", actor)

    db.session.commit()
    log.info("leave applied emp=%s %s..%s type=%s paid_days=%s", emp.id, start_date, end_date, app.leave_type, paid_days)
    return app


# ---------- approval chain ----------

def _get(app_id: int) -> LeaveApplication:
    app = LeaveApplication.query.get(app_id)
    if app is None:
        raise NotFoundError(f"Leave application {app_id} not found")
    return app


def _family(app: LeaveApplication) -> List[LeaveApplication]:
    """The application plus its split sibling (in either direction)."""
    members = [app]
    if app.linked_application is not None:
        members.append(app.linked_application)
    parent = LeaveApplication.query.filter_by(linked_application_id=app.id).first()
    if parent is not None:
        members.insert(0, parent)
    return members


def _require_status(apps: List[LeaveApplication], expected: str):
    for a in apps:
        if a.status != expected:
            raise ConflictError(
                "INVALID_STATUS",
                f"Leave application {a.id} is {a.status}; expected {expected}",
            )


def _finalize(app: LeaveApplication, bal: LeaveBalance):
    if app.leave_type == "casual":
        if bal.casual_available < dec(app.total_days):
            raise ConflictError("INSUFFICIENT_BALANCE", f"Only {bal.casual_available} casual days available")
        bal.casual_used = dec(bal.casual_used) + dec(app.total_days)
    elif app.leave_type == "permission":
        hours = dec(app.permission_hours)
        if bal.permission_hours_available < hours:
            raise ConflictError(
                "INSUFFICIENT_PERMISSION_BALANCE",
                f"Only {bal.permission_hours_available} permission hours available",
            )
        bal.permission_hours_used = dec(bal.permission_hours_used) + hours
    elif app.leave_type == "unpaid":
        by_month = unpaid_deduction_by_month(app.employee_id, app.start_date, app.end_date)
        app.deduction_by_month = {k: str(v) for k, v in sorted(by_month.items())}
        app.deduction_amount = sum(by_month.values(), Decimal("0"))
        app.affects_payroll = app.deduction_amount > 0


def approve_leave(app_id: int, level: str, actor: Optional[str] = None, comment: Optional[str] = None) -> LeaveApplication:
    app = _get(app_id)
    family = _family(app)
    now = datetime.utcnow()

    if level == "tl":
        _require_status(family, "pending_tl")
        for a in family:
            a.status = "pending_hr"
            a.tl_action_by, a.tl_action_at = actor, now
            _log_action(a, "tl", "approved", actor, comment)
    elif level == "hr":
        _require_status(family, "pending_hr")
        bal = ensure_balance(app.employee_id)
        try:
            for a in family:
                _finalize(a, bal)
                a.status = "approved"
                a.hr_action_by, a.hr_action_at = actor, now
                _log_action(a, "hr", "approved", actor, comment)
        except Exception:
            db.session.rollback()
            raise
    else:
        raise ValidationError("level must be 'tl' or 'hr'")

    db.session.commit()
    log.info("leave %s approved at level=%s by=%s -> %s", app.id, level, actor, app.status)
    return app


def reject_leave(app_id: int, level: str, actor: Optional[str] = None, reason: Optional[str] = None) -> LeaveApplication:
    app = _get(app_id)
    family = _family(app)
    now = datetime.utcnow()

    if level == "tl":
        _require_status(family, "pending_tl")
        new_status = "rejected_by_tl"
    elif level == "hr":
        _require_status(family, "pending_hr")
        new_status = "rejected_by_hr"
    else:
        raise ValidationError("level must be 'tl' or 'hr'")

    for a in family:
        a.status = new_status
        a.rejection_reason = reason
        if level == "tl":
            a.tl_action_by, a.tl_action_at = actor, now
        else:
            a.hr_action_by, a.hr_action_at = actor, now
        _log_action(a, level, "rejected", actor, reason)

    db.session.commit()
    log.info("leave %s rejected at level=%s by=%s", app.id, level, actor)
    return app


def cancel_leave(app_id: int, actor: Optional[str] = None, employee_ref=None) -> LeaveApplication:
    app = _get(app_id)
    if employee_ref is not None and resolve_employee(employee_ref, require_active=False).id != app.employee_id:
        raise ConflictError("NOT_OWNER", "Only the applicant can cancel this application")
    family = _family(app)
    for a in family:
        if not a.is_pending:
            raise ConflictError("INVALID_STATUS", f"Leave application {a.id} is {a.status}; only pending leave can be cancelled")
    for a in family:
        a.status = "cancelled"
        _log_action(a, "employee", "cancelled", actor)
    db.session.commit()
    log.info("leave %s cancelled by=%s", app.id, actor)
    return app
