# wfm_api/services/payroll_service.py
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from decimal import Decimal
from io import BytesIO
from typing import Dict, List, Optional, Tuple

from flask import current_app
from openpyxl import Workbook
from sqlalchemy.exc import IntegrityError

from wfm_api.common.errors import APIError, ConfigurationError, ConflictError, NotFoundError, ValidationError
from wfm_api.common.timeutils import days_in_month, iter_days, month_bounds, money, dec
from wfm_api.extensions import db
from wfm_api.models.attendance import AttendanceRecord
from wfm_api.models.employee import Employee
from wfm_api.models.leave import LeaveApplication
from wfm_api.models.payroll import PayrollRecord, PayrollRun, PayrollSettings, SalaryAdvance, SalaryStructure
from wfm_api.services.identity import resolve_employee
from wfm_api.services.timing import TimingSnapshot, get_department_timing, holiday_dates
from wfm_api.services.payroll_engine import (
    AdvanceInstallment,
    AttendanceDay,
    LeaveEntry,
    PayrollInputs,
    SettingsSnapshot,
    StructureSnapshot,
    compute_payroll,
)

log = logging.getLogger(__name__)

LOCKED_STATUSES = ("approved", "paid")

MONEY_FIELDS = (
    "earned_basic", "earned_hra", "earned_conveyance", "overtime_pay",
    "epf_deduction", "esi_deduction", "vpt_deduction", "tds_deduction",
    "unpaid_leave_deduction", "advance_deduction",
)
EARNING_FIELDS = ("earned_basic", "earned_hra", "earned_conveyance", "overtime_pay")
DEDUCTION_FIELDS = (
    "epf_deduction", "esi_deduction", "vpt_deduction", "tds_deduction",
    "unpaid_leave_deduction", "advance_deduction",
)


def _check_period(month: int, year: int):
    if not 1 <= int(month) <= 12:
        raise ValidationError("month must be 1..12")
    if not 2000 <= int(year) <= 2100:
        raise ValidationError("year out of range")


# ---------- loading ----------

def _pick_settings(on: date) -> PayrollSettings:
    row = (
        PayrollSettings.query
        .filter(
            PayrollSettings.effective_from <= on,
            db.or_(PayrollSettings.effective_to.is_(None), PayrollSettings.effective_to >= on),
        )
        .order_by(PayrollSettings.effective_from.desc(), PayrollSettings.id.desc())
        .first()
    )
    if row is None:
        raise ConfigurationError("PAYROLL_SETTINGS_MISSING", f"No payroll settings effective on {on.isoformat()}")
    return row


def settings_snapshot(on: date) -> SettingsSnapshot:
    s = _pick_settings(on)
    return SettingsSnapshot(
        epf_employee_rate=dec(s.epf_employee_rate),
        epf_employer_rate=dec(s.epf_employer_rate),
        epf_ceiling_amount=dec(s.epf_ceiling_amount),
        esi_employee_rate=dec(s.esi_employee_rate),
        esi_employer_rate=dec(s.esi_employer_rate),
        esi_threshold=dec(s.esi_threshold),
        standard_daily_hours=dec(s.standard_daily_hours),
        overtime_rate_multiplier=dec(s.overtime_rate_multiplier, default="1"),
        half_day_credit=dec(s.half_day_credit),
        exclude_unreviewed_attendance=bool(s.exclude_unreviewed_attendance),
    )


def _structure_overlapping(q, start: date, end: date):
    return q.filter(
        SalaryStructure.effective_from <= end,
        db.or_(SalaryStructure.effective_to.is_(None), SalaryStructure.effective_to > start),
    )


def structure_for_period(employee_id: int, start: date, end: date) -> SalaryStructure:
    """The latest structure in force during the period."""
    row = (
        _structure_overlapping(SalaryStructure.query.filter_by(employee_id=employee_id), start, end)
        .order_by(SalaryStructure.effective_from.desc())
        .first()
    )
    if row is None:
        raise ConfigurationError(
            "NO_SALARY_STRUCTURE",
            f"No active salary structure for employee {employee_id} in {start:%Y-%m}",
        )
    return row


def _structure_snapshot(st: SalaryStructure) -> StructureSnapshot:
    return StructureSnapshot(
        fixed_basic=dec(st.fixed_basic),
        fixed_hra=dec(st.fixed_hra),
        fixed_conveyance=dec(st.fixed_conveyance),
        custom_earnings={str(k): dec(v) for k, v in (st.custom_earnings or {}).items()},
        custom_deductions={str(k): dec(v) for k, v in (st.custom_deductions or {}).items()},
        epf_applicable=bool(st.epf_applicable),
        esi_applicable=bool(st.esi_applicable),
        vpt_amount=dec(st.vpt_amount),
    )


def calendar_credits(attendance: List[AttendanceDay], start: date, end: date,
                     timing: TimingSnapshot, holidays) -> List[AttendanceDay]:
    """
    Add a paid day for every holiday and weekly off in the period that has no
    attendance record. A recorded day keeps its own status (an OT session on a
    Sunday is not also a weekly off).
    """
    recorded = {a.day for a in attendance}
    out = list(attendance)
    for d in iter_days(start, end):
        if d in recorded:
            continue
        if d in holidays:
            out.append(AttendanceDay(day=d, status="holiday"))
        elif timing.is_rest_day(d):
            out.append(AttendanceDay(day=d, status="weekly_off"))
    out.sort(key=lambda a: a.day)
    return out


def load_inputs(employee_id: int, month: int, year: int, settings: Optional[SettingsSnapshot] = None) -> PayrollInputs:
    """Read everything the engine needs for one employee; keyed on the canonical id only."""
    start, end = month_bounds(year, month)
    structure = structure_for_period(employee_id, start, end)
    settings = settings or settings_snapshot(end)
    emp = db.session.get(Employee, employee_id)
    timing = get_department_timing(emp.department_id)

    attendance = [
        AttendanceDay(
            day=r.work_date,
            status=r.status,
            overtime_hours=dec(r.manual_ot_hours) if r.ot_status == "completed" else Decimal("0"),
            review_pending=r.admin_review_status == "pending",
        )
        for r in AttendanceRecord.query
        .filter(
            AttendanceRecord.employee_id == employee_id,
            AttendanceRecord.work_date >= start,
            AttendanceRecord.work_date <= end,
        )
        .order_by(AttendanceRecord.work_date.asc())
        .all()
    ]
    attendance = calendar_credits(attendance, start, end, timing, holiday_dates(emp.department_id, start, end))

    leave = [
        LeaveEntry(
            leave_type=a.leave_type,
            start_date=a.start_date,
            end_date=a.end_date,
            affects_payroll=bool(a.affects_payroll),
            deduction_amount=dec(a.deduction_amount),
            permission_hours=dec(a.permission_hours),
            deduction_by_month={k: dec(v) for k, v in (a.deduction_by_month or {}).items()},
        )
        for a in LeaveApplication.query
        .filter(
            LeaveApplication.employee_id == employee_id,
            LeaveApplication.status == "approved",
            LeaveApplication.start_date <= end,
            LeaveApplication.end_date >= start,
        )
        .order_by(LeaveApplication.start_date.asc(), LeaveApplication.id.asc())
        .all()
    ]

    advances = [
        AdvanceInstallment(
            monthly_deduction=dec(a.monthly_deduction),
            number_of_installments=int(a.number_of_installments or 0),
            start_month=a.deduction_start_month,
            start_year=a.deduction_start_year,
        )
        for a in SalaryAdvance.query
        .filter_by(employee_id=employee_id, status="approved")
        .order_by(SalaryAdvance.id.asc())
        .all()
    ]

    return PayrollInputs(
        month=month,
        year=year,
        month_days=days_in_month(year, month),
        period_start=start,
        period_end=end,
        structure=_structure_snapshot(structure),
        settings=settings,
        attendance=tuple(attendance),
        leave=tuple(leave),
        advances=tuple(advances),
        daily_working_hours=timing.working_hours,
    )


# ---------- totals / overrides ----------

def _totals(fields: dict) -> dict:
    earn = sum((dec(fields[k]) for k in EARNING_FIELDS), Decimal("0"))
    earn += sum((dec(v) for v in (fields.get("dynamic_earnings") or {}).values()), Decimal("0"))
    ded = sum((dec(fields[k]) for k in DEDUCTION_FIELDS), Decimal("0"))
    ded += sum((dec(v) for v in (fields.get("dynamic_deductions") or {}).values()), Decimal("0"))
    fields["total_earnings"] = money(earn)
    fields["total_deductions"] = money(ded)
    fields["net_salary"] = money(earn - ded)
    return fields


def _amount(name, v) -> Decimal:
    try:
        amt = money(v)
    except (ArithmeticError, ValueError, TypeError):
        raise ValidationError(f"Invalid amount for {name}: {v!r}")
    if amt < 0:
        raise ValidationError(f"{name} cannot be negative")
    return amt


def _clean_overrides(overrides: dict) -> dict:
    out = {}
    for k, v in (overrides or {}).items():
        if k in MONEY_FIELDS:
            out[k] = str(_amount(k, v))
        elif k in ("dynamic_earnings", "dynamic_deductions"):
            if not isinstance(v, dict):
                raise ValidationError(f"{k} must be an object of name -> amount")
            out[k] = {str(n): str(_amount(n, a)) for n, a in sorted(v.items())}
        else:
            raise ValidationError(f"Field {k!r} cannot be overridden")
    if not out:
        raise ValidationError("No overrides given")
    return out


def _apply_overrides(fields: dict, overrides: Optional[dict]) -> dict:
    for k, v in (overrides or {}).items():
        fields[k] = v if isinstance(v, dict) else money(v)
    return _totals(fields)


# ---------- persistence ----------

def _write_record(employee_id: int, month: int, year: int, fields: dict) -> PayrollRecord:
    """
    Insert or overwrite the (employee, month, year) row. The row lock plus the
    unique key give one writer per period; a lost insert race is retried once
    as an update.
    """
    for attempt in (1, 2):
        rec = (
            PayrollRecord.query
            .filter_by(employee_id=employee_id, month=month, year=year)
            .with_for_update()
            .first()
        )
        if rec is not None and rec.status in LOCKED_STATUSES:
            db.session.rollback()
            raise ConflictError("PAYROLL_LOCKED", f"Payroll for {year}-{month:02d} is already {rec.status}")
        if rec is None:
            rec = PayrollRecord(employee_id=employee_id, month=month, year=year)
            db.session.add(rec)
        overrides = (rec.adjustments_json or {}).get("overrides") if rec.manually_adjusted else None
        for k, v in _apply_overrides(dict(fields), overrides).items():
            setattr(rec, k, v)
        rec.status = "processed"
        try:
            db.session.commit()
            return rec
        except IntegrityError:
            db.session.rollback()
            if attempt == 2:
                raise ConflictError("CONCURRENT_UPDATE", "Payroll record is being written by another run")
    raise AssertionError("unreachable")


def process_employee_payroll(employee_ref, month: int, year: int) -> PayrollRecord:
    _check_period(month, year)
    emp = resolve_employee(employee_ref, require_active=False)
    inputs = load_inputs(emp.id, month, year)
    result = compute_payroll(inputs)
    rec = _write_record(emp.id, month, year, result.record_fields())
    log.info("payroll emp=%s %s-%02d net=%s", emp.id, year, month, rec.net_salary)
    return rec


def _candidates(start: date, end: date, department_id: Optional[int]) -> Tuple[List[int], List[int]]:
    """(employees with a structure in force, active employees without one)."""
    with_structure = _structure_overlapping(
        db.session.query(SalaryStructure.employee_id).join(Employee, Employee.id == SalaryStructure.employee_id),
        start, end,
    )
    active = Employee.query.filter(Employee.status == "active")
    if department_id is not None:
        with_structure = with_structure.filter(Employee.department_id == department_id)
        active = active.filter(Employee.department_id == department_id)
    ids = sorted({row[0] for row in with_structure.all()})
    missing = sorted({e.id for e in active.all()} - set(ids))
    return ids, missing


def _error(employee_id: int, e: Exception) -> dict:
    if isinstance(e, APIError):
        return {"employee_id": employee_id, "code": e.code, "error": e.message}
    return {"employee_id": employee_id, "code": "COMPUTATION_ERROR", "error": str(e) or e.__class__.__name__}


def bulk_process_payroll(
    month: int,
    year: int,
    department_id: Optional[int] = None,
    *,
    max_workers: Optional[int] = None,
    triggered_by: Optional[str] = None,
) -> dict:
    """
    Compute and persist payroll for every employee in scope.

    Inputs are loaded on the request's session, the pure computation fans out
    to a bounded thread pool, and records are written back one employee at a
    time so an interrupted run can simply be started again.
    """
    _check_period(month, year)
    start, end = month_bounds(year, month)
    settings = settings_snapshot(end)
    workers = max(1, int(max_workers or current_app.config.get("PAYROLL_MAX_WORKERS", 4)))

    run = PayrollRun(month=month, year=year, department_id=department_id, triggered_by=triggered_by)
    db.session.add(run)
    db.session.commit()
    run_id = run.id

    ids, missing = _candidates(start, end, department_id)
    errors: List[dict] = [
        {"employee_id": eid, "code": "NO_SALARY_STRUCTURE",
         "error": f"No active salary structure for employee {eid} in {year}-{month:02d}"}
        for eid in missing
    ]

    inputs: Dict[int, PayrollInputs] = {}
    for eid in ids:
        try:
            inputs[eid] = load_inputs(eid, month, year, settings)
        except Exception as e:
            db.session.rollback()
            log.warning("payroll inputs failed emp=%s %s-%02d: %s", eid, year, month, e)
            errors.append(_error(eid, e))

    results = {}
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {eid: pool.submit(compute_payroll, inp) for eid, inp in inputs.items()}
        for eid, fut in futures.items():
            try:
                results[eid] = fut.result()
            except Exception as e:
                log.warning("payroll computation failed emp=%s %s-%02d: %s", eid, year, month, e)
                errors.append(_error(eid, e))

    records: List[PayrollRecord] = []
    for eid in sorted(results):
        try:
            records.append(_write_record(eid, month, year, results[eid].record_fields()))
        except Exception as e:
            db.session.rollback()
            log.warning("payroll write failed emp=%s %s-%02d: %s", eid, year, month, e)
            errors.append(_error(eid, e))

    errors.sort(key=lambda x: x["employee_id"])
    run = db.session.get(PayrollRun, run_id)
    run.processed_count = len(records)
    run.error_count = len(errors)
    run.errors_json = errors
    run.finished_at = datetime.utcnow()
    db.session.commit()

    log.info("payroll run %s for %s-%02d: %d records, %d errors", run_id, year, month, len(records), len(errors))
    return {"run": run, "records": records, "errors": errors}


# ---------- administrative actions ----------

def _get_record(record_id: int) -> PayrollRecord:
    rec = PayrollRecord.query.get(record_id)
    if rec is None:
        raise NotFoundError(f"Payroll record {record_id} not found")
    return rec


def update_payroll_record(record_id: int, overrides: dict, actor: Optional[str] = None,
                          remarks: Optional[str] = None) -> PayrollRecord:
    rec = _get_record(record_id)
    if rec.status in LOCKED_STATUSES:
        raise ConflictError("PAYROLL_LOCKED", f"Payroll record is {rec.status} and cannot be changed")
    clean = _clean_overrides(overrides)

    audit = dict(rec.adjustments_json or {})
    merged = dict(audit.get("overrides") or {})
    merged.update(clean)
    history = list(audit.get("history") or [])
    history.append({"by": actor, "at": datetime.utcnow().isoformat(), "fields": clean})
    rec.adjustments_json = {"overrides": merged, "history": history}

    fields = {k: getattr(rec, k) for k in MONEY_FIELDS}
    fields["dynamic_earnings"] = dict(rec.dynamic_earnings or {})
    fields["dynamic_deductions"] = dict(rec.dynamic_deductions or {})
    for k, v in _apply_overrides(fields, clean).items():
        setattr(rec, k, v)
    rec.manually_adjusted = True
    if remarks is not None:
        rec.remarks = remarks

    db.session.commit()
    log.info("payroll record %s adjusted by %s: %s", rec.id, actor, sorted(clean))
    return rec


def approve_payroll_record(record_id: int, actor: Optional[str] = None) -> PayrollRecord:
    rec = _get_record(record_id)
    if rec.status != "processed":
        raise ConflictError("INVALID_STATUS", f"Only processed payroll can be approved (status={rec.status})")
    rec.status = "approved"
    rec.approved_by = actor
    rec.approved_at = datetime.utcnow()
    db.session.commit()
    log.info("payroll record %s approved by %s", rec.id, actor)
    return rec


def mark_payroll_paid(record_id: int, actor: Optional[str] = None) -> PayrollRecord:
    rec = _get_record(record_id)
    if rec.status != "approved":
        raise ConflictError("INVALID_STATUS", f"Only approved payroll can be marked paid (status={rec.status})")
    rec.status = "paid"
    rec.paid_at = datetime.utcnow()
    db.session.commit()
    log.info("payroll record %s marked paid by %s", rec.id, actor)
    return rec


def list_records(month: int, year: int, department_id: Optional[int] = None) -> List[PayrollRecord]:
    q = PayrollRecord.query.filter_by(month=month, year=year)
    if department_id is not None:
        q = q.join(Employee, Employee.id == PayrollRecord.employee_id).filter(Employee.department_id == department_id)
    return q.order_by(PayrollRecord.employee_id.asc()).all()


REGISTER_HEADERS = [
    "EMP CODE", "NAME", "MONTH DAYS", "PRESENT DAYS", "PAID LEAVE DAYS", "OT HOURS",
    "BASIC", "HRA", "CONVEYANCE", "OT PAY", "OTHER EARNINGS", "TOTAL EARNINGS",
    "EPF", "ESI", "VPT", "TDS", "UNPAID LEAVE", "ADVANCE", "OTHER DEDUCTIONS",
    "TOTAL DEDUCTIONS", "NET SALARY", "STATUS",
]


def export_payroll_register(month: int, year: int, department_id: Optional[int] = None) -> BytesIO:
    _check_period(month, year)
    wb = Workbook()
    ws = wb.active
    ws.title = f"PAYROLL {year}-{month:02d}"
    ws.append(REGISTER_HEADERS)

    def _num(x):
        return float(x) if x is not None else 0.0

    totals = [0.0] * len(REGISTER_HEADERS)
    for r in list_records(month, year, department_id):
        emp = r.employee
        row = [
            emp.code if emp else r.employee_id, emp.full_name if emp else "",
            r.month_days, _num(r.present_days), _num(r.paid_leave_days), _num(r.overtime_hours),
            _num(r.earned_basic), _num(r.earned_hra), _num(r.earned_conveyance), _num(r.overtime_pay),
            sum(_num(v) for v in (r.dynamic_earnings or {}).values()), _num(r.total_earnings),
            _num(r.epf_deduction), _num(r.esi_deduction), _num(r.vpt_deduction), _num(r.tds_deduction),
            _num(r.unpaid_leave_deduction), _num(r.advance_deduction),
            sum(_num(v) for v in (r.dynamic_deductions or {}).values()),
            _num(r.total_deductions), _num(r.net_salary), r.status,
        ]
        ws.append(row)
        for i in range(6, 21):
            totals[i] += row[i]
    ws.append(["TOTAL", None, None, None, None, None] + [round(t, 2) for t in totals[6:21]] + [None])

    bio = BytesIO()
    wb.save(bio)
    bio.seek(0)
    return bio
