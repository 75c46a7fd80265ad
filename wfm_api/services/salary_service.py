# wfm_api/services/salary_service.py
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from wfm_api.common.errors import ConflictError, NotFoundError, ValidationError
from wfm_api.common.timeutils import dec
from wfm_api.extensions import db
from wfm_api.models.payroll import PayrollSettings, SalaryAdvance, SalaryStructure
from wfm_api.services.identity import resolve_employee

log = logging.getLogger(__name__)

PER_DAY_BASES = ("basic", "basic_hra", "gross")


def _money_map(v, name):
    if v in (None, ""):
        return {}
    if not isinstance(v, dict):
        raise ValidationError(f"{name} must be an object of name -> amount")
    out = {}
    for k, amt in v.items():
        a = dec(amt)
        if a < 0:
            raise ValidationError(f"{name}[{k}] cannot be negative")
        out[str(k)] = str(a)
    return out


def create_salary_structure(employee_ref, data: dict) -> SalaryStructure:
    emp = resolve_employee(employee_ref)
    eff_from = data.get("effective_from")
    eff_to = data.get("effective_to")
    if not isinstance(eff_from, date):
        raise ValidationError("effective_from is required")
    if eff_to is not None and eff_to <= eff_from:
        raise ValidationError("effective_to must be after effective_from")

    base = data.get("per_day_salary_base") or "basic_hra"
    if base not in PER_DAY_BASES:
        raise ValidationError(f"per_day_salary_base must be one of {', '.join(PER_DAY_BASES)}")

    # exactly one structure may be in force on any day
    q = SalaryStructure.query.filter(
        SalaryStructure.employee_id == emp.id,
        db.or_(SalaryStructure.effective_to.is_(None), SalaryStructure.effective_to > eff_from),
    )
    if eff_to is not None:
        q = q.filter(SalaryStructure.effective_from < eff_to)
    clash = q.first()
    if clash is not None:
        raise ConflictError(
            "STRUCTURE_OVERLAP",
            f"Overlaps salary structure {clash.id} effective from {clash.effective_from.isoformat()}",
        )

    amounts = {}
    for k in ("fixed_basic", "fixed_hra", "fixed_conveyance", "vpt_amount"):
        amounts[k] = dec(data.get(k))
        if amounts[k] < 0:
            raise ValidationError(f"{k} cannot be negative")

    st = SalaryStructure(
        employee_id=emp.id,
        custom_earnings=_money_map(data.get("custom_earnings"), "custom_earnings"),
        custom_deductions=_money_map(data.get("custom_deductions"), "custom_deductions"),
        epf_applicable=bool(data.get("epf_applicable", True)),
        esi_applicable=bool(data.get("esi_applicable", False)),
        per_day_salary_base=base,
        overtime_rate_multiplier=data.get("overtime_rate_multiplier"),
        effective_from=eff_from,
        effective_to=eff_to,
        **amounts,
    )
    db.session.add(st)
    db.session.commit()
    log.info("salary structure %s created for emp=%s from %s", st.id, emp.id, eff_from)
    return st


def close_salary_structure(structure_id: int, effective_to: date) -> SalaryStructure:
    st = SalaryStructure.query.get(structure_id)
    if st is None:
        raise NotFoundError(f"Salary structure {structure_id} not found")
    if effective_to <= st.effective_from:
        raise ValidationError("effective_to must be after effective_from")
    st.effective_to = effective_to
    db.session.commit()
    return st


def create_advance(employee_ref, data: dict) -> SalaryAdvance:
    emp = resolve_employee(employee_ref)
    amount = dec(data.get("amount"))
    monthly = dec(data.get("monthly_deduction"))
    installments = int(data.get("number_of_installments") or 0)
    month = int(data.get("deduction_start_month") or 0)
    year = int(data.get("deduction_start_year") or 0)
    if amount <= 0 or monthly <= 0 or installments <= 0:
        raise ValidationError("amount, monthly_deduction and number_of_installments must be positive")
    if not 1 <= month <= 12 or year < 2000:
        raise ValidationError("deduction_start_month/year are invalid")
    adv = SalaryAdvance(
        employee_id=emp.id, amount=amount, monthly_deduction=monthly,
        number_of_installments=installments, deduction_start_month=month,
        deduction_start_year=year, status="pending", reason=data.get("reason"),
    )
    db.session.add(adv)
    db.session.commit()
    return adv


def decide_advance(advance_id: int, approve: bool) -> SalaryAdvance:
    adv = SalaryAdvance.query.get(advance_id)
    if adv is None:
        raise NotFoundError(f"Salary advance {advance_id} not found")
    if adv.status != "pending":
        raise ConflictError("INVALID_STATUS", f"Advance is {adv.status}")
    adv.status = "approved" if approve else "rejected"
    db.session.commit()
    log.info("salary advance %s %s", adv.id, adv.status)
    return adv


def ensure_default_settings(effective_from: Optional[date] = None) -> PayrollSettings:
    """Seed company-wide payroll settings with the statutory defaults if none exist."""
    row = PayrollSettings.query.order_by(PayrollSettings.effective_from.asc()).first()
    if row is None:
        row = PayrollSettings(effective_from=effective_from or date(2000, 1, 1))
        db.session.add(row)
        db.session.commit()
    return row
