# wfm_api/services/payroll_engine.py
"""
Monthly payroll aggregation.

``compute_payroll`` is the only place payroll numbers are produced. It is a
pure function over plain dataclasses: the bulk pass, single-employee
previews and tests all call it with inputs loaded elsewhere, so there is no
second formula that can drift.

Order of operations for one employee and one month:

  1. credited days  = attendance days, weekly offs and holidays
                      (+ paid leave on days without any of those)
  2. pro-ration     = fixed / monthDays * creditedDays, per component
  3. overtime pay   = hours * (basic + hra + conveyance) / (monthDays * dailyHours) * multiplier
  4. statutory      = EPF (capped), ESI (hard threshold), VPT (fixed), TDS (hook, 0)
  5. unpaid leave   = the ledger's deduction for this month
  6. advances       = approved installments scheduled for the month
  7. totals         = earnings - deductions

Amounts are rounded to paise once per component; totals are sums of the
rounded components so the record always adds up.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Callable, Dict, Mapping, Optional, Sequence, Tuple

from wfm_api.common.errors import ValidationError
from wfm_api.common.timeutils import iter_days, money, months_between, dec

# weekly_off and holiday are calendar days credited by the loader where no record exists
COUNTED_STATUSES = ("present", "late", "overtime", "half_day", "early_checkout", "weekly_off", "holiday")
ZERO = Decimal("0")


@dataclass(frozen=True)
class AttendanceDay:
    day: date
    status: str
    overtime_hours: Decimal = ZERO  # completed manual OT only
    review_pending: bool = False


@dataclass(frozen=True)
class LeaveEntry:
    """An approved leave application, as the ledger recorded it."""
    leave_type: str  # casual|unpaid|permission
    start_date: date
    end_date: date
    affects_payroll: bool = False
    deduction_amount: Decimal = ZERO
    permission_hours: Decimal = ZERO
    # "YYYY-MM" -> amount, as priced on approval
    deduction_by_month: Mapping[str, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class AdvanceInstallment:
    monthly_deduction: Decimal
    number_of_installments: int
    start_month: int
    start_year: int


@dataclass(frozen=True)
class StructureSnapshot:
    fixed_basic: Decimal
    fixed_hra: Decimal = ZERO
    fixed_conveyance: Decimal = ZERO
    custom_earnings: Mapping[str, Decimal] = field(default_factory=dict)
    custom_deductions: Mapping[str, Decimal] = field(default_factory=dict)
    epf_applicable: bool = True
    esi_applicable: bool = False
    vpt_amount: Decimal = ZERO


@dataclass(frozen=True)
class SettingsSnapshot:
    epf_employee_rate: Decimal = Decimal("0.12")
    epf_employer_rate: Decimal = Decimal("0.12")
    epf_ceiling_amount: Decimal = Decimal("1800")
    esi_employee_rate: Decimal = Decimal("0.0075")
    esi_employer_rate: Decimal = Decimal("0.0325")
    esi_threshold: Decimal = Decimal("21000")
    standard_daily_hours: Decimal = Decimal("8")
    overtime_rate_multiplier: Decimal = Decimal("1")
    half_day_credit: Decimal = Decimal("0.5")
    exclude_unreviewed_attendance: bool = False


@dataclass(frozen=True)
class PayrollInputs:
    month: int
    year: int
    month_days: int
    period_start: date
    period_end: date
    structure: StructureSnapshot
    settings: SettingsSnapshot
    attendance: Sequence[AttendanceDay] = ()
    leave: Sequence[LeaveEntry] = ()
    advances: Sequence[AdvanceInstallment] = ()
    # department working hours, used to turn permission hours into a day fraction
    daily_working_hours: Optional[Decimal] = None


@dataclass
class PayrollResult:
    month_days: int
    present_days: Decimal
    paid_leave_days: Decimal
    total_credited_days: Decimal
    overtime_hours: Decimal
    hourly_rate: Decimal
    overtime_pay: Decimal
    earned_basic: Decimal
    earned_hra: Decimal
    earned_conveyance: Decimal
    dynamic_earnings: Dict[str, Decimal]
    dynamic_deductions: Dict[str, Decimal]
    epf_deduction: Decimal
    esi_deduction: Decimal
    vpt_deduction: Decimal
    tds_deduction: Decimal
    unpaid_leave_deduction: Decimal
    advance_deduction: Decimal
    employer_epf: Decimal
    employer_esi: Decimal
    total_earnings: Decimal
    total_deductions: Decimal
    net_salary: Decimal

    def record_fields(self) -> dict:
        """Column values for PayrollRecord (JSON maps hold strings so they compare exactly)."""
        return {
            "month_days": self.month_days,
            "present_days": self.present_days,
            "paid_leave_days": self.paid_leave_days,
            "total_credited_days": self.total_credited_days,
            "overtime_hours": self.overtime_hours,
            "overtime_pay": self.overtime_pay,
            "earned_basic": self.earned_basic,
            "earned_hra": self.earned_hra,
            "earned_conveyance": self.earned_conveyance,
            "dynamic_earnings": {k: str(v) for k, v in sorted(self.dynamic_earnings.items())},
            "dynamic_deductions": {k: str(v) for k, v in sorted(self.dynamic_deductions.items())},
            "epf_deduction": self.epf_deduction,
            "esi_deduction": self.esi_deduction,
            "vpt_deduction": self.vpt_deduction,
            "tds_deduction": self.tds_deduction,
            "unpaid_leave_deduction": self.unpaid_leave_deduction,
            "advance_deduction": self.advance_deduction,
            "employer_epf": self.employer_epf,
            "employer_esi": self.employer_esi,
            "total_earnings": self.total_earnings,
            "total_deductions": self.total_deductions,
            "net_salary": self.net_salary,
        }


def no_tds(inputs: PayrollInputs, gross: Decimal) -> Decimal:
    """Income-tax withholding is not computed here; plug a real calculator in via ``tds=``."""
    return ZERO


# ---------- steps ----------

def _validate(inputs: PayrollInputs):
    if inputs.month_days <= 0:
        raise ValidationError("INVALID_PERIOD", "month_days must be positive")
    if inputs.period_start > inputs.period_end:
        raise ValidationError("INVALID_PERIOD", "period start is after period end")
    st = inputs.structure
    for name, v in (("fixed_basic", st.fixed_basic), ("fixed_hra", st.fixed_hra),
                    ("fixed_conveyance", st.fixed_conveyance), ("vpt_amount", st.vpt_amount)):
        if dec(v) < 0:
            raise ValidationError("INVALID_SALARY_STRUCTURE", f"{name} cannot be negative")
    seen = set()
    for a in inputs.attendance:
        if not inputs.period_start <= a.day <= inputs.period_end:
            raise ValidationError("MALFORMED_ATTENDANCE", f"attendance for {a.day} is outside the period")
        if a.day in seen:
            raise ValidationError("MALFORMED_ATTENDANCE", f"duplicate attendance for {a.day}")
        if dec(a.overtime_hours) < 0:
            raise ValidationError("MALFORMED_ATTENDANCE", f"negative overtime hours on {a.day}")
        seen.add(a.day)


def credited_days(inputs: PayrollInputs) -> Tuple[Decimal, Decimal]:
    """(present_days, paid_leave_days); a date never contributes twice."""
    s = inputs.settings
    present = ZERO
    attended = set()
    for a in inputs.attendance:
        if a.status not in COUNTED_STATUSES:
            continue
        if s.exclude_unreviewed_attendance and a.review_pending:
            continue
        present += dec(s.half_day_credit) if a.status == "half_day" else Decimal("1")
        attended.add(a.day)

    hours_per_day = dec(inputs.daily_working_hours or s.standard_daily_hours)
    leave_credit: Dict[date, Decimal] = {}
    for lv in inputs.leave:
        if lv.affects_payroll or lv.leave_type == "unpaid":
            continue
        for d in iter_days(max(lv.start_date, inputs.period_start), min(lv.end_date, inputs.period_end)):
            if d in attended:
                continue
            if lv.leave_type == "permission":
                credit = min(dec(lv.permission_hours) / hours_per_day, Decimal("1"))
            else:
                credit = Decimal("1")
            leave_credit[d] = max(leave_credit.get(d, ZERO), credit)

    paid_leave = sum(leave_credit.values(), ZERO)
    return present, paid_leave


def prorate(amount, month_days: int, credited: Decimal) -> Decimal:
    # multiply first so a full month returns the fixed amount exactly
    return money(dec(amount) * credited / Decimal(month_days))


def hourly_rate(st: StructureSnapshot, month_days: int, s: SettingsSnapshot) -> Decimal:
    base = dec(st.fixed_basic) + dec(st.fixed_hra) + dec(st.fixed_conveyance)
    return base / (Decimal(month_days) * dec(s.standard_daily_hours))


def unpaid_leave_amount(inputs: PayrollInputs) -> Decimal:
    key = f"{inputs.year}-{inputs.month:02d}"
    total = ZERO
    for lv in inputs.leave:
        if not lv.affects_payroll:
            continue
        start = max(lv.start_date, inputs.period_start)
        end = min(lv.end_date, inputs.period_end)
        if start > end:
            continue
        if lv.deduction_by_month:
            total += dec(lv.deduction_by_month.get(key))
            continue
        # no per-month breakdown on the ledger row: split the total by days
        span = (lv.end_date - lv.start_date).days + 1
        inside = (end - start).days + 1
        total += dec(lv.deduction_amount) * Decimal(inside) / Decimal(span)
    return money(total)


def advance_amount(inputs: PayrollInputs) -> Decimal:
    total = ZERO
    for adv in inputs.advances:
        k = months_between(adv.start_year, adv.start_month, inputs.year, inputs.month)
        if 0 <= k < adv.number_of_installments:
            total += dec(adv.monthly_deduction)
    return money(total)


def compute_payroll(inputs: PayrollInputs, *, tds: Callable[[PayrollInputs, Decimal], Decimal] = no_tds) -> PayrollResult:
    _validate(inputs)
    st, s, md = inputs.structure, inputs.settings, inputs.month_days

    present, paid_leave = credited_days(inputs)
    credited = present + paid_leave
    if credited > md:
        raise ValidationError("MALFORMED_ATTENDANCE", f"{credited} credited days exceed {md} days in month")

    earned_basic = prorate(st.fixed_basic, md, credited)
    earned_hra = prorate(st.fixed_hra, md, credited)
    earned_conveyance = prorate(st.fixed_conveyance, md, credited)
    dyn_earn = {k: prorate(v, md, credited) for k, v in (st.custom_earnings or {}).items()}
    dyn_ded = {k: prorate(v, md, credited) for k, v in (st.custom_deductions or {}).items()}

    ot_hours = sum((dec(a.overtime_hours) for a in inputs.attendance), ZERO)
    rate = hourly_rate(st, md, s)
    overtime_pay = money(ot_hours * rate * dec(s.overtime_rate_multiplier))

    total_earnings = earned_basic + earned_hra + earned_conveyance + overtime_pay + sum(dyn_earn.values(), ZERO)
    gross = total_earnings

    epf = employer_epf = ZERO
    if st.epf_applicable:
        epf = min(money(earned_basic * dec(s.epf_employee_rate)), money(s.epf_ceiling_amount))
        employer_epf = min(money(earned_basic * dec(s.epf_employer_rate)), money(s.epf_ceiling_amount))

    esi = employer_esi = ZERO
    if st.esi_applicable and gross <= dec(s.esi_threshold):
        esi = money(gross * dec(s.esi_employee_rate))
        employer_esi = money(gross * dec(s.esi_employer_rate))

    vpt = money(st.vpt_amount)
    tds_amount = money(tds(inputs, gross))
    unpaid = unpaid_leave_amount(inputs)
    advances = advance_amount(inputs)

    total_deductions = epf + esi + vpt + tds_amount + unpaid + advances + sum(dyn_ded.values(), ZERO)

    return PayrollResult(
        month_days=md,
        present_days=present,
        paid_leave_days=paid_leave,
        total_credited_days=credited,
        overtime_hours=ot_hours,
        hourly_rate=rate,
        overtime_pay=overtime_pay,
        earned_basic=earned_basic,
        earned_hra=earned_hra,
        earned_conveyance=earned_conveyance,
        dynamic_earnings=dyn_earn,
        dynamic_deductions=dyn_ded,
        epf_deduction=epf,
        esi_deduction=esi,
        vpt_deduction=vpt,
        tds_deduction=tds_amount,
        unpaid_leave_deduction=unpaid,
        advance_deduction=advances,
        employer_epf=employer_epf,
        employer_esi=employer_esi,
        total_earnings=total_earnings,
        total_deductions=total_deductions,
        net_salary=total_earnings - total_deductions,
    )
