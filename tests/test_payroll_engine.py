from datetime import date, timedelta
from decimal import Decimal

import pytest

from wfm_api.common.errors import ValidationError
from wfm_api.services.payroll_engine import (
    AdvanceInstallment,
    AttendanceDay,
    LeaveEntry,
    PayrollInputs,
    SettingsSnapshot,
    StructureSnapshot,
    compute_payroll,
)

D = Decimal
JUNE = (date(2025, 6, 1), date(2025, 6, 30))


def days(n, status="present", start=date(2025, 6, 1)):
    return tuple(AttendanceDay(day=start + timedelta(days=i), status=status) for i in range(n))


def inputs(structure, attendance=(), month_days=30, settings=None, **kw):
    return PayrollInputs(
        month=6, year=2025, month_days=month_days,
        period_start=JUNE[0], period_end=JUNE[1],
        structure=structure, settings=settings or SettingsSnapshot(),
        attendance=attendance, **kw,
    )


# ---------- statutory ----------

def test_epf_is_capped_at_ceiling():
    r = compute_payroll(inputs(StructureSnapshot(fixed_basic=D("18000")), days(30)))
    assert r.earned_basic == D("18000.00")
    assert r.epf_deduction == D("1800.00")     # min(2160, 1800)
    assert r.employer_epf == D("1800.00")


def test_epf_below_ceiling_and_not_applicable():
    r = compute_payroll(inputs(StructureSnapshot(fixed_basic=D("12000")), days(30)))
    assert r.epf_deduction == D("1440.00")
    r = compute_payroll(inputs(StructureSnapshot(fixed_basic=D("12000"), epf_applicable=False), days(30)))
    assert r.epf_deduction == D("0") and r.employer_epf == D("0")


def test_esi_is_a_hard_threshold_on_gross():
    over = StructureSnapshot(fixed_basic=D("15000"), fixed_hra=D("6000"), fixed_conveyance=D("1000"),
                             esi_applicable=True)
    r = compute_payroll(inputs(over, days(30)))
    assert r.total_earnings == D("22000.00")
    assert r.esi_deduction == D("0") and r.employer_esi == D("0")

    at_limit = StructureSnapshot(fixed_basic=D("15000"), fixed_hra=D("6000"), esi_applicable=True)
    r = compute_payroll(inputs(at_limit, days(30)))
    assert r.esi_deduction == D("157.50")
    assert r.employer_esi == D("682.50")


def test_esi_not_applicable():
    st = StructureSnapshot(fixed_basic=D("10000"), esi_applicable=False)
    assert compute_payroll(inputs(st, days(30))).esi_deduction == D("0")


def test_vpt_and_tds_hook():
    st = StructureSnapshot(fixed_basic=D("20000"), epf_applicable=False, vpt_amount=D("200"))
    r = compute_payroll(inputs(st, days(30)), tds=lambda inp, gross: D("250"))
    assert r.vpt_deduction == D("200.00")
    assert r.tds_deduction == D("250.00")
    assert r.total_deductions == D("450.00")
    assert compute_payroll(inputs(st, days(30))).tds_deduction == D("0")


# ---------- overtime ----------

def test_overtime_rate_uses_basic_hra_conveyance():
    st = StructureSnapshot(fixed_basic=D("15600"), fixed_hra=D("6000"), fixed_conveyance=D("1200"))
    att = (AttendanceDay(day=date(2025, 6, 2), status="present", overtime_hours=D("4")),)
    r = compute_payroll(inputs(st, att, month_days=26))
    assert r.hourly_rate.quantize(D("0.001")) == D("109.615")
    assert r.overtime_pay == D("438.46")
    assert r.overtime_hours == D("4")


def test_overtime_multiplier_comes_from_settings():
    st = StructureSnapshot(fixed_basic=D("24000"))
    att = (AttendanceDay(day=date(2025, 6, 7), status="overtime", overtime_hours=D("2")),)
    r = compute_payroll(inputs(st, att, settings=SettingsSnapshot(overtime_rate_multiplier=D("1.5"))))
    # 24000 / (30 * 8) = 100 per hour
    assert r.overtime_pay == D("300.00")


# ---------- pro-ration ----------

@pytest.mark.parametrize("amount", ["18000", "17777.77", "9999.99", "1"])
def test_full_month_reproduces_fixed_amounts(amount):
    st = StructureSnapshot(fixed_basic=D(amount), fixed_hra=D(amount), fixed_conveyance=D(amount),
                           custom_earnings={"Special": D(amount)}, custom_deductions={"Canteen": D(amount)})
    r = compute_payroll(inputs(st, days(30)))
    assert r.earned_basic == r.earned_hra == r.earned_conveyance == D(amount)
    assert r.dynamic_earnings["Special"] == D(amount)
    assert r.dynamic_deductions["Canteen"] == D(amount)


def test_partial_month_pro_rates_every_component():
    st = StructureSnapshot(fixed_basic=D("18000"), fixed_hra=D("7200"), fixed_conveyance=D("1600"),
                           custom_earnings={"Special": D("3000")}, custom_deductions={"Canteen": D("600")},
                           epf_applicable=False)
    r = compute_payroll(inputs(st, days(25)))
    assert r.total_credited_days == D("25")
    assert r.earned_basic == D("15000.00")
    assert r.earned_hra == D("6000.00")
    assert r.earned_conveyance == D("1333.33")
    assert r.dynamic_earnings == {"Special": D("2500.00")}
    assert r.dynamic_deductions == {"Canteen": D("500.00")}
    assert r.total_earnings == D("24833.33")
    assert r.net_salary == D("24333.33")


def test_half_day_credit():
    st = StructureSnapshot(fixed_basic=D("30000"), epf_applicable=False)
    att = days(20) + days(2, "half_day", start=date(2025, 6, 21)) + days(3, "absent", start=date(2025, 6, 23))
    r = compute_payroll(inputs(st, att))
    assert r.present_days == D("21.0")
    assert r.earned_basic == D("21000.00")


def test_weekly_offs_and_holidays_are_paid_days():
    st = StructureSnapshot(fixed_basic=D("30000"), epf_applicable=False)
    att = (days(28) + (AttendanceDay(day=date(2025, 6, 29), status="weekly_off"),
                       AttendanceDay(day=date(2025, 6, 30), status="holiday")))
    r = compute_payroll(inputs(st, att))
    assert r.present_days == D("30")
    assert r.earned_basic == D("30000.00")


def test_leave_on_a_holiday_is_not_credited_twice():
    st = StructureSnapshot(fixed_basic=D("30000"), epf_applicable=False)
    att = (AttendanceDay(day=date(2025, 6, 16), status="holiday"),)
    leave = (LeaveEntry(leave_type="casual", start_date=date(2025, 6, 16), end_date=date(2025, 6, 17)),)
    r = compute_payroll(inputs(st, att, leave=leave))
    assert r.total_credited_days == D("2")


def test_unreviewed_auto_corrections_can_be_excluded():
    st = StructureSnapshot(fixed_basic=D("30000"), epf_applicable=False)
    att = days(2) + (AttendanceDay(day=date(2025, 6, 3), status="present", review_pending=True),)
    assert compute_payroll(inputs(st, att)).present_days == D("3")
    strict = SettingsSnapshot(exclude_unreviewed_attendance=True)
    assert compute_payroll(inputs(st, att, settings=strict)).present_days == D("2")


# ---------- leave ----------

def test_paid_leave_counts_once_per_date():
    st = StructureSnapshot(fixed_basic=D("30000"), epf_applicable=False)
    att = (AttendanceDay(day=date(2025, 6, 2), status="present"),)
    leave = (LeaveEntry(leave_type="casual", start_date=date(2025, 6, 2), end_date=date(2025, 6, 3)),)
    r = compute_payroll(inputs(st, att, leave=leave))
    assert r.present_days == D("1")
    assert r.paid_leave_days == D("1")
    assert r.total_credited_days == D("2")
    assert r.earned_basic == D("2000.00")


def test_permission_hours_credit_a_day_fraction():
    st = StructureSnapshot(fixed_basic=D("30000"), epf_applicable=False)
    leave = (LeaveEntry(leave_type="permission", start_date=date(2025, 6, 4), end_date=date(2025, 6, 4),
                        permission_hours=D("2")),)
    r = compute_payroll(inputs(st, leave=leave, daily_working_hours=D("8")))
    assert r.paid_leave_days == D("0.25")


def test_unpaid_leave_deduction_is_limited_to_days_in_period():
    st = StructureSnapshot(fixed_basic=D("30000"), epf_applicable=False)
    leave = (LeaveEntry(leave_type="unpaid", start_date=date(2025, 6, 29), end_date=date(2025, 7, 2),
                        affects_payroll=True, deduction_amount=D("1680")),)
    r = compute_payroll(inputs(st, days(10), leave=leave))
    assert r.unpaid_leave_deduction == D("840.00")
    assert r.paid_leave_days == D("0")


def test_unpaid_leave_uses_the_months_own_price_when_recorded():
    st = StructureSnapshot(fixed_basic=D("30000"), epf_applicable=False)
    leave = (LeaveEntry(leave_type="unpaid", start_date=date(2025, 6, 30), end_date=date(2025, 7, 1),
                        affects_payroll=True, deduction_amount=D("1652.90"),
                        deduction_by_month={"2025-06": D("840.00"), "2025-07": D("812.90")}),)
    r = compute_payroll(inputs(st, days(10), leave=leave))
    assert r.unpaid_leave_deduction == D("840.00")


# ---------- advances ----------

@pytest.mark.parametrize("start_month,expected", [(4, "1000.00"), (6, "1000.00"), (3, "0.00"), (7, "0.00")])
def test_advance_installment_window(start_month, expected):
    st = StructureSnapshot(fixed_basic=D("30000"), epf_applicable=False)
    adv = (AdvanceInstallment(monthly_deduction=D("1000"), number_of_installments=3,
                              start_month=start_month, start_year=2025),)
    assert compute_payroll(inputs(st, days(30), advances=adv)).advance_deduction == D(expected)


def test_advance_across_year_end():
    st = StructureSnapshot(fixed_basic=D("30000"), epf_applicable=False)
    adv = (AdvanceInstallment(monthly_deduction=D("500"), number_of_installments=8, start_month=11, start_year=2024),)
    assert compute_payroll(inputs(st, days(30), advances=adv)).advance_deduction == D("500.00")


# ---------- invariants ----------

@pytest.mark.parametrize("present", [0, 1, 13, 29, 30])
def test_credited_days_bounded_and_totals_add_up(present):
    st = StructureSnapshot(fixed_basic=D("18000"), fixed_hra=D("7200"), fixed_conveyance=D("1600"),
                           esi_applicable=True, custom_deductions={"Canteen": D("300")})
    r = compute_payroll(inputs(st, days(present)))
    assert r.total_credited_days <= r.month_days
    assert r.net_salary == r.total_earnings - r.total_deductions
    assert r.earned_basic <= D("18000")


def test_same_inputs_same_result():
    st = StructureSnapshot(fixed_basic=D("18000"), fixed_hra=D("7200"))
    inp = inputs(st, days(17))
    assert compute_payroll(inp).record_fields() == compute_payroll(inp).record_fields()


def test_record_fields_store_maps_as_strings():
    st = StructureSnapshot(fixed_basic=D("3000"), custom_earnings={"Special": D("300")})
    fields = compute_payroll(inputs(st, days(30))).record_fields()
    assert fields["dynamic_earnings"] == {"Special": "300.00"}


@pytest.mark.parametrize("attendance", [
    (AttendanceDay(day=date(2025, 7, 1), status="present"),),
    (AttendanceDay(day=date(2025, 6, 2), status="present"), AttendanceDay(day=date(2025, 6, 2), status="late")),
    (AttendanceDay(day=date(2025, 6, 2), status="present", overtime_hours=D("-1")),),
])
def test_malformed_attendance_is_rejected(attendance):
    with pytest.raises(ValidationError) as ei:
        compute_payroll(inputs(StructureSnapshot(fixed_basic=D("1000")), attendance))
    assert ei.value.code == "MALFORMED_ATTENDANCE"


def test_more_credited_days_than_month_days():
    with pytest.raises(ValidationError):
        compute_payroll(inputs(StructureSnapshot(fixed_basic=D("1000")), days(30), month_days=26))


def test_negative_structure_amount():
    with pytest.raises(ValidationError) as ei:
        compute_payroll(inputs(StructureSnapshot(fixed_basic=D("-1")), days(1)))
    assert ei.value.code == "INVALID_SALARY_STRUCTURE"
