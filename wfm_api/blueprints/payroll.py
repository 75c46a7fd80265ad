from flask import Blueprint, request, send_file

from wfm_api.common.auth import current_actor, requires_roles
from wfm_api.common.errors import ValidationError
from wfm_api.common.http import ok, body_json, parse_date, parse_decimal, require_fields
from wfm_api.services import payroll_service, salary_service

bp = Blueprint("payroll", __name__, url_prefix="/api/v1/payroll")


def _period_from(d) -> tuple:
    try:
        month, year = int(d.get("month")), int(d.get("year"))
    except (TypeError, ValueError):
        raise ValidationError("month and year are required integers")
    return month, year


def _opt_int(v, name):
    if v in (None, ""):
        return None
    try:
        return int(v)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")


# ---------- bulk processing ----------
@bp.post("/process")
@requires_roles("hr", "payroll")
def process():
    d = body_json()
    month, year = _period_from(d)
    out = payroll_service.bulk_process_payroll(
        month, year, _opt_int(d.get("department_id"), "department_id"),
        triggered_by=current_actor(),
    )
    return ok({
        "run": out["run"].to_dict(),
        "records": [r.to_dict() for r in out["records"]],
        "errors": out["errors"],
    })


@bp.get("/records")
@requires_roles("hr", "payroll")
def list_records():
    month, year = _period_from(request.args)
    rows = payroll_service.list_records(month, year, _opt_int(request.args.get("department_id"), "department_id"))
    return ok([r.to_dict() for r in rows], count=len(rows))


@bp.patch("/records/<int:record_id>")
@requires_roles("hr", "payroll")
def update_record(record_id: int):
    d = body_json()
    overrides = d.get("overrides") if isinstance(d.get("overrides"), dict) else {
        k: v for k, v in d.items() if k != "remarks"
    }
    rec = payroll_service.update_payroll_record(record_id, overrides, current_actor(), remarks=d.get("remarks"))
    return ok(rec.to_dict())


@bp.post("/records/<int:record_id>/approve")
@requires_roles("hr")
def approve_record(record_id: int):
    return ok(payroll_service.approve_payroll_record(record_id, current_actor()).to_dict())


@bp.post("/records/<int:record_id>/pay")
@requires_roles("hr", "finance")
def pay_record(record_id: int):
    return ok(payroll_service.mark_payroll_paid(record_id, current_actor()).to_dict())


@bp.get("/register.xlsx")
@requires_roles("hr", "payroll")
def register_xlsx():
    month, year = _period_from(request.args)
    bio = payroll_service.export_payroll_register(
        month, year, _opt_int(request.args.get("department_id"), "department_id")
    )
    return send_file(
        bio,
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        as_attachment=True,
        download_name=f"payroll_register_{year}{month:02d}.xlsx",
    )


# ---------- salary configuration ----------
@bp.post("/structures")
@requires_roles("hr", "payroll")
def create_structure():
    d = body_json()
    require_fields(d, "employee_id", "effective_from", "fixed_basic")
    data = dict(d)
    data["effective_from"] = parse_date(d["effective_from"], "effective_from")
    data["effective_to"] = parse_date(d.get("effective_to"), "effective_to")
    for k in ("fixed_basic", "fixed_hra", "fixed_conveyance", "vpt_amount", "overtime_rate_multiplier"):
        data[k] = parse_decimal(d.get(k), k)
    st = salary_service.create_salary_structure(d["employee_id"], data)
    return ok(st.to_dict(), status=201)


@bp.post("/structures/<int:structure_id>/close")
@requires_roles("hr", "payroll")
def close_structure(structure_id: int):
    d = body_json()
    require_fields(d, "effective_to")
    st = salary_service.close_salary_structure(structure_id, parse_date(d["effective_to"], "effective_to"))
    return ok(st.to_dict())


@bp.post("/advances")
@requires_roles("hr", "payroll")
def create_advance():
    d = body_json()
    require_fields(d, "employee_id", "amount", "monthly_deduction", "number_of_installments",
                   "deduction_start_month", "deduction_start_year")
    data = dict(d)
    data["amount"] = parse_decimal(d["amount"], "amount")
    data["monthly_deduction"] = parse_decimal(d["monthly_deduction"], "monthly_deduction")
    adv = salary_service.create_advance(d["employee_id"], data)
    return ok({"id": adv.id, "status": adv.status}, status=201)


@bp.post("/advances/<int:advance_id>/<string:decision>")
@requires_roles("hr")
def decide_advance(advance_id: int, decision: str):
    if decision not in ("approve", "reject"):
        raise ValidationError("decision must be approve or reject")
    adv = salary_service.decide_advance(advance_id, decision == "approve")
    return ok({"id": adv.id, "status": adv.status})
