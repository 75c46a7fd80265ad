from flask import Blueprint, request
from flask_jwt_extended import jwt_required

from wfm_api.common.auth import current_actor, current_employee_ref, current_roles, requires_roles
from wfm_api.common.errors import APIError, ValidationError
from wfm_api.common.http import ok, body_json, parse_date, require_fields
from wfm_api.models.leave import LeaveApplication
from wfm_api.services import leave_service
from wfm_api.services.identity import resolve_employee

bp = Blueprint("leave", __name__, url_prefix="/api/v1/leave")

_LEVEL_ROLES = {"tl": {"tl", "manager"}, "hr": {"hr"}}


def _check_level(level: str):
    if level not in _LEVEL_ROLES:
        raise ValidationError("level must be 'tl' or 'hr'")
    roles = current_roles()
    if "admin" not in roles and not roles & _LEVEL_ROLES[level]:
        raise APIError("FORBIDDEN", f"Not allowed to act at level {level!r}", 403)


# ---------- Balance ----------
@bp.get("/balance")
@jwt_required()
def balance():
    ref = request.args.get("employee_id") or current_employee_ref()
    return ok(leave_service.get_balance(ref).to_dict())


# ---------- Applications ----------
@bp.get("/applications")
@jwt_required()
def list_applications():
    emp = resolve_employee(request.args.get("employee_id") or current_employee_ref(), require_active=False)
    q = LeaveApplication.query.filter_by(employee_id=emp.id)
    status = request.args.get("status")
    if status:
        q = q.filter_by(status=status)
    rows = q.order_by(LeaveApplication.start_date.desc(), LeaveApplication.id.desc()).all()
    return ok([r.to_dict(with_linked=False) for r in rows])


@bp.post("/applications")
@jwt_required()
def apply():
    d = body_json()
    require_fields(d, "leave_type", "start_date")
    app = leave_service.apply_leave(
        current_employee_ref(),
        d["leave_type"].strip().lower(),
        parse_date(d["start_date"], "start_date"),
        parse_date(d.get("end_date"), "end_date"),
        reason=d.get("reason"),
        permission_hours=d.get("permission_hours"),
        actor=current_actor(),
    )
    return ok(app.to_dict(), status=201)


@bp.post("/applications/<int:app_id>/approve")
@jwt_required()
def approve(app_id: int):
    d = body_json()
    level = (d.get("level") or "").lower()
    _check_level(level)
    app = leave_service.approve_leave(app_id, level, current_actor(), d.get("comment"))
    return ok(app.to_dict())


@bp.post("/applications/<int:app_id>/reject")
@jwt_required()
def reject(app_id: int):
    d = body_json()
    level = (d.get("level") or "").lower()
    _check_level(level)
    app = leave_service.reject_leave(app_id, level, current_actor(), d.get("reason"))
    return ok(app.to_dict())


@bp.post("/applications/<int:app_id>/cancel")
@jwt_required()
def cancel(app_id: int):
    app = leave_service.cancel_leave(app_id, current_actor(), employee_ref=current_employee_ref())
    return ok(app.to_dict())


@bp.post("/accrue")
@requires_roles("hr")
def accrue():
    d = body_json()
    require_fields(d, "year", "month")
    return ok(leave_service.accrue_monthly(int(d["year"]), int(d["month"])))
