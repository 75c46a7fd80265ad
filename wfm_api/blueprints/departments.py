from flask import Blueprint
from flask_jwt_extended import jwt_required

from wfm_api.common.auth import requires_roles
from wfm_api.common.http import ok, body_json
from wfm_api.common.timeutils import format_clock
from wfm_api.services import timing

bp = Blueprint("departments", __name__, url_prefix="/api/v1/departments")


@bp.get("/<int:department_id>/timing")
@jwt_required()
def get_timing(department_id: int):
    snap = timing.get_department_timing(department_id)
    return ok({
        "department_id": snap.department_id,
        "check_in_time": format_clock(snap.check_in),
        "check_out_time": format_clock(snap.check_out),
        "working_hours": float(snap.working_hours),
        "late_threshold_minutes": snap.late_threshold_minutes,
        "overtime_threshold_minutes": snap.overtime_threshold_minutes,
        "auto_checkout_grace_minutes": snap.auto_checkout_grace_minutes,
        "weekly_off_days": list(snap.weekly_off_days),
    })


@bp.put("/<int:department_id>/timing")
@requires_roles("hr")
def put_timing(department_id: int):
    row = timing.update_department_timing(department_id, body_json())
    return ok(row.to_dict())
