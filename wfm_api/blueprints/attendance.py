from datetime import datetime

from flask import Blueprint, request
from flask_jwt_extended import jwt_required

from wfm_api.blueprints._evidence import evidence_from_request
from wfm_api.common.auth import current_actor, current_employee_ref, requires_roles
from wfm_api.common.http import ok, body_json, parse_date, parse_datetime, require_fields
from wfm_api.services import attendance_service

bp = Blueprint("attendance", __name__, url_prefix="/api/v1/attendance")


def _now() -> datetime:
    # wall-clock time of the server; department timings are local clock strings
    return datetime.now().replace(microsecond=0)


@bp.post("/check-in")
@jwt_required()
def check_in():
    d, point, photo = evidence_from_request()
    rec = attendance_service.check_in(
        current_employee_ref(),
        _now(),
        point,
        photo,
        attendance_type=(d.get("attendance_type") or "office").strip().lower(),
        reason=d.get("reason"),
        customer_name=d.get("customer_name"),
    )
    return ok(rec.to_dict(), status=201)


@bp.post("/check-out")
@jwt_required()
def check_out():
    _, point, photo = evidence_from_request()
    rec = attendance_service.check_out(current_employee_ref(), _now(), point, photo)
    return ok(rec.to_dict())


@bp.get("/today")
@jwt_required()
def today():
    day = parse_date(request.args.get("date")) or _now().date()
    rec = attendance_service.get_day_record(current_employee_ref(), day)
    return ok(rec.to_dict() if rec else None)


@bp.post("/records/<int:record_id>/review")
@requires_roles("hr", "manager")
def review(record_id: int):
    d = body_json()
    require_fields(d, "decision")
    rec = attendance_service.review_auto_correction(
        record_id,
        d["decision"],
        current_actor(),
        adjusted_check_out=parse_datetime(d.get("adjusted_check_out"), "adjusted_check_out"),
        notes=d.get("notes"),
    )
    return ok(rec.to_dict())
