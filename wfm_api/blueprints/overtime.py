from datetime import datetime

from flask import Blueprint
from flask_jwt_extended import jwt_required

from wfm_api.blueprints._evidence import evidence_from_request
from wfm_api.common.auth import current_employee_ref
from wfm_api.common.http import ok
from wfm_api.services import overtime_service

bp = Blueprint("overtime", __name__, url_prefix="/api/v1/overtime")


def _now() -> datetime:
    return datetime.now().replace(microsecond=0)


@bp.post("/start")
@jwt_required()
def start():
    d, point, photo = evidence_from_request()
    rec = overtime_service.start_overtime(current_employee_ref(), _now(), point, photo, reason=d.get("reason"))
    return ok(rec.to_dict(), status=201)


@bp.post("/end")
@jwt_required()
def end():
    _, point, photo = evidence_from_request()
    rec = overtime_service.end_overtime(current_employee_ref(), _now(), point, photo)
    return ok(rec.to_dict())
