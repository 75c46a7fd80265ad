# wfm_api/common/http.py
from datetime import datetime, date
from decimal import Decimal, InvalidOperation

from flask import jsonify, request

from wfm_api.common.errors import ValidationError


def ok(data=None, status=200, **meta):
    payload = {"success": True, "data": data}
    if meta:
        payload["meta"] = meta
    return jsonify(payload), status

def fail(message="Bad Request", status=400, code=None, detail=None, errors=None):
    err = {"message": message}
    if code: err["code"] = code
    if detail: err["detail"] = detail
    if errors: err["errors"] = errors
    return jsonify({"success": False, "error": err}), status


# ---------- request parsing ----------

def body_json() -> dict:
    d = request.get_json(silent=True)
    return d if isinstance(d, dict) else {}

def require_fields(d: dict, *names: str):
    missing = [n for n in names if d.get(n) in (None, "")]
    if missing:
        raise ValidationError("Missing required fields", payload={"missing": missing})

def parse_date(s, field="date") -> date | None:
    if s in (None, ""):
        return None
    if isinstance(s, date):
        return s
    for fmt in ("%Y-%m-%d", "%d-%m-%Y"):
        try:
            return datetime.strptime(str(s), fmt).date()
        except ValueError:
            pass
    raise ValidationError(f"Invalid {field}: {s!r}")

def parse_datetime(s, field="time") -> datetime | None:
    if s in (None, ""):
        return None
    try:
        return datetime.fromisoformat(str(s))
    except ValueError:
        raise ValidationError(f"Invalid {field}: {s!r}")

def parse_decimal(v, field="amount") -> Decimal | None:
    if v in (None, ""):
        return None
    try:
        return Decimal(str(v))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid {field}: {v!r}")
