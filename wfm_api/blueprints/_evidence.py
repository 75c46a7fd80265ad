# wfm_api/blueprints/_evidence.py
from flask import request

from wfm_api.common.http import body_json
from wfm_api.services.media import GeoPoint


def evidence_from_request():
    """
    (payload, GeoPoint, photo) from either a JSON body with a base64 "photo"
    or a multipart form with a "photo" file and plain fields.
    """
    if request.files:
        d = request.form.to_dict()
        f = request.files.get("photo")
        photo = f.read() if f is not None else None
    else:
        d = body_json()
        photo = d.get("photo")
    loc = d.get("location") if isinstance(d.get("location"), dict) else d
    return d, GeoPoint.from_payload(loc), photo
