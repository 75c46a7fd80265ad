# wfm_api/common/errors.py
from flask import Blueprint, current_app
from werkzeug.exceptions import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

bp_errors = Blueprint("errors", __name__)


class APIError(Exception):
    """Base error for anything the API reports back to the caller."""
    status_code = 400
    default_code = "BAD_REQUEST"

    def __init__(self, code=None, message=None, status_code=None, payload=None):
        # allow APIError("message") as well as APIError(code, message)
        if message is None:
            code, message = None, code
        super().__init__(message)
        self.code = code or self.default_code
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        d = {"code": self.code, "message": self.message}
        if self.payload:
            d["detail"] = self.payload
        return d


class ValidationError(APIError):
    status_code = 422
    default_code = "VALIDATION_ERROR"


class NotFoundError(APIError):
    status_code = 404
    default_code = "NOT_FOUND"


class ConflictError(APIError):
    """A guarded state transition whose precondition no longer holds."""
    status_code = 409
    default_code = "CONFLICT"


class ConfigurationError(APIError):
    """Missing or malformed configuration; never silently defaulted."""
    status_code = 422
    default_code = "CONFIGURATION_ERROR"


class IdentityResolutionError(APIError):
    status_code = 422
    default_code = "IDENTITY_UNRESOLVED"


class ExternalServiceError(APIError):
    status_code = 502
    default_code = "EXTERNAL_SERVICE_ERROR"


def _fail(*args, **kwargs):
    from wfm_api.common.http import fail
    return fail(*args, **kwargs)


@bp_errors.app_errorhandler(APIError)
def _api_error(e: APIError):
    return _fail(message=e.message, status=e.status_code, code=e.code, detail=e.payload)

@bp_errors.app_errorhandler(HTTPException)
def _http(e: HTTPException):
    return _fail(message=e.description or "HTTP error", status=e.code or 400)

@bp_errors.app_errorhandler(IntegrityError)
def _integrity(e: IntegrityError):
    # 409 for unique/FK violations
    return _fail(message="Conflict / integrity error", status=409, code="CONSTRAINT_ERROR",
                 detail=str(e.orig) if getattr(e, "orig", None) else str(e))

@bp_errors.app_errorhandler(StaleDataError)
def _stale(e: StaleDataError):
    return _fail(message="Record was modified concurrently, retry", status=409, code="CONCURRENT_UPDATE")

@bp_errors.app_errorhandler(Exception)
def _unhandled(e: Exception):
    current_app.logger.exception(e)
    return _fail(message="Internal Server Error", status=500)
