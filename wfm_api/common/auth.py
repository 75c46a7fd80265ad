# wfm_api/common/auth.py
from __future__ import annotations

from functools import wraps
from typing import Set

from flask_jwt_extended import jwt_required, get_jwt, get_jwt_identity

from wfm_api.common.http import fail


def current_roles() -> Set[str]:
    claims = get_jwt() or {}
    return {str(r).lower() for r in (claims.get("roles") or [])}


def current_actor() -> str:
    """Identity string stamped on audit fields (reviewed_by, acted_by...)."""
    ident = get_jwt_identity()
    return str(ident) if ident is not None else "system"


def current_employee_ref() -> str | None:
    """
    The employee reference carried by the token.

    Tokens issued by the identity provider carry the employee id as the
    subject; an explicit ``employee_id`` claim wins when present. The value is
    handed to the identity resolver unchanged.
    """
    claims = get_jwt() or {}
    ref = claims.get("employee_id")
    if ref is None:
        ref = get_jwt_identity()
    return None if ref is None else str(ref)


def requires_roles(*codes: str):
    """
    Require that the current user has AT LEAST ONE of the given role codes.
    Roles come from the 'roles' claim; 'admin' always passes.
    """
    wanted = {c.lower() for c in codes}

    def outer(fn):
        @wraps(fn)
        @jwt_required()
        def inner(*args, **kwargs):
            roles = current_roles()
            if "admin" in roles:
                return fn(*args, **kwargs)
            if get_jwt_identity() is None:
                return fail("Unauthorized", status=401)
            if not roles & wanted:
                return fail("Forbidden", status=403, code="FORBIDDEN")
            return fn(*args, **kwargs)
        return inner
    return outer
