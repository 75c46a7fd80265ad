# wfm_api/services/identity.py
from __future__ import annotations

import logging

from wfm_api.common.errors import IdentityResolutionError
from wfm_api.models.employee import Employee

log = logging.getLogger(__name__)


def resolve_employee(ref, *, require_active: bool = True) -> Employee:
    """
    Map an employee reference to exactly one Employee.

    Accepted forms:
      - an Employee instance or an int / digit string  -> Employee.id
      - "user:<id>"                                     -> Employee.user_id
      - any other string                                -> Employee.code

    Only the one form implied by the reference is tried. Nothing is retried
    under a second identifier, so an unknown reference fails here instead of
    quietly producing an empty attendance or leave history downstream.
    """
    if isinstance(ref, Employee):
        emp = ref
    elif ref is None or (isinstance(ref, str) and not ref.strip()):
        raise IdentityResolutionError("Employee reference is required")
    elif isinstance(ref, int) or (isinstance(ref, str) and ref.strip().isdigit()):
        emp = Employee.query.get(int(ref))
    elif isinstance(ref, str) and ref.startswith("user:"):
        uid = ref.split(":", 1)[1].strip()
        if not uid.isdigit():
            raise IdentityResolutionError(f"Invalid user reference {ref!r}")
        emp = Employee.query.filter_by(user_id=int(uid)).one_or_none()
    elif isinstance(ref, str):
        emp = Employee.query.filter_by(code=ref.strip()).one_or_none()
    else:
        raise IdentityResolutionError(f"Unsupported employee reference {ref!r}")

    if emp is None:
        log.warning("employee reference %r did not resolve", ref)
        raise IdentityResolutionError(f"No employee matches reference {ref!r}")
    if require_active and (emp.status or "active") != "active":
        raise IdentityResolutionError(f"Employee {emp.id} is not active")
    return emp


def resolve_employee_id(ref, **kwargs) -> int:
    return resolve_employee(ref, **kwargs).id
