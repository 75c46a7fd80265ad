# wfm_api/models/payroll/__init__.py
from wfm_api.extensions import db  # noqa

from .structure import SalaryStructure
from .settings import PayrollSettings
from .advance import SalaryAdvance
from .record import PayrollRecord, PayrollRun

__all__ = [
    "SalaryStructure", "PayrollSettings", "SalaryAdvance",
    "PayrollRecord", "PayrollRun",
]
