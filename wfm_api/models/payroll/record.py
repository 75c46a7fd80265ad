from datetime import datetime
from wfm_api.extensions import db


def _f(v):
    return float(v) if v is not None else 0.0


class PayrollRecord(db.Model):
    """
    One row per (employee, month, year), written only by the aggregation
    engine and by explicit administrative actions. Holds computed values only
    so that a re-run over unchanged inputs leaves the row untouched.
    """
    __tablename__ = "payroll_records"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)
    month = db.Column(db.Integer, nullable=False)
    year = db.Column(db.Integer, nullable=False)

    month_days = db.Column(db.Integer, nullable=False)
    present_days = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    paid_leave_days = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    total_credited_days = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    overtime_hours = db.Column(db.Numeric(6, 2), nullable=False, default=0)
    overtime_pay = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    earned_basic = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    earned_hra = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    earned_conveyance = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    dynamic_earnings = db.Column(db.JSON, nullable=False, default=dict)
    dynamic_deductions = db.Column(db.JSON, nullable=False, default=dict)

    epf_deduction = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    esi_deduction = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    vpt_deduction = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tds_deduction = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    unpaid_leave_deduction = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    advance_deduction = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    employer_epf = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    employer_esi = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    total_earnings = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_deductions = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    net_salary = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="draft")  # draft|processed|approved|paid
    manually_adjusted = db.Column(db.Boolean, nullable=False, default=False)
    adjustments_json = db.Column(db.JSON)  # audit of manual overrides
    remarks = db.Column(db.String(255))

    approved_by = db.Column(db.String(64))
    approved_at = db.Column(db.DateTime)
    paid_at = db.Column(db.DateTime)

    employee = db.relationship("Employee", lazy="joined")

    __table_args__ = (
        db.UniqueConstraint("employee_id", "month", "year", name="uq_payroll_emp_period"),
        db.Index("ix_payroll_period", "year", "month"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "month": self.month,
            "year": self.year,
            "month_days": self.month_days,
            "present_days": _f(self.present_days),
            "paid_leave_days": _f(self.paid_leave_days),
            "total_credited_days": _f(self.total_credited_days),
            "overtime_hours": _f(self.overtime_hours),
            "overtime_pay": _f(self.overtime_pay),
            "earned_basic": _f(self.earned_basic),
            "earned_hra": _f(self.earned_hra),
            "earned_conveyance": _f(self.earned_conveyance),
            "dynamic_earnings": dict(self.dynamic_earnings or {}),
            "dynamic_deductions": dict(self.dynamic_deductions or {}),
            "epf_deduction": _f(self.epf_deduction),
            "esi_deduction": _f(self.esi_deduction),
            "vpt_deduction": _f(self.vpt_deduction),
            "tds_deduction": _f(self.tds_deduction),
            "unpaid_leave_deduction": _f(self.unpaid_leave_deduction),
            "advance_deduction": _f(self.advance_deduction),
            "employer_epf": _f(self.employer_epf),
            "employer_esi": _f(self.employer_esi),
            "total_earnings": _f(self.total_earnings),
            "total_deductions": _f(self.total_deductions),
            "net_salary": _f(self.net_salary),
            "status": self.status,
            "manually_adjusted": self.manually_adjusted,
            "remarks": self.remarks,
        }


class PayrollRun(db.Model):
    """Audit row for one bulk pass: who/when, how many records, which employees failed."""
    __tablename__ = "payroll_runs"

    id = db.Column(db.Integer, primary_key=True)
    month = db.Column(db.Integer, nullable=False)
    year = db.Column(db.Integer, nullable=False)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"))
    processed_count = db.Column(db.Integer, nullable=False, default=0)
    error_count = db.Column(db.Integer, nullable=False, default=0)
    errors_json = db.Column(db.JSON)
    triggered_by = db.Column(db.String(64))
    started_at = db.Column(db.DateTime, default=datetime.utcnow)
    finished_at = db.Column(db.DateTime)

    def to_dict(self):
        return {
            "id": self.id,
            "month": self.month,
            "year": self.year,
            "department_id": self.department_id,
            "processed_count": self.processed_count,
            "error_count": self.error_count,
            "errors": list(self.errors_json or []),
            "triggered_by": self.triggered_by,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }
