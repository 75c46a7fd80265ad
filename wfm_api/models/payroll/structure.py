from datetime import datetime
from wfm_api.extensions import db


class SalaryStructure(db.Model):
    """
    Effective-dated salary configuration: active when
    effective_from <= day and (effective_to is null or day < effective_to).
    """
    __tablename__ = "salary_structures"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)

    fixed_basic = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    fixed_hra = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    fixed_conveyance = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    custom_earnings = db.Column(db.JSON, nullable=False, default=dict)     # {"Special Allowance": 1500}
    custom_deductions = db.Column(db.JSON, nullable=False, default=dict)   # {"Canteen": 300}

    epf_applicable = db.Column(db.Boolean, nullable=False, default=True)
    esi_applicable = db.Column(db.Boolean, nullable=False, default=False)
    vpt_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    per_day_salary_base = db.Column(db.String(16), nullable=False, default="basic_hra")  # basic|basic_hra|gross
    # superseded by PayrollSettings.overtime_rate_multiplier; kept for history
    overtime_rate_multiplier = db.Column(db.Numeric(6, 2))

    effective_from = db.Column(db.Date, nullable=False)
    effective_to = db.Column(db.Date)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    employee = db.relationship("Employee", lazy="joined")

    __table_args__ = (
        db.Index("ix_salary_structures_emp_active", "employee_id", "effective_from", "effective_to"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "fixed_basic": float(self.fixed_basic),
            "fixed_hra": float(self.fixed_hra),
            "fixed_conveyance": float(self.fixed_conveyance),
            "custom_earnings": dict(self.custom_earnings or {}),
            "custom_deductions": dict(self.custom_deductions or {}),
            "epf_applicable": self.epf_applicable,
            "esi_applicable": self.esi_applicable,
            "vpt_amount": float(self.vpt_amount or 0),
            "per_day_salary_base": self.per_day_salary_base,
            "effective_from": self.effective_from.isoformat(),
            "effective_to": self.effective_to.isoformat() if self.effective_to else None,
        }
