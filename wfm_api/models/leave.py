from datetime import datetime
from decimal import Decimal

from wfm_api.extensions import db

LEAVE_TYPES = ("casual", "unpaid", "permission")
PENDING_STATUSES = ("pending_tl", "pending_hr")
TERMINAL_STATUSES = ("approved", "rejected_by_tl", "rejected_by_hr", "cancelled")


class LeaveBalance(db.Model):
    __tablename__ = "leave_balances"
    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, unique=True)
    casual_accrued = db.Column(db.Numeric(6, 2), nullable=False, default=0)
    casual_used = db.Column(db.Numeric(6, 2), nullable=False, default=0)
    permission_hours_accrued = db.Column(db.Numeric(6, 2), nullable=False, default=0)
    permission_hours_used = db.Column(db.Numeric(6, 2), nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, onupdate=datetime.utcnow)

    @property
    def casual_available(self) -> Decimal:
        return Decimal(self.casual_accrued or 0) - Decimal(self.casual_used or 0)

    @property
    def permission_hours_available(self) -> Decimal:
        return Decimal(self.permission_hours_accrued or 0) - Decimal(self.permission_hours_used or 0)

    def to_dict(self):
        return {
            "employee_id": self.employee_id,
            "casual": {
                "accrued": float(self.casual_accrued or 0),
                "used": float(self.casual_used or 0),
                "available": float(self.casual_available),
            },
            "permission_hours": {
                "accrued": float(self.permission_hours_accrued or 0),
                "used": float(self.permission_hours_used or 0),
                "available": float(self.permission_hours_available),
            },
        }


class LeaveAccrual(db.Model):
    """One credit per employee per month; the unique key makes accrual re-runnable."""
    __tablename__ = "leave_accruals"
    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    period = db.Column(db.String(7), nullable=False)  # YYYY-MM
    casual_days = db.Column(db.Numeric(6, 2), nullable=False, default=0)
    permission_hours = db.Column(db.Numeric(6, 2), nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("employee_id", "period", name="uq_leave_accrual_emp_period"),
    )


class LeaveApplication(db.Model):
    __tablename__ = "leave_applications"
    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    leave_type = db.Column(db.String(16), nullable=False)  # casual|unpaid|permission
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    total_days = db.Column(db.Numeric(5, 2), nullable=False)
    permission_date = db.Column(db.Date)
    permission_hours = db.Column(db.Numeric(4, 2))
    reason = db.Column(db.Text)
    # pending_tl|pending_hr|approved|rejected_by_tl|rejected_by_hr|cancelled
    status = db.Column(db.String(20), nullable=False, default="pending_tl")

    affects_payroll = db.Column(db.Boolean, nullable=False, default=False)
    deduction_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    # {"YYYY-MM": "amount"}; each payroll month takes only its own share
    deduction_by_month = db.Column(db.JSON)

    # casual application whose overage was re-typed as unpaid points at the unpaid sibling
    linked_application_id = db.Column(db.Integer, db.ForeignKey("leave_applications.id", ondelete="SET NULL"))

    tl_action_by = db.Column(db.String(64))
    tl_action_at = db.Column(db.DateTime)
    hr_action_by = db.Column(db.String(64))
    hr_action_at = db.Column(db.DateTime)
    rejection_reason = db.Column(db.Text)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, onupdate=datetime.utcnow)

    employee = db.relationship("Employee", backref="leave_applications")
    linked_application = db.relationship("LeaveApplication", remote_side=[id], uselist=False)

    __table_args__ = (
        db.Index("ix_leave_app_emp_dates", "employee_id", "start_date", "end_date"),
    )

    @property
    def is_pending(self):
        return self.status in PENDING_STATUSES

    def to_dict(self, with_linked=True):
        d = {
            "id": self.id,
            "employee_id": self.employee_id,
            "leave_type": self.leave_type,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "total_days": float(self.total_days),
            "permission_date": self.permission_date.isoformat() if self.permission_date else None,
            "permission_hours": float(self.permission_hours) if self.permission_hours is not None else None,
            "reason": self.reason,
            "status": self.status,
            "affects_payroll": self.affects_payroll,
            "deduction_amount": float(self.deduction_amount or 0),
            "deduction_by_month": {k: float(v) for k, v in (self.deduction_by_month or {}).items()},
            "rejection_reason": self.rejection_reason,
            "linked_application_id": self.linked_application_id,
        }
        if with_linked and self.linked_application is not None:
            d["linked_application"] = self.linked_application.to_dict(with_linked=False)
        return d


class LeaveApprovalAction(db.Model):
    __tablename__ = "leave_approval_actions"
    id = db.Column(db.Integer, primary_key=True)
    leave_application_id = db.Column(db.Integer, db.ForeignKey("leave_applications.id", ondelete="CASCADE"), nullable=False, index=True)
    level = db.Column(db.String(8))  # tl|hr|employee
    action = db.Column(db.String(20), nullable=False)  # applied|approved|rejected|cancelled
    comment = db.Column(db.Text)
    acted_by = db.Column(db.String(64))
    acted_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
