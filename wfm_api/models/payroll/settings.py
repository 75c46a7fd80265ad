from datetime import datetime, date
from decimal import Decimal
from wfm_api.extensions import db


class PayrollSettings(db.Model):
    """Company-wide payroll parameters. Rates are fractions (0.12 == 12%)."""
    __tablename__ = "payroll_settings"

    id = db.Column(db.Integer, primary_key=True)

    epf_employee_rate = db.Column(db.Numeric(6, 4), nullable=False, default=Decimal("0.12"))
    epf_employer_rate = db.Column(db.Numeric(6, 4), nullable=False, default=Decimal("0.12"))
    epf_ceiling_amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("1800"))
    esi_employee_rate = db.Column(db.Numeric(6, 4), nullable=False, default=Decimal("0.0075"))
    esi_employer_rate = db.Column(db.Numeric(6, 4), nullable=False, default=Decimal("0.0325"))
    esi_threshold = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("21000"))

    standard_daily_hours = db.Column(db.Numeric(4, 2), nullable=False, default=Decimal("8"))
    overtime_rate_multiplier = db.Column(db.Numeric(6, 2), nullable=False, default=Decimal("1.0"))
    half_day_credit = db.Column(db.Numeric(3, 2), nullable=False, default=Decimal("0.5"))
    # drop auto-corrected days still waiting for admin review from the day count
    exclude_unreviewed_attendance = db.Column(db.Boolean, nullable=False, default=False)

    effective_from = db.Column(db.Date, nullable=False, default=date.today)
    effective_to = db.Column(db.Date)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.Index("ix_payroll_settings_active", "effective_from", "effective_to"),
    )
