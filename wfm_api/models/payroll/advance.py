from datetime import datetime
from wfm_api.extensions import db


class SalaryAdvance(db.Model):
    __tablename__ = "salary_advances"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    monthly_deduction = db.Column(db.Numeric(12, 2), nullable=False)
    number_of_installments = db.Column(db.Integer, nullable=False, default=1)
    deduction_start_month = db.Column(db.Integer, nullable=False)  # 1..12
    deduction_start_year = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="pending")  # pending|approved|rejected|closed
    reason = db.Column(db.String(255))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    employee = db.relationship("Employee", lazy="joined")
