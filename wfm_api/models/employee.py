from datetime import datetime

from wfm_api.extensions import db


class Employee(db.Model):
    __tablename__ = "employees"

    id = db.Column(db.Integer, primary_key=True)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id", ondelete="RESTRICT"), nullable=True)
    # identity-provider user id; unique so it maps to exactly one employee
    user_id = db.Column(db.Integer, nullable=True, unique=True)

    code = db.Column(db.String(32), nullable=False, unique=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    first_name = db.Column(db.String(80), nullable=False)
    last_name = db.Column(db.String(80), nullable=True)

    doj = db.Column(db.Date, nullable=True)   # date of joining
    status = db.Column(db.String(16), default="active", nullable=False)  # active/inactive

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.Index("ix_emp_dept_id", "department_id"),
    )

    department = db.relationship("Department", lazy="joined")

    @property
    def full_name(self):
        return " ".join(p for p in (self.first_name, self.last_name) if p)
