from datetime import datetime

from wfm_api.extensions import db


class Department(db.Model):
    __tablename__ = "departments"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    timing = db.relationship("DepartmentTiming", uselist=False, back_populates="department")


class DepartmentTiming(db.Model):
    """
    Working-hours configuration for a department.

    check_in_time / check_out_time are 12-hour clock strings with an explicit
    AM/PM marker ("9:30 AM"). They are validated when read, so a malformed value
    written by another tool blocks attendance instead of falling back to a guess.

    weekly_off_days holds Python weekday numbers (0 = Monday ... 6 = Sunday).
    """

    __tablename__ = "department_timings"

    id = db.Column(db.Integer, primary_key=True)
    department_id = db.Column(
        db.Integer,
        db.ForeignKey("departments.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    check_in_time = db.Column(db.String(16), nullable=False)
    check_out_time = db.Column(db.String(16), nullable=False)
    working_hours = db.Column(db.Numeric(4, 2), nullable=False, default=8)
    late_threshold_minutes = db.Column(db.Integer, nullable=False, default=15)
    overtime_threshold_minutes = db.Column(db.Integer, nullable=False, default=30)
    auto_checkout_grace_minutes = db.Column(db.Integer, nullable=False, default=120)
    weekly_off_days = db.Column(db.JSON, nullable=False, default=lambda: [6])
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, onupdate=datetime.utcnow)

    department = db.relationship("Department", back_populates="timing")

    def to_dict(self):
        return {
            "department_id": self.department_id,
            "check_in_time": self.check_in_time,
            "check_out_time": self.check_out_time,
            "working_hours": float(self.working_hours or 0),
            "late_threshold_minutes": self.late_threshold_minutes,
            "overtime_threshold_minutes": self.overtime_threshold_minutes,
            "auto_checkout_grace_minutes": self.auto_checkout_grace_minutes,
            "weekly_off_days": list(self.weekly_off_days or []),
            "is_active": self.is_active,
        }


class Holiday(db.Model):
    __tablename__ = "holidays"

    id = db.Column(db.Integer, primary_key=True)
    # null department => company-wide holiday
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id", ondelete="CASCADE"), nullable=True)
    date = db.Column(db.Date, nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    allow_ot = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("department_id", "date", name="uq_holiday_dept_date"),
    )
