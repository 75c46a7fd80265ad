# wfm_api/models/attendance.py
from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import CheckConstraint, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wfm_api.extensions import db


ATTENDANCE_TYPES = ("office", "remote", "field_work")
ATTENDANCE_STATUSES = ("present", "late", "half_day", "early_checkout", "absent", "overtime")
OT_STATUSES = ("not_started", "in_progress", "completed")
OT_TYPES = ("early_arrival", "late_departure", "weekend", "holiday")
REVIEW_STATUSES = ("pending", "accepted", "adjusted", "rejected")


def _iso(v):
    return v.isoformat() if v is not None else None


def _num(v):
    return float(v) if v is not None else None


class AttendanceRecord(db.Model):
    """
    One row per (employee, calendar day).

    Created by the first check-in (or by an overtime session on a day with no
    regular attendance), then mutated by check-out, the overtime session
    manager and the auto-checkout sweep. The manual overtime session lives in
    the ot_* columns; there is at most one per day.

    version_id guards every transition: two writers that read the same state
    cannot both commit (the loser gets StaleDataError).
    """

    __tablename__ = "attendance_records"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"), index=True, nullable=False
    )
    work_date: Mapped[date] = mapped_column(db.Date, index=True, nullable=False)

    attendance_type: Mapped[str] = mapped_column(db.String(16), nullable=False, default="office")
    status: Mapped[str] = mapped_column(db.String(16), nullable=False, default="present")
    reason: Mapped[Optional[str]] = mapped_column(db.Text, nullable=True)
    customer_name: Mapped[Optional[str]] = mapped_column(db.String(255), nullable=True)

    # check-in evidence
    check_in_time: Mapped[Optional[datetime]] = mapped_column(db.DateTime, nullable=True)
    check_in_lat: Mapped[Optional[float]] = mapped_column(db.Numeric(9, 6), nullable=True)
    check_in_lon: Mapped[Optional[float]] = mapped_column(db.Numeric(9, 6), nullable=True)
    check_in_accuracy_m: Mapped[Optional[float]] = mapped_column(db.Numeric(8, 2), nullable=True)
    check_in_address: Mapped[Optional[str]] = mapped_column(db.Text, nullable=True)
    check_in_photo_url: Mapped[Optional[str]] = mapped_column(db.Text, nullable=True)

    # check-out evidence
    check_out_time: Mapped[Optional[datetime]] = mapped_column(db.DateTime, nullable=True)
    check_out_lat: Mapped[Optional[float]] = mapped_column(db.Numeric(9, 6), nullable=True)
    check_out_lon: Mapped[Optional[float]] = mapped_column(db.Numeric(9, 6), nullable=True)
    check_out_accuracy_m: Mapped[Optional[float]] = mapped_column(db.Numeric(8, 2), nullable=True)
    check_out_address: Mapped[Optional[str]] = mapped_column(db.Text, nullable=True)
    check_out_photo_url: Mapped[Optional[str]] = mapped_column(db.Text, nullable=True)

    is_late: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    late_minutes: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    regular_hours: Mapped[Optional[float]] = mapped_column(db.Numeric(6, 2), nullable=True)
    working_hours: Mapped[Optional[float]] = mapped_column(db.Numeric(6, 2), nullable=True)
    overtime_hours: Mapped[Optional[float]] = mapped_column(db.Numeric(6, 2), nullable=True)

    # manual overtime session
    ot_status: Mapped[str] = mapped_column(db.String(16), nullable=False, default="not_started")
    ot_type: Mapped[Optional[str]] = mapped_column(db.String(16), nullable=True)
    ot_reason: Mapped[Optional[str]] = mapped_column(db.Text, nullable=True)
    ot_start_time: Mapped[Optional[datetime]] = mapped_column(db.DateTime, nullable=True)
    ot_start_lat: Mapped[Optional[float]] = mapped_column(db.Numeric(9, 6), nullable=True)
    ot_start_lon: Mapped[Optional[float]] = mapped_column(db.Numeric(9, 6), nullable=True)
    ot_start_address: Mapped[Optional[str]] = mapped_column(db.Text, nullable=True)
    ot_start_photo_url: Mapped[Optional[str]] = mapped_column(db.Text, nullable=True)
    ot_end_time: Mapped[Optional[datetime]] = mapped_column(db.DateTime, nullable=True)
    ot_end_lat: Mapped[Optional[float]] = mapped_column(db.Numeric(9, 6), nullable=True)
    ot_end_lon: Mapped[Optional[float]] = mapped_column(db.Numeric(9, 6), nullable=True)
    ot_end_address: Mapped[Optional[str]] = mapped_column(db.Text, nullable=True)
    ot_end_photo_url: Mapped[Optional[str]] = mapped_column(db.Text, nullable=True)
    manual_ot_hours: Mapped[Optional[float]] = mapped_column(db.Numeric(6, 2), nullable=True)

    # auto-checkout sweep + admin review
    auto_corrected: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    auto_corrected_at: Mapped[Optional[datetime]] = mapped_column(db.DateTime, nullable=True)
    auto_correction_reason: Mapped[Optional[str]] = mapped_column(db.Text, nullable=True)
    admin_review_status: Mapped[Optional[str]] = mapped_column(db.String(16), nullable=True)
    reviewed_by: Mapped[Optional[str]] = mapped_column(db.String(64), nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(db.DateTime, nullable=True)
    review_notes: Mapped[Optional[str]] = mapped_column(db.Text, nullable=True)

    version_id: Mapped[int] = mapped_column(db.Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(onupdate=func.now(), nullable=True)

    employee = relationship("Employee", lazy="joined")

    __table_args__ = (
        UniqueConstraint("employee_id", "work_date", name="uq_attendance_emp_date"),
        CheckConstraint(
            "check_out_time IS NULL OR check_in_time IS NULL OR check_out_time > check_in_time",
            name="ck_attendance_out_after_in",
        ),
        CheckConstraint(
            "ot_end_time IS NULL OR ot_start_time IS NULL OR ot_end_time > ot_start_time",
            name="ck_attendance_ot_end_after_start",
        ),
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.check_in_time is not None and self.check_out_time is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "date": _iso(self.work_date),
            "attendance_type": self.attendance_type,
            "status": self.status,
            "reason": self.reason,
            "customer_name": self.customer_name,
            "check_in": {
                "time": _iso(self.check_in_time),
                "lat": _num(self.check_in_lat),
                "lon": _num(self.check_in_lon),
                "accuracy_m": _num(self.check_in_accuracy_m),
                "address": self.check_in_address,
                "photo_url": self.check_in_photo_url,
            },
            "check_out": {
                "time": _iso(self.check_out_time),
                "lat": _num(self.check_out_lat),
                "lon": _num(self.check_out_lon),
                "accuracy_m": _num(self.check_out_accuracy_m),
                "address": self.check_out_address,
                "photo_url": self.check_out_photo_url,
            },
            "is_late": self.is_late,
            "late_minutes": self.late_minutes,
            "regular_hours": _num(self.regular_hours),
            "working_hours": _num(self.working_hours),
            "overtime_hours": _num(self.overtime_hours),
            "overtime": {
                "status": self.ot_status,
                "type": self.ot_type,
                "reason": self.ot_reason,
                "start_time": _iso(self.ot_start_time),
                "start_address": self.ot_start_address,
                "start_photo_url": self.ot_start_photo_url,
                "end_time": _iso(self.ot_end_time),
                "end_address": self.ot_end_address,
                "end_photo_url": self.ot_end_photo_url,
                "hours": _num(self.manual_ot_hours),
            },
            "auto_corrected": self.auto_corrected,
            "auto_corrected_at": _iso(self.auto_corrected_at),
            "auto_correction_reason": self.auto_correction_reason,
            "admin_review_status": self.admin_review_status,
        }
