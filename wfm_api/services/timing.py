# wfm_api/services/timing.py
"""
Department timing and holiday calendar.

Attendance and overtime both read the department's working window on every
request, so validated timings are kept in a small in-process cache with a TTL.
Any write through ``update_department_timing`` invalidates the department's
entry explicitly; nothing else signals staleness.
"""
from __future__ import annotations

import logging
import threading
import time as _clock
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Callable, Dict, Optional, Tuple

from flask import current_app

from wfm_api.common.errors import ConfigurationError, NotFoundError, ValidationError
from wfm_api.common.timeutils import parse_clock, dec
from wfm_api.extensions import db
from wfm_api.models.master import Department, DepartmentTiming, Holiday

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimingSnapshot:
    department_id: int
    check_in: time
    check_out: time
    working_hours: Decimal
    late_threshold_minutes: int
    overtime_threshold_minutes: int
    auto_checkout_grace_minutes: int
    weekly_off_days: Tuple[int, ...]

    def check_in_at(self, day: date) -> datetime:
        return datetime.combine(day, self.check_in)

    def check_out_at(self, day: date) -> datetime:
        return datetime.combine(day, self.check_out)

    def is_rest_day(self, day: date) -> bool:
        return day.weekday() in self.weekly_off_days


class TimingCache:
    def __init__(self, ttl_seconds: float = 300, clock: Callable[[], float] = _clock.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[int, Tuple[float, TimingSnapshot]] = {}

    def get(self, department_id: int, loader: Callable[[int], TimingSnapshot]) -> TimingSnapshot:
        now = self._clock()
        with self._lock:
            hit = self._entries.get(department_id)
            if hit and now - hit[0] < self.ttl_seconds:
                return hit[1]
        # load outside the lock; a failed load caches nothing
        snap = loader(department_id)
        with self._lock:
            self._entries[department_id] = (now, snap)
        return snap

    def invalidate(self, department_id: Optional[int] = None) -> None:
        with self._lock:
            if department_id is None:
                self._entries.clear()
            else:
                self._entries.pop(department_id, None)


def _cache() -> TimingCache:
    cache = current_app.extensions.get("timing_cache")
    if cache is None:
        cache = TimingCache(ttl_seconds=float(current_app.config.get("TIMING_CACHE_TTL_SECONDS", 300)))
        current_app.extensions["timing_cache"] = cache
    return cache


def build_snapshot(row: DepartmentTiming) -> TimingSnapshot:
    check_in = parse_clock(row.check_in_time)
    check_out = parse_clock(row.check_out_time)
    if check_out <= check_in:
        raise ConfigurationError(
            "INVALID_TIMING",
            f"Department {row.department_id}: check-out time {row.check_out_time} "
            f"is not after check-in time {row.check_in_time}",
        )
    working_hours = dec(row.working_hours)
    if working_hours <= 0:
        raise ConfigurationError("INVALID_TIMING", f"Department {row.department_id}: working hours must be positive")
    offs = row.weekly_off_days or []
    if any(not isinstance(d, int) or not 0 <= d <= 6 for d in offs):
        raise ConfigurationError("INVALID_TIMING", f"Department {row.department_id}: invalid weekly off days {offs!r}")
    return TimingSnapshot(
        department_id=row.department_id,
        check_in=check_in,
        check_out=check_out,
        working_hours=working_hours,
        late_threshold_minutes=int(row.late_threshold_minutes or 0),
        overtime_threshold_minutes=int(row.overtime_threshold_minutes or 0),
        auto_checkout_grace_minutes=int(row.auto_checkout_grace_minutes or 0),
        weekly_off_days=tuple(sorted(set(offs))),
    )


def _load(department_id: int) -> TimingSnapshot:
    row = DepartmentTiming.query.filter_by(department_id=department_id, is_active=True).first()
    if row is None:
        raise ConfigurationError(
            "TIMING_NOT_CONFIGURED",
            f"No active timing configured for department {department_id}",
        )
    return build_snapshot(row)


def get_department_timing(department_id: Optional[int]) -> TimingSnapshot:
    if department_id is None:
        raise ConfigurationError("NO_DEPARTMENT", "Employee is not assigned to a department")
    return _cache().get(department_id, _load)


def invalidate_department_timing(department_id: Optional[int] = None) -> None:
    _cache().invalidate(department_id)


_TIMING_FIELDS = (
    "check_in_time", "check_out_time", "working_hours", "late_threshold_minutes",
    "overtime_threshold_minutes", "auto_checkout_grace_minutes", "weekly_off_days", "is_active",
)


def update_department_timing(department_id: int, fields: dict) -> DepartmentTiming:
    """Create or update a department's timing; validated before commit."""
    dept = Department.query.get(department_id)
    if dept is None:
        raise NotFoundError(f"Department {department_id} not found")

    unknown = set(fields) - set(_TIMING_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown timing fields: {', '.join(sorted(unknown))}")

    row = DepartmentTiming.query.filter_by(department_id=department_id).first()
    if row is None:
        row = DepartmentTiming(
            department_id=department_id,
            working_hours=Decimal("8"),
            late_threshold_minutes=15,
            overtime_threshold_minutes=30,
            auto_checkout_grace_minutes=120,
            weekly_off_days=[6],
            is_active=True,
        )
        db.session.add(row)
    for k, v in fields.items():
        setattr(row, k, v)
    if row.check_in_time is None or row.check_out_time is None:
        db.session.rollback()
        raise ValidationError("check_in_time and check_out_time are required")

    try:
        build_snapshot(row)
    except ConfigurationError as e:
        db.session.rollback()
        raise ValidationError(e.code, e.message)

    db.session.commit()
    invalidate_department_timing(department_id)
    log.info("department %s timing updated: %s", department_id, sorted(fields))
    return row


# ---------- calendar ----------

def holiday_on(department_id: Optional[int], day: date) -> Optional[Holiday]:
    """Department-specific holiday wins over a company-wide one on the same date."""
    q = Holiday.query.filter(Holiday.date == day, Holiday.is_active.is_(True))
    rows = q.filter(db.or_(Holiday.department_id.is_(None), Holiday.department_id == department_id)).all()
    if not rows:
        return None
    rows.sort(key=lambda h: h.department_id is None)
    return rows[0]


def holiday_dates(department_id: Optional[int], start: date, end: date) -> set:
    rows = (
        db.session.query(Holiday.date)
        .filter(
            Holiday.date >= start,
            Holiday.date <= end,
            Holiday.is_active.is_(True),
            db.or_(Holiday.department_id.is_(None), Holiday.department_id == department_id),
        )
        .all()
    )
    return {r[0] for r in rows}


def is_holiday(department_id: Optional[int], day: date) -> bool:
    return holiday_on(department_id, day) is not None
