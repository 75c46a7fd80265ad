from datetime import date, time

import pytest

from wfm_api.common.errors import ConfigurationError, ValidationError
from wfm_api.common.timeutils import format_clock, parse_clock
from wfm_api.extensions import db
from wfm_api.models.master import Department, DepartmentTiming, Holiday
from wfm_api.services.timing import (
    TimingCache,
    get_department_timing,
    holiday_on,
    update_department_timing,
)


@pytest.mark.parametrize("text,expected", [
    ("9:00 AM", time(9, 0)),
    ("09:30 am", time(9, 30)),
    ("6:00 PM", time(18, 0)),
    ("06:45pm", time(18, 45)),
    ("12:00 AM", time(0, 0)),
    ("12:15 PM", time(12, 15)),
])
def test_parse_clock_twelve_hour(text, expected):
    assert parse_clock(text) == expected


@pytest.mark.parametrize("text", ["18:00", "9:00", "", None, "13:00 PM", "9:75 AM", "nine AM"])
def test_parse_clock_rejects_malformed(text):
    with pytest.raises(ConfigurationError) as ei:
        parse_clock(text)
    assert ei.value.code == "INVALID_TIME_FORMAT"


def test_format_clock_round_trips_display_form():
    assert format_clock(time(18, 0)) == "6:00 PM"
    assert format_clock(time(0, 5)) == "12:05 AM"
    assert parse_clock(format_clock(time(13, 40))) == time(13, 40)


def test_cache_serves_until_ttl_then_reloads():
    now = [100.0]
    loads = []
    cache = TimingCache(ttl_seconds=60, clock=lambda: now[0])

    def loader(dept_id):
        loads.append(dept_id)
        return f"snap-{len(loads)}"

    assert cache.get(1, loader) == "snap-1"
    now[0] += 30
    assert cache.get(1, loader) == "snap-1"
    now[0] += 31
    assert cache.get(1, loader) == "snap-2"

    cache.invalidate(1)
    assert cache.get(1, loader) == "snap-3"
    assert loads == [1, 1, 1]


def test_failed_load_is_not_cached():
    cache = TimingCache(ttl_seconds=60)
    calls = []

    def broken(dept_id):
        calls.append(dept_id)
        raise ConfigurationError("INVALID_TIME_FORMAT", "bad")

    for _ in range(2):
        with pytest.raises(ConfigurationError):
            cache.get(7, broken)
    assert calls == [7, 7]


def test_timing_snapshot_for_department(dept):
    snap = get_department_timing(dept.id)
    assert snap.check_in == time(9, 0)
    assert snap.check_out == time(18, 0)
    assert snap.is_rest_day(date(2025, 6, 1))       # Sunday
    assert not snap.is_rest_day(date(2025, 6, 2))
    assert snap.check_in_at(date(2025, 6, 2)).hour == 9


def test_missing_timing_and_department(app):
    d = Department(name="No Timing")
    db.session.add(d); db.session.commit()
    with pytest.raises(ConfigurationError) as ei:
        get_department_timing(d.id)
    assert ei.value.code == "TIMING_NOT_CONFIGURED"
    with pytest.raises(ConfigurationError) as ei:
        get_department_timing(None)
    assert ei.value.code == "NO_DEPARTMENT"


def test_malformed_stored_timing_is_an_error_not_a_default(dept):
    row = DepartmentTiming.query.filter_by(department_id=dept.id).one()
    row.check_in_time = "09:00"   # no AM/PM marker
    db.session.commit()
    with pytest.raises(ConfigurationError) as ei:
        get_department_timing(dept.id)
    assert ei.value.code == "INVALID_TIME_FORMAT"


def test_update_invalidates_cached_timing(dept):
    assert get_department_timing(dept.id).check_in == time(9, 0)
    update_department_timing(dept.id, {"check_in_time": "10:00 AM"})
    assert get_department_timing(dept.id).check_in == time(10, 0)


def test_update_rejects_inverted_window(dept):
    with pytest.raises(ValidationError) as ei:
        update_department_timing(dept.id, {"check_in_time": "7:00 PM"})
    assert ei.value.code == "INVALID_TIMING"
    row = DepartmentTiming.query.filter_by(department_id=dept.id).one()
    assert row.check_in_time == "9:00 AM"


def test_update_rejects_unknown_fields(dept):
    with pytest.raises(ValidationError):
        update_department_timing(dept.id, {"lunch_break": "1:00 PM"})


def test_update_creates_timing_for_new_department(app):
    d = Department(name="Sales")
    db.session.add(d); db.session.commit()
    row = update_department_timing(d.id, {"check_in_time": "10:00 AM", "check_out_time": "7:00 PM"})
    assert row.late_threshold_minutes == 15
    assert get_department_timing(d.id).weekly_off_days == (6,)


def test_department_holiday_wins_over_company_holiday(dept):
    day = date(2025, 6, 16)
    db.session.add(Holiday(department_id=None, date=day, name="Company Day", allow_ot=False))
    db.session.add(Holiday(department_id=dept.id, date=day, name="Ops Offsite", allow_ot=True))
    db.session.commit()
    assert holiday_on(dept.id, day).name == "Ops Offsite"
    assert holiday_on(None, day).name == "Company Day"
    assert holiday_on(dept.id, date(2025, 6, 17)) is None
