"""Tests for the mode scheduler: time zone rules, sleep window and sleep gating."""

from datetime import UTC, datetime, timedelta, timezone

import pytest

from spawnkit.engine.scheduler import (
    dst_bounds,
    format_local_time,
    is_daylight_saving,
    local_date,
    local_time,
    mode_for,
    parse_timestamp,
    should_run_sleep,
)
from spawnkit.memory.schemas import AgentRecord


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=UTC)


class TestDaylightSaving:
    def test_bounds_2026(self):
        """Second Sunday of March and first Sunday of November, at 02:00 local."""
        start, end = dst_bounds(2026)
        assert start == _utc(2026, 3, 8, 7, 0)
        assert end == _utc(2026, 11, 1, 6, 0)

    def test_spring_forward_boundary(self):
        assert not is_daylight_saving(_utc(2026, 3, 8, 6, 59))
        assert is_daylight_saving(_utc(2026, 3, 8, 7, 0))
        assert local_time(_utc(2026, 3, 8, 6, 59)).hour == 1
        assert local_time(_utc(2026, 3, 8, 7, 0)).hour == 3

    def test_fall_back_boundary(self):
        assert is_daylight_saving(_utc(2026, 11, 1, 5, 59))
        assert not is_daylight_saving(_utc(2026, 11, 1, 6, 0))
        assert local_time(_utc(2026, 11, 1, 5, 59)).tzname() == "EDT"
        assert local_time(_utc(2026, 11, 1, 6, 0)).tzname() == "EST"

    def test_offsets(self):
        assert local_time(_utc(2026, 7, 1, 12)).utcoffset() == timedelta(hours=-4)
        assert local_time(_utc(2026, 1, 1, 12)).utcoffset() == timedelta(hours=-5)

    def test_naive_datetime_is_utc(self):
        assert local_time(datetime(2026, 7, 1, 12)) == local_time(_utc(2026, 7, 1, 12))


class TestModeFor:
    @pytest.mark.parametrize(
        "now, expected",
        [
            (_utc(2026, 6, 15, 6, 59), "awake"),  # 02:59 EDT
            (_utc(2026, 6, 15, 7, 0), "sleep"),  # 03:00 EDT
            (_utc(2026, 6, 15, 8, 59), "sleep"),  # 04:59 EDT
            (_utc(2026, 6, 15, 9, 0), "awake"),  # 05:00 EDT
            (_utc(2026, 1, 15, 7, 59), "awake"),  # 02:59 EST
            (_utc(2026, 1, 15, 8, 0), "sleep"),  # 03:00 EST
            (_utc(2026, 1, 15, 10, 0), "awake"),  # 05:00 EST
        ],
    )
    def test_sleep_window(self, now, expected):
        assert mode_for(now) == expected

    def test_spring_forward_lands_in_sleep(self):
        """01:59 EST is followed by 03:00 EDT, which is already sleep."""
        assert mode_for(_utc(2026, 3, 8, 6, 59)) == "awake"
        assert mode_for(_utc(2026, 3, 8, 7, 0)) == "sleep"

    def test_custom_window(self):
        now = _utc(2026, 6, 15, 5, 30)  # 01:30 EDT
        assert mode_for(now) == "awake"
        assert mode_for(now, sleep_start_hour=1, sleep_end_hour=2) == "sleep"

    def test_accepts_aware_non_utc_input(self):
        eastern = timezone(timedelta(hours=-4))
        assert mode_for(datetime(2026, 6, 15, 3, 30, tzinfo=eastern)) == "sleep"


class TestLocalDate:
    def test_late_evening_utc_is_previous_local_day(self):
        assert local_date(_utc(2026, 6, 15, 3, 30)) == "2026-06-14"

    def test_midday(self):
        assert local_date(_utc(2026, 6, 15, 16, 0)) == "2026-06-15"


class TestFormatLocalTime:
    def test_morning(self):
        assert format_local_time(_utc(2026, 6, 15, 13, 5)) == "9:05 AM EDT"

    def test_noon_and_midnight(self):
        assert format_local_time(_utc(2026, 1, 15, 17, 0)) == "12:00 PM EST"
        assert format_local_time(_utc(2026, 1, 15, 5, 0)) == "12:00 AM EST"


class TestShouldRunSleep:
    def test_never_slept(self):
        agent = AgentRecord(agent_id="a")
        assert should_run_sleep(agent, "2026-06-15") is True

    def test_already_slept_today(self):
        agent = AgentRecord(agent_id="a", last_slept="2026-06-15")
        assert should_run_sleep(agent, "2026-06-15") is False

    def test_slept_yesterday(self):
        agent = AgentRecord(agent_id="a", last_slept="2026-06-14")
        assert should_run_sleep(agent, "2026-06-15") is True


class TestParseTimestamp:
    def test_offset_converted_to_utc(self):
        assert parse_timestamp("2026-06-15T12:00:00-04:00") == _utc(2026, 6, 15, 16, 0)

    def test_naive_is_utc(self):
        assert parse_timestamp("2026-06-15T07:30:00") == _utc(2026, 6, 15, 7, 30)

    def test_garbage_rejected(self):
        with pytest.raises(ValueError):
            parse_timestamp("not a time")
