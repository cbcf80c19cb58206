"""Mode scheduler — maps wall-clock time to awake/sleep.

Scheduling runs on US Eastern time with a fixed daylight-saving rule:
UTC-4 from the second Sunday of March (02:00 EST) until the first Sunday
of November (02:00 EDT), UTC-5 otherwise. Agents sleep while the local
hour is in [sleep_start_hour, sleep_end_hour).

Everything here is pure; "today" is always the scheduler-local date.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta, timezone

from dateutil import parser as dateutil_parser

from spawnkit.memory.schemas import AgentRecord, Mode

EST = timezone(timedelta(hours=-5), "EST")
EDT = timezone(timedelta(hours=-4), "EDT")

SLEEP_START_HOUR = 3
SLEEP_END_HOUR = 5

# Transitions happen at 02:00 local standard/daylight time
_DST_START_UTC_HOUR = 7  # 02:00 EST
_DST_END_UTC_HOUR = 6  # 02:00 EDT


def _nth_sunday(year: int, month: int, n: int) -> date:
    first = date(year, month, 1)
    offset = (6 - first.weekday()) % 7  # weekday(): Monday=0 .. Sunday=6
    return first + timedelta(days=offset + 7 * (n - 1))


def _as_utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=UTC)
    return now.astimezone(UTC)


def dst_bounds(year: int) -> tuple[datetime, datetime]:
    """UTC instants at which daylight saving starts and ends in ``year``."""
    start = _nth_sunday(year, 3, 2)
    end = _nth_sunday(year, 11, 1)
    return (
        datetime(start.year, start.month, start.day, _DST_START_UTC_HOUR, tzinfo=UTC),
        datetime(end.year, end.month, end.day, _DST_END_UTC_HOUR, tzinfo=UTC),
    )


def is_daylight_saving(now: datetime) -> bool:
    utc = _as_utc(now)
    start, end = dst_bounds(utc.year)
    return start <= utc < end


def local_time(now: datetime) -> datetime:
    """Convert ``now`` to the scheduling time zone (naive input is UTC)."""
    utc = _as_utc(now)
    return utc.astimezone(EDT if is_daylight_saving(utc) else EST)


def local_date(now: datetime) -> str:
    """Scheduler-local calendar date as YYYY-MM-DD."""
    return local_time(now).date().isoformat()


def format_local_time(now: datetime) -> str:
    """Human-readable local time for prompts, e.g. '9:05 AM EDT'."""
    local = local_time(now)
    hour = local.hour % 12 or 12
    suffix = "AM" if local.hour < 12 else "PM"
    return f"{hour}:{local.minute:02d} {suffix} {local.tzname()}"


def mode_for(
    now: datetime,
    sleep_start_hour: int = SLEEP_START_HOUR,
    sleep_end_hour: int = SLEEP_END_HOUR,
) -> Mode:
    hour = local_time(now).hour
    return "sleep" if sleep_start_hour <= hour < sleep_end_hour else "awake"


def should_run_sleep(agent: AgentRecord, today: str) -> bool:
    """At most one sleep cycle per local calendar day."""
    return agent.last_slept != today


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp into a UTC-aware datetime (naive means UTC).

    Raises:
        ValueError: If the string is not a timestamp.
    """
    try:
        dt = dateutil_parser.isoparse(value.strip())
    except (ValueError, OverflowError) as exc:
        raise ValueError(f"Cannot parse time: {value!r}") from exc
    return _as_utc(dt)
