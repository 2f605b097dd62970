"""Timezone-aware cron evaluation.

Expressions are evaluated on local wall-clock time in the schedule's IANA
timezone and then attached to that zone, so "0 9 * * 1" in Europe/Stockholm
stays at 09:00 local on both sides of a DST change. Wall times that do not
exist (spring-forward gap) are skipped; ambiguous times (fall-back) fire once,
on their first occurrence.

Both the five-field grammar and the six-field grammar with a leading seconds
field are accepted. Due checks work at minute granularity.
"""

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter  # type: ignore[import-untyped]

from src.flowsmith.core.exceptions import InvalidCronExpression, ValidationError

# A yearly expression still matches within ~400 days of candidates; this bounds DST skips
_MAX_CANDIDATES = 1000


def _to_croniter_expression(expression: str) -> str:
    """croniter reads a sixth field as seconds at the end; ours lead."""
    fields = expression.split()
    if len(fields) == 6:
        return " ".join(fields[1:] + fields[:1])
    return " ".join(fields)


def validate_cron(expression: str) -> str:
    """Return the normalised expression or raise InvalidCronExpression."""
    if not expression or not expression.strip():
        raise InvalidCronExpression("Cron expression is required")
    fields = expression.split()
    if len(fields) not in (5, 6):
        raise InvalidCronExpression(
            f"Cron expression must have 5 or 6 fields, got {len(fields)}",
            expression=expression,
        )
    if not croniter.is_valid(_to_croniter_expression(expression)):
        raise InvalidCronExpression(f"Invalid cron expression: {expression}", expression=expression)
    return " ".join(fields)


def get_zone(timezone: str) -> ZoneInfo:
    try:
        return ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError(f"Unknown timezone: {timezone}", timezone=timezone) from e


def validate_timezone(timezone: str) -> str:
    get_zone(timezone)
    return timezone


def _aware(value: datetime | None) -> datetime:
    if value is None:
        return datetime.now(UTC)
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _exists(wall: datetime, zone: ZoneInfo) -> bool:
    """False for wall-clock times inside a spring-forward gap."""
    aware = wall.replace(tzinfo=zone)
    round_trip = aware.astimezone(UTC).astimezone(zone).replace(tzinfo=None)
    return round_trip == wall


def next_run(expression: str, timezone: str = "UTC", after: datetime | None = None) -> datetime:
    """First fire time strictly after ``after`` (default: now), aware in ``timezone``.

    Naive inputs are treated as UTC.
    """
    zone = get_zone(timezone)
    start = _aware(after)
    wall_start = start.astimezone(zone).replace(tzinfo=None)
    iterator = croniter(_to_croniter_expression(validate_cron(expression)), wall_start)
    for _ in range(_MAX_CANDIDATES):
        wall = iterator.get_next(datetime)
        if not _exists(wall, zone):
            continue
        candidate = wall.replace(tzinfo=zone)
        if candidate > start:
            return candidate
    raise InvalidCronExpression(f"Cron expression never fires: {expression}")


def previous_run(
    expression: str, timezone: str = "UTC", before: datetime | None = None
) -> datetime:
    """Last fire time strictly before ``before`` (default: now), aware in ``timezone``."""
    zone = get_zone(timezone)
    end = _aware(before)
    wall_end = end.astimezone(zone).replace(tzinfo=None)
    iterator = croniter(_to_croniter_expression(validate_cron(expression)), wall_end)
    for _ in range(_MAX_CANDIDATES):
        wall = iterator.get_prev(datetime)
        if not _exists(wall, zone):
            continue
        candidate = wall.replace(tzinfo=zone)
        if candidate < end:
            return candidate
    raise InvalidCronExpression(f"Cron expression never fired: {expression}")


def floor_minute(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)


def matches_minute(expression: str, timezone: str, now: datetime) -> bool:
    """True when the expression fires within the minute containing ``now``."""
    minute = floor_minute(_aware(now))
    fire = next_run(expression, timezone, after=minute - timedelta(microseconds=1))
    return minute <= fire < minute + timedelta(minutes=1)
