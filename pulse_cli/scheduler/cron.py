"""Cron expression evaluation.

Expressions use the second-granularity six or seven field format::

    second minute hour day-of-month month day-of-week [year]

Parsing and fire-time computation are delegated to APScheduler's
``CronTrigger`` so the daemon has a single cron grammar. Day-of-week
numbers follow classic cron: ``0`` and ``7`` are Sunday, ``1`` is Monday.
They are rewritten to day names before reaching APScheduler, which counts
from Monday. Fields are evaluated in the configured timezone, the host's
local zone by default.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from typing import List, Optional, Union

from apscheduler.triggers.cron import CronTrigger
from apscheduler.util import astimezone
from tzlocal import get_localzone

from pulse_cli.exceptions import ConfigurationError, InvalidCronExpr

FIELD_NAMES = ("second", "minute", "hour", "day", "month", "day_of_week", "year")

# Indexed by classic cron weekday number
WEEKDAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")

# APScheduler ceils to whole seconds, so nudging past ``after`` by one
# microsecond guarantees a strictly later fire time.
_STRICTLY_AFTER = timedelta(microseconds=1)


def resolve_timezone(name: Optional[str] = None) -> tzinfo:
    """Timezone called ``name``, or the host's local zone when empty.

    Raises:
        ConfigurationError: If the zone is unknown
    """
    if not name:
        return get_localzone()
    try:
        return astimezone(name)
    except (KeyError, ValueError, TypeError) as e:
        raise ConfigurationError(f"Unknown timezone: {name}") from e


def _weekday_names(token: str) -> str:
    """Rewrite one numeric day-of-week list item to day names.

    ``1-5`` becomes ``mon,tue,wed,thu,fri`` and ``*/2`` becomes
    ``sun,tue,thu,sat``. Ranges are expanded so ``5-7`` never turns into
    a range that wraps past Sunday. Named items are returned unchanged.
    """
    body, slash, step_text = token.partition("/")
    if body == "*":
        if not slash:
            return token
        first, last = 0, 6
    elif body.isdigit():
        first = int(body)
        last = first if not slash else max(first, 6)
    elif "-" in body and all(part.isdigit() for part in body.split("-", 1)):
        first, last = (int(part) for part in body.split("-", 1))
    else:
        return token

    if first > 7 or last > 7:
        raise ValueError(f"day of week {max(first, last)} is out of range (0-7, 0 and 7 are Sunday)")
    if first > last:
        raise ValueError(f"day of week range {body} ends before it starts")
    step = 1
    if slash:
        if not step_text.isdigit() or int(step_text) == 0:
            raise ValueError(f"invalid day of week step: {token}")
        step = int(step_text)

    names: List[str] = []
    for day in range(first, last + 1, step):
        name = WEEKDAY_NAMES[day % 7]
        if name not in names:
            names.append(name)
    return ",".join(names)


def _day_of_week_field(value: str) -> str:
    return ",".join(_weekday_names(item) for item in value.split(","))


@dataclass(frozen=True)
class CronExpr:
    """A parsed cron expression.

    Attributes:
        expression: Expression text as configured
        timezone: Timezone the fields are evaluated in, a name or a tzinfo
    """

    expression: str
    timezone: Union[str, tzinfo] = "UTC"
    _trigger: CronTrigger = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        parts = self.expression.split()
        if len(parts) not in (6, 7):
            raise InvalidCronExpr(
                self.expression,
                f"expected 6 or 7 fields (second minute hour day month weekday [year]), got {len(parts)}",
            )

        fields = {}
        for name, value in zip(FIELD_NAMES, parts):
            if value == "?" and name in ("day", "day_of_week"):
                value = "*"
            fields[name] = value

        try:
            fields["day_of_week"] = _day_of_week_field(fields["day_of_week"])
            trigger = CronTrigger(timezone=self.timezone, **fields)
        except (ValueError, TypeError, KeyError) as e:
            raise InvalidCronExpr(self.expression, str(e)) from e

        object.__setattr__(self, "_trigger", trigger)

    @classmethod
    def parse(cls, expression: str, timezone: Union[str, tzinfo] = "UTC") -> "CronExpr":
        """Parse a cron expression.

        Args:
            expression: Six or seven whitespace separated fields
            timezone: Timezone name or tzinfo the fields are evaluated in

        Returns:
            The parsed expression

        Raises:
            InvalidCronExpr: If the field count is wrong or a field is invalid
        """
        return cls(expression=expression.strip(), timezone=timezone)

    def __str__(self) -> str:
        return self.expression


def next_fire(expr: CronExpr, after: datetime) -> datetime:
    """Get the first fire time strictly after ``after``.

    Args:
        expr: Parsed cron expression
        after: Reference instant; naive datetimes are taken as UTC

    Returns:
        Timezone-aware (UTC) fire time, always greater than ``after``

    Raises:
        InvalidCronExpr: If the expression never fires after ``after``
    """
    if after.tzinfo is None:
        after = after.replace(tzinfo=timezone.utc)

    fire_time: Optional[datetime] = expr._trigger.get_next_fire_time(None, after + _STRICTLY_AFTER)
    if fire_time is None:
        raise InvalidCronExpr(expr.expression, f"no fire time after {after.isoformat()}")

    return fire_time.astimezone(timezone.utc)
