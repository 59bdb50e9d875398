from __future__ import annotations

from dataclasses import dataclass
import logging
import re

from apscheduler.triggers.cron import CronTrigger

from dbvault.core.config import Settings


logger = logging.getLogger(__name__)

DEFAULT_CRON = "0 2 * * *"

_FIELD_NAMES = ("minute", "hour", "day_of_month", "month", "day_of_week")
_FIELD_BOUNDS = {
    "minute": (0, 59),
    "hour": (0, 23),
    "day_of_month": (1, 31),
    "month": (1, 12),
    # 0 and 7 are both Sunday.
    "day_of_week": (0, 7),
}
_TERM = re.compile(r"^(?:(\*)|(\d+)(?:-(\d+))?)(?:/(\d+))?$")
# Cron numbers weekdays from Sunday; APScheduler numbers them from Monday, so use names.
_WEEKDAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat", "sun")


def _validate_field(name: str, value: str) -> None:
    low, high = _FIELD_BOUNDS[name]
    for term in value.split(","):
        match = _TERM.match(term)
        if match is None:
            raise ValueError(f"invalid {name} field: {value!r}")
        wildcard, start, end, step = match.groups()
        if step is not None and int(step) < 1:
            raise ValueError(f"invalid step in {name} field: {value!r}")
        if wildcard:
            first, last = low, high
        else:
            first = int(start)
            # "a/n" runs from a to the top of the field.
            last = int(end) if end is not None else (high if step else first)
            if not low <= first <= high or not low <= last <= high or first > last:
                raise ValueError(f"{name} out of range {low}-{high}: {value!r}")
        if step is not None and int(step) > last - first:
            raise ValueError(f"step larger than the range in {name} field: {value!r}")


def _expand_weekdays(value: str) -> str:
    days: list[str] = []
    for term in value.split(","):
        wildcard, start, end, step = _TERM.match(term).groups()
        stride = int(step) if step else 1
        if wildcard:
            first, last = 0, 6
        else:
            first = int(start)
            # "5/2" means from 5 to the end of the range, as in cron.
            last = int(end) if end is not None else (6 if step else first)
        for number in range(first, last + 1, stride):
            name = _WEEKDAY_NAMES[number]
            if name not in days:
                days.append(name)
    if not days:
        raise ValueError(f"day_of_week matches no weekday: {value!r}")
    return ",".join(days)


@dataclass(frozen=True)
class CronSchedule:
    """Validated five-field cron expression (minute hour dom month dow)."""

    minute: str
    hour: str
    day_of_month: str
    month: str
    day_of_week: str

    @classmethod
    def parse(cls, expression: str) -> "CronSchedule":
        parts = expression.split()
        if len(parts) != 5:
            raise ValueError(f"cron expression must have 5 fields, got {len(parts)}: {expression!r}")
        for name, value in zip(_FIELD_NAMES, parts):
            _validate_field(name, value)
        schedule = cls(*parts)
        # Anything the trigger itself refuses is a parse failure too.
        try:
            schedule.to_trigger()
        except ValueError as exc:
            raise ValueError(f"unsupported cron expression {expression!r}: {exc}") from exc
        return schedule

    @classmethod
    def from_setting(cls, expression: str | None, *, default: str = DEFAULT_CRON) -> "CronSchedule":
        # Never fail startup over a bad schedule; fall back and say so.
        if expression:
            try:
                return cls.parse(expression)
            except ValueError as exc:
                logger.warning(
                    "backup_schedule_invalid value=%r default=%r error=%s", expression, default, exc
                )
        return cls.parse(default)

    @property
    def expression(self) -> str:
        return " ".join((self.minute, self.hour, self.day_of_month, self.month, self.day_of_week))

    def to_trigger(self, timezone: str = "UTC") -> CronTrigger:
        day_of_week = "*" if self.day_of_week == "*" else _expand_weekdays(self.day_of_week)
        return CronTrigger(
            minute=self.minute,
            hour=self.hour,
            day=self.day_of_month,
            month=self.month,
            day_of_week=day_of_week,
            timezone=timezone,
        )

    def __str__(self) -> str:
        return self.expression


@dataclass(frozen=True)
class ScheduleConfig:
    # Read once at startup; runtime reconfiguration is not supported.
    cron: CronSchedule
    enabled: bool
    max_backups: int
    timezone: str = "UTC"

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScheduleConfig":
        cron = CronSchedule.from_setting(settings.backup_schedule)
        timezone = settings.backup_timezone
        try:
            cron.to_trigger(timezone)
        except (KeyError, ValueError) as exc:
            # Unknown zone names raise KeyError subclasses from pytz/zoneinfo.
            logger.warning("backup_timezone_invalid value=%r default='UTC' error=%s", timezone, exc)
            timezone = "UTC"
        return cls(
            cron=cron,
            enabled=settings.backup_enabled,
            max_backups=settings.max_backups,
            timezone=timezone,
        )
