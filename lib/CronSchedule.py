"""
Cron Schedule Module

This module converts a cron expression into an APScheduler trigger.
Expressions carry a leading seconds field, the classic five-field
form and the usual @descriptors are accepted as well. "@every
<duration>" gives a fixed interval, and a leading CRON_TZ=<zone> or
TZ=<zone> token pins the schedule to a time zone.

Day-of-week numbers follow cron numbering (0 or 7 is Sunday) and
are translated to day names, since APScheduler counts from Monday.
"""

## version related
__author__ = "Kyle"
__version__ = "0.1.0"
__email__ = "kyle@hacking-linux.com"

## import builtin pkgs
import re
from dataclasses import dataclass
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

DESCRIPTORS = {
    '@yearly': '0 0 0 1 1 *',
    '@annually': '0 0 0 1 1 *',
    '@monthly': '0 0 0 1 * *',
    '@weekly': '0 0 0 * * 0',
    '@daily': '0 0 0 * * *',
    '@midnight': '0 0 0 * * *',
    '@hourly': '0 0 * * * *',
}

EVERY = '@every '

## duration units in seconds, as written in "@every 1h30m"
DURATION_UNITS = {
    'ns': 1e-9,
    'us': 1e-6,
    'µs': 1e-6,
    'μs': 1e-6,
    'ms': 1e-3,
    's': 1.0,
    'm': 60.0,
    'h': 3600.0,
}
DURATION_PART = re.compile(r'(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)')

## time zone prefixes of an expression
ZONE_PREFIXES = ('CRON_TZ=', 'TZ=')

## cron day-of-week numbering
DAY_NAMES = ('sun', 'mon', 'tue', 'wed', 'thu', 'fri', 'sat', 'sun')

def _day(value: str) -> int:
    if not value.isdigit() or int(value) > 7:
        raise ValueError('invalid day of week: %s' % (value))

    return int(value)

def _day_range(first: int, last: int) -> list:
    """
    Translate an inclusive cron day range into APScheduler terms.

    Sunday sits at both ends of cron numbering but at the end of
    APScheduler's, so it is split off into its own entry.
    """

    if first > last:
        raise ValueError('invalid day of week range: %s-%s' % (first, last))

    parts = []
    sunday = first == 0 or last == 7
    if first == 0:
        parts.append('sun')
        first = 1

    last = min(last, 6)
    if first == last:
        parts.append(DAY_NAMES[first])

    elif first < last:
        parts.append('%s-%s' % (DAY_NAMES[first], DAY_NAMES[last]))

    if sunday and 'sun' not in parts:
        parts.append('sun')

    return parts

def translate_day_of_week(field: str) -> str:
    """
    Rewrite a cron day-of-week field for APScheduler.

    Args:
        field (str): Cron day-of-week field, e.g. "1-5", "0,6", "*/2"

    Returns:
        str: Equivalent APScheduler day_of_week field

    Raises:
        ValueError: The field cannot be expressed
    """

    out = []
    for part in field.lower().split(','):
        base, _, step = part.partition('/')
        if step and not step.isdigit():
            raise ValueError('invalid day of week step: %s' % (part))

        if base in ('*', '?'):
            if not step:
                out.append('*')
            else:
                ## APScheduler steps from Monday, cron from Sunday
                out.extend(DAY_NAMES[day] for day in range(0, 7, int(step)))
            continue

        if base[:1].isalpha():
            out.append(part)
            continue

        first, sep, last = base.partition('-')
        if not sep:
            if step:
                raise ValueError('step without range: %s' % (part))
            out.append(DAY_NAMES[_day(first)])
            continue

        first, last = _day(first), _day(last)
        if step:
            out.extend(DAY_NAMES[day] for day in range(first, last + 1, int(step)))
        else:
            out.extend(_day_range(first, last))

    ## keep order, drop duplicates
    return ','.join(dict.fromkeys(out))

def parse_duration(text: str) -> float:
    """
    Parse a duration such as "30s", "1h30m" or "1.5h".

    Args:
        text (str): Sequence of decimal numbers each followed by a unit

    Returns:
        float: Duration in seconds

    Raises:
        ValueError: The duration is malformed
    """

    text = text.strip()
    if not text:
        raise ValueError('empty duration')

    total = 0.0
    pos = 0
    while pos < len(text):
        match = DURATION_PART.match(text, pos)
        if match is None:
            raise ValueError('invalid duration: %s' % (text))

        total += float(match.group(1)) * DURATION_UNITS[match.group(2)]
        pos = match.end()

    return total

def every_interval(text: str) -> int:
    """
    Interval of an "@every" schedule in whole seconds.

    Sub-second intervals are raised to one second, anything longer
    is truncated to the second.
    """

    seconds = parse_duration(text)
    if seconds <= 0:
        raise ValueError('interval must be positive: %s' % (text))

    return max(int(seconds), 1)

@dataclass(frozen = True)
class CronSchedule(object):
    """
    Parsed cron schedule.

    Attributes:
        expression (str): Expression as given
        second, minute, hour, day, month, day_of_week (str):
            APScheduler CronTrigger fields
        interval (int): Seconds between firings of an "@every" schedule
        location (str): Time zone named inside the expression
    """

    expression: str
    second: str = '0'
    minute: str = '*'
    hour: str = '*'
    day: str = '*'
    month: str = '*'
    day_of_week: str = '*'
    interval: Optional[int] = None
    location: Optional[str] = None

    @classmethod
    def parse(cls, expression: str) -> 'CronSchedule':
        """
        Parse a cron expression.

        Args:
            expression (str): Six-field, five-field, @descriptor or
                "@every <duration>" expression, optionally led by
                CRON_TZ=<zone> or TZ=<zone>

        Returns:
            CronSchedule: Parsed schedule

        Raises:
            ValueError: The expression is malformed
        """

        text = expression.strip()
        location = None
        if text.startswith(ZONE_PREFIXES):
            prefix, _, text = text.partition(' ')
            location = prefix.partition('=')[2]
            try:
                ZoneInfo(location)

            except (ZoneInfoNotFoundError, ValueError) as e:
                raise ValueError('unknown time zone %r: %s' % (location, e))

            text = text.strip()

        if text.lower().startswith(EVERY):
            return cls(expression = expression, interval = every_interval(text[len(EVERY):]), location = location)

        if text.startswith('@'):
            if text.lower() not in DESCRIPTORS:
                raise ValueError('unsupported descriptor: %s' % (text))
            text = DESCRIPTORS[text.lower()]

        fields = text.split()
        if len(fields) == 5:
            fields.insert(0, '0')

        if len(fields) != 6:
            raise ValueError('expected 5 or 6 fields, got %d: %r' % (len(fields), expression))

        second, minute, hour, day, month, day_of_week = fields
        schedule = cls(
            expression = expression,
            second = second,
            minute = minute,
            hour = hour,
            day = '*' if day == '?' else day,
            month = month,
            day_of_week = translate_day_of_week(day_of_week),
            location = location,
        )

        ## let APScheduler validate field ranges
        schedule.trigger('UTC')
        return schedule

    def trigger(self, timezone: object = None) -> object:
        """
        Build the APScheduler trigger.

        A time zone named inside the expression wins over the one
        passed in.

        Args:
            timezone (object): Zone name or tzinfo, None for the scheduler default

        Returns:
            object: IntervalTrigger for "@every", CronTrigger otherwise
        """

        if self.location is not None:
            timezone = ZoneInfo(self.location)

        if self.interval is not None:
            return IntervalTrigger(seconds = self.interval, timezone = timezone)

        return CronTrigger(
            second = self.second,
            minute = self.minute,
            hour = self.hour,
            day = self.day,
            month = self.month,
            day_of_week = self.day_of_week,
            timezone = timezone,
        )
