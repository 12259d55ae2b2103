"""
Tests for cron expression parsing.
"""

from datetime import datetime, timezone

import pytest
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from CronSchedule import CronSchedule, parse_duration, translate_day_of_week


class TestParse:

    def test_six_fields(self):
        schedule = CronSchedule.parse("*/5 0 12 1 6 *")

        assert (schedule.second, schedule.minute, schedule.hour) == ("*/5", "0", "12")
        assert (schedule.day, schedule.month, schedule.day_of_week) == ("1", "6", "*")

    def test_five_fields_fire_on_second_zero(self):
        schedule = CronSchedule.parse("30 9 * * *")

        assert schedule.second == "0"
        assert schedule.minute == "30"
        assert schedule.hour == "9"

    @pytest.mark.parametrize("descriptor,hour,day", [
        ("@daily", "0", "*"),
        ("@midnight", "0", "*"),
        ("@monthly", "0", "1"),
        ("@YEARLY", "0", "1"),
    ])
    def test_descriptors(self, descriptor, hour, day):
        schedule = CronSchedule.parse(descriptor)

        assert schedule.hour == hour
        assert schedule.day == day
        assert schedule.expression == descriptor

    def test_question_mark_means_any(self):
        assert CronSchedule.parse("0 0 12 ? * 1").day == "*"

    @pytest.mark.parametrize("expression", [
        "",
        "* * *",
        "* * * * * * *",
        "@reboot",
        "@every",
        "@every 0s",
        "@every 10",
        "@every 5d",
        "TZ=Nowhere/Special 0 * * * * *",
        "CRON_TZ=UTC",
        "0 61 * * * *",
        "0 0 25 * * *",
        "0 0 0 * * 9",
    ])
    def test_invalid(self, expression):
        with pytest.raises(ValueError):
            CronSchedule.parse(expression)


class TestDayOfWeek:

    @pytest.mark.parametrize("field,expected", [
        ("*", "*"),
        ("0", "sun"),
        ("7", "sun"),
        ("1", "mon"),
        ("1-5", "mon-fri"),
        ("0,6", "sun,sat"),
        ("0-6", "sun,mon-sat"),
        ("5-7", "fri-sat,sun"),
        ("*/2", "sun,tue,thu,sat"),
        ("1-5/2", "mon,wed,fri"),
        ("MON-FRI", "mon-fri"),
    ])
    def test_translation(self, field, expected):
        assert translate_day_of_week(field) == expected

    def test_step_on_single_day_rejected(self):
        with pytest.raises(ValueError):
            translate_day_of_week("1/2")


class TestTrigger:

    def test_builds_cron_trigger(self):
        assert isinstance(CronSchedule.parse("0 * * * * *").trigger("UTC"), CronTrigger)

    def test_sunday_is_cron_sunday(self):
        trigger = CronSchedule.parse("0 30 9 * * 0").trigger("UTC")
        now = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)

        fire = trigger.get_next_fire_time(None, now)

        ## 2026-10-17 is a Saturday
        assert fire == datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc)

    def test_seconds_field_is_honoured(self):
        trigger = CronSchedule.parse("15 * * * * *").trigger("UTC")
        now = datetime(2026, 10, 17, 12, 0, 20, tzinfo=timezone.utc)

        assert trigger.get_next_fire_time(None, now) == datetime(2026, 10, 17, 12, 1, 15, tzinfo=timezone.utc)


class TestEvery:

    @pytest.mark.parametrize("text,seconds", [
        ("30s", 30),
        ("1h30m", 5400),
        ("1.5h", 5400),
        ("90m", 5400),
        ("300ms", 0.3),
        ("2m500ms", 120.5),
    ])
    def test_duration(self, text, seconds):
        assert parse_duration(text) == pytest.approx(seconds)

    @pytest.mark.parametrize("expression,interval", [
        ("@every 30s", 30),
        ("@every 1h30m", 5400),
        ("@every 1500ms", 1),
        ("@every 200ms", 1),
        ("@EVERY 2m", 120),
    ])
    def test_interval(self, expression, interval):
        schedule = CronSchedule.parse(expression)

        assert schedule.interval == interval
        assert schedule.expression == expression

    def test_builds_interval_trigger(self):
        trigger = CronSchedule.parse("@every 30s").trigger("UTC")
        now = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)

        assert isinstance(trigger, IntervalTrigger)
        assert trigger.interval.total_seconds() == 30
        assert trigger.get_next_fire_time(now, now) == datetime(2026, 10, 17, 12, 0, 30, tzinfo=timezone.utc)


class TestTimeZonePrefix:

    @pytest.mark.parametrize("prefix", ["CRON_TZ", "TZ"])
    def test_prefix_is_stripped(self, prefix):
        schedule = CronSchedule.parse("%s=Asia/Tokyo 0 30 9 * * *" % prefix)

        assert schedule.location == "Asia/Tokyo"
        assert (schedule.minute, schedule.hour) == ("30", "9")

    def test_prefix_overrides_scheduler_zone(self):
        trigger = CronSchedule.parse("CRON_TZ=Asia/Tokyo 0 30 9 * * *").trigger("UTC")
        now = datetime(2026, 10, 17, 0, 0, tzinfo=timezone.utc)

        ## 09:30 in Tokyo is 00:30 UTC
        assert trigger.get_next_fire_time(None, now) == datetime(2026, 10, 17, 0, 30, tzinfo=timezone.utc)

    def test_prefix_with_every(self):
        schedule = CronSchedule.parse("TZ=UTC @every 1m")

        assert schedule.interval == 60
        assert schedule.location == "UTC"

    def test_no_prefix_keeps_given_zone(self):
        assert CronSchedule.parse("0 * * * * *").location is None
