"""Tests for cron expression parsing and fire-time computation."""

from datetime import datetime, timezone
from unittest.mock import patch
from zoneinfo import ZoneInfo

import pytest

from pulse_cli.exceptions import ConfigurationError, InvalidCronExpr
from pulse_cli.scheduler.cron import CronExpr, next_fire, resolve_timezone


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestCronExprParse:
    """Tests for CronExpr.parse."""

    def test_parse_six_fields(self):
        """Test parsing a six-field expression."""
        expr = CronExpr.parse("0 */5 * * * *")

        assert expr.expression == "0 */5 * * * *"
        assert str(expr) == "0 */5 * * * *"

    def test_parse_seven_fields(self):
        """Test parsing an expression with a year field."""
        expr = CronExpr.parse("0 30 9 * * mon-fri 2099")

        assert expr.expression == "0 30 9 * * mon-fri 2099"

    def test_parse_strips_whitespace(self):
        """Test surrounding whitespace is ignored."""
        assert CronExpr.parse("  0 0 * * * *  ").expression == "0 0 * * * *"

    @pytest.mark.parametrize("expression", ["*/5 * * * *", "* * * *", "0 0 0 1 1 * 2099 extra", ""])
    def test_wrong_field_count(self, expression):
        """Test that five-field and eight-field expressions are rejected."""
        with pytest.raises(InvalidCronExpr) as exc_info:
            CronExpr.parse(expression)

        assert "expected 6 or 7 fields" in exc_info.value.reason

    @pytest.mark.parametrize("expression", ["0 0 25 * * *", "0 61 * * * *", "0 0 0 * 13 *", "x 0 0 * * *"])
    def test_invalid_field_value(self, expression):
        """Test out-of-range and malformed field values."""
        with pytest.raises(InvalidCronExpr) as exc_info:
            CronExpr.parse(expression)

        assert exc_info.value.expression == expression

    def test_question_mark_in_day_fields(self):
        """Test '?' is accepted as 'any' for day and weekday."""
        expr = CronExpr.parse("0 0 12 ? * mon")

        fire = next_fire(expr, utc(2024, 1, 1, 12, 0, 0))  # a Monday

        assert fire == utc(2024, 1, 8, 12, 0, 0)


class TestNextFire:
    """Tests for next_fire."""

    def test_strictly_after_matching_instant(self):
        """Test a matching reference instant is not returned."""
        expr = CronExpr.parse("0 */5 * * * *")

        assert next_fire(expr, utc(2024, 1, 1, 0, 0, 0)) == utc(2024, 1, 1, 0, 5, 0)

    def test_between_fire_times(self):
        """Test the next slot is returned from between two fire times."""
        expr = CronExpr.parse("0 */5 * * * *")

        assert next_fire(expr, utc(2024, 1, 1, 0, 2, 30)) == utc(2024, 1, 1, 0, 5, 0)

    def test_sub_second_reference(self):
        """Test a reference just after a fire time skips to the next one."""
        expr = CronExpr.parse("* * * * * *")

        fire = next_fire(expr, utc(2024, 1, 1, 0, 0, 0, 500000))

        assert fire == utc(2024, 1, 1, 0, 0, 1)

    def test_naive_datetime_treated_as_utc(self):
        """Test naive datetimes are interpreted as UTC."""
        expr = CronExpr.parse("0 0 * * * *")

        fire = next_fire(expr, datetime(2024, 1, 1, 10, 30))

        assert fire == utc(2024, 1, 1, 11, 0, 0)
        assert fire.tzinfo is not None

    def test_result_always_greater(self):
        """Test successive fire times are strictly increasing."""
        expr = CronExpr.parse("*/10 * * * * *")
        current = utc(2024, 1, 1)

        for _ in range(20):
            following = next_fire(expr, current)
            assert following > current
            current = following

        assert current == utc(2024, 1, 1, 0, 3, 20)

    def test_expression_in_the_past_never_fires(self):
        """Test an expression pinned to a past year raises."""
        expr = CronExpr.parse("0 0 0 1 1 * 2020")

        with pytest.raises(InvalidCronExpr) as exc_info:
            next_fire(expr, utc(2024, 1, 1))

        assert "no fire time after" in exc_info.value.reason


class TestDayOfWeek:
    """Tests for day-of-week numbering (0 and 7 are Sunday)."""

    # 2024-03-03 is a Sunday, 2024-03-04 a Monday
    SUNDAY = utc(2024, 3, 3, 12, 0, 0)
    MONDAY = utc(2024, 3, 4, 12, 0, 0)

    def test_one_is_monday(self):
        """Test weekday 1 fires on Monday."""
        fire = next_fire(CronExpr.parse("0 0 9 * * 1"), self.SUNDAY)

        assert fire == utc(2024, 3, 4, 9, 0, 0)
        assert fire.strftime("%A") == "Monday"

    @pytest.mark.parametrize("weekday", ["0", "7", "sun"])
    def test_zero_and_seven_are_sunday(self, weekday):
        """Test weekday 0, 7 and 'sun' all fire on Sunday."""
        fire = next_fire(CronExpr.parse(f"0 0 9 * * {weekday}"), self.MONDAY)

        assert fire == utc(2024, 3, 10, 9, 0, 0)
        assert fire.strftime("%A") == "Sunday"

    def test_weekday_range(self):
        """Test 1-5 covers Monday to Friday only."""
        expr = CronExpr.parse("0 0 9 * * 1-5")
        current = self.SUNDAY
        days = []

        for _ in range(6):
            current = next_fire(expr, current)
            days.append(current.strftime("%a"))

        assert days == ["Mon", "Tue", "Wed", "Thu", "Fri", "Mon"]

    def test_range_ending_on_seven(self):
        """Test 5-7 covers Friday, Saturday and Sunday."""
        expr = CronExpr.parse("0 0 9 * * 5-7")
        current = self.MONDAY
        days = []

        for _ in range(4):
            current = next_fire(expr, current)
            days.append(current.strftime("%a"))

        assert days == ["Fri", "Sat", "Sun", "Fri"]

    def test_weekday_list(self):
        """Test a list of numbers mixed with names."""
        expr = CronExpr.parse("0 0 9 * * 0,6,wed")
        current = self.MONDAY
        days = []

        for _ in range(3):
            current = next_fire(expr, current)
            days.append(current.strftime("%a"))

        assert days == ["Wed", "Sat", "Sun"]

    def test_weekday_step(self):
        """Test */2 starts counting from Sunday."""
        expr = CronExpr.parse("0 0 9 * * */2")
        current = self.SUNDAY
        days = []

        for _ in range(4):
            current = next_fire(expr, current)
            days.append(current.strftime("%a"))

        assert days == ["Tue", "Thu", "Sat", "Sun"]

    @pytest.mark.parametrize("weekday", ["8", "3-9", "5-2", "1-5/0"])
    def test_invalid_weekday(self, weekday):
        """Test out-of-range, reversed and zero-step weekdays are rejected."""
        with pytest.raises(InvalidCronExpr):
            CronExpr.parse(f"0 0 9 * * {weekday}")


class TestTimezone:
    """Tests for evaluating expressions outside UTC."""

    def test_fields_evaluated_in_zone(self):
        """Test 07:00 in New York is 12:00 UTC in winter."""
        expr = CronExpr.parse("0 0 7 * * *", timezone="America/New_York")

        assert next_fire(expr, utc(2024, 3, 1)) == utc(2024, 3, 1, 12, 0, 0)

    def test_daylight_saving_shift(self):
        """Test the UTC fire time follows the zone's daylight saving change."""
        expr = CronExpr.parse("0 0 7 * * *", timezone="America/New_York")

        # Clocks go forward on 2024-03-10
        assert next_fire(expr, utc(2024, 3, 10)) == utc(2024, 3, 10, 11, 0, 0)

    def test_accepts_tzinfo(self):
        """Test a tzinfo object is accepted as well as a name."""
        expr = CronExpr.parse("0 30 9 * * *", timezone=ZoneInfo("Asia/Tokyo"))

        assert next_fire(expr, utc(2024, 1, 1)) == utc(2024, 1, 1, 0, 30, 0)

    def test_resolve_named_zone(self):
        """Test resolving a zone by name."""
        assert str(resolve_timezone("Europe/Paris")) == "Europe/Paris"

    def test_resolve_empty_uses_local_zone(self):
        """Test an empty name falls back to the host's zone."""
        with patch("pulse_cli.scheduler.cron.get_localzone", return_value=ZoneInfo("Asia/Tokyo")):
            assert resolve_timezone("") == ZoneInfo("Asia/Tokyo")

    def test_resolve_unknown_zone(self):
        """Test an unknown zone raises a configuration error."""
        with pytest.raises(ConfigurationError) as exc_info:
            resolve_timezone("Mars/Olympus_Mons")

        assert "Unknown timezone" in exc_info.value.message
