"""Tests for working day arithmetic."""

from datetime import date

from absence_engine.services.working_days import (
    count_weekdays,
    count_working_days,
    get_bank_holidays,
    is_working_day,
)


class TestWorkingDays:
    """Test weekday and bank holiday handling."""

    def test_weekend_is_not_working(self):
        assert is_working_day(date(2024, 3, 2)) is False
        assert is_working_day(date(2024, 3, 3)) is False
        assert is_working_day(date(2024, 3, 4)) is True

    def test_bank_holidays_england(self):
        holidays_2023 = get_bank_holidays(2023)
        assert date(2023, 12, 25) in holidays_2023
        assert date(2023, 12, 26) in holidays_2023
        assert is_working_day(date(2023, 12, 25)) is False

    def test_christmas_week(self):
        """22-29 Dec 2023 loses Christmas Day and Boxing Day."""
        assert count_working_days(date(2023, 12, 22), date(2023, 12, 29)) == 4

    def test_new_year(self):
        assert count_working_days(date(2024, 1, 1), date(2024, 1, 5)) == 4

    def test_single_day_inclusive(self):
        assert count_working_days(date(2024, 3, 4), date(2024, 3, 4)) == 1

    def test_end_before_start(self):
        assert count_working_days(date(2024, 3, 5), date(2024, 3, 4)) == 0
        assert count_weekdays(date(2024, 3, 5), date(2024, 3, 4)) == 0

    def test_region_specific_holiday(self):
        """St Andrew's Day is a bank holiday in Scotland only."""
        st_andrews = date(2023, 11, 30)
        assert is_working_day(st_andrews, "ENG") is True
        assert is_working_day(st_andrews, "SCT") is False

    def test_weekdays_ignore_holidays(self):
        assert count_weekdays(date(2023, 12, 22), date(2023, 12, 29)) == 6
        assert count_weekdays(date(2024, 2, 26), date(2024, 3, 10)) == 10
