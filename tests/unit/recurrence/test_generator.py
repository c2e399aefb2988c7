"""Unit tests for eventseries.recurrence.generator."""

import logging
from datetime import date, datetime

import pytest

from eventseries.recurrence.generator import OccurrenceGenerator
from eventseries.recurrence.patterns import RecurrenceRule, WeeklyPattern, pattern_for_rule

MON_WED = ["Monday", "Wednesday"]


@pytest.fixture
def generator() -> OccurrenceGenerator:
    return OccurrenceGenerator()


class TestGenerate:
    """Tests for OccurrenceGenerator.generate."""

    def test_generate_when_weekly_mon_wed_then_returns_example_dates(self, generator) -> None:
        result = generator.generate(
            WeeklyPattern(), MON_WED, date(2024, 1, 1), date(2024, 1, 17), today=date(2023, 12, 31)
        )

        assert result == [
            date(2024, 1, 1),
            date(2024, 1, 3),
            date(2024, 1, 8),
            date(2024, 1, 10),
            date(2024, 1, 15),
            date(2024, 1, 17),
        ]

    def test_generate_when_today_inside_range_then_skips_earlier_dates(self, generator) -> None:
        result = generator.generate(
            WeeklyPattern(), MON_WED, date(2024, 1, 1), date(2024, 1, 17), today=date(2024, 1, 9)
        )

        assert result == [date(2024, 1, 10), date(2024, 1, 15), date(2024, 1, 17)]

    def test_generate_when_today_is_a_candidate_then_includes_it(self, generator) -> None:
        result = generator.generate(
            WeeklyPattern(), MON_WED, date(2024, 1, 1), date(2024, 1, 17), today=date(2024, 1, 17)
        )

        assert result == [date(2024, 1, 17)]

    def test_generate_when_dates_materialized_then_excludes_them(self, generator) -> None:
        result = generator.generate(
            WeeklyPattern(),
            MON_WED,
            date(2024, 1, 1),
            date(2024, 1, 17),
            today=date(2023, 12, 31),
            materialized={date(2024, 1, 3), date(2024, 1, 15)},
        )

        assert result == [date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 10), date(2024, 1, 17)]

    def test_generate_when_materialized_datetimes_then_compares_dates(self, generator) -> None:
        result = generator.generate(
            WeeklyPattern(),
            ["Monday"],
            date(2024, 1, 1),
            date(2024, 1, 8),
            today=date(2023, 12, 31),
            materialized=[datetime(2024, 1, 1, 18, 0)],
        )

        assert result == [date(2024, 1, 8)]

    def test_generate_when_run_twice_with_previous_output_then_empty(self, generator) -> None:
        args = (WeeklyPattern(), MON_WED, date(2024, 1, 1), date(2024, 1, 31))
        first = generator.generate(*args, today=date(2023, 12, 31))

        again = generator.generate(*args, today=date(2023, 12, 31))
        rerun = generator.generate(*args, today=date(2023, 12, 31), materialized=first)

        assert again == first
        assert rerun == []

    def test_generate_when_start_after_expiry_then_empty(self, generator) -> None:
        result = generator.generate(
            WeeklyPattern(), MON_WED, date(2024, 2, 1), date(2024, 1, 1), today=date(2023, 12, 31)
        )

        assert result == []

    def test_generate_when_monthly_first_month_starts_late_then_drops_earlier_date(
        self, generator
    ) -> None:
        result = generator.generate(
            pattern_for_rule(RecurrenceRule.LAST),
            ["Friday"],
            date(2024, 1, 27),
            date(2024, 3, 15),
            today=date(2023, 12, 31),
        )

        # Jan 26 precedes the start date and Mar 29 follows the expiry
        assert result == [date(2024, 2, 23)]

    def test_generate_when_unknown_weekday_in_set_then_ignores_it(self, generator) -> None:
        result = generator.generate(
            WeeklyPattern(),
            ["Monday", "Funday"],
            date(2024, 1, 1),
            date(2024, 1, 14),
            today=date(2023, 12, 31),
        )

        assert result == [date(2024, 1, 1), date(2024, 1, 8)]

    def test_generate_when_limit_exceeded_then_truncates_and_warns(self, caplog) -> None:
        generator = OccurrenceGenerator(max_occurrences=2)

        with caplog.at_level(logging.WARNING, logger="eventseries.recurrence.generator"):
            result = generator.generate(
                WeeklyPattern(), MON_WED, date(2024, 1, 1), date(2024, 1, 17), today=date(2023, 12, 31)
            )

        assert result == [date(2024, 1, 1), date(2024, 1, 3)]
        assert "Limiting generation to 2 occurrences" in caplog.text


class TestGenerateProperties:
    """Invariants that hold for every rule."""

    @pytest.mark.parametrize("rule", list(RecurrenceRule))
    def test_generate_when_any_rule_then_dates_match_and_stay_in_bounds(
        self, generator, rule: RecurrenceRule
    ) -> None:
        pattern = pattern_for_rule(rule)
        weekdays = ["Tuesday", "Friday", "Sunday"]
        start, expiry, today = date(2024, 1, 10), date(2024, 6, 20), date(2024, 2, 1)

        result = generator.generate(pattern, weekdays, start, expiry, today=today)

        assert result
        assert result == sorted(set(result))
        for day in result:
            assert pattern.matches(day, weekdays)
            assert start <= day <= expiry
            assert day >= today
