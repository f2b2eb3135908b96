"""Unit tests for lesson pricing and rate settings parsing."""

from decimal import Decimal

import pytest

from tutordesk.core.enums import Subject
from tutordesk.schemas.rates import RateSettings
from tutordesk.services.rate_resolver import (
    format_rate_display,
    get_subject_rate_config,
    quantize_money,
    resolve_rate,
)


@pytest.fixture
def tutor_rates() -> RateSettings:
    return RateSettings.from_raw(
        default_rate=45,
        default_base_duration=60,
        subject_rates={
            "math": {"rate": 35, "base_duration": 30},
            "piano": {"rate": 30, "base_duration": 30, "duration_prices": {"45": 40}},
            "speech": {"rate": 0, "base_duration": 30},
        },
    )


class TestResolveRate:
    def test_subject_rate_scales_with_duration(self, tutor_rates):
        quote = resolve_rate(Subject.MATH, 60, settings=tutor_rates)

        assert quote.amount == Decimal("70.00")
        assert quote.rate_display == "$35/30min"
        assert quote.source == "math rate"
        assert quote.formula == "60min / 30min × $35 = $70.00 (math rate)"

    def test_override_is_returned_verbatim(self, tutor_rates):
        quote = resolve_rate("math", 60, override_amount=Decimal("12.345"), settings=tutor_rates)

        assert quote.amount == Decimal("12.345")
        assert quote.source == "override"
        assert "override" in quote.formula.lower()

    def test_explicit_duration_price_wins_over_formula(self, tutor_rates):
        quote = resolve_rate("piano", 45, settings=tutor_rates)

        assert quote.amount == Decimal("40.00")
        assert "fixed price" in quote.formula

    def test_explicit_table_ignored_for_other_durations(self, tutor_rates):
        assert resolve_rate("piano", 60, settings=tutor_rates).amount == Decimal("60.00")

    def test_invalid_subject_config_falls_back_to_tutor_default(self, tutor_rates):
        quote = resolve_rate("speech", 30, settings=tutor_rates)

        assert quote.amount == Decimal("22.50")
        assert quote.source == "default rate"

    def test_missing_settings_use_hard_defaults(self):
        quote = resolve_rate("reading", 90)

        assert quote.amount == Decimal("67.50")
        assert quote.rate_display == "$45/hr"

    def test_combined_session_only_changes_formula(self, tutor_rates):
        solo = resolve_rate("math", 60, False, settings=tutor_rates)
        combined = resolve_rate("math", 60, True, settings=tutor_rates)

        assert solo.amount == combined.amount
        assert combined.formula.endswith("(math rate, combined session)")

    def test_rounds_half_up_to_cents(self):
        rates = RateSettings.from_raw(subject_rates={"math": {"rate": "10.01", "base_duration": 60}})

        # 30/60 * 10.01 = 5.005
        assert resolve_rate("math", 30, settings=rates).amount == Decimal("5.01")

    def test_invalid_duration_prices_to_zero(self, tutor_rates):
        assert resolve_rate("math", 0, settings=tutor_rates).amount == Decimal("0.00")
        assert resolve_rate("math", -15, settings=tutor_rates).amount == Decimal("0.00")

    def test_unreadable_override_is_ignored(self, tutor_rates):
        assert resolve_rate("math", 30, override_amount="abc", settings=tutor_rates).amount == Decimal("35.00")

    def test_repeated_calls_are_identical(self, tutor_rates):
        first = resolve_rate("math", 50, True, None, tutor_rates)
        second = resolve_rate("math", 50, True, None, tutor_rates)

        assert first == second


class TestRateSettingsParsing:
    def test_malformed_subject_entries_are_skipped(self):
        rates = RateSettings.from_raw(
            subject_rates={
                "Math": {"rate": "35", "base_duration": "30"},
                "piano": "not a dict",
                "reading": {"rate": "abc", "base_duration": 60},
            }
        )

        assert set(rates.subject_rates) == {"math"}
        assert rates.subject_rates["math"].base_duration == 30

    def test_non_positive_defaults_fall_back(self):
        rates = RateSettings.from_raw(default_rate=0, default_base_duration=-5)

        assert rates.default_rate == Decimal("45")
        assert rates.default_base_duration == 60

    def test_subject_lookup_is_case_insensitive(self, tutor_rates):
        assert get_subject_rate_config(tutor_rates, " MATH ").source == "math rate"


class TestFormatting:
    @pytest.mark.parametrize(
        "rate,base,expected",
        [
            (Decimal("45"), 60, "$45/hr"),
            (Decimal("35"), 30, "$35/30min"),
            (Decimal("37.50"), 45, "$37.5/45min"),
        ],
    )
    def test_format_rate_display(self, rate, base, expected):
        assert format_rate_display(rate, base) == expected

    def test_quantize_money(self):
        assert quantize_money(Decimal("2.675")) == Decimal("2.68")
