"""Tests for period extraction and billing-month resolution."""

from datetime import date

from vendor_ledger.analysis.periods import (
    Period,
    coerce_date,
    extract_csv_period,
    extract_period,
    parse_period_from_description,
    parse_us_date,
    resolve_billing_month,
)


class TestExtractPeriod:
    """Tests for extract_period."""

    def test_numeric_range(self):
        period = extract_period("Compute Usage 8/01/2025-8/31/2025")

        assert period == Period(start=date(2025, 8, 1), end=date(2025, 8, 31))
        assert period.as_dict() == {"period_start": "2025-08-01", "period_end": "2025-08-31"}

    def test_spaces_and_newline_around_dash(self):
        period = extract_period("Backup 9/1/2025 -\n 9/30/2025")

        assert period == Period(start=date(2025, 9, 1), end=date(2025, 9, 30))

    def test_en_dash(self):
        assert extract_period("Backup 9/1/2025–9/30/2025") is not None

    def test_absent_range(self):
        assert extract_period("Storage") is None
        assert extract_period("") is None

    def test_invalid_calendar_date(self):
        assert extract_period("Compute 2/30/2025-3/31/2025") is None
        assert extract_period("Compute 13/1/2025-13/31/2025") is None

    def test_year_out_of_range(self):
        assert extract_period("Compute 8/1/1999-8/31/1999") is None


class TestParsePeriodFromDescription:
    """Tests for parse_period_from_description."""

    def test_iso_range(self):
        parsed = parse_period_from_description("Backup 2025-07-01 to 2025-07-31")

        assert parsed.period_start == date(2025, 7, 1)
        assert parsed.period_end == date(2025, 7, 31)
        assert parsed.billing_month == "2025-07-01"

    def test_dashed_us_range(self):
        parsed = parse_period_from_description("Backup 07-01-2025 to 07-31-2025")

        assert parsed.billing_month == "2025-07-01"

    def test_month_name_covers_whole_month(self):
        parsed = parse_period_from_description("Licenses February 2024")

        assert parsed.period_start == date(2024, 2, 1)
        assert parsed.period_end == date(2024, 2, 29)
        assert parsed.billing_month == "2024-02-01"

    def test_nothing_found(self):
        parsed = parse_period_from_description("Support")

        assert parsed.period_start is None
        assert parsed.billing_month is None


class TestCsvPeriods:
    """Tests for the two-digit-year helpers used by exports."""

    def test_trailing_range(self):
        assert extract_csv_period("Compute 8/1/25-8/31/25") == Period(
            start=date(2025, 8, 1), end=date(2025, 8, 31)
        )

    def test_range_must_be_trailing(self):
        assert extract_csv_period("8/1/25-8/31/25 Compute") is None

    def test_two_digit_year_pivot(self):
        assert parse_us_date("1/2/49") == date(2049, 1, 2)
        assert parse_us_date("1/2/50") == date(1950, 1, 2)

    def test_unparseable(self):
        assert parse_us_date("tomorrow") is None


class TestResolveBillingMonth:
    """Priority: override, period start, description, invoice date, today."""

    def test_override_wins(self):
        month = resolve_billing_month("2025-03-01", "2025-01-15", "Usage Feb 2025", "2025-04-10")

        assert month == "2025-03-01"

    def test_period_start_wins_without_override(self):
        month = resolve_billing_month(None, "2025-01-15", "Usage Feb 2025", "2025-04-10")

        assert month == "2025-01-01"

    def test_description_before_invoice_date(self):
        month = resolve_billing_month(None, None, "Usage Feb 2025", "2025-04-10")

        assert month == "2025-02-01"

    def test_invoice_date_fallback(self):
        assert resolve_billing_month(None, None, "Support", date(2025, 4, 10)) == "2025-04-01"

    def test_current_month_last_resort(self):
        assert resolve_billing_month(None, None, "", None, today=date(2026, 1, 17)) == "2026-01-01"

    def test_override_is_truncated_to_month(self):
        assert resolve_billing_month(date(2025, 3, 15), None, "", None) == "2025-03-01"

    def test_unparseable_override_returned_verbatim(self):
        assert resolve_billing_month("next quarter", "2025-01-15", "", None) == "next quarter"


def test_coerce_date_variants():
    assert coerce_date("2025-08-01T10:00:00Z") == date(2025, 8, 1)
    assert coerce_date("8/1/2025") is None
    assert coerce_date(None) is None
