"""Service-period extraction and billing-month resolution.

A charge's billing month is resolved with this priority, first match wins:

1. Manual override (``billing_month_override``)
2. Persisted ``period_start``
3. Period parsed from the description
4. Invoice date
5. Current month
"""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date, datetime

MONTH_NAME_TO_INDEX = {
    "january": 1, "jan": 1,
    "february": 2, "feb": 2,
    "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "may": 5,
    "june": 6, "jun": 6,
    "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sept": 9, "sep": 9,
    "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}

# M/D/YYYY-M/D/YYYY, optionally spaced or wrapped onto a new line around the dash
_US_RANGE = re.compile(
    r"(\d{1,2})/(\d{1,2})/(\d{4})\s*[-–]\s*\n?\s*(\d{1,2})/(\d{1,2})/(\d{4})"
)
_DASHED_US_RANGE = re.compile(
    r"(\d{1,2})-(\d{1,2})-(\d{4})\s*(?:to|[-–])\s*(\d{1,2})-(\d{1,2})-(\d{4})",
    re.IGNORECASE,
)
_ISO_RANGE = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})\s*(?:to|[-–])\s*(\d{4})-(\d{2})-(\d{2})",
    re.IGNORECASE,
)
_MONTH_YEAR = re.compile(
    r"\b(January|February|March|April|May|June|July|August|September|October|"
    r"November|December|Jan|Feb|Mar|Apr|Jun|Jul|Aug|Sept|Sep|Oct|Nov|Dec)\s+(\d{4})\b",
    re.IGNORECASE,
)
_CSV_TRAILING_RANGE = re.compile(r"(\d{1,2}/\d{1,2}/\d{2,4})-(\d{1,2}/\d{1,2}/\d{2,4})$")


@dataclass(frozen=True)
class Period:
    """An inclusive service period."""

    start: date
    end: date

    def as_dict(self) -> dict[str, str]:
        return {"period_start": self.start.isoformat(), "period_end": self.end.isoformat()}


@dataclass(frozen=True)
class ParsedPeriod:
    """Period parsed from a description, with the billing month it implies."""

    period_start: date | None = None
    period_end: date | None = None
    billing_month: str | None = None


def first_of_month(value: date) -> date:
    return value.replace(day=1)


def format_month(value: date) -> str:
    """Render a date as the ``YYYY-MM-01`` billing-month key."""
    return first_of_month(value).isoformat()


def coerce_date(value: str | date | datetime | None) -> date | None:
    """Parse ``YYYY-MM-DD`` (or an ISO timestamp) into a date; None if unparseable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = value.strip()
    if len(text) < 10:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def parse_us_date(value: str) -> date | None:
    """Parse ``M/D/YY`` or ``M/D/YYYY``; two-digit years pivot at 50."""
    parts = value.strip().split("/")
    if len(parts) != 3 or not all(part.isdigit() for part in parts):
        return None
    month, day, year = (int(part) for part in parts)
    if len(parts[2]) == 2:
        year += 1900 if year >= 50 else 2000
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _build_dates(groups: tuple[str, ...], iso: bool) -> tuple[date, date] | None:
    numbers = [int(g) for g in groups]
    if iso:
        start_year, start_month, start_day, end_year, end_month, end_day = numbers
    else:
        start_month, start_day, start_year, end_month, end_day, end_year = numbers
    try:
        return (
            date(start_year, start_month, start_day),
            date(end_year, end_month, end_day),
        )
    except ValueError:
        return None


def extract_period(description: str) -> Period | None:
    """Extract a ``M/D/YYYY-M/D/YYYY`` service period from a line description.

    Years must fall within 2000-2100; malformed or absent ranges yield None.
    """
    if not description:
        return None

    match = _US_RANGE.search(description)
    if not match:
        return None

    dates = _build_dates(match.groups(), iso=False)
    if dates is None:
        return None
    start, end = dates
    if not (2000 <= start.year <= 2100 and 2000 <= end.year <= 2100):
        return None
    return Period(start=start, end=end)


def parse_period_from_description(description: str) -> ParsedPeriod:
    """Parse a service period from numeric ranges, ISO ranges or month names."""
    if not description:
        return ParsedPeriod()

    for pattern, iso in ((_US_RANGE, False), (_DASHED_US_RANGE, False), (_ISO_RANGE, True)):
        match = pattern.search(description)
        if not match:
            continue
        dates = _build_dates(match.groups(), iso=iso)
        if dates is None:
            continue
        start, end = dates
        return ParsedPeriod(period_start=start, period_end=end, billing_month=format_month(start))

    match = _MONTH_YEAR.search(description)
    if match:
        month = MONTH_NAME_TO_INDEX.get(match.group(1).lower())
        year = int(match.group(2))
        if month is not None:
            start = date(year, month, 1)
            end = date(year, month, calendar.monthrange(year, month)[1])
            return ParsedPeriod(period_start=start, period_end=end, billing_month=format_month(start))

    return ParsedPeriod()


def extract_csv_period(description: str) -> Period | None:
    """Extract a trailing ``M/D/YY-M/D/YY`` range as found in CSV exports."""
    match = _CSV_TRAILING_RANGE.search(description.strip()) if description else None
    if not match:
        return None
    start = parse_us_date(match.group(1))
    end = parse_us_date(match.group(2))
    if start is None or end is None:
        return None
    return Period(start=start, end=end)


def resolve_billing_month(
    override: str | date | None,
    period_start: str | date | None,
    description: str,
    invoice_date: str | date | None,
    today: date | None = None,
) -> str:
    """Resolve the ``YYYY-MM-01`` month a charge is attributed to."""
    if override:
        override_date = coerce_date(override)
        if override_date is None:
            # Unparseable overrides still win; they are returned as stored.
            return str(override)
        return format_month(override_date)

    start = coerce_date(period_start)
    if start is not None:
        return format_month(start)

    parsed = parse_period_from_description(description)
    if parsed.billing_month:
        return parsed.billing_month

    issued = coerce_date(invoice_date)
    if issued is not None:
        return format_month(issued)

    return format_month(today or date.today())
