"""Date range resolution for the analytics and listing tools.

Every tool that reads ledger data by time accepts either a keyword
(``date_range``) or an explicit ``start_date``/``end_date`` pair. Keywords are
resolved here against a reference instant in naive local time. Bounds are
inclusive: a day runs from 00:00:00 to 23:59:59.999.

Unrecognized keywords never raise. They fall back to today and the label says
so, which makes the fallback visible both in the logs and to the model reading
the tool output.
"""

import re
from datetime import date, datetime, time, timedelta
from typing import Optional

from merchant_desk.models.ledger import DateRange

END_OF_DAY = time(23, 59, 59, 999000)

_LAST_N_DAYS = re.compile(r"last (\d+) days?|[uú]ltimos (\d+) d[ií]as?")
_LAST_N_HOURS = re.compile(r"last (\d+) hours?|[uú]ltimas (\d+) horas?")
_ISO_RANGE = re.compile(r"(\d{4}-\d{2}-\d{2})\s*(?:to|hasta|-)\s*(\d{4}-\d{2}-\d{2})")
_ISO_SINGLE = re.compile(r"^(\d{4}-\d{2}-\d{2})$")

_TODAY = {"today", "hoy"}
_YESTERDAY = {"yesterday", "ayer"}
_THIS_WEEK = {"this week", "esta semana"}
_LAST_WEEK = {"last week", "semana pasada"}
_THIS_MONTH = {"this month", "este mes"}
_LAST_MONTH = {"last month", "mes pasado"}
_THIS_WEEKEND = {"this weekend", "este fin de semana"}
_LAST_WEEKEND = {"last weekend", "previous weekend", "fin de semana pasado"}


def start_of_day(value) -> datetime:
    if isinstance(value, datetime):
        value = value.date()
    return datetime.combine(value, time.min)


def end_of_day(value) -> datetime:
    if isinstance(value, datetime):
        value = value.date()
    return datetime.combine(value, END_OF_DAY)


def monday_of(now: datetime) -> datetime:
    """Start of the ISO week (Monday 00:00) containing now."""
    return start_of_day(now) - timedelta(days=now.weekday())


def most_recent_friday(now: datetime) -> datetime:
    """Friday 00:00 on or before now. Mid-week this is the past Friday."""
    days_back = (now.weekday() - 4) % 7
    return start_of_day(now) - timedelta(days=days_back)


def _weekend_from(friday: datetime, label: str) -> DateRange:
    return DateRange(start=friday, end=end_of_day(friday + timedelta(days=2)), label=label)


def parse_date_range(text: str, now: Optional[datetime] = None) -> DateRange:
    """Resolve a keyword or ISO expression into an inclusive DateRange."""
    now = now or datetime.now()
    key = (text or "").lower().strip()

    today_start = start_of_day(now)
    today_end = end_of_day(now)

    if key in _TODAY:
        return DateRange(today_start, today_end, "Today")

    if key in _YESTERDAY:
        yesterday = today_start - timedelta(days=1)
        return DateRange(yesterday, end_of_day(yesterday), "Yesterday")

    if key in _THIS_WEEK:
        return DateRange(monday_of(now), today_end, "This week")

    if key in _LAST_WEEK:
        this_monday = monday_of(now)
        last_monday = this_monday - timedelta(days=7)
        return DateRange(last_monday, end_of_day(this_monday - timedelta(days=1)), "Last week")

    if key in _THIS_MONTH:
        first = today_start.replace(day=1)
        return DateRange(first, today_end, "This month")

    if key in _LAST_MONTH:
        first_this_month = today_start.replace(day=1)
        last_day_prev = first_this_month - timedelta(days=1)
        return DateRange(last_day_prev.replace(day=1), end_of_day(last_day_prev), "Last month")

    if key in _THIS_WEEKEND:
        return _weekend_from(most_recent_friday(now), "This weekend (Fri-Sun)")

    if key in _LAST_WEEKEND:
        return _weekend_from(most_recent_friday(now) - timedelta(days=7), "Last weekend (Fri-Sun)")

    match = _LAST_N_DAYS.search(key)
    if match:
        n = int(match.group(1) or match.group(2))
        try:
            return DateRange(today_start - timedelta(days=n), today_end, f"Last {n} days")
        except (OverflowError, ValueError):
            # Out of datetime range; reported as unrecognized below
            pass

    match = _LAST_N_HOURS.search(key)
    if match:
        n = int(match.group(1) or match.group(2))
        try:
            return DateRange(now - timedelta(hours=n), now, f"Last {n} hours")
        except (OverflowError, ValueError):
            pass

    match = _ISO_RANGE.search(key)
    if match:
        try:
            start_day = date.fromisoformat(match.group(1))
            end_day = date.fromisoformat(match.group(2))
        except ValueError:
            pass
        else:
            return DateRange(
                start_of_day(start_day),
                end_of_day(end_day),
                f"{match.group(1)} to {match.group(2)}",
            )

    match = _ISO_SINGLE.match(key)
    if match:
        try:
            day = date.fromisoformat(match.group(1))
        except ValueError:
            pass
        else:
            return DateRange(start_of_day(day), end_of_day(day), match.group(1))

    return DateRange(today_start, today_end, f'Today (unrecognized input: "{text}")')


def _parse_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.strip())
    if parsed.tzinfo is not None:
        # Ledgers and day boundaries are compared in local time
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def build_date_range(start_iso: str, end_iso: str) -> DateRange:
    """
    Build a DateRange from explicit ISO start/end strings.

    A date-only end is widened to the end of that day so the range stays
    inclusive.

    Raises:
        ValueError: If either value is not ISO 8601.
    """
    try:
        start = _parse_iso(start_iso)
        end = _parse_iso(end_iso)
    except (TypeError, ValueError):
        raise ValueError(
            f'Invalid ISO dates: start="{start_iso}", end="{end_iso}". '
            "Use YYYY-MM-DD or YYYY-MM-DDTHH:MM:SS format."
        )
    if len(end_iso.strip()) == 10:
        end = end_of_day(end)
    return DateRange(start, end, f"{start_iso.strip()[:10]} to {end_iso.strip()[:10]}")


def resolve_tool_date_range(
    date_range: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    now: Optional[datetime] = None,
) -> DateRange:
    """Explicit start/end pair wins; otherwise the keyword, defaulting to today."""
    if start_date and end_date:
        return build_date_range(start_date, end_date)
    return parse_date_range(date_range or "today", now=now)
