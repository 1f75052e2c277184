"""Time-window filtering and period-over-period comparison.

All comparisons happen on naive local datetimes: plain dates count as
local midnight, aware datetimes are converted to local time first.
"""

import calendar
import logging
import math
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable, Optional

from langcrm.models import DateRange, TimeWindow

logger = logging.getLogger(__name__)

# Fixed-length windows
_DELTAS = {
    TimeWindow.LAST_24H: timedelta(hours=24),
    TimeWindow.LAST_7D: timedelta(days=7),
}

# Calendar-month windows
_MONTHS = {
    TimeWindow.LAST_MONTH: 1,
    TimeWindow.LAST_3_MONTHS: 3,
    TimeWindow.LAST_6_MONTHS: 6,
    TimeWindow.LAST_YEAR: 12,
}


def subtract_months(moment: datetime, months: int) -> datetime:
    """Same wall-clock time ``months`` earlier, day clamped to month length."""
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _shift_back(moment: datetime, window: TimeWindow) -> datetime:
    if window in _DELTAS:
        return moment - _DELTAS[window]
    return subtract_months(moment, _MONTHS[window])


def to_local_datetime(value: Any) -> Optional[datetime]:
    """Coerce a stored date value to a naive local datetime (None if unusable)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.astimezone().replace(tzinfo=None) if value.tzinfo else value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, str):
        value = value.strip()
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        try:
            return to_local_datetime(datetime.fromisoformat(value))
        except ValueError:
            return None
    return None


def _item_value(item: Any, date_field: str) -> Any:
    if isinstance(item, dict):
        return item.get(date_field)
    return getattr(item, date_field, None)


def _in_range(items: Iterable, date_field: str, start: datetime,
              end: Optional[datetime], end_inclusive: bool = True) -> list:
    selected = []
    for item in items:
        moment = to_local_datetime(_item_value(item, date_field))
        if moment is None:
            continue
        if moment < start:
            continue
        if end is not None and (moment > end if end_inclusive else moment >= end):
            continue
        selected.append(item)
    return selected


def window_bounds(
    window: TimeWindow,
    custom_range: Optional[DateRange] = None,
    now: Optional[datetime] = None,
) -> Optional[tuple[datetime, Optional[datetime]]]:
    """Return (start, end) of the current window, or None if unbounded.

    Relative windows have no upper bound; a custom range ends at the very
    end of its end date.
    """
    window = TimeWindow(window)
    if window == TimeWindow.ALL:
        return None
    if window == TimeWindow.CUSTOM:
        if custom_range is None:
            return None
        return (
            datetime.combine(custom_range.start_date, time.min),
            datetime.combine(custom_range.end_date, time.max),
        )
    now = to_local_datetime(now) if now else datetime.now()
    return _shift_back(now, window), None


def filter_by_window(
    items: Iterable,
    date_field: str,
    window: TimeWindow,
    custom_range: Optional[DateRange] = None,
    now: Optional[datetime] = None,
) -> list:
    """Keep items whose ``date_field`` falls in the window.

    Works on dicts or objects, with date, datetime or ISO-string values.
    ``all`` (and ``custom`` without a range) keeps everything; otherwise
    items with a missing or unparsable date are dropped.
    """
    items = list(items)
    bounds = window_bounds(window, custom_range, now)
    if bounds is None:
        return items
    start, end = bounds
    return _in_range(items, date_field, start, end)


def previous_period(
    items: Iterable,
    date_field: str,
    window: TimeWindow,
    custom_range: Optional[DateRange] = None,
    now: Optional[datetime] = None,
) -> list:
    """Items in the equal-length period immediately before the window.

    The previous period is half-open: it ends exactly where the current
    window starts, so no item is counted in both.
    """
    window = TimeWindow(window)
    items = list(items)
    if window == TimeWindow.ALL:
        return []
    if window == TimeWindow.CUSTOM:
        if custom_range is None:
            return []
        cutoff = datetime.combine(custom_range.start_date, time.min)
        span_days = (custom_range.end_date - custom_range.start_date).days + 1
        prev_start = cutoff - timedelta(days=span_days)
    else:
        now = to_local_datetime(now) if now else datetime.now()
        cutoff = _shift_back(now, window)
        prev_start = _shift_back(cutoff, window)
    return _in_range(items, date_field, prev_start, cutoff, end_inclusive=False)


def percentage_change(current: float, previous: float) -> int:
    """Rounded percent change; growth from zero reads as 100%."""
    if previous == 0:
        return 100 if current > 0 else 0
    # Half-up, matching the dashboard's historical rounding
    return math.floor((current - previous) / previous * 100 + 0.5)
