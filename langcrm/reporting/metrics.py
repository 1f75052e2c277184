"""Dashboard metric cards: a windowed total, its previous period and the breakdown."""

from datetime import datetime
from typing import Iterable, Optional

from pydantic import BaseModel

from langcrm.models import (
    ContactMethod,
    Currency,
    DateRange,
    Expenditure,
    ExpenditureCategory,
    Payment,
    PaymentMethod,
    Prospect,
    ServiceType,
    TimeWindow,
)
from langcrm.reporting.windows import filter_by_window, percentage_change, previous_period


class MetricCard(BaseModel):
    total: float
    previous: float
    percentage_change: int
    categories: dict[str, float]
    currency: Optional[Currency] = None


def _card(current_total, previous_total, categories, currency=None) -> MetricCard:
    return MetricCard(
        total=current_total,
        previous=previous_total,
        percentage_change=percentage_change(current_total, previous_total),
        categories=categories,
        currency=currency,
    )


def _counts(items, attr: str, members, keep_zero: bool = False) -> dict[str, float]:
    counts = {m.value: 0 for m in members}
    for item in items:
        counts[getattr(item, attr).value] += 1
    return counts if keep_zero else {k: v for k, v in counts.items() if v > 0}


def prospect_metric(
    prospects: Iterable[Prospect],
    window: TimeWindow,
    custom_range: Optional[DateRange] = None,
    now: Optional[datetime] = None,
) -> MetricCard:
    """New inquiries in the window, split by contact method."""
    prospects = list(prospects)
    current = filter_by_window(prospects, "date_of_contact", window, custom_range, now)
    previous = previous_period(prospects, "date_of_contact", window, custom_range, now)
    return _card(len(current), len(previous), _counts(current, "contact_method", ContactMethod))


def service_metric(
    prospects: Iterable[Prospect],
    window: TimeWindow,
    custom_range: Optional[DateRange] = None,
    now: Optional[datetime] = None,
) -> MetricCard:
    """Inquiries per service; every service is listed even at zero."""
    prospects = list(prospects)
    current = filter_by_window(prospects, "date_of_contact", window, custom_range, now)
    previous = previous_period(prospects, "date_of_contact", window, custom_range, now)
    categories = {s.value: 0 for s in ServiceType}
    for p in current:
        categories[p.service_type.value] += 1
    return _card(len(current), len(previous), categories)


def receipts_metric(
    payments: Iterable[Payment],
    window: TimeWindow,
    currency: Currency = Currency.USD,
    custom_range: Optional[DateRange] = None,
    now: Optional[datetime] = None,
) -> MetricCard:
    """Money received in ``currency``; payments in other currencies are left out."""
    payments = [p for p in payments if p.currency == currency]
    current = filter_by_window(payments, "payment_date", window, custom_range, now)
    previous = previous_period(payments, "payment_date", window, custom_range, now)
    return _card(
        sum(p.amount for p in current),
        sum(p.amount for p in previous),
        _counts(current, "method", PaymentMethod),
        currency,
    )


def expenditure_metric(
    expenditures: Iterable[Expenditure],
    window: TimeWindow,
    currency: Currency = Currency.USD,
    custom_range: Optional[DateRange] = None,
    now: Optional[datetime] = None,
) -> MetricCard:
    expenditures = [e for e in expenditures if e.currency == currency]
    current = filter_by_window(expenditures, "expenditure_date", window, custom_range, now)
    previous = previous_period(expenditures, "expenditure_date", window, custom_range, now)
    return _card(
        sum(e.amount for e in current),
        sum(e.amount for e in previous),
        _counts(current, "category", ExpenditureCategory),
        currency,
    )
