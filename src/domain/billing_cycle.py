"""Billing cycle lengths and calendar arithmetic"""

from calendar import monthrange
from datetime import date, datetime
from enum import Enum
from typing import Union


class BillingCycle(str, Enum):
    """Recurring period length of a plan"""
    MONTHLY = "monthly"
    SEMI_ANNUAL = "semi_annual"
    ANNUAL = "annual"

    @property
    def months(self) -> int:
        return _CYCLE_MONTHS[self]

    @property
    def label(self) -> str:
        return self.value.replace("_", "-").title()


_CYCLE_MONTHS = {
    BillingCycle.MONTHLY: 1,
    BillingCycle.SEMI_ANNUAL: 6,
    BillingCycle.ANNUAL: 12,
}


DateLike = Union[date, datetime]


def add_months(value: DateLike, months: int) -> DateLike:
    """
    Shift a date or datetime by whole calendar months.

    The day is clamped to the last day of the target month, so
    Jan 31 + 1 month is Feb 28 (or 29).
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def first_of_month(value: DateLike) -> date:
    return date(value.year, value.month, 1)
