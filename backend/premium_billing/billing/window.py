"""Calendar arithmetic for subscription validity windows."""

import calendar
from dataclasses import dataclass
from datetime import date
from enum import StrEnum


class ExtensionPolicy(StrEnum):
    """What a payment does to a subscription that is still running.

    RESET: the window restarts at the payment date and lasts one month.
    STACK: one month is appended to the end of the running window.
    """

    RESET = "reset"
    STACK = "stack"


DEFAULT_EXTENSION_POLICY = ExtensionPolicy.RESET


def add_months(start: date, months: int = 1) -> date:
    """Add calendar months, clamping to the last day of the target month.

    >>> add_months(date(2024, 1, 31))
    datetime.date(2024, 2, 29)
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(start.day, last_day))


@dataclass(frozen=True)
class SubscriptionWindow:
    start: date
    end: date


def next_window(
    paid_on: date,
    *,
    current_start: date | None = None,
    current_end: date | None = None,
    policy: ExtensionPolicy = DEFAULT_EXTENSION_POLICY,
) -> SubscriptionWindow:
    """Compute the validity window produced by a payment made on ``paid_on``."""
    if policy == ExtensionPolicy.STACK and current_end is not None and current_end > paid_on:
        return SubscriptionWindow(start=current_start or paid_on, end=add_months(current_end))
    return SubscriptionWindow(start=paid_on, end=add_months(paid_on))
