# Overview: Integer-cents arithmetic for booking amounts.

"""
Money helpers.

All amounts are integer minor units (cents). Nothing here ever produces or
accepts a float, so sums of many partial payments never drift.
"""

from __future__ import annotations

from typing import Iterable


def percent_of(amount_cents: int, percent: int) -> int:
    """
    amount * percent / 100, rounded half-up to the nearest cent.

    Both inputs are non-negative integers; the rounding is done in integer
    arithmetic.
    """
    if amount_cents < 0 or percent < 0:
        raise ValueError("percent_of expects non-negative inputs")
    return (amount_cents * percent * 2 + 100) // 200


def final_amount(total_cents: int, discount_cents: int) -> int:
    """final = total - discount, never negative."""
    return max(0, total_cents - discount_cents)


def clamp_discount(total_cents: int, discount_cents: int) -> int:
    """A discount is never negative and never exceeds the total it applies to."""
    return max(0, min(discount_cents, total_cents))


def line_total(quantity: int, price_per_unit_cents: int) -> int:
    return quantity * price_per_unit_cents


def sum_cents(amounts: Iterable[int]) -> int:
    return sum(amounts, 0)


def format_cents(amount_cents: int) -> str:
    sign = "-" if amount_cents < 0 else ""
    whole, cents = divmod(abs(amount_cents), 100)
    return f"{sign}{whole:,}.{cents:02d}"
