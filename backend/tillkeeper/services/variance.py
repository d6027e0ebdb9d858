# Overview: Pure cash reconciliation math. No database access.

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class VarianceResult:
    expected_total_cents: int
    variance_cents: int

    @property
    def is_surplus(self) -> bool:
        return self.variance_cents > 0

    @property
    def is_shortage(self) -> bool:
        return self.variance_cents < 0


def compute_variance(
    *,
    opening_float_cents: int,
    system_sales_total_cents: int,
    discount_total_cents: int,
    informed_total_cents: int,
) -> VarianceResult:
    """
    expected = opening float + sales - discounts
    variance = informed - expected

    Positive variance is a surplus in the drawer, negative a shortage.
    Integer cents keep this exact to two decimal places.
    """
    expected = opening_float_cents + system_sales_total_cents - discount_total_cents
    return VarianceResult(
        expected_total_cents=expected,
        variance_cents=informed_total_cents - expected,
    )


def format_cents(cents: int | None) -> str:
    if cents is None:
        return "-"
    sign = "-" if cents < 0 else ""
    return f"{sign}{abs(cents) / 100:.2f}"
