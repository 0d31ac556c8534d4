"""
Yearly VAT/PIT policy for household businesses.

A store is exempt while its accumulated revenue for the year stays at or
below the threshold. Above it, the goods distribution tier applies:
VAT 1% and PIT 0.5%. The services/construction (5% / 2%) and
manufacturing/transport (3% / 1.5%) tiers are not offered.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP


THRESHOLD_BEFORE_2026 = Decimal("100000000")
THRESHOLD_FROM_2026 = Decimal("200000000")

GOODS_DISTRIBUTION_VAT = Decimal("0.01")
GOODS_DISTRIBUTION_PIT = Decimal("0.005")

# Tax amounts are whole currency units
CURRENCY_QUANTUM = Decimal("1")


@dataclass(frozen=True)
class TaxPolicy:
    year: int
    threshold_amount: Decimal
    vat_rate: Decimal
    pit_rate: Decimal
    is_exempt: bool

    def vat_for(self, amount: Decimal) -> Decimal:
        return round_currency(amount * self.vat_rate)

    def pit_for(self, amount: Decimal) -> Decimal:
        return round_currency(amount * self.pit_rate)

    def total_tax_for(self, amount: Decimal) -> Decimal:
        return round_currency(amount * (self.vat_rate + self.pit_rate))


def round_currency(amount: Decimal) -> Decimal:
    """Round half-up to whole currency units"""
    return amount.quantize(CURRENCY_QUANTUM, rounding=ROUND_HALF_UP)


def tax_threshold(year: int) -> Decimal:
    return THRESHOLD_FROM_2026 if year >= 2026 else THRESHOLD_BEFORE_2026


def resolve_tax_policy(year: int, accumulated_revenue: Decimal) -> TaxPolicy:
    """
    Resolve the policy for a year given the revenue accumulated so far.

    Args:
        year: Calendar year of the reporting period
        accumulated_revenue: Sales from Jan 1 through the end of the period

    Returns:
        TaxPolicy with rates zeroed when exempt
    """
    threshold = tax_threshold(year)
    is_exempt = accumulated_revenue <= threshold
    if is_exempt:
        return TaxPolicy(year, threshold, Decimal("0"), Decimal("0"), True)
    return TaxPolicy(year, threshold, GOODS_DISTRIBUTION_VAT, GOODS_DISTRIBUTION_PIT, False)
