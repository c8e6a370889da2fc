"""
Tax Normalizer - convert amounts between tax-inclusive and tax-exclusive.

Pure functions with no I/O.  The VAT rate is a constructor parameter
(16% by default, configurable via ``tax.rate``).

Rounding happens once, at the point of conversion: half-up to
``decimal_places``.  ``split`` derives the tax as ``total - subtotal`` so
``subtotal + tax == total`` holds exactly.

Zero and negative amounts (refunds) pass through unchanged.

Usage:
    from decimal import Decimal
    from eventfin_engines.tax import TaxNormalizer

    normalizer = TaxNormalizer()
    normalizer.to_exclusive(Decimal("100000.00"))   # Decimal("86206.90")
    normalizer.split(Decimal("100000.00")).tax      # Decimal("13793.10")
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

DEFAULT_TAX_RATE = Decimal("0.16")


@dataclass(frozen=True)
class TaxSplit:
    """A tax-inclusive total split into subtotal and tax."""

    subtotal: Decimal
    tax: Decimal
    total: Decimal


class TaxNormalizer:
    """Single source of truth for VAT conversions."""

    def __init__(
        self,
        rate: Decimal = DEFAULT_TAX_RATE,
        decimal_places: int = 2,
    ):
        rate = Decimal(str(rate))
        if rate < 0:
            raise ValueError(f"Tax rate cannot be negative: {rate}")
        if decimal_places < 0:
            raise ValueError(f"decimal_places cannot be negative: {decimal_places}")
        self.rate = rate
        self.decimal_places = decimal_places
        self._quantum = Decimal(1).scaleb(-decimal_places)

    def __repr__(self) -> str:
        return f"TaxNormalizer(rate={self.rate}, decimal_places={self.decimal_places})"

    def quantize(self, amount: Decimal) -> Decimal:
        """Round half-up to the configured number of places."""
        return amount.quantize(self._quantum, rounding=ROUND_HALF_UP)

    def to_exclusive(self, total: Decimal) -> Decimal:
        """Tax-exclusive subtotal of a tax-inclusive total."""
        if total <= 0:
            return total
        return self.quantize(total / (1 + self.rate))

    def to_inclusive(self, subtotal: Decimal) -> Decimal:
        """Tax-inclusive total of a tax-exclusive subtotal."""
        if subtotal <= 0:
            return subtotal
        return self.quantize(subtotal * (1 + self.rate))

    def split(self, total: Decimal) -> TaxSplit:
        """Split a tax-inclusive total into subtotal + tax."""
        if total <= 0:
            return TaxSplit(subtotal=total, tax=Decimal("0"), total=total)
        subtotal = self.to_exclusive(total)
        return TaxSplit(subtotal=subtotal, tax=total - subtotal, total=total)
