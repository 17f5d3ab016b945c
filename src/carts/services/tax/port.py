"""Tax service port (abstract interface).

Tax rules are resolved outside the cart core. The pipeline hands each taxable
amount to the adapter and receives a breakdown keyed by rate identifier.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from carts.calculation.snapshot import TaxBreakdown
from carts.pricing.price import Currency, Price


@dataclass(frozen=True)
class TaxRequest:
    """An amount to be taxed and the context needed to pick the rule."""

    currency: Currency
    tax_class: str
    amount: Price
    shipping_address: Any = None
    billing_address: Any = None
    line_id: str | None = None
    is_shipping: bool = False


class TaxService(ABC):
    """Abstract tax-rule resolution."""

    @abstractmethod
    def get_breakdown(self, request: TaxRequest) -> TaxBreakdown:
        """Return the tax owed on ``request.amount``.

        Raises UnresolvableTaxRule when no rule applies to the tax class.
        """
        ...
