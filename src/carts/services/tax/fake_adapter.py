"""Rate-table tax service for development and testing.

Looks up one or more percentage rates per tax class (``[tax]`` config section
by default) and applies each to the requested amount, rounding half-up.
"""

from collections import defaultdict

from carts.calculation.snapshot import TaxAmount, TaxBreakdown
from carts.config import TaxSettings
from carts.exceptions import UnresolvableTaxRule
from carts.services.tax.port import TaxRequest, TaxService


class FakeTaxService(TaxService):
    """Configurable rate-table tax service."""

    def __init__(self, rates: list[dict] | None = None) -> None:
        self.rates: dict[str, list[dict]] = defaultdict(list)
        self.calls: list[TaxRequest] = []
        for rate in rates or []:
            self.rates[rate["tax_class"]].append(rate)

    @classmethod
    def from_settings(cls, settings: TaxSettings) -> "FakeTaxService":
        return cls(rates=[rate.model_dump() for rate in settings.rates])

    def configure(self, rates: list[dict]) -> None:
        """Replace the rate table at runtime."""
        self.rates = defaultdict(list)
        for rate in rates:
            self.rates[rate["tax_class"]].append(rate)

    def get_breakdown(self, request: TaxRequest) -> TaxBreakdown:
        self.calls.append(request)

        rates = self.rates.get(request.tax_class)
        if not rates:
            raise UnresolvableTaxRule({"tax_class": [f"No tax rule for class '{request.tax_class}'"]})

        return TaxBreakdown(
            amounts=tuple(
                TaxAmount(
                    identifier=rate["identifier"],
                    description=rate["description"],
                    percentage=rate["percentage"],
                    price=request.amount.percentage(rate["percentage"]),
                )
                for rate in rates
            )
        )
