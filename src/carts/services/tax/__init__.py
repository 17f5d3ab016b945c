"""Tax-rule resolution: port and the rate-table adapter."""

from carts.services.tax.fake_adapter import FakeTaxService
from carts.services.tax.port import TaxRequest, TaxService

__all__ = ["FakeTaxService", "TaxRequest", "TaxService"]
