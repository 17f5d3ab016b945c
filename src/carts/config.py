"""Cart-core settings.

Protean loads ``domain.toml`` next to ``domain.py`` when the ``carts`` domain
is built. The cart core keeps its own settings under the ``[custom]`` table;
they are validated here into typed models.
"""

from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from carts.domain import carts


class CartSettings(BaseModel):
    associate_policy: Literal["merge", "override"] = "merge"
    max_line_quantity: int = Field(default=10000, ge=1)


class ShippingOptionSettings(BaseModel):
    identifier: str
    name: str
    price: Decimal
    description: str = ""
    collect: bool = False
    tax_class: str | None = None


class ShippingSettings(BaseModel):
    options: list[ShippingOptionSettings] = Field(default_factory=list)


class TaxRateSettings(BaseModel):
    tax_class: str
    identifier: str
    description: str
    percentage: Decimal = Field(ge=0)


class TaxSettings(BaseModel):
    shipping_tax_class: str = "standard"
    rates: list[TaxRateSettings] = Field(default_factory=list)


class Settings(BaseModel):
    cart: CartSettings = Field(default_factory=CartSettings)
    shipping: ShippingSettings = Field(default_factory=ShippingSettings)
    tax: TaxSettings = Field(default_factory=TaxSettings)


def load_settings(domain=carts) -> Settings:
    """Validate the ``[custom]`` table of a domain's config."""
    return Settings.model_validate(domain.config["custom"] or {})
