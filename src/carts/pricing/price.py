"""Price value object: fixed-point currency amounts.

Amounts are held as integers in the currency's minor unit (cents for USD,
yen for JPY). Every division rounds half-up at the minor unit, so arithmetic
never drifts the way floats do.
"""

import math
from decimal import Decimal
from fractions import Fraction

from pydantic import BaseModel, ConfigDict, Field, field_validator

from carts.exceptions import CurrencyMismatch


def round_half_up(amount: Fraction) -> int:
    """Round an exact fraction to the nearest integer, halves away from zero."""
    if amount >= 0:
        return math.floor(amount + Fraction(1, 2))
    return -math.floor(-amount + Fraction(1, 2))


class Currency(BaseModel):
    """An ISO 4217 currency and the number of digits in its minor unit."""

    model_config = ConfigDict(frozen=True)

    code: str = Field(min_length=3, max_length=3)
    decimal_places: int = Field(default=2, ge=0, le=4)

    @field_validator("code")
    @classmethod
    def code_must_be_upper_case(cls, value: str) -> str:
        return value.upper()

    @property
    def factor(self) -> int:
        return 10**self.decimal_places


class Price(BaseModel):
    """An immutable amount of money in one currency."""

    model_config = ConfigDict(frozen=True)

    value: int
    currency: Currency

    # -------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------
    @classmethod
    def zero(cls, currency: Currency) -> "Price":
        return cls(value=0, currency=currency)

    @classmethod
    def from_decimal(cls, amount, currency: Currency) -> "Price":
        """Build a price from a major-unit amount such as ``Decimal("10.00")``."""
        exact = Fraction(Decimal(str(amount))) * currency.factor
        return cls(value=round_half_up(exact), currency=currency)

    # -------------------------------------------------------------------
    # Arithmetic
    # -------------------------------------------------------------------
    def _assert_same_currency(self, other: "Price") -> None:
        if self.currency.code != other.currency.code:
            raise CurrencyMismatch(self.currency.code, other.currency.code)

    def add(self, other: "Price") -> "Price":
        self._assert_same_currency(other)
        return Price(value=self.value + other.value, currency=self.currency)

    def subtract(self, other: "Price") -> "Price":
        self._assert_same_currency(other)
        return Price(value=self.value - other.value, currency=self.currency)

    def multiply(self, quantity: int) -> "Price":
        if not isinstance(quantity, int):
            raise TypeError("Prices can only be multiplied by an integer quantity")
        return Price(value=self.value * quantity, currency=self.currency)

    def percentage(self, rate) -> "Price":
        """Return ``rate`` percent of this price, rounded half-up."""
        exact = Fraction(self.value) * Fraction(Decimal(str(rate))) / 100
        return Price(value=round_half_up(exact), currency=self.currency)

    def allocate_proportionally(self, weights) -> list["Price"]:
        """Split this price into shares proportional to ``weights``.

        Shares are the differences of consecutive half-up rounded cumulative
        amounts, so they always sum to exactly ``self.value`` and are never
        negative for a non-negative price. The final share absorbs whatever
        rounding residue is left. Weights may be numbers or prices in the
        same currency; all-zero weights split evenly.
        """
        raw = [self._weight(weight) for weight in weights]
        if not raw:
            raise ValueError("At least one weight is required")
        if any(weight < 0 for weight in raw):
            raise ValueError("Allocation weights must not be negative")

        total = sum(raw)
        if total == 0:
            raw = [Fraction(1)] * len(raw)
            total = Fraction(len(raw))

        shares = []
        allocated = 0
        running = Fraction(0)
        for weight in raw:
            running += weight
            cumulative = round_half_up(Fraction(self.value) * running / total)
            shares.append(Price(value=cumulative - allocated, currency=self.currency))
            allocated = cumulative
        return shares

    def _weight(self, weight) -> Fraction:
        if isinstance(weight, Price):
            self._assert_same_currency(weight)
            return Fraction(weight.value)
        return Fraction(Decimal(str(weight)))

    def __add__(self, other: "Price") -> "Price":
        return self.add(other)

    def __sub__(self, other: "Price") -> "Price":
        return self.subtract(other)

    def __mul__(self, quantity: int) -> "Price":
        return self.multiply(quantity)

    def __neg__(self) -> "Price":
        return Price(value=-self.value, currency=self.currency)

    # -------------------------------------------------------------------
    # Comparison
    # -------------------------------------------------------------------
    def __lt__(self, other: "Price") -> bool:
        self._assert_same_currency(other)
        return self.value < other.value

    def __le__(self, other: "Price") -> bool:
        self._assert_same_currency(other)
        return self.value <= other.value

    def __gt__(self, other: "Price") -> bool:
        self._assert_same_currency(other)
        return self.value > other.value

    def __ge__(self, other: "Price") -> bool:
        self._assert_same_currency(other)
        return self.value >= other.value

    # -------------------------------------------------------------------
    # Presentation
    # -------------------------------------------------------------------
    @property
    def decimal(self) -> Decimal:
        return Decimal(self.value).scaleb(-self.currency.decimal_places)

    def formatted(self) -> str:
        return f"{self.decimal:.{self.currency.decimal_places}f} {self.currency.code}"

    def __str__(self) -> str:
        return self.formatted()
