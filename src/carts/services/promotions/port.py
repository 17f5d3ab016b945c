"""Promotion service port (abstract interface).

Promotion rules are evaluated outside the cart core. The discount stage hands
the working calculation context to the adapter and applies whatever the
adapter decides: per-line discounts, cart-level discounts (which the stage
spreads across lines), active promotions and free-item grants.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from carts.calculation.snapshot import DiscountBreakdown, FreeItem, Promotion
from carts.pricing.price import Price


@dataclass(frozen=True)
class PromotionResult:
    """Outcome of evaluating promotions against a cart."""

    line_discounts: dict[str, Price] = field(default_factory=dict)
    line_breakdown: tuple[DiscountBreakdown, ...] = ()
    cart_discounts: tuple[DiscountBreakdown, ...] = ()
    promotions: tuple[Promotion, ...] = ()
    free_items: tuple[FreeItem, ...] = ()


class PromotionService(ABC):
    """Abstract promotion evaluation."""

    @abstractmethod
    def apply(self, context) -> PromotionResult:
        """Evaluate promotions for the cart described by ``context``.

        Must not modify the context; the discount stage applies the result.
        """
        ...
