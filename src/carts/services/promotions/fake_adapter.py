"""Coupon-code promotion service for development and testing.

Rules are registered per coupon code (or as automatic rules that always
apply) and come in three kinds:

- ``percentage``: ``value`` percent off every line's sub-total
- ``fixed``: ``value`` (major units) off the whole cart
- ``free_item``: grants ``quantity`` of a purchasable
"""

from carts.calculation.snapshot import DiscountBreakdown, FreeItem, Promotion
from carts.pricing.price import Price
from carts.services.promotions.port import PromotionResult, PromotionService


class FakePromotionService(PromotionService):
    """Configurable coupon-code promotion service."""

    def __init__(self, coupons: dict[str, dict] | None = None, automatic: list[dict] | None = None) -> None:
        self.coupons: dict[str, dict] = {code.upper(): rule for code, rule in (coupons or {}).items()}
        self.automatic: list[dict] = list(automatic or [])
        self.calls: int = 0

    def add_coupon(self, code: str, rule: dict) -> None:
        self.coupons[code.upper()] = rule

    def apply(self, context) -> PromotionResult:
        self.calls += 1

        rules = list(self.automatic)
        coupon_code = (context.coupon_code or "").upper()
        if coupon_code and coupon_code in self.coupons:
            rules.append({**self.coupons[coupon_code], "coupon_code": coupon_code})

        line_discounts: dict[str, Price] = {}
        line_breakdown = []
        cart_discounts = []
        promotions = []
        free_items = []

        for rule in rules:
            identifier = rule.get("identifier") or rule.get("coupon_code") or rule["name"]
            promotions.append(Promotion(identifier=identifier, name=rule["name"], coupon_code=rule.get("coupon_code")))

            if rule["type"] == "percentage":
                total = Price.zero(context.currency)
                line_ids = []
                for line in context.lines:
                    amount = line.sub_total.percentage(rule["value"])
                    if amount.value == 0:
                        continue
                    previous = line_discounts.get(line.line_id, Price.zero(context.currency))
                    line_discounts[line.line_id] = previous + amount
                    line_ids.append(line.line_id)
                    total = total + amount
                if line_ids:
                    line_breakdown.append(
                        DiscountBreakdown(
                            identifier=identifier, name=rule["name"], price=total, line_ids=tuple(line_ids)
                        )
                    )
            elif rule["type"] == "fixed":
                cart_discounts.append(
                    DiscountBreakdown(
                        identifier=identifier,
                        name=rule["name"],
                        price=Price.from_decimal(rule["value"], context.currency),
                        cart_level=True,
                    )
                )
            elif rule["type"] == "free_item":
                free_items.append(
                    FreeItem(
                        promotion=identifier,
                        purchasable_type=rule["purchasable_type"],
                        purchasable_id=str(rule["purchasable_id"]),
                        quantity=rule.get("quantity", 1),
                        description=rule.get("description", ""),
                    )
                )
            else:
                raise ValueError(f"Unknown promotion type: {rule['type']}")

        return PromotionResult(
            line_discounts=line_discounts,
            line_breakdown=tuple(line_breakdown),
            cart_discounts=tuple(cart_discounts),
            promotions=tuple(promotions),
            free_items=tuple(free_items),
        )
