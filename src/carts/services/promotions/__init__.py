"""Promotion evaluation: port and the coupon-code adapter."""

from carts.services.promotions.fake_adapter import FakePromotionService
from carts.services.promotions.port import PromotionResult, PromotionService

__all__ = ["FakePromotionService", "PromotionResult", "PromotionService"]
