"""Cart manager: the entry point for working with carts.

A CartManager wires together the external services, the calculation
pipeline, validator chains and actions, and hands out CartSessions over
carts loaded from the ``carts`` domain's repositories. Collaborators default
to the fake adapters configured from the ``[custom]`` section of
``domain.toml``; pass real ones to override.
"""

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from carts.calculation.pipeline import CalculationPipeline
from carts.cart.actions import CartActions
from carts.cart.cart import Cart
from carts.cart.fingerprint import FingerprintGenerator
from carts.cart.session import CartSession
from carts.cart.validators import default_validators
from carts.config import Settings, load_settings
from carts.exceptions import CartNotFound, OrderNotFound
from carts.order.order import Order
from carts.pricing.price import Currency
from carts.services.promotions import FakePromotionService, PromotionService
from carts.services.purchasables import FakePurchasableCatalogue, PurchasableCatalogue
from carts.services.shipping import FakeShippingService, ShippingService
from carts.services.tax import FakeTaxService, TaxService
from carts.utils.transactions import transaction

logger = structlog.get_logger(__name__)


class CartManager:
    def __init__(
        self,
        settings: Settings | None = None,
        purchasables: PurchasableCatalogue | None = None,
        shipping: ShippingService | None = None,
        tax: TaxService | None = None,
        promotions: PromotionService | None = None,
        pipeline: CalculationPipeline | None = None,
        validators: dict | None = None,
        actions: CartActions | None = None,
        fingerprint_generator: FingerprintGenerator | None = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.purchasables = purchasables or FakePurchasableCatalogue()
        self.shipping = shipping or FakeShippingService.from_settings(
            self.settings.shipping, tax_class=self.settings.tax.shipping_tax_class
        )
        self.tax = tax or FakeTaxService.from_settings(self.settings.tax)
        self.promotions = promotions or FakePromotionService()
        self.pipeline = pipeline or CalculationPipeline()
        self.validators = validators if validators is not None else default_validators(self.settings)
        self.actions = actions or CartActions()
        self.fingerprint_generator = fingerprint_generator or FingerprintGenerator()

    # -------------------------------------------------------------------
    # Carts
    # -------------------------------------------------------------------
    def create_cart(
        self, currency: Currency | str, channel_id, user_id=None, customer_id=None, meta=None
    ) -> CartSession:
        if isinstance(currency, str):
            currency = Currency(code=currency)

        cart = Cart.create(currency, channel_id, user_id=user_id, customer_id=customer_id, meta=meta)
        current_domain.repository_for(Cart).add(cart)
        logger.info("Cart created", cart_id=str(cart.id), currency=currency.code, channel_id=str(cart.channel_id))
        return CartSession(cart, self)

    def load(self, cart_id) -> Cart:
        """Load the cart aggregate. Raises CartNotFound."""
        try:
            return current_domain.repository_for(Cart).get(str(cart_id))
        except ObjectNotFoundError:
            raise CartNotFound({"cart_id": [f"Cart {cart_id} not found"]}) from None

    def get_cart(self, cart_id) -> CartSession:
        """A new session over the stored cart. Raises CartNotFound."""
        return CartSession(self.load(cart_id), self)

    def active_carts(self, user_id=None) -> list[CartSession]:
        return [CartSession(cart, self) for cart in current_domain.repository_for(Cart).active(user_id=user_id)]

    def unmerged_carts(self, user_id=None) -> list[CartSession]:
        return [CartSession(cart, self) for cart in current_domain.repository_for(Cart).unmerged(user_id=user_id)]

    # -------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------
    def get_order(self, order_id) -> Order | None:
        try:
            return current_domain.repository_for(Order).get(str(order_id))
        except ObjectNotFoundError:
            return None

    def orders_for_cart(self, cart_id) -> list[Order]:
        return current_domain.repository_for(Order).for_cart(cart_id)

    def place_order(self, order_id) -> Order:
        """Place an open order and mark its cart completed."""
        orders = current_domain.repository_for(Order)
        with transaction():
            order = self.get_order(order_id)
            if order is None:
                raise OrderNotFound({"order_id": [f"Order {order_id} not found"]})

            order.place()
            orders.add(order)

            cart = self.load(order.cart_id)
            cart.complete(order.placed_at)
            current_domain.repository_for(Cart).add(cart)

        logger.info("Order placed", order_id=str(order.id), cart_id=str(order.cart_id))
        return order
