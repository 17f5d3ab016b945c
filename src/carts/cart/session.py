"""Cart sessions: a loaded cart together with its cached, consistent totals.

Every mutation goes through a session and follows the same path. It runs the
operation's validators, then executes the operation's action against the
repository, then invalidates the cached totals. Unless the caller batches
with ``refresh=False``, it finally reloads the cart and recalculates.

Derived totals live in a CalculationSnapshot that is replaced wholesale on
each successful calculation. A failed calculation publishes nothing, so the
previous snapshot stays readable as the last known-good totals while
``is_calculated()`` reports that they are stale. The snapshot, the shipping
override and the estimate meta belong to the session; none of them is
persisted.
"""

import structlog
from protean.utils.globals import current_domain

from carts.calculation.snapshot import (
    CalculationSnapshot,
    DiscountBreakdown,
    FreeItem,
    LineCalculation,
    Promotion,
    ShippingBreakdown,
    ShippingOption,
    TaxBreakdown,
)
from carts.cart.cart import AddressType, Cart, CartAddress, CartLine
from carts.cart.purchasable import Purchasable
from carts.cart.validators import StockValidator, ValidationContext
from carts.exceptions import CartException, FingerprintMismatch, PurchasableNotFound
from carts.pricing.price import Currency, Price
from carts.utils.transactions import transaction

logger = structlog.get_logger(__name__)


class CartSession:
    def __init__(self, cart: Cart, manager) -> None:
        self.cart = cart
        self.manager = manager
        self._snapshot: CalculationSnapshot | None = None
        self._calculated = False
        self._shipping_option_override: ShippingOption | None = None
        self._shipping_estimate_meta: dict = {}

    def __repr__(self) -> str:
        return f"<CartSession cart_id={self.id}>"

    # -------------------------------------------------------------------
    # Cart state
    # -------------------------------------------------------------------
    @property
    def id(self) -> str:
        return str(self.cart.id)

    @property
    def currency(self) -> Currency:
        return self.cart.currency

    @property
    def channel_id(self):
        return self.cart.channel_id

    @property
    def user_id(self):
        return self.cart.user_id

    @property
    def customer_id(self):
        return self.cart.customer_id

    @property
    def order_id(self):
        return self.cart.order_id

    @property
    def coupon_code(self) -> str | None:
        return self.cart.coupon_code

    @property
    def completed_at(self):
        return self.cart.completed_at

    @property
    def lines(self) -> list[CartLine]:
        return list(self.cart.lines)

    @property
    def addresses(self) -> list[CartAddress]:
        return list(self.cart.addresses)

    @property
    def shipping_address(self) -> CartAddress | None:
        return self.cart.shipping_address

    @property
    def billing_address(self) -> CartAddress | None:
        return self.cart.billing_address

    def purchasable_for(self, line: CartLine) -> Purchasable:
        """Resolve a line's purchasable through the catalogue."""
        purchasable = self.manager.purchasables.get(line.purchasable_type, line.purchasable_id)
        if purchasable is None:
            raise PurchasableNotFound(
                {"purchasable": [f"{line.purchasable_type} {line.purchasable_id} is no longer available"]}
            )
        return purchasable

    def stored(self) -> Cart:
        """The cart as the repository holds it right now."""
        return self.manager.load(self.id)

    # -------------------------------------------------------------------
    # Calculated state
    # -------------------------------------------------------------------
    @property
    def snapshot(self) -> CalculationSnapshot | None:
        """The last successfully published calculation (possibly stale)."""
        return self._snapshot

    def is_calculated(self) -> bool:
        return (
            self._calculated
            and self._snapshot is not None
            and all(str(line.id) in self._snapshot.lines for line in self.cart.lines)
        )

    def calculation_for(self, line) -> LineCalculation | None:
        """The current calculation of a line (or line id), None while stale."""
        if not self._calculated or self._snapshot is None:
            return None
        line_id = line if isinstance(line, str) else str(line.id)
        return self._snapshot.lines.get(line_id)

    def _value(self, name):
        return getattr(self._snapshot, name) if self._snapshot is not None else None

    @property
    def sub_total(self) -> Price | None:
        return self._value("sub_total")

    @property
    def sub_total_discounted(self) -> Price | None:
        return self._value("sub_total_discounted")

    @property
    def discount_total(self) -> Price | None:
        return self._value("discount_total")

    @property
    def discount_breakdown(self) -> tuple[DiscountBreakdown, ...] | None:
        return self._value("discount_breakdown")

    @property
    def discounts(self) -> tuple[DiscountBreakdown, ...] | None:
        return self._value("discounts")

    @property
    def promotions(self) -> tuple[Promotion, ...] | None:
        return self._value("promotions")

    @property
    def free_items(self) -> tuple[FreeItem, ...] | None:
        return self._value("free_items")

    @property
    def shipping_sub_total(self) -> Price | None:
        return self._value("shipping_sub_total")

    @property
    def shipping_total(self) -> Price | None:
        return self._value("shipping_total")

    @property
    def shipping_breakdown(self) -> ShippingBreakdown | None:
        return self._value("shipping_breakdown")

    @property
    def tax_total(self) -> Price | None:
        return self._value("tax_total")

    @property
    def tax_breakdown(self) -> TaxBreakdown | None:
        return self._value("tax_breakdown")

    @property
    def total(self) -> Price | None:
        return self._value("total")

    def _invalidate(self) -> None:
        self._calculated = False

    def _publish(self, snapshot: CalculationSnapshot) -> None:
        self._snapshot = snapshot
        self._calculated = True

    # -------------------------------------------------------------------
    # Calculation
    # -------------------------------------------------------------------
    def calculate(self, force: bool = False) -> "CartSession":
        """Calculate the cart totals and cache the result."""
        if not force and self.is_calculated():
            return self

        self._invalidate()
        snapshot = self.manager.pipeline.run(self)
        self._publish(snapshot)
        return self

    def recalculate(self) -> "CartSession":
        """Force the cart to recalculate."""
        return self.calculate(force=True)

    def refresh(self) -> "CartSession":
        """Reload the cart from the repository, keeping session-only state.

        The shipping override and estimate meta survive a refresh; the
        override is dropped once no line is shippable.
        """
        self.cart = self.stored()
        self._invalidate()

        if self._shipping_option_override is not None and not self.is_shippable():
            logger.info("Shipping override cleared, cart has no shippable lines", cart_id=self.id)
            self._shipping_option_override = None
        return self

    def _after_mutation(self, refresh: bool) -> "CartSession":
        self._invalidate()
        return self.refresh().recalculate() if refresh else self

    def _validate(self, operation: str, **arguments) -> None:
        context = ValidationContext(operation=operation, cart=self, arguments=arguments)
        for validator in self.manager.validators.get(operation, []):
            validator.validate(context)

    def _stored_session(self) -> "CartSession":
        session = CartSession(self.stored(), self.manager)
        session._shipping_option_override = self._shipping_option_override
        return session

    def validate_stored(self, operation: str, **arguments) -> None:
        """Run an operation's validators against the cart as stored right now."""
        self._stored_session()._validate(operation, **arguments)

    # -------------------------------------------------------------------
    # Line management
    # -------------------------------------------------------------------
    def add(
        self, purchasable: Purchasable, quantity: int = 1, meta: dict | None = None, refresh: bool = True
    ) -> "CartSession":
        """Add a purchasable, or increase the quantity of the identical line."""
        self._validate("add_to_cart", purchasable=purchasable, quantity=quantity, meta=meta)
        line = self.manager.actions.add_to_cart.execute(self, purchasable, quantity, meta)
        logger.info(
            "Purchasable added to cart",
            cart_id=self.id,
            line_id=str(line.id),
            purchasable_type=purchasable.purchasable_type,
            purchasable_id=str(purchasable.purchasable_id),
            quantity=quantity,
        )
        return self._after_mutation(refresh)

    def add_lines(self, lines) -> "CartSession":
        """Add several lines atomically and recalculate once.

        Each item is a dict with ``purchasable``, ``quantity`` and optional
        ``meta``.
        """
        with transaction():
            for line in lines:
                self.add(
                    purchasable=line["purchasable"],
                    quantity=line["quantity"],
                    meta=dict(line.get("meta") or {}),
                    refresh=False,
                )
        return self.refresh().recalculate()

    def remove(self, cart_line_id, refresh: bool = True) -> "CartSession":
        """Remove a cart line."""
        self._validate("remove_from_cart", cart_line_id=str(cart_line_id))
        self.manager.actions.remove_from_cart.execute(self, str(cart_line_id))
        logger.info("Cart line removed", cart_id=self.id, line_id=str(cart_line_id))
        return self._after_mutation(refresh)

    def update_line(
        self, cart_line_id, quantity: int, meta: dict | None = None, refresh: bool = True
    ) -> "CartSession":
        """Update a cart line's quantity and, when given, its meta."""
        self._validate("update_cart_line", cart_line_id=str(cart_line_id), quantity=quantity, meta=meta)
        self.manager.actions.update_cart_line.execute(self, str(cart_line_id), quantity, meta)
        logger.info("Cart line updated", cart_id=self.id, line_id=str(cart_line_id), quantity=quantity)
        return self._after_mutation(refresh)

    def update_lines(self, lines) -> "CartSession":
        """Update several lines atomically and recalculate once.

        Each item is a dict with ``id``, ``quantity`` and optional ``meta``.
        """
        with transaction():
            for line in lines:
                self.update_line(
                    cart_line_id=line["id"],
                    quantity=line["quantity"],
                    meta=line.get("meta"),
                    refresh=False,
                )
        return self.refresh().recalculate()

    def clear(self) -> "CartSession":
        """Delete all cart lines."""
        repo = current_domain.repository_for(Cart)
        cart = repo.get(self.id)
        cart.clear_lines()
        repo.add(cart)
        logger.info("Cart cleared", cart_id=self.id)
        return self._after_mutation(refresh=True)

    def is_shippable(self) -> bool:
        """Whether at least one line's purchasable ships."""
        return any(self.purchasable_for(line).is_shippable() for line in self.cart.lines)

    def validate_stock(self) -> None:
        """Check every line can be fulfilled at its current quantity."""
        validator = StockValidator()
        for line in self.cart.lines:
            validator.check(self.purchasable_for(line), line.quantity)

    # -------------------------------------------------------------------
    # Coupons
    # -------------------------------------------------------------------
    def apply_coupon(self, coupon_code: str, refresh: bool = True) -> "CartSession":
        repo = current_domain.repository_for(Cart)
        cart = repo.get(self.id)
        cart.apply_coupon(coupon_code)
        repo.add(cart)
        logger.info("Coupon applied to cart", cart_id=self.id, coupon_code=cart.coupon_code)
        return self._after_mutation(refresh)

    def remove_coupon(self, refresh: bool = True) -> "CartSession":
        repo = current_domain.repository_for(Cart)
        cart = repo.get(self.id)
        cart.remove_coupon()
        repo.add(cart)
        return self._after_mutation(refresh)

    # -------------------------------------------------------------------
    # Addresses & shipping
    # -------------------------------------------------------------------
    def add_address(self, address, type: str, refresh: bool = True) -> "CartSession":  # noqa: A002
        """Add or replace the cart's address of ``type``."""
        self._validate("add_address", address=address, type=type)
        self.manager.actions.add_address.execute(self, address, type)
        if type == AddressType.SHIPPING.value and self._shipping_option_override is not None:
            logger.info("Shipping override cleared by new shipping address", cart_id=self.id)
            self._shipping_option_override = None
        return self._after_mutation(refresh)

    def set_shipping_address(self, address) -> "CartSession":
        return self.add_address(address, AddressType.SHIPPING.value)

    def set_billing_address(self, address) -> "CartSession":
        return self.add_address(address, AddressType.BILLING.value)

    def set_shipping_option(self, option: ShippingOption, refresh: bool = True) -> "CartSession":
        """Choose ``option`` on the shipping address.

        An explicit choice replaces any pinned shipping override.
        """
        self._validate("set_shipping_option", shipping_option=option)
        self.manager.actions.set_shipping_option.execute(self, option)
        self._shipping_option_override = None
        logger.info("Shipping option set", cart_id=self.id, shipping_option=option.identifier)
        return self._after_mutation(refresh)

    def get_shipping_option(self) -> ShippingOption | None:
        """The option chosen on the shipping address, as the shipping service prices it."""
        return self.manager.shipping.get_shipping_option(self)

    @property
    def shipping_option_override(self) -> ShippingOption | None:
        return self._shipping_option_override

    @property
    def shipping_estimate_meta(self) -> dict:
        return self._shipping_estimate_meta

    def set_shipping_override(self, option: ShippingOption) -> "CartSession":
        self._shipping_option_override = option
        self._invalidate()
        return self

    def clear_shipping_override(self) -> "CartSession":
        self._shipping_option_override = None
        self._invalidate()
        return self

    def get_estimated_shipping(self, params: dict, set_override: bool = False) -> ShippingOption | None:
        """Return the cheapest non-collect shipping option for the cart.

        With ``set_override`` the option is pinned so that later calculations
        use it ahead of any recomputed default.
        """
        self._shipping_estimate_meta = dict(params)
        options = [option for option in self.manager.shipping.get_options(self) if not option.collect]
        option = min(options, key=lambda o: o.price.value, default=None)

        if set_override and option is not None:
            self.set_shipping_override(option)
            logger.info("Shipping estimate pinned as override", cart_id=self.id, shipping_option=option.identifier)
        return option

    # -------------------------------------------------------------------
    # Users & customers
    # -------------------------------------------------------------------
    def associate(self, user, policy: str | None = None, refresh: bool = True) -> "CartSession":
        """Associate a user to the cart.

        ``policy`` decides what happens to the user's previous active cart:
        ``merge`` moves its lines into this cart, ``override`` discards it.
        """
        policy = policy or self.manager.settings.cart.associate_policy
        self._validate("associate_user", user=user, policy=policy)
        self.manager.actions.associate_user.execute(self, user, policy)
        logger.info("User associated to cart", cart_id=self.id, user_id=str(user.id), policy=policy)
        return self._after_mutation(refresh)

    def set_customer(self, customer, refresh: bool = True) -> "CartSession":
        """Associate a customer to the cart."""
        self._validate("set_customer", customer=customer)
        self.manager.actions.set_customer.execute(self, customer)
        logger.info("Customer set on cart", cart_id=self.id, customer_id=str(customer.id))
        return self._after_mutation(refresh)

    # -------------------------------------------------------------------
    # Fingerprint
    # -------------------------------------------------------------------
    def fingerprint(self) -> str:
        """A unique fingerprint identifying the cart's contents."""
        return self.manager.fingerprint_generator.generate(self)

    def check_fingerprint(self, fingerprint: str) -> bool:
        """Raise FingerprintMismatch unless ``fingerprint`` matches the cart."""
        actual = self.fingerprint()
        if fingerprint != actual:
            logger.warning("Cart fingerprint mismatch", cart_id=self.id, expected=fingerprint, actual=actual)
            raise FingerprintMismatch(fingerprint, actual)
        return True

    def stored_fingerprint(self) -> str:
        """Fingerprint of the cart as the repository holds it right now.

        The session's shipping override is carried over, since it is part of
        what the customer was priced at.
        """
        return self._stored_session().fingerprint()

    # -------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------
    def create_order(
        self,
        allow_multiple_orders: bool = False,
        existing_order_id=None,
        expected_fingerprint: str | None = None,
    ):
        """Create (or update) an order from the cart's freshly calculated totals."""
        self.refresh()
        self._validate("order_create")
        self.recalculate()
        return self.manager.actions.order_create.execute(
            self,
            allow_multiple_orders=allow_multiple_orders,
            existing_order_id=existing_order_id,
            expected_fingerprint=expected_fingerprint,
        )

    def can_create_order(self) -> bool:
        """Whether the cart has enough information to create an order."""
        try:
            self._validate("order_create")
        except CartException:
            return False
        return True

    def draft_order(self, order_id=None):
        """The cart's open (unplaced) order, optionally a specific one."""
        return next(
            (
                order
                for order in self.manager.orders_for_cart(self.id)
                if not order.is_placed and (order_id is None or str(order.id) == str(order_id))
            ),
            None,
        )

    def current_draft_order(self, order_id=None):
        """The open order that still matches the cart's fingerprint and total."""
        self.calculate()
        fingerprint = self.fingerprint()
        return next(
            (
                order
                for order in self.manager.orders_for_cart(self.id)
                if not order.is_placed
                and (order_id is None or str(order.id) == str(order_id))
                and order.fingerprint == fingerprint
                and order.price("total") == self.total
            ),
            None,
        )

    def completed_order(self, order_id=None):
        return next(
            (
                order
                for order in self.manager.orders_for_cart(self.id)
                if order.is_placed and (order_id is None or str(order.id) == str(order_id))
            ),
            None,
        )

    def has_completed_orders(self) -> bool:
        return any(order.is_placed for order in self.manager.orders_for_cart(self.id))

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def delete(self) -> None:
        """Soft-delete the cart."""
        repo = current_domain.repository_for(Cart)
        cart = repo.get(self.id)
        cart.soft_delete()
        repo.add(cart)
        self.cart = cart
        logger.info("Cart deleted", cart_id=self.id)
