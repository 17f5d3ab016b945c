"""Cart actions: the repository writes behind each mutation.

Actions run after the operation's validators pass. Each one loads the cart
afresh, applies the change to the aggregate and persists it, so a write never
carries stale state from the caller's session. Each returns an explicit
value (the written line, address or cart); the session decides afterwards
whether to refresh and recalculate.
"""

from dataclasses import dataclass, field

import structlog
from protean.utils.globals import current_domain

from carts.cart.cart import AddressType, Cart, CartAddress, CartLine
from carts.order.materializer import CreateOrder
from carts.utils.transactions import transaction

logger = structlog.get_logger(__name__)


class AddOrUpdatePurchasable:
    def execute(self, session, purchasable, quantity: int, meta: dict | None = None) -> CartLine:
        repo = current_domain.repository_for(Cart)
        cart = repo.get(session.id)
        line = cart.add_line(purchasable.purchasable_type, purchasable.purchasable_id, quantity, meta)
        repo.add(cart)
        return line


class RemovePurchasable:
    def execute(self, session, cart_line_id: str) -> None:
        repo = current_domain.repository_for(Cart)
        cart = repo.get(session.id)
        cart.remove_line(cart_line_id)
        repo.add(cart)


class UpdateCartLine:
    """Set a line's quantity and meta, folding it into an identical line if the new meta matches one."""

    def execute(self, session, cart_line_id: str, quantity: int, meta: dict | None = None) -> CartLine:
        repo = current_domain.repository_for(Cart)
        cart = repo.get(session.id)
        line = cart.update_line(cart_line_id, quantity, meta)
        repo.add(cart)

        if str(line.id) != str(cart_line_id):
            logger.info(
                "Cart line folded into identical line",
                cart_id=session.id,
                line_id=str(cart_line_id),
                into_line_id=str(line.id),
            )
        return line


class AddAddress:
    """Upsert the cart's address of a type, keeping its id and chosen shipping option."""

    def execute(self, session, address, address_type: str) -> CartAddress:
        data = address if isinstance(address, dict) else address.to_dict()

        repo = current_domain.repository_for(Cart)
        cart = repo.get(session.id)
        record = cart.set_address(address_type, data)
        repo.add(cart)
        return record


class SetShippingOption:
    def execute(self, session, option) -> CartAddress:
        repo = current_domain.repository_for(Cart)
        cart = repo.get(session.id)
        cart.set_shipping_option(option.identifier)
        repo.add(cart)
        return cart.address_of_type(AddressType.SHIPPING)


class AssociateUser:
    """Link a user to the cart and settle the user's previous active cart."""

    def execute(self, session, user, policy: str) -> Cart:
        repo = current_domain.repository_for(Cart)

        with transaction():
            previous = next((c for c in repo.unmerged(user_id=user.id) if str(c.id) != session.id), None)
            cart = repo.get(session.id)

            if previous is not None:
                if policy == "merge":
                    for line in previous.lines:
                        cart.add_line(line.purchasable_type, line.purchasable_id, line.quantity, line.get_meta())
                previous.merge_into(cart.id)
                repo.add(previous)
                logger.info(
                    "Previous user cart settled",
                    cart_id=session.id,
                    previous_cart_id=str(previous.id),
                    policy=policy,
                    lines=len(previous.lines),
                )

            cart.associate_user(user.id, user.latest_customer_id)
            repo.add(cart)
        return cart


class SetCustomer:
    def execute(self, session, customer) -> Cart:
        repo = current_domain.repository_for(Cart)
        cart = repo.get(session.id)
        cart.set_customer(customer.id)
        repo.add(cart)
        return cart


@dataclass
class CartActions:
    """The action behind each cart operation. Swap any of them to customize."""

    add_to_cart: AddOrUpdatePurchasable = field(default_factory=AddOrUpdatePurchasable)
    remove_from_cart: RemovePurchasable = field(default_factory=RemovePurchasable)
    update_cart_line: UpdateCartLine = field(default_factory=UpdateCartLine)
    add_address: AddAddress = field(default_factory=AddAddress)
    set_shipping_option: SetShippingOption = field(default_factory=SetShippingOption)
    associate_user: AssociateUser = field(default_factory=AssociateUser)
    set_customer: SetCustomer = field(default_factory=SetCustomer)
    order_create: CreateOrder = field(default_factory=CreateOrder)
