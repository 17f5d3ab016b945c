"""Cart fingerprints.

A fingerprint is a digest over everything that determines a cart's price:
lines (purchasable, quantity, meta), currency, channel, the shipping option
that will be charged, addresses and the coupon code. Two carts with the same
inputs produce the same fingerprint regardless of line order or meta key
order.
"""

import hashlib
import json

from carts.cart.cart import normalize_meta


class FingerprintGenerator:
    def __init__(self, algorithm: str = "sha256") -> None:
        hashlib.new(algorithm)
        self.algorithm = algorithm

    def payload(self, cart) -> dict:
        lines = sorted(
            (
                {
                    "purchasable_type": line.purchasable_type,
                    "purchasable_id": str(line.purchasable_id),
                    "meta": normalize_meta(line.meta),
                    "quantity": line.quantity,
                }
                for line in cart.lines
            ),
            key=lambda item: (item["purchasable_type"], item["purchasable_id"], item["meta"], item["quantity"]),
        )

        override = cart.shipping_option_override
        shipping_address = cart.shipping_address
        if override is not None:
            shipping_option = override.identifier
        elif shipping_address is not None:
            shipping_option = shipping_address.shipping_option
        else:
            shipping_option = None

        addresses = [
            address.fingerprint_fields() for address in sorted(cart.addresses, key=lambda a: a.type)
        ]

        return {
            "lines": lines,
            "currency": cart.currency.code,
            "channel_id": str(cart.channel_id),
            "shipping_option": shipping_option,
            "addresses": addresses,
            "coupon_code": cart.coupon_code,
        }

    def generate(self, cart) -> str:
        encoded = json.dumps(self.payload(cart), sort_keys=True, separators=(",", ":"), default=str)
        return hashlib.new(self.algorithm, encoded.encode("utf-8")).hexdigest()
