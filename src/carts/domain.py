"""Carts bounded context: cart calculation and order materialization.

Carts with their lines and addresses, and the orders they are turned into,
are protean aggregates persisted through this domain's repositories. Prices,
discounts, shipping and tax are worked out on top of them by the calculation
pipeline.
"""

import structlog
from protean.domain import Domain

carts = Domain(name="carts")

logger = structlog.get_logger(__name__)
