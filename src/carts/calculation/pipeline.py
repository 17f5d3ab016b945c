"""Calculation pipeline.

Runs an ordered list of stages against a fresh CalculationContext and
returns the resulting snapshot. The fingerprint is taken before any stage
runs, so the snapshot always records the state it was priced from.
"""

import structlog

from carts.calculation.context import CalculationContext
from carts.calculation.snapshot import CalculationSnapshot
from carts.calculation.stages import Stage, default_stages

logger = structlog.get_logger(__name__)


class CalculationPipeline:
    def __init__(self, stages: list[Stage] | None = None) -> None:
        self.stages: list[Stage] = list(stages) if stages is not None else default_stages()

    def run(self, cart) -> CalculationSnapshot:
        fingerprint = cart.fingerprint()
        context = CalculationContext.from_cart(cart)

        for stage in self.stages:
            try:
                stage.process(context)
            except Exception as exc:
                logger.warning(
                    "Cart calculation failed",
                    cart_id=cart.id,
                    stage=stage.name,
                    error=str(exc),
                )
                raise

        snapshot = context.to_snapshot(fingerprint)
        logger.debug(
            "Cart calculated",
            cart_id=cart.id,
            fingerprint=fingerprint,
            lines=len(snapshot.lines),
            total=snapshot.total.value,
            currency=snapshot.currency.code,
        )
        return snapshot
