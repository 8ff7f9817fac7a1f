# services/matching_engine.py
import logging

from services.errors import NoLiquidityError, NotFoundError, ValidationError
from services.models import Direction, MatchResult

logger = logging.getLogger(__name__)


class MatchingEngine:
    """
    Price-priority matcher over the resting standing orders in the ledger.

    Resting SELLs are walked cheapest first, resting BUYs dearest first;
    equal prices go by order id. Pages are fetched with a (limit_price, id)
    keyset so rows filled earlier in the same transaction, or inserted
    concurrently, cannot shift the window.
    """

    def __init__(self, balance_service, settlement, page_size: int = 10):
        self.balances = balance_service
        self.settlement = settlement
        self.page_size = page_size

    # ---------------------------------------------------------
    # 핵심 매칭 로직
    # ---------------------------------------------------------
    def match(
        self,
        tx,
        user_id: str,
        direction: Direction,
        wanted_quantity: int,
        limit_price: float = 0.0,
        exclude_order_id: int | None = None,
    ) -> MatchResult:
        """
        Satisfy up to `wanted_quantity` satoshis for `user_id`.

        limit_price 0 accepts any price. `exclude_order_id` is the demanding
        standing order itself, whose pledge must not count against it.
        Raises NoLiquidityError when nothing could be settled; a partial
        fill is returned as a normal result.
        """
        if wanted_quantity <= 0:
            raise ValidationError("Wanted quantity must be positive.")

        if tx.users.get_user_for_update(user_id) is None:
            raise NotFoundError(f"User {user_id} not found.")

        # the user's pledges on the demand side cannot change during the scan
        reserved = self.balances.pledged(tx, user_id, direction, exclude_order_id)

        resting_side = direction.opposite
        result = MatchResult()
        remaining = wanted_quantity
        demand_exhausted = False
        after = None

        while remaining > 0 and not demand_exhausted:
            page = tx.orders.fetch_resting_orders(
                resting_side,
                limit_price,
                self.page_size,
                after=after,
                exclude_user_id=user_id,
            )
            logger.debug("Fetched %s resting %s orders after %s.", len(page), resting_side.value, after)

            for order in page:
                fragment = self.settlement.settle_fragment(tx, user_id, reserved, order, remaining)
                if fragment.quantity > 0:
                    result.add(fragment)
                    remaining -= fragment.quantity
                if remaining == 0:
                    break
                if fragment.demand_exhausted:
                    demand_exhausted = True
                    break

            if len(page) < self.page_size:
                # no more matching orders exist
                break
            after = (page[-1].limit_price, page[-1].id)

        if result.quantity == 0:
            raise NoLiquidityError("No matching standing orders.")

        if remaining > 0:
            reason = "Insufficient balance." if demand_exhausted else "No matching orders."
            logger.info(
                "Unable to satisfy the %s demand of user %s in full: %s of %s sat. Reason: %s",
                direction.value, user_id, result.quantity, wanted_quantity, reason,
            )
        return result
