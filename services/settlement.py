# services/settlement.py
import logging

from services.models import Direction, Fragment, StandingOrder, fiat_cost

logger = logging.getLogger(__name__)


class SettlementApplier:
    """
    Applies one fragment between an incoming demand and one resting order.

    No balance check is made for the resting side: a LIVE order's owner is
    assumed to cover the order's remainder at its limit price, which only
    admission guarantees.
    """

    def __init__(self, notifier=None):
        self.notifier = notifier

    def demand_capacity(self, demander, reserved: int, direction: Direction,
                        price: float) -> int:
        """Satoshis the demander can still buy (at `price`) or sell."""
        if direction is Direction.BUY:
            available = demander.fiat_balance - reserved
            if available <= 0 or price <= 0:
                return 0
            cap = int(available / price)
            # float division may overshoot by one satoshi
            while cap > 0 and fiat_cost(cap, price) > available:
                cap -= 1
            return cap
        return max(demander.crypto_balance - reserved, 0)

    def settle_fragment(
        self,
        tx,
        demanding_user_id: str,
        reserved: int,
        resting_order: StandingOrder,
        requested_qty: int,
    ) -> Fragment:
        """
        Transact up to `requested_qty` satoshis against `resting_order`.

        `reserved` is the part of the demander's balance pledged to their
        other LIVE orders (cents for a BUY demand, satoshis for a SELL).
        Both users are re-read inside `tx`; storage errors propagate and
        abort the enclosing transaction.
        """
        direction = resting_order.direction.opposite
        price = resting_order.limit_price

        demander = tx.users.get_user(demanding_user_id)
        if resting_order.user_id == demanding_user_id:
            counterparty = demander
        else:
            counterparty = tx.users.get_user(resting_order.user_id)
        if demander is None or counterparty is None:
            raise LookupError(
                f"Missing user for fragment: demander={demanding_user_id}, "
                f"owner={resting_order.user_id}"
            )

        fragment = Fragment(quantity=requested_qty)

        cap = self.demand_capacity(demander, reserved, direction, price)
        if fragment.quantity > cap:
            fragment.quantity = cap
            fragment.demand_exhausted = True

        if fragment.quantity > resting_order.remaining_quantity:
            fragment.quantity = resting_order.remaining_quantity
            # the resting side ran out first
            fragment.demand_exhausted = False

        if fragment.quantity <= 0:
            return fragment

        fragment.notional = fragment.quantity * price
        fragment.fiat_amount = fiat_cost(fragment.quantity, price)

        if direction is Direction.BUY:
            buyer, seller = demander, counterparty
        else:
            buyer, seller = counterparty, demander

        buyer.fiat_balance -= fragment.fiat_amount
        seller.fiat_balance += fragment.fiat_amount
        buyer.crypto_balance += fragment.quantity
        seller.crypto_balance -= fragment.quantity

        resting_order.record_fill(fragment.quantity, fragment.notional)

        tx.orders.save_order(resting_order)
        tx.users.save_balances(seller)
        tx.users.save_balances(buyer)

        logger.info(
            "Fragment: %s %s sat of order %s at %s cents/sat (%s cents), order now %s with %s remaining.",
            direction.value, fragment.quantity, resting_order.id, price,
            fragment.fiat_amount, resting_order.state.value, resting_order.remaining_quantity,
        )

        if self.notifier is not None:
            tx.after_commit(self.notifier.notify, resting_order)
        return fragment
