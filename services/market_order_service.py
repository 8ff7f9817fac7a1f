# services/market_order_service.py
import logging

from services.errors import NotFoundError
from services.models import MarketOrderOutcome
from services.validators import parse_direction, parse_quantity
from services.units import price_to_major, satoshis_to_btc

logger = logging.getLogger(__name__)


class MarketOrderService:
    """
    Market orders: matched immediately at any price, never persisted.
    Whatever the book cannot fill is discarded.
    """

    def __init__(self, ledger, matching_engine):
        self.ledger = ledger
        self.engine = matching_engine

    def execute_market_order(self, user_id: str, direction, quantity: float) -> MarketOrderOutcome:
        direction = parse_direction(direction)
        satoshis = parse_quantity(quantity)
        logger.info("Market order request for user %s: %s %s BTC", user_id, direction.value, quantity)

        with self.ledger.transaction() as tx:
            if tx.users.get_user(user_id) is None:
                raise NotFoundError(f"User {user_id} not found.")
            # NoLiquidityError rolls the (unchanged) transaction back
            result = self.engine.match(tx, user_id, direction, satoshis, limit_price=0.0)

        outcome = MarketOrderOutcome(
            quantity=satoshis_to_btc(result.quantity),
            average_price=price_to_major(result.average_price),
        )
        logger.info("Market order outcome: %s", outcome)
        return outcome
