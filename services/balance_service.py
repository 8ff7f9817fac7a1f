# services/balance_service.py
import logging

from services.errors import NotFoundError, ValidationError
from services.models import Currency, Direction, User
from services.units import btc_to_satoshis, satoshis_to_btc, usd_to_cents, cents_to_usd
from services.validators import parse_currency, require_positive, require_storable

logger = logging.getLogger(__name__)


class BalanceService:
    """
    Free vs. pledged balances, top-ups and the balance display.

    The pledge is recomputed from the user's LIVE orders on every call, so
    it must be read inside the transaction that acts on the result.
    """

    def __init__(self, ledger, market_data=None):
        self.ledger = ledger
        self.market_data = market_data

    # -----------------------------------
    # 묶인 잔고 (pledge)
    # -----------------------------------
    def pledged_fiat(self, tx, user_id: str, exclude_order_id: int | None = None) -> int:
        return sum(
            o.pledged_fiat
            for o in tx.orders.get_live_orders(user_id, Direction.BUY)
            if o.id != exclude_order_id
        )

    def pledged_crypto(self, tx, user_id: str, exclude_order_id: int | None = None) -> int:
        return sum(
            o.pledged_crypto
            for o in tx.orders.get_live_orders(user_id, Direction.SELL)
            if o.id != exclude_order_id
        )

    def pledged(self, tx, user_id: str, direction: Direction,
                exclude_order_id: int | None = None) -> int:
        """Pledge in the asset a `direction` demand spends: cents for BUY, satoshis for SELL."""
        if direction is Direction.BUY:
            return self.pledged_fiat(tx, user_id, exclude_order_id)
        return self.pledged_crypto(tx, user_id, exclude_order_id)

    # -----------------------------------
    # 사용 가능 잔고
    # -----------------------------------
    def free_fiat(self, tx, user: User, exclude_order_id: int | None = None) -> int:
        return user.fiat_balance - self.pledged_fiat(tx, user.id, exclude_order_id)

    def free_crypto(self, tx, user: User, exclude_order_id: int | None = None) -> int:
        return user.crypto_balance - self.pledged_crypto(tx, user.id, exclude_order_id)

    # -----------------------------------
    # 입금
    # -----------------------------------
    def top_up(self, user_id: str, currency: str, amount: float) -> User:
        currency = parse_currency(currency)
        require_positive(amount, "Top-up amount")

        minor = btc_to_satoshis(amount) if currency is Currency.BTC else usd_to_cents(amount)
        if minor <= 0:
            raise ValidationError("Top-up amount is below the smallest unit.")
        require_storable(minor, "Top-up amount")

        with self.ledger.transaction() as tx:
            user = tx.users.get_user_for_update(user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found.")
            if currency is Currency.BTC:
                user.crypto_balance += minor
            else:
                user.fiat_balance += minor
            require_storable(max(user.crypto_balance, user.fiat_balance), "Resulting balance")
            tx.users.save_balances(user)

        logger.info("Balance of user with ID %s has been topped up with %s %s.",
                    user_id, amount, currency.value)
        return user

    # -----------------------------------
    # 잔고 조회 (시세 포함)
    # -----------------------------------
    def get_balance(self, user_id: str) -> dict:
        with self.ledger.transaction() as tx:
            user = tx.users.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found.")

        btc = satoshis_to_btc(user.crypto_balance)
        usd = cents_to_usd(user.fiat_balance)
        price = self.market_data.fetch_spot_price()
        balance = {
            "BTC": btc,
            "BTC_current_USD_value": btc * price,
            "USD": usd,
        }
        logger.info("Balance of user %s: %s", user_id, balance)
        return balance
