# services/order_service.py
import logging

from services.errors import (
    ConcurrentUpdateError,
    NoLiquidityError,
    NotFoundError,
    PermissionDeniedError,
)
from services.models import (
    AdmissionOutcome,
    Direction,
    OrderState,
    StandingOrder,
    fiat_cost,
)
from services.units import price_to_minor
from services.validators import parse_direction, parse_quantity, parse_state, require_positive

logger = logging.getLogger(__name__)


class OrderService:
    """
    Standing order lifecycle
    -----------------------
    - 등록: 사용 가능 잔고로 전량 커버 가능 → LIVE, 아니면 CANCELLED 로 저장
    - LIVE 로 커밋된 주문은 백그라운드에서 매칭 실행
    - 취소 / 조회 / 목록
    """

    def __init__(self, ledger, balance_service, matching_engine, executor, notifier=None,
                 conflict_retries: int = 3):
        self.ledger = ledger
        self.balances = balance_service
        self.engine = matching_engine
        self.executor = executor
        self.notifier = notifier
        self.conflict_retries = conflict_retries

    # ---------------------------------------------------------
    # 지정가(standing) 주문 등록
    # ---------------------------------------------------------
    def create_standing_order(
        self,
        user_id: str,
        direction,
        quantity: float,
        limit_price: float,
        webhook_url: str | None = None,
    ) -> tuple[StandingOrder, AdmissionOutcome]:
        """
        quantity is BTC and limit_price USD per BTC.

        An order the user's free balance cannot fully back is still stored,
        born CANCELLED, so its id and size remain visible.
        """
        direction = parse_direction(direction)
        satoshis = parse_quantity(quantity)
        require_positive(limit_price, "Limit price")
        price = price_to_minor(limit_price)

        with self.ledger.transaction() as tx:
            user = tx.users.get_user_for_update(user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found.")

            if direction is Direction.BUY:
                free = self.balances.free_fiat(tx, user)
                needed = fiat_cost(satoshis, price)
                logger.info("User %s has %s of %s cents free; order needs %s cents.",
                            user_id, free, user.fiat_balance, needed)
            else:
                free = self.balances.free_crypto(tx, user)
                needed = satoshis
                logger.info("User %s has %s of %s satoshis free; order needs %s satoshis.",
                            user_id, free, user.crypto_balance, needed)

            admitted = needed <= free
            order = tx.orders.insert_order(StandingOrder(
                user_id=user_id,
                direction=direction,
                state=OrderState.LIVE if admitted else OrderState.CANCELLED,
                limit_price=price,
                remaining_quantity=satoshis,
                webhook_url=webhook_url,
            ))
            if not admitted and self.notifier is not None:
                tx.after_commit(self.notifier.notify, order)

        if not admitted:
            logger.info("Insufficient balance to create standing order %s. Created as cancelled.", order.id)
            return order, AdmissionOutcome.INSUFFICIENT_BALANCE

        logger.info("Standing order %s admitted: %s %s sat at %s cents/sat.",
                    order.id, direction.value, satoshis, price)
        self.executor.submit(
            f"execute-standing-order:{order.id}", self.execute_standing_order, order.id
        )
        return order, AdmissionOutcome.ADMITTED

    # ---------------------------------------------------------
    # 등록 후 매칭 (백그라운드)
    # ---------------------------------------------------------
    def execute_standing_order(self, order_id: int) -> StandingOrder | None:
        """Runs in the background; a lost write race is retried on a fresh snapshot."""
        for attempt in range(1, self.conflict_retries + 1):
            try:
                return self._execute_once(order_id)
            except ConcurrentUpdateError:
                if attempt == self.conflict_retries:
                    raise
                logger.info("Standing order %s hit a concurrent update, retrying (%s/%s).",
                            order_id, attempt, self.conflict_retries)

    def _execute_once(self, order_id: int) -> StandingOrder | None:
        with self.ledger.transaction() as tx:
            order = tx.orders.get_order(order_id)
            if order is None or not order.is_live:
                logger.info("Standing order %s is no longer live; nothing to execute.", order_id)
                return order

            try:
                result = self.engine.match(
                    tx,
                    order.user_id,
                    order.direction,
                    order.remaining_quantity,
                    order.limit_price,
                    exclude_order_id=order.id,
                )
            except NoLiquidityError:
                logger.info("No matching standing order for standing order %s.", order_id)
                return order

            order.record_fill(result.quantity, result.notional)
            tx.orders.save_order(order)
            if self.notifier is not None:
                tx.after_commit(self.notifier.notify, order)

        logger.info("Executed standing order %s: %s sat filled, %s remaining, state %s.",
                    order.id, result.quantity, order.remaining_quantity, order.state.value)
        return order

    # ---------------------------------------------------------
    # 주문 취소
    # ---------------------------------------------------------
    def cancel_standing_order(self, user_id: str, order_id: int) -> StandingOrder:
        with self.ledger.transaction() as tx:
            order = tx.orders.get_order(order_id)
            if order is None:
                raise NotFoundError(f"Standing order {order_id} not found.")
            if order.user_id != user_id:
                raise PermissionDeniedError(f"No permission to cancel standing order {order_id}.")

            if not order.is_live:
                logger.info("Standing order %s is already %s.", order_id, order.state.value)
                return order

            order.state = OrderState.CANCELLED
            tx.orders.save_order(order)
            if self.notifier is not None:
                tx.after_commit(self.notifier.notify, order)

        logger.info("Cancelled standing order with ID %s", order_id)
        return order

    # ---------------------------------------------------------
    # 조회
    # ---------------------------------------------------------
    def get_standing_order(self, order_id: int) -> StandingOrder:
        with self.ledger.transaction() as tx:
            order = tx.orders.get_order(order_id)
        if order is None:
            raise NotFoundError(f"Standing order {order_id} not found.")
        return order

    def list_standing_orders(self, user_id: str, state=None, limit: int = 100) -> list[StandingOrder]:
        if state is not None:
            state = parse_state(state)
        with self.ledger.transaction() as tx:
            return tx.orders.list_orders_by_user(user_id, state, limit)
