# repositories/order_repository.py
from psycopg2.extras import RealDictCursor

from services.models import Direction, OrderState, StandingOrder

_COLUMNS = """
    id, user_id, direction, state, limit_price, average_price,
    fulfilled_quantity, remaining_quantity, webhook_url,
    created_at, updated_at
"""


def _row_to_order(r) -> StandingOrder:
    return StandingOrder(
        id=r["id"],
        user_id=r["user_id"],
        direction=Direction(r["direction"]),
        state=OrderState(r["state"]),
        limit_price=float(r["limit_price"]),
        average_price=float(r["average_price"]),
        fulfilled_quantity=int(r["fulfilled_quantity"]),
        remaining_quantity=int(r["remaining_quantity"]),
        webhook_url=r["webhook_url"],
        created_at=r["created_at"],
        updated_at=r["updated_at"],
    )


class OrderRepository:
    def __init__(self, conn):
        self.conn = conn

    # -------------------------------------------
    # 신규 주문 삽입
    # -------------------------------------------
    def insert_order(self, order: StandingOrder) -> StandingOrder:
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                f"""
                INSERT INTO standing_orders
                    (user_id, direction, state, limit_price, average_price,
                     fulfilled_quantity, remaining_quantity, webhook_url)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING {_COLUMNS};
                """,
                (
                    order.user_id, order.direction.value, order.state.value,
                    order.limit_price, order.average_price,
                    order.fulfilled_quantity, order.remaining_quantity,
                    order.webhook_url,
                ),
            )
            return _row_to_order(cur.fetchone())

    # -------------------------------------------
    # 주문 조회
    # -------------------------------------------
    def get_order(self, order_id: int) -> StandingOrder | None:
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                f"SELECT {_COLUMNS} FROM standing_orders WHERE id = %s;",
                (order_id,),
            )
            r = cur.fetchone()
            return _row_to_order(r) if r else None

    # -------------------------------------------
    # 체결 상태 / 잔량 / 상태 업데이트
    # -------------------------------------------
    def save_order(self, order: StandingOrder) -> None:
        with self.conn.cursor() as cur:
            cur.execute(
                """
                UPDATE standing_orders
                SET state=%s,
                    average_price=%s,
                    fulfilled_quantity=%s,
                    remaining_quantity=%s,
                    updated_at=now()
                WHERE id=%s;
                """,
                (
                    order.state.value, order.average_price,
                    order.fulfilled_quantity, order.remaining_quantity,
                    order.id,
                ),
            )

    # -------------------------------------------
    # 매칭 후보 (가격 우선, 동일 가격은 id 순)
    # -------------------------------------------
    def fetch_resting_orders(
        self,
        direction: Direction,
        limit_price: float,
        size: int,
        after: tuple[float, int] | None = None,
        exclude_user_id: str | None = None,
    ) -> list[StandingOrder]:
        """
        LIVE orders on `direction`, best price first.

        A nonzero limit_price keeps SELLs priced <= limit and BUYs priced
        >= limit. `after` is the (limit_price, id) of the last row of the
        previous page.
        """
        where = ["direction = %s", "state = %s"]
        params: list = [direction.value, OrderState.LIVE.value]

        if direction is Direction.SELL:
            price_cmp, order_by = "<=", "limit_price ASC, id ASC"
            after_sql = "(limit_price > %s OR (limit_price = %s AND id > %s))"
        else:
            price_cmp, order_by = ">=", "limit_price DESC, id ASC"
            after_sql = "(limit_price < %s OR (limit_price = %s AND id > %s))"

        if limit_price:
            where.append(f"limit_price {price_cmp} %s")
            params.append(limit_price)
        if after is not None:
            where.append(after_sql)
            params.extend([after[0], after[0], after[1]])
        if exclude_user_id is not None:
            where.append("user_id <> %s")
            params.append(exclude_user_id)

        params.append(size)
        sql = f"""
            SELECT {_COLUMNS}
            FROM standing_orders
            WHERE {" AND ".join(where)}
            ORDER BY {order_by}
            LIMIT %s;
        """
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(sql, params)
            return [_row_to_order(r) for r in cur.fetchall()]

    # -------------------------------------------
    # 사용자 LIVE 주문 (잔고 묶임 계산용)
    # -------------------------------------------
    def get_live_orders(self, user_id: str, direction: Direction) -> list[StandingOrder]:
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM standing_orders
                WHERE user_id=%s AND direction=%s AND state=%s;
                """,
                (user_id, direction.value, OrderState.LIVE.value),
            )
            return [_row_to_order(r) for r in cur.fetchall()]

    # -------------------------------------------
    # 사용자 주문 목록
    # -------------------------------------------
    def list_orders_by_user(
        self, user_id: str, state: OrderState | None = None, limit: int = 100
    ) -> list[StandingOrder]:
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            if state:
                cur.execute(
                    f"""
                    SELECT {_COLUMNS}
                    FROM standing_orders
                    WHERE user_id=%s AND state=%s
                    ORDER BY id DESC
                    LIMIT %s;
                    """,
                    (user_id, state.value, limit),
                )
            else:
                cur.execute(
                    f"""
                    SELECT {_COLUMNS}
                    FROM standing_orders
                    WHERE user_id=%s
                    ORDER BY id DESC
                    LIMIT %s;
                    """,
                    (user_id, limit),
                )
            return [_row_to_order(r) for r in cur.fetchall()]
