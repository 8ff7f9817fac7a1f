# repositories/user_repository.py
from psycopg2.extras import RealDictCursor

from services.models import User


def _row_to_user(r) -> User:
    return User(
        id=r["id"],
        fiat_balance=int(r["fiat_balance"]),
        crypto_balance=int(r["crypto_balance"]),
    )


class UserRepository:
    """
    users 테이블 Repository
    - 트랜잭션 커넥션을 받아서 읽기/쓰기만 수행
    - commit/rollback 은 Ledger.transaction() 이 담당
    """

    def __init__(self, conn):
        self.conn = conn

    # -----------------------------------------
    # 회원 등록
    # -----------------------------------------
    def create_user(self, user_id: str) -> User:
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                """
                INSERT INTO users (id, fiat_balance, crypto_balance)
                VALUES (%s, 0, 0)
                RETURNING id, fiat_balance, crypto_balance;
                """,
                (user_id,),
            )
            return _row_to_user(cur.fetchone())

    # -----------------------------------------
    # 잔고 조회
    # -----------------------------------------
    def get_user(self, user_id: str) -> User | None:
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                "SELECT id, fiat_balance, crypto_balance FROM users WHERE id=%s;",
                (user_id,),
            )
            row = cur.fetchone()
            return _row_to_user(row) if row else None

    # -----------------------------------------
    # 잔고 잠금 (잔고/pledge 를 바꾸는 트랜잭션 직렬화)
    # -----------------------------------------
    def get_user_for_update(self, user_id: str) -> User | None:
        """
        Reads the user by writing the row back unchanged.

        Under REPEATABLE READ a SELECT ... FOR UPDATE only waits and then acts
        on its old snapshot; a real row write makes the later of two
        transactions touching this user fail with a serialization error.
        """
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                """
                UPDATE users
                SET fiat_balance = fiat_balance
                WHERE id=%s
                RETURNING id, fiat_balance, crypto_balance;
                """,
                (user_id,),
            )
            row = cur.fetchone()
            return _row_to_user(row) if row else None

    # -----------------------------------------
    # 잔고 업데이트
    # -----------------------------------------
    def save_balances(self, user: User) -> None:
        with self.conn.cursor() as cur:
            cur.execute(
                """
                UPDATE users
                SET fiat_balance=%s, crypto_balance=%s
                WHERE id=%s;
                """,
                (user.fiat_balance, user.crypto_balance, user.id),
            )
