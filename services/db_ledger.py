# services/db_ledger.py
import logging
import threading
from contextlib import contextmanager

from psycopg2.extensions import ISOLATION_LEVEL_REPEATABLE_READ, TransactionRollbackError
from psycopg2.pool import PoolError, ThreadedConnectionPool

from repositories.order_repository import OrderRepository
from repositories.user_repository import UserRepository
from services.errors import ConcurrentUpdateError, ExchangeError, InternalFailure

logger = logging.getLogger(__name__)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id              TEXT PRIMARY KEY,
    fiat_balance    BIGINT NOT NULL DEFAULT 0 CHECK (fiat_balance >= 0),
    crypto_balance  BIGINT NOT NULL DEFAULT 0 CHECK (crypto_balance >= 0),
    created_at      TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS standing_orders (
    id                  BIGSERIAL PRIMARY KEY,
    user_id             TEXT NOT NULL REFERENCES users(id),
    direction           TEXT NOT NULL CHECK (direction IN ('BUY', 'SELL')),
    state               TEXT NOT NULL CHECK (state IN ('LIVE', 'FULFILLED', 'CANCELLED')),
    limit_price         DOUBLE PRECISION NOT NULL,
    average_price       DOUBLE PRECISION NOT NULL DEFAULT 0,
    fulfilled_quantity  BIGINT NOT NULL DEFAULT 0 CHECK (fulfilled_quantity >= 0),
    remaining_quantity  BIGINT NOT NULL CHECK (remaining_quantity >= 0),
    webhook_url         TEXT,
    created_at          TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at          TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_standing_orders_limit
    ON standing_orders (direction, state, limit_price, id);

CREATE INDEX IF NOT EXISTS idx_standing_orders_user
    ON standing_orders (user_id, direction, state);
"""


class LedgerTransaction:
    """
    One unit of work against the ledger.

    Repositories are bound to the transaction's connection; callbacks
    registered with after_commit() run only once the commit succeeded.
    """

    def __init__(self, users, orders, conn=None):
        self.users = users
        self.orders = orders
        self.conn = conn
        self._after_commit = []

    def after_commit(self, fn, *args) -> None:
        self._after_commit.append((fn, args))


class Ledger:
    """
    Transaction boundary shared by every ledger backend.

    Subclasses provide _begin/_commit/_rollback/_release; this class owns
    the rollback and error-mapping policy.
    """

    @contextmanager
    def transaction(self):
        try:
            tx = self._begin()
        except Exception as e:
            logger.error("Unable to begin a transaction: %s", e)
            raise InternalFailure("The ledger is unavailable.") from e
        try:
            try:
                yield tx
                self._commit(tx)
            except ExchangeError:
                self._rollback(tx)
                raise
            except Exception as e:
                self._rollback(tx)
                conflict = self._conflict(e)
                if conflict is not None:
                    logger.warning("Transaction rolled back on a concurrent update: %s", e)
                    raise conflict from e
                logger.exception("Transaction rolled back: %s", e)
                raise InternalFailure("The transaction has been rolled back.") from e
        finally:
            self._release(tx)

        for fn, args in tx._after_commit:
            try:
                fn(*args)
            except Exception:
                # already committed, nothing to undo
                logger.exception("After-commit callback %r failed", fn)

    def _begin(self) -> LedgerTransaction:
        raise NotImplementedError

    def _commit(self, tx: LedgerTransaction) -> None:
        raise NotImplementedError

    def _rollback(self, tx: LedgerTransaction) -> None:
        raise NotImplementedError

    def _release(self, tx: LedgerTransaction) -> None:
        pass

    def _conflict(self, e: Exception) -> ExchangeError | None:
        """Backend error -> ConcurrentUpdateError when `e` lost a write race."""
        return None

    def close(self) -> None:
        pass


class LedgerDB(Ledger):
    """
    PostgreSQL ledger.
    - users / standing_orders 테이블만 다룸
    - 모든 세션은 REPEATABLE READ, autocommit 끔
    - 커넥션이 모두 사용 중이면 pool_timeout 초까지 대기
    """

    def __init__(
        self,
        host: str = "localhost",
        dbname: str = "bitcoin_exchange",
        user: str = "exchange",
        password: str = "exchange_pw",
        port: int = 5432,
        minconn: int = 1,
        maxconn: int = 10,
        pool_timeout: float = 30.0,
    ):
        self.pool = ThreadedConnectionPool(
            minconn,
            maxconn,
            host=host,
            dbname=dbname,
            user=user,
            password=password,
            port=port,
        )
        # ThreadedConnectionPool.getconn raises instead of blocking when exhausted
        self._slots = threading.BoundedSemaphore(maxconn)
        self.pool_timeout = pool_timeout
        logger.info("Connected to PostgreSQL %s:%s/%s (pool %s-%s)",
                    host, port, dbname, minconn, maxconn)

    @classmethod
    def from_settings(cls, settings) -> "LedgerDB":
        return cls(
            host=settings.db_host,
            dbname=settings.db_name,
            user=settings.db_user,
            password=settings.db_password,
            port=settings.db_port,
            minconn=settings.db_pool_min,
            maxconn=settings.db_pool_max,
            pool_timeout=settings.db_pool_timeout,
        )

    def _getconn(self):
        if not self._slots.acquire(timeout=self.pool_timeout):
            raise PoolError(f"no connection free after {self.pool_timeout}s")
        try:
            return self.pool.getconn()
        except Exception:
            self._slots.release()
            raise

    def _putconn(self, conn, close: bool = False) -> None:
        try:
            self.pool.putconn(conn, close=close)
        finally:
            self._slots.release()

    def _begin(self) -> LedgerTransaction:
        conn = self._getconn()
        try:
            # read-modify-write sequences rely on this isolation level
            conn.set_session(isolation_level=ISOLATION_LEVEL_REPEATABLE_READ, autocommit=False)
        except Exception:
            self._putconn(conn, close=True)
            raise
        return LedgerTransaction(UserRepository(conn), OrderRepository(conn), conn=conn)

    def _commit(self, tx: LedgerTransaction) -> None:
        tx.conn.commit()

    def _rollback(self, tx: LedgerTransaction) -> None:
        try:
            tx.conn.rollback()
        except Exception as e:
            logger.error("Rollback failed, connection will be discarded: %s", e)

    def _release(self, tx: LedgerTransaction) -> None:
        self._putconn(tx.conn, close=bool(tx.conn.closed))

    def _conflict(self, e: Exception) -> ExchangeError | None:
        if isinstance(e, TransactionRollbackError):
            return ConcurrentUpdateError("The request conflicted with a concurrent update; try again.")
        return None

    def init_schema(self) -> None:
        logger.info("Initializing the database.")
        conn = self._getconn()
        try:
            with conn.cursor() as cur:
                cur.execute(SCHEMA_SQL)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._putconn(conn)
        logger.info("The database has been initialized.")

    def close(self) -> None:
        self.pool.closeall()
