"""Standing order admission, background execution and cancellation."""

import pytest

from services.errors import (
    ConcurrentUpdateError,
    InternalFailure,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from services.models import AdmissionOutcome, OrderState

BTC = 100_000_000


@pytest.fixture
def orders(services):
    return services.orders


class TestAdmission:
    def test_sell_needs_free_crypto(self, ledger, services, orders, manual_executor):
        ledger.add_user("alice")
        services.balances.top_up("alice", "BTC", 9)

        order, outcome = orders.create_standing_order("alice", "SELL", 10, 10_000)
        assert outcome is AdmissionOutcome.INSUFFICIENT_BALANCE
        assert order.id is not None
        assert order.state is OrderState.CANCELLED
        assert order.remaining_quantity == 10 * BTC
        assert manual_executor.jobs == []

        services.balances.top_up("alice", "BTC", 1)
        order, outcome = orders.create_standing_order("alice", "SELL", 10, 10_000)
        assert outcome is AdmissionOutcome.ADMITTED
        assert order.state is OrderState.LIVE
        assert manual_executor.job_names() == [f"execute-standing-order:{order.id}"]

        manual_executor.run_all()
        assert ledger.orders[order.id].state is OrderState.LIVE
        assert ledger.orders[order.id].remaining_quantity == 10 * BTC

    def test_buy_needs_free_fiat_after_pledges(self, ledger, orders):
        ledger.add_user("dan", fiat=30_000_000)

        first, outcome = orders.create_standing_order("dan", "BUY", 20, 10_000)
        assert outcome is AdmissionOutcome.ADMITTED

        second, outcome = orders.create_standing_order("dan", "BUY", 10, 25_000)
        assert outcome is AdmissionOutcome.INSUFFICIENT_BALANCE
        assert second.state is OrderState.CANCELLED

        orders.cancel_standing_order("dan", first.id)

        third, outcome = orders.create_standing_order("dan", "BUY", 10, 25_000)
        assert outcome is AdmissionOutcome.ADMITTED
        assert third.state is OrderState.LIVE

    def test_exact_balance_is_enough(self, ledger, orders):
        ledger.add_user("bob", fiat=1_000_000)
        _, outcome = orders.create_standing_order("bob", "buy", 1, 10_000)
        assert outcome is AdmissionOutcome.ADMITTED

    def test_born_cancelled_order_is_notified(self, ledger, orders, manual_executor, webhook_session):
        ledger.add_user("bob")
        order, _ = orders.create_standing_order("bob", "BUY", 1, 10_000, webhook_url="http://hook/bob")

        assert manual_executor.job_names() == [f"webhook:{order.id}"]
        manual_executor.run_all()
        assert webhook_session.notified_ids() == [order.id]
        assert webhook_session.posts[0]["url"] == "http://hook/bob"

    @pytest.mark.parametrize("direction, quantity, price", [
        ("HOLD", 1, 10_000),
        ("BUY", 0, 10_000),
        ("BUY", -1, 10_000),
        ("BUY", 0.000000001, 10_000),
        ("BUY", 1, 0),
        ("SELL", 1, float("nan")),
        ("SELL", 1e12, 10_000),
    ])
    def test_rejects_invalid_input(self, ledger, orders, direction, quantity, price):
        ledger.add_user("bob", fiat=10**12, crypto=10**12)
        with pytest.raises(ValidationError):
            orders.create_standing_order("bob", direction, quantity, price)
        assert ledger.orders == {}

    def test_unknown_user(self, orders, ledger):
        with pytest.raises(NotFoundError):
            orders.create_standing_order("ghost", "BUY", 1, 10_000)
        assert ledger.orders == {}

    def test_admission_locks_the_user(self, ledger, orders):
        ledger.add_user("alice", crypto=BTC)
        orders.create_standing_order("alice", "SELL", 1, 10_000)
        assert ledger.locked_users == ["alice"]


class TestExecution:
    def test_admitted_order_trades_against_the_book(self, ledger, orders, manual_executor, webhook_session):
        ledger.add_user("sam", crypto=BTC)
        ledger.add_user("bob", fiat=1_100_000)
        sell, _ = orders.create_standing_order("sam", "SELL", 1, 10_000, webhook_url="http://hook/sam")
        manual_executor.run_all()

        # bob's whole balance backs this order; its own pledge must not block it
        buy, outcome = orders.create_standing_order("bob", "BUY", 1, 11_000, webhook_url="http://hook/bob")
        assert outcome is AdmissionOutcome.ADMITTED
        manual_executor.run_all()

        stored = ledger.orders[buy.id]
        assert stored.state is OrderState.FULFILLED
        assert stored.fulfilled_quantity == BTC
        assert stored.average_price == pytest.approx(0.01)
        assert ledger.orders[sell.id].state is OrderState.FULFILLED
        assert ledger.users["bob"].fiat_balance == 100_000
        assert ledger.users["bob"].crypto_balance == BTC
        assert ledger.users["sam"].fiat_balance == 1_000_000
        assert sorted(webhook_session.notified_ids()) == sorted([sell.id, buy.id])

    def test_partial_fill_keeps_order_live_until_counterparty_arrives(self, ledger, orders, manual_executor):
        ledger.add_user("sam", crypto=BTC)
        ledger.add_user("sue", crypto=BTC)
        ledger.add_user("bob", fiat=2_200_000)
        orders.create_standing_order("sam", "SELL", 1, 10_000)
        manual_executor.run_all()

        buy, _ = orders.create_standing_order("bob", "BUY", 2, 11_000)
        manual_executor.run_all()

        stored = ledger.orders[buy.id]
        assert stored.state is OrderState.LIVE
        assert stored.fulfilled_quantity == BTC
        assert stored.remaining_quantity == BTC
        assert stored.quantity == 2 * BTC

        # a later seller takes the resting bid at the bid's price
        orders.create_standing_order("sue", "SELL", 1, 10_500)
        manual_executor.run_all()

        stored = ledger.orders[buy.id]
        assert stored.state is OrderState.FULFILLED
        assert stored.quantity == 2 * BTC
        assert stored.average_price == pytest.approx(0.0105)
        assert ledger.users["sue"].fiat_balance == 1_100_000
        assert ledger.users["bob"].fiat_balance == 100_000
        assert ledger.users["bob"].crypto_balance == 2 * BTC

    def test_cancelled_before_execution_is_left_alone(self, ledger, orders, manual_executor):
        ledger.add_user("sam", crypto=BTC)
        ledger.add_user("bob", fiat=1_000_000)
        sell, _ = orders.create_standing_order("sam", "SELL", 1, 10_000)
        buy, _ = orders.create_standing_order("bob", "BUY", 1, 10_000)
        orders.cancel_standing_order("bob", buy.id)

        manual_executor.run_all()

        assert ledger.orders[buy.id].state is OrderState.CANCELLED
        assert ledger.orders[buy.id].fulfilled_quantity == 0
        assert ledger.orders[sell.id].state is OrderState.LIVE
        assert ledger.users["bob"].fiat_balance == 1_000_000

    def test_unknown_order_is_ignored(self, orders):
        assert orders.execute_standing_order(12345) is None

    def test_failed_execution_rolls_back(self, ledger, orders, manual_executor):
        ledger.add_user("sam", crypto=BTC)
        ledger.add_user("bob", fiat=1_000_000)
        sell, _ = orders.create_standing_order("sam", "SELL", 1, 10_000)
        manual_executor.run_all()
        buy, _ = orders.create_standing_order("bob", "BUY", 1, 10_000)
        ledger.failing_ops.add("save_balances")

        with pytest.raises(InternalFailure):
            manual_executor.run_all()

        assert ledger.orders[buy.id].state is OrderState.LIVE
        assert ledger.orders[sell.id].remaining_quantity == BTC
        assert ledger.users["bob"].fiat_balance == 1_000_000
        assert ledger.users["sam"].crypto_balance == BTC

    def test_lost_write_race_is_retried(self, ledger, orders, manual_executor, monkeypatch):
        ledger.add_user("sam", crypto=BTC)
        ledger.add_user("bob", fiat=1_000_000)
        sell, _ = orders.create_standing_order("sam", "SELL", 1, 10_000)
        manual_executor.run_all()
        buy, _ = orders.create_standing_order("bob", "BUY", 1, 10_000)
        real_match = orders.engine.match
        demanders = []

        def contended(*args, **kwargs):
            demanders.append(args[1])
            if len(demanders) == 1:
                raise ConcurrentUpdateError("lost the race")
            return real_match(*args, **kwargs)

        monkeypatch.setattr(orders.engine, "match", contended)
        manual_executor.run_all()

        assert demanders == ["bob", "bob"]
        assert ledger.orders[buy.id].state is OrderState.FULFILLED
        assert ledger.orders[sell.id].state is OrderState.FULFILLED
        assert ledger.users["bob"].crypto_balance == BTC

    def test_gives_up_after_repeated_conflicts(self, ledger, orders, manual_executor, monkeypatch):
        ledger.add_user("bob", fiat=1_000_000)
        buy, _ = orders.create_standing_order("bob", "BUY", 1, 10_000)
        attempts = []

        def always_contended(*args, **kwargs):
            attempts.append(args[1])
            raise ConcurrentUpdateError("lost the race")

        monkeypatch.setattr(orders.engine, "match", always_contended)
        with pytest.raises(ConcurrentUpdateError):
            manual_executor.run_all()

        assert len(attempts) == orders.conflict_retries
        assert ledger.orders[buy.id].state is OrderState.LIVE


class TestCancel:
    def test_cancel_releases_pledge(self, ledger, services, orders):
        ledger.add_user("dan", fiat=1_000_000)
        order, _ = orders.create_standing_order("dan", "BUY", 1, 10_000)

        cancelled = orders.cancel_standing_order("dan", order.id)

        assert cancelled.state is OrderState.CANCELLED
        assert ledger.orders[order.id].state is OrderState.CANCELLED
        with ledger.transaction() as tx:
            assert services.balances.free_fiat(tx, tx.users.get_user("dan")) == 1_000_000

    def test_only_owner_may_cancel(self, ledger, orders):
        ledger.add_user("dan", fiat=1_000_000)
        ledger.add_user("eve")
        order, _ = orders.create_standing_order("dan", "BUY", 1, 10_000)

        with pytest.raises(PermissionDeniedError):
            orders.cancel_standing_order("eve", order.id)
        assert ledger.orders[order.id].state is OrderState.LIVE

    def test_unknown_order(self, orders):
        with pytest.raises(NotFoundError):
            orders.cancel_standing_order("dan", 999)

    def test_cancelling_twice_notifies_once(self, ledger, orders, manual_executor, webhook_session):
        ledger.add_user("dan", fiat=1_000_000)
        order, _ = orders.create_standing_order("dan", "BUY", 1, 10_000, webhook_url="http://hook")
        manual_executor.jobs.clear()

        orders.cancel_standing_order("dan", order.id)
        again = orders.cancel_standing_order("dan", order.id)
        manual_executor.run_all()

        assert again.state is OrderState.CANCELLED
        assert webhook_session.notified_ids() == [order.id]

    def test_fulfilled_order_stays_fulfilled(self, ledger, orders):
        ledger.add_user("dan")
        order = ledger.add_order("dan", "BUY", 0, 0.01, state=OrderState.FULFILLED)

        result = orders.cancel_standing_order("dan", order.id)

        assert result.state is OrderState.FULFILLED
        assert ledger.orders[order.id].state is OrderState.FULFILLED


class TestQueries:
    def test_get_unknown_order(self, orders):
        with pytest.raises(NotFoundError):
            orders.get_standing_order(1)

    def test_list_newest_first_with_state_filter(self, ledger, orders):
        ledger.add_user("dan", fiat=1_000_000)
        ledger.add_user("eve", fiat=1_000_000)
        live, _ = orders.create_standing_order("dan", "BUY", 1, 10_000)
        cancelled, _ = orders.create_standing_order("dan", "BUY", 1, 10_000)
        orders.create_standing_order("eve", "BUY", 1, 10_000)

        assert [o.id for o in orders.list_standing_orders("dan")] == [cancelled.id, live.id]
        assert [o.id for o in orders.list_standing_orders("dan", "live")] == [live.id]
        assert [o.id for o in orders.list_standing_orders("dan", limit=1)] == [cancelled.id]

    def test_list_rejects_unknown_state(self, orders):
        with pytest.raises(ValidationError):
            orders.list_standing_orders("dan", "PENDING")
