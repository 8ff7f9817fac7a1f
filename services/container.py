# services/container.py
from dataclasses import dataclass

from services.account_service import AccountService
from services.balance_service import BalanceService
from services.market_order_service import MarketOrderService
from services.marketdata_service import MarketDataService
from services.matching_engine import MatchingEngine
from services.notifier import WebhookNotifier
from services.order_service import OrderService
from services.settlement import SettlementApplier
from services.task_runner import BackgroundExecutor


@dataclass
class ExchangeServices:
    settings: object
    ledger: object
    executor: BackgroundExecutor
    notifier: WebhookNotifier
    accounts: AccountService
    balances: BalanceService
    orders: OrderService
    market_orders: MarketOrderService

    def close(self) -> None:
        self.executor.shutdown(wait=True)
        self.ledger.close()


def build_services(settings, ledger, executor=None, market_data=None,
                   webhook_session=None) -> ExchangeServices:
    """Wire every service around one ledger and one background executor."""
    executor = executor or BackgroundExecutor(max_workers=settings.executor_workers)
    market_data = market_data or MarketDataService(url=settings.rate_url, timeout=settings.rate_timeout)
    notifier = WebhookNotifier(executor, timeout=settings.webhook_timeout, session=webhook_session)

    balances = BalanceService(ledger, market_data)
    engine = MatchingEngine(balances, SettlementApplier(notifier), page_size=settings.match_page_size)

    return ExchangeServices(
        settings=settings,
        ledger=ledger,
        executor=executor,
        notifier=notifier,
        accounts=AccountService(ledger),
        balances=balances,
        orders=OrderService(ledger, balances, engine, executor, notifier),
        market_orders=MarketOrderService(ledger, engine),
    )
