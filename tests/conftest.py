import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from config.settings import Settings
from services.balance_service import BalanceService
from services.container import build_services
from services.matching_engine import MatchingEngine
from services.notifier import WebhookNotifier
from services.settlement import SettlementApplier
from services.task_runner import BackgroundExecutor
from tests.fakes import FakeMarketData, InMemoryLedger, ManualExecutor, RecordingSession


@pytest.fixture
def settings():
    s = Settings()
    s.jwt_secret = "test-secret"
    s.match_page_size = 2
    s.executor_workers = 2
    return s


@pytest.fixture
def ledger():
    return InMemoryLedger()


@pytest.fixture
def webhook_session():
    return RecordingSession()


@pytest.fixture
def market_data():
    return FakeMarketData(price=50000.0)


@pytest.fixture
def manual_executor():
    return ManualExecutor()


@pytest.fixture
def services(settings, ledger, manual_executor, market_data, webhook_session):
    """Fully wired services whose background jobs run only on manual_executor.run_all()."""
    return build_services(
        settings,
        ledger,
        executor=manual_executor,
        market_data=market_data,
        webhook_session=webhook_session,
    )


@pytest.fixture
def engine_parts(ledger, manual_executor, webhook_session):
    notifier = WebhookNotifier(manual_executor, session=webhook_session)
    balances = BalanceService(ledger)
    settlement = SettlementApplier(notifier)
    engine = MatchingEngine(balances, settlement, page_size=2)
    return balances, settlement, engine


@pytest.fixture
def executor():
    ex = BackgroundExecutor(max_workers=2, name="test-bg")
    yield ex
    ex.shutdown(wait=True)


@pytest.fixture
def client(settings, ledger, executor, market_data, webhook_session):
    services = build_services(
        settings,
        ledger,
        executor=executor,
        market_data=market_data,
        webhook_session=webhook_session,
    )
    app = create_app(settings, services)
    with TestClient(app) as c:
        c.services = services
        yield c
