# api/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI

from api.account_api import create_account_router
from api.auth_api import get_services
from api.errors import register_error_handlers
from api.order_api import create_order_router
from config.settings import get_settings
from services.container import ExchangeServices, build_services
from services.db_ledger import LedgerDB

logger = logging.getLogger(__name__)


def create_app(settings=None, services: ExchangeServices | None = None) -> FastAPI:
    """
    Build the API app.

    Without `services` the ledger pool and background executor are opened
    on startup and closed on shutdown.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.services is None
        if owned:
            ledger = LedgerDB.from_settings(settings)
            app.state.services = build_services(settings, ledger)
            logger.info("Exchange services started: %s", settings.to_dict())
        try:
            yield
        finally:
            if owned:
                app.state.services.close()
                app.state.services = None
                logger.info("Exchange services stopped.")

    # ----------------------------------------------------------
    # FastAPI 기본 설정
    # ----------------------------------------------------------
    app = FastAPI(
        title="Bitcoin Exchange API",
        description="BTC/USD market and standing orders",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = services

    register_error_handlers(app)

    # ----------------------------------------------------------
    # 라우터 등록
    # ----------------------------------------------------------
    app.include_router(create_account_router())
    app.include_router(create_order_router())

    @app.get("/health")
    def health(services: ExchangeServices = Depends(get_services)):
        return {"status": "ok", "jobs": services.executor.stats()}

    return app


app = create_app()
