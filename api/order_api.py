# api/order_api.py
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from api.auth_api import UserInfo, get_current_user, get_services
from services.container import ExchangeServices
from services.models import AdmissionOutcome, StandingOrder
from services.units import price_to_major, satoshis_to_btc


# ----------------------------
# Pydantic 모델
# ----------------------------
class MarketOrderIn(BaseModel):
    type: str
    quantity: float


class MarketOrderOut(BaseModel):
    quantity: float
    average_price: float


class NewStandingOrderIn(BaseModel):
    type: str
    quantity: float
    limit_price: float
    webhook_url: str | None = None


class StandingOrderIdOut(BaseModel):
    id: int


class StandingOrderOut(BaseModel):
    id: int
    type: str
    state: str
    limit_price: float          # USD per BTC
    average_price: float        # USD per BTC
    fulfilled_quantity: float   # BTC
    remaining_quantity: float   # BTC
    webhook_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_order(cls, order: StandingOrder) -> "StandingOrderOut":
        return cls(
            id=order.id,
            type=order.direction.value,
            state=order.state.value,
            limit_price=price_to_major(order.limit_price),
            average_price=price_to_major(order.average_price),
            fulfilled_quantity=satoshis_to_btc(order.fulfilled_quantity),
            remaining_quantity=satoshis_to_btc(order.remaining_quantity),
            webhook_url=order.webhook_url,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


def create_order_router():
    router = APIRouter()

    # ----------------------------
    # 1) 시장가 주문
    # ----------------------------
    @router.post("/market_order", response_model=MarketOrderOut)
    def market_order(
        body: MarketOrderIn,
        user: UserInfo = Depends(get_current_user),
        services: ExchangeServices = Depends(get_services),
    ):
        outcome = services.market_orders.execute_market_order(user.user_id, body.type, body.quantity)
        return MarketOrderOut(quantity=outcome.quantity, average_price=outcome.average_price)

    # ----------------------------
    # 2) 지정가(standing) 주문 등록
    # ----------------------------
    @router.post("/standing_order", response_model=StandingOrderIdOut)
    def create_standing_order(
        body: NewStandingOrderIn,
        user: UserInfo = Depends(get_current_user),
        services: ExchangeServices = Depends(get_services),
    ):
        order, outcome = services.orders.create_standing_order(
            user.user_id, body.type, body.quantity, body.limit_price, body.webhook_url
        )
        if outcome is AdmissionOutcome.INSUFFICIENT_BALANCE:
            # born cancelled; the id is still returned
            return JSONResponse(status_code=409, content={"id": order.id})
        return StandingOrderIdOut(id=order.id)

    # ----------------------------
    # 3) 내 주문 목록
    # ----------------------------
    @router.get("/standing_order", response_model=list[StandingOrderOut])
    def list_standing_orders(
        state: str | None = None,
        limit: int = Query(100, ge=1, le=1000),
        user: UserInfo = Depends(get_current_user),
        services: ExchangeServices = Depends(get_services),
    ):
        orders = services.orders.list_standing_orders(user.user_id, state, limit)
        return [StandingOrderOut.from_order(o) for o in orders]

    # ----------------------------
    # 4) 주문 조회
    # ----------------------------
    @router.get("/standing_order/{order_id}", response_model=StandingOrderOut)
    def get_standing_order(
        order_id: int,
        user: UserInfo = Depends(get_current_user),
        services: ExchangeServices = Depends(get_services),
    ):
        return StandingOrderOut.from_order(services.orders.get_standing_order(order_id))

    # ----------------------------
    # 5) 주문 취소
    # ----------------------------
    @router.delete("/standing_order/{order_id}")
    def cancel_standing_order(
        order_id: int,
        user: UserInfo = Depends(get_current_user),
        services: ExchangeServices = Depends(get_services),
    ):
        services.orders.cancel_standing_order(user.user_id, order_id)
        return {"ok": True}

    return router
