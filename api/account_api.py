# api/account_api.py
from datetime import timedelta

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.auth_api import UserInfo, create_access_token, get_current_user, get_services
from services.container import ExchangeServices
from services.units import cents_to_usd, satoshis_to_btc


# -----------------------------
# Pydantic Models
# -----------------------------
class RegisterOut(BaseModel):
    user_id: str
    access_token: str
    token_type: str = "bearer"


class BalanceUpdateIn(BaseModel):
    topup_amount: float
    currency: str


class BalanceOut(BaseModel):
    BTC: float
    BTC_current_USD_value: float
    USD: float


class TopUpOut(BaseModel):
    ok: bool = True
    BTC: float
    USD: float


# -----------------------------
# 라우터 팩토리
# -----------------------------
def create_account_router():
    router = APIRouter()

    # -------------------------------------------------------
    # 1) 회원 등록 → 토큰 발급
    # -------------------------------------------------------
    @router.post("/register/{user_id}", response_model=RegisterOut)
    def register(user_id: str, services: ExchangeServices = Depends(get_services)):
        user = services.accounts.register_user(user_id)
        settings = services.settings
        token = create_access_token(
            {"user_id": user.id},
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            expires_delta=timedelta(hours=settings.token_ttl_hours),
        )
        return RegisterOut(user_id=user.id, access_token=token)

    # -------------------------------------------------------
    # 2) 잔고 조회 (BTC 시세 환산 포함)
    # -------------------------------------------------------
    @router.get("/balance", response_model=BalanceOut)
    def get_balance(
        user: UserInfo = Depends(get_current_user),
        services: ExchangeServices = Depends(get_services),
    ):
        return services.balances.get_balance(user.user_id)

    # -------------------------------------------------------
    # 3) 입금 (top-up)
    # -------------------------------------------------------
    @router.post("/balance", response_model=TopUpOut)
    def top_up(
        body: BalanceUpdateIn,
        user: UserInfo = Depends(get_current_user),
        services: ExchangeServices = Depends(get_services),
    ):
        updated = services.balances.top_up(user.user_id, body.currency, body.topup_amount)
        return TopUpOut(
            BTC=satoshis_to_btc(updated.crypto_balance),
            USD=cents_to_usd(updated.fiat_balance),
        )

    return router
