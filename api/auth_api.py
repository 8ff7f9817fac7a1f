# api/auth_api.py
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends, Header, HTTPException, Request
from pydantic import BaseModel

from services.container import ExchangeServices


# ---------------------------
# UserInfo 모델
# ---------------------------
class UserInfo(BaseModel):
    user_id: str


def get_services(request: Request) -> ExchangeServices:
    services = request.app.state.services
    if services is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return services


# ---------------------------------------------------
# 현재 사용자 정보 추출
# ---------------------------------------------------
def get_current_user(
    Authorization: str = Header(None),
    services: ExchangeServices = Depends(get_services),
) -> UserInfo:
    if not Authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")

    try:
        scheme, token = Authorization.split()
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid Authorization header format")

    if scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid token scheme (must be Bearer)")

    settings = services.settings
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        user_id = str(payload["user_id"])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except (jwt.InvalidTokenError, KeyError):
        raise HTTPException(status_code=401, detail="Invalid token")

    if services.accounts.get_user(user_id) is None:
        raise HTTPException(status_code=401, detail="Unknown user")

    return UserInfo(user_id=user_id)


# ---------------------------------------------------
# 토큰 생성
# ---------------------------------------------------
def create_access_token(data: dict, secret: str, algorithm: str = "HS256",
                        expires_delta: timedelta = timedelta(hours=12)) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + expires_delta

    to_encode.update({"exp": expire})

    return jwt.encode(to_encode, secret, algorithm=algorithm)
