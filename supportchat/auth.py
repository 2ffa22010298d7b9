# supportchat/auth.py
"""
Token verification for the chat API.

Users and staff share one signing secret; the claim shape tells them apart
(``userId`` vs ``adminId``). Issuing tokens belongs to the accounts side; the
``create_*`` helpers exist for tooling and tests.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request, status
import jwt
from jwt import PyJWTError

from supportchat import settings


class InvalidToken(Exception):
    pass


def _encode(claims: Dict[str, Any], expires_delta: Optional[timedelta]) -> str:
    now = datetime.now(timezone.utc)
    payload = dict(claims)
    payload["iat"] = now
    payload["exp"] = now + (expires_delta or timedelta(seconds=settings.JWT_EXPIRES_SECONDS))
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def create_user_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    return _encode({"userId": user_id}, expires_delta)


def create_admin_token(admin_id: int, expires_delta: Optional[timedelta] = None) -> str:
    return _encode({"adminId": admin_id}, expires_delta)


def _decode(token: str) -> Dict[str, Any]:
    if not token:
        raise InvalidToken("missing token")
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except PyJWTError as e:
        raise InvalidToken(str(e)) from e


def _claim_id(payload: Dict[str, Any], claim: str) -> int:
    raw = payload.get(claim)
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise InvalidToken(f"token has no usable {claim}") from None


def decode_user_token(token: str) -> int:
    return _claim_id(_decode(token), "userId")


def decode_admin_token(token: str) -> int:
    return _claim_id(_decode(token), "adminId")


def bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        return ""
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


# ---------- FastAPI dependencies ----------
def current_user_id(request: Request) -> int:
    token = bearer_token(request.headers.get("authorization"))
    if not token:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Access token required")
    try:
        return decode_user_token(token)
    except InvalidToken:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid or expired token")


def current_admin_id(request: Request) -> int:
    token = bearer_token(request.headers.get("authorization"))
    if not token:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Admin token required")
    try:
        return decode_admin_token(token)
    except InvalidToken:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid admin token")


def client_ip(request: Request) -> str:
    # behind a proxy the first x-forwarded-for hop is the client
    raw = request.headers.get("x-forwarded-for") or (request.client.host if request.client else "")
    return raw.split(",")[0].strip()
