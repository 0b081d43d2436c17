from jose import JWTError, jwt
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID
from fastapi import Depends, HTTPException, Request, status
from sqlmodel import Session
from app.config import settings
from app.database import get_session
from app.models.user import User

AUTH_COOKIE_NAME = "jwt"


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()

    expire = datetime.utcnow() + (
        expires_delta
        if expires_delta
        else timedelta(minutes=settings.access_token_expire_minutes)
    )

    to_encode.update({"exp": expire})

    encoded_jwt = jwt.encode(
        to_encode,
        settings.secret_key,
        algorithm=settings.algorithm
    )
    return encoded_jwt


def decode_access_token(token: str):
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.algorithm],
        )
        return payload
    except JWTError:
        return None


def _unauthorized(detail: str):
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def extract_token(request: Request, query_token: Optional[str] = None) -> Optional[str]:
    """Cookie first, then the Bearer header, then ?token= (EventSource cannot set headers)."""
    token = request.cookies.get(AUTH_COOKIE_NAME)
    if token:
        return token

    authorization = request.headers.get("Authorization", "")
    if authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1].strip() or None

    return query_token or None


def authenticate_token(session: Session, token: Optional[str]) -> User:
    if not token:
        raise _unauthorized("Not authorized, no token")

    payload = decode_access_token(token)
    if payload is None:
        raise _unauthorized("Not authorized, token failed")

    user_id = payload.get("id") or payload.get("sub")
    try:
        user_id = UUID(str(user_id))
    except ValueError:
        raise _unauthorized("Not authorized, token failed")

    user = session.get(User, user_id)
    if user is None:
        raise _unauthorized("User not found")

    return user


def get_current_user(
    request: Request,
    session: Session = Depends(get_session)
) -> User:
    return authenticate_token(session, extract_token(request))
