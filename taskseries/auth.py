from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .config import get_settings
from .crud import get_or_create_user
from .db import get_db
from .models import User


# Tokens are issued by the identity provider; this service only verifies them.
bearer_scheme = HTTPBearer(auto_error=False)

logger = logging.getLogger("taskseries.auth")


def create_access_token(
    *,
    subject: str,
    name: Optional[str] = None,
    email: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """Sign a token the way the identity provider does. Used by the CLI and tests."""
    settings = get_settings()
    minutes = int(expires_minutes if expires_minutes is not None else settings.security.token_minutes)
    to_encode: dict[str, Any] = {
        "sub": str(subject),
        "exp": datetime.utcnow() + timedelta(minutes=minutes),
    }
    if name:
        to_encode["name"] = name
    if email:
        to_encode["email"] = email
    return jwt.encode(to_encode, settings.security.jwt_secret, algorithm=settings.security.jwt_algorithm)


def _decode_token(token: str) -> dict:
    settings = get_settings()
    return jwt.decode(token, settings.security.jwt_secret, algorithms=[settings.security.jwt_algorithm])


def token_subject(token: Optional[str]) -> Optional[str]:
    """The `sub` claim of a valid token, or None."""
    if not token:
        return None
    try:
        return _decode_token(token).get("sub") or None
    except JWTError:
        return None


def get_current_user_api(
    db: Session = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None or not credentials.credentials:
        raise credentials_exception
    try:
        payload = _decode_token(credentials.credentials)
        subject: str | None = payload.get("sub")
        if not subject:
            raise credentials_exception
    except JWTError:
        logger.info("Rejected token: signature or claims invalid")
        raise credentials_exception

    user = get_or_create_user(db, auth_uid=subject, name=payload.get("name"), email=payload.get("email"))
    if not user.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User is disabled")
    return user
