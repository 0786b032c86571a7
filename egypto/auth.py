"""
AUTH MODULE
===========

Who is calling. Tokens are HS256 JWTs signed with JWT_SECRET whose payload
carries `userId`. Chat endpoints accept anonymous callers; history endpoints
require a user.

  optional_user - FastAPI dependency: user id, or None without an Authorization header.
  require_user  - FastAPI dependency: user id, 401 when missing.
  issue_token   - Sign a token for a user id (development and tests).
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, Header

from config import JWT_ALGORITHM, JWT_EXPIRES_DAYS, JWT_SECRET
from egypto.errors import AuthenticationError


def issue_token(user_id: str, secret: str = JWT_SECRET, expires_days: int = JWT_EXPIRES_DAYS) -> str:
    now = datetime.now(timezone.utc)
    payload = {"userId": str(user_id), "iat": now, "exp": now + timedelta(days=expires_days)}
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str, secret: str = JWT_SECRET) -> str:
    """Return the token's user id or raise AuthenticationError."""
    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError as e:
        raise AuthenticationError("Invalid or expired token", details=str(e)) from e
    user_id = payload.get("userId")
    if user_id is None or user_id == "":
        raise AuthenticationError("Invalid or expired token", details="token has no userId")
    return str(user_id)


async def optional_user(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Invalid or expired token", details="expected 'Bearer <token>'")
    return decode_token(token.strip())


async def require_user(user_id: Optional[str] = Depends(optional_user)) -> str:
    if user_id is None:
        raise AuthenticationError("No token provided")
    return user_id
