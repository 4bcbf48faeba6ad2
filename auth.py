"""
Passcode login for the single owner of the tracker.

A correct passcode buys a signed bearer token (JWT, 7 days). Every
protected route checks it through ``require_token``.
"""

import os
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

import bcrypt
import jwt
from dotenv import load_dotenv
from fastapi import HTTPException, Request, status

load_dotenv()

PASSCODE = os.getenv("PASSCODE")
PASSCODE_HASH = os.getenv("PASSCODE_HASH")  # bcrypt hash, preferred over PASSCODE
JWT_SECRET = os.getenv("JWT_SECRET")
ALGORITHM = "HS256"
TOKEN_TTL = timedelta(days=7)
COOKIE_NAME = "authToken"
COOKIE_SECURE = os.getenv("ENVIRONMENT", "development") == "production"


@lru_cache(maxsize=4)
def _hash_plain(passcode: str) -> bytes:
    return bcrypt.hashpw(passcode.encode("utf-8"), bcrypt.gensalt())


def check_passcode(candidate: str) -> bool:
    if PASSCODE_HASH:
        stored = PASSCODE_HASH.encode("utf-8")
    elif PASSCODE:
        stored = _hash_plain(PASSCODE)
    else:
        return False

    encoded = candidate.encode("utf-8")
    # bcrypt only looks at the first 72 bytes
    if len(encoded) > 72:
        return False
    return bcrypt.checkpw(encoded, stored)


def _signing_key() -> str:
    # No fallback key: an unset secret disables login and every protected route
    if not JWT_SECRET:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="JWT_SECRET is not configured",
        )
    return JWT_SECRET


def create_access_token(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    payload = {"user": "authenticated", "iat": now, "exp": now + TOKEN_TTL}
    return jwt.encode(payload, _signing_key(), algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    return jwt.decode(token, _signing_key(), algorithms=[ALGORITHM])


def _token_from_request(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization")
    if header and header.startswith("Bearer "):
        return header.split(" ", 1)[1]
    return request.cookies.get(COOKIE_NAME)


def require_token(request: Request) -> dict:
    """FastAPI dependency: the decoded token payload, or 401."""
    token = _token_from_request(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return decode_token(token)
    except jwt.InvalidTokenError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid or expired token, {exc}",
            headers={"WWW-Authenticate": "Bearer"},
        )
