"""Authentication helpers and FastAPI security dependency.

Tokens are issued by the campus identity provider; this module only
verifies them. `get_current_email` validates the bearer token and
returns the principal's email, which services map to a student,
lecturer or institution supervisor record.

Token verification raises HTTPExceptions on failure so it can be used
directly inside route dependencies.
"""

from datetime import datetime, timedelta, timezone

from fastapi import HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt

from .config import settings

bearer_scheme = HTTPBearer()


def create_token(email: str, expires_hours: int = 24) -> str:
    """Sign a token for `email`. Used by tooling and tests."""
    expire = datetime.now(timezone.utc) + timedelta(hours=expires_hours)
    payload = {"email": email, "exp": int(expire.timestamp())}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str):
    """Decode and verify a JWT token.

    Returns the decoded payload on success or raises an HTTPException
    with status 401 on failure.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail='token expired')
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail='invalid token')


def get_current_email(credentials: HTTPAuthorizationCredentials = Security(bearer_scheme)) -> str:
    """FastAPI dependency that returns the authenticated principal's email."""
    payload = decode_token(credentials.credentials)
    email = payload.get('email')
    if not email:
        raise HTTPException(status_code=401, detail='invalid token payload')
    return email
