"""JWT bearer token validation.

Tokens are HS256 JWTs whose ``sub`` claim is the user UUID. Issuing tokens
is the job of an external identity service; ``create_access_token`` exists
for tooling and tests.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from tubely.core.config import settings
from tubely.core.exceptions import UnauthorizedError

ALGORITHM = "HS256"


class TokenPayload(BaseModel):
    """JWT token payload structure."""

    sub: str  # User ID
    exp: datetime
    iat: datetime
    type: str = "access"


def create_access_token(
    user_id: uuid.UUID,
    expires_delta: Optional[timedelta] = None,
    secret_key: Optional[str] = None,
) -> str:
    """Create an access token.

    Args:
        user_id: User UUID
        expires_delta: Token lifetime, defaults to ACCESS_TOKEN_EXPIRE_MINUTES
        secret_key: Signing key, defaults to SECRET_KEY

    Returns:
        str: Encoded token
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))

    payload = {
        "sub": str(user_id),
        "exp": expire,
        "iat": now,
        "type": "access",
    }
    return jwt.encode(payload, secret_key or settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str, secret_key: Optional[str] = None) -> Optional[TokenPayload]:
    """Decode and validate a JWT token.

    Signature and expiry are checked by python-jose.

    Returns:
        TokenPayload | None: Decoded payload if valid, None otherwise
    """
    try:
        payload = jwt.decode(token, secret_key or settings.SECRET_KEY, algorithms=[ALGORITHM])
        return TokenPayload(
            sub=payload["sub"],
            exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            type=payload.get("type", "access"),
        )
    except (JWTError, KeyError, TypeError, ValueError):
        return None


def validate_bearer_token(token: Optional[str]) -> uuid.UUID:
    """Return the user id of a valid access token.

    Raises:
        UnauthorizedError: If the token is missing, invalid or expired
    """
    if not token:
        raise UnauthorizedError("Couldn't find JWT")

    payload = decode_token(token)
    if payload is None or payload.type != "access":
        raise UnauthorizedError("Invalid or expired token")

    try:
        return uuid.UUID(payload.sub)
    except ValueError:
        raise UnauthorizedError("Invalid token subject")


# FastAPI dependencies
security = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> uuid.UUID:
    """Authenticated caller's user id, from the Authorization header."""
    token = credentials.credentials if credentials else None
    return validate_bearer_token(token)
