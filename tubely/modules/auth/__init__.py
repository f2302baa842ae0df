"""Authentication module."""

from tubely.modules.auth.jwt import (
    TokenPayload,
    create_access_token,
    decode_token,
    get_current_user_id,
    validate_bearer_token,
)

__all__ = [
    "TokenPayload",
    "create_access_token",
    "decode_token",
    "get_current_user_id",
    "validate_bearer_token",
]
