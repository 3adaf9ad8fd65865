# =============================================================================
# Session Tokens
# =============================================================================
#
# Bearer tokens issued for a subject by the session provider:
#   - Token creation (access + refresh)
#   - Token validation
#
# The token only says WHO the caller is. What they may do is always
# resolved from the authority sources, never read from claims.
#
# =============================================================================

from datetime import datetime, timedelta, timezone

import jwt
from pydantic import BaseModel

from memberhub.config import get_settings
from memberhub.core.utils import generate_id, utc_now


# =============================================================================
# Models
# =============================================================================

class TokenPayload(BaseModel):
    """JWT token payload."""
    sub: str  # subject_id
    exp: datetime
    iat: datetime
    type: str  # "access" or "refresh"
    jti: str  # unique token ID


class TokenPair(BaseModel):
    """Access and refresh token pair."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds until access token expires


# =============================================================================
# Token Creation
# =============================================================================

def create_access_token(subject_id: str) -> str:
    """Create a JWT access token."""
    settings = get_settings()
    now = utc_now()
    expire = now + timedelta(minutes=settings.jwt_access_token_expire_minutes)

    payload = {
        "sub": subject_id,
        "exp": expire,
        "iat": now,
        "type": "access",
        "jti": generate_id("tok"),
    }

    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_refresh_token(subject_id: str) -> str:
    """Create a JWT refresh token (longer-lived)."""
    settings = get_settings()
    now = utc_now()
    expire = now + timedelta(days=settings.jwt_refresh_token_expire_days)

    payload = {
        "sub": subject_id,
        "exp": expire,
        "iat": now,
        "type": "refresh",
        "jti": generate_id("rtok"),
    }

    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_token_pair(subject_id: str) -> TokenPair:
    """Create both access and refresh tokens."""
    settings = get_settings()
    return TokenPair(
        access_token=create_access_token(subject_id),
        refresh_token=create_refresh_token(subject_id),
        expires_in=settings.jwt_access_token_expire_minutes * 60,
    )


# =============================================================================
# Token Validation
# =============================================================================

class TokenError(Exception):
    """Base exception for token errors."""
    pass


class TokenExpiredError(TokenError):
    """Token has expired."""
    pass


class TokenInvalidError(TokenError):
    """Token is invalid or malformed."""
    pass


def decode_token(token: str, expected_type: str = "access") -> TokenPayload:
    """
    Decode and validate a JWT token.

    Raises:
        TokenExpiredError: Token has expired
        TokenInvalidError: Token is invalid
    """
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpiredError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenInvalidError(f"Invalid token: {e}")

    if payload.get("type") != expected_type:
        raise TokenInvalidError(f"Expected {expected_type} token, got {payload.get('type')}")

    return TokenPayload(
        sub=payload["sub"],
        exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
        type=payload["type"],
        jti=payload.get("jti", ""),
    )
