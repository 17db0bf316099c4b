# workbook/auth/jwt.py
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Literal, Optional

import jwt

from workbook.config import JwtSettings, jwt_settings


# --- Custom Exceptions ---
class TokenError(Exception):
    """Base class for token-related errors."""
    def __init__(self, message="Token error occurred", code="TOKEN_ERROR"):
        self.message = message
        self.code = code
        super().__init__(self.message)


class TokenExpired(TokenError):
    """Raised when a token's expiration time has passed."""
    def __init__(self, message="Token has expired", code="TOKEN_EXPIRED"):
        super().__init__(message, code)


class TokenInvalid(TokenError):
    """Raised when a token is invalid (bad signature, wrong format, claims etc.)."""
    def __init__(self, message="Token is invalid", code="TOKEN_INVALID"):
        super().__init__(message, code)


# --- Token Creation ---
def create_access_token(
    *,
    user_id: str,
    display_name: Optional[str] = None,
    settings: JwtSettings = jwt_settings,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Creates an access token for a user id issued by the external identity provider.

    Sign-in itself happens elsewhere; this is used by that provider's bridge
    and by tests.
    """
    if not user_id:
        raise ValueError("user_id must be a non-empty string.")
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta if expires_delta is not None else timedelta(seconds=settings.access_ttl_seconds))
    payload: Dict[str, Any] = {
        "sub": user_id,
        "exp": expire,
        "iat": now,
        "nbf": now,
        "iss": settings.issuer,
        "aud": settings.audience,
        "typ": "access",
    }
    if display_name:
        payload["name"] = display_name
    return jwt.encode(payload, settings.secret, algorithm=settings.algorithm)


# --- Token Decoding and Validation ---
def decode_and_validate(
    token: str,
    expected_type: Literal["access"] = "access",
    settings: JwtSettings = jwt_settings,
) -> Dict[str, Any]:
    """
    Decodes and validates a JWT token.

    Args:
        token: The JWT token string.
        expected_type: The expected token type.
        settings: Signing secret, algorithm, issuer and audience.

    Returns:
        The decoded payload dictionary.

    Raises:
        TokenExpired: If the token has expired.
        TokenInvalid: If the token is invalid (bad signature, format, claims).
    """
    if not token:
        raise TokenInvalid("Token cannot be empty.")

    try:
        payload = jwt.decode(
            token,
            settings.secret,
            algorithms=[settings.algorithm],
            audience=settings.audience,
            issuer=settings.issuer,
            options={"require": ["exp", "iat", "nbf", "iss", "aud", "sub", "typ"]},
            leeway=timedelta(seconds=settings.leeway_seconds),
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpired()
    except jwt.InvalidAudienceError:
        raise TokenInvalid("Invalid audience.", code="TOKEN_INVALID_AUDIENCE")
    except jwt.InvalidIssuerError:
        raise TokenInvalid("Invalid issuer.", code="TOKEN_INVALID_ISSUER")
    except jwt.MissingRequiredClaimError as e:
        raise TokenInvalid(f"Missing required claim: {e}", code="TOKEN_MISSING_CLAIM")
    except jwt.InvalidSignatureError as e:
        raise TokenInvalid(f"Token signature verification failed: {e}", code="TOKEN_SIGNATURE_INVALID")
    except jwt.DecodeError as e:
        raise TokenInvalid(f"Token decoding failed: {e}", code="TOKEN_DECODE_ERROR")
    except jwt.InvalidTokenError as e:
        raise TokenInvalid(f"Token is invalid: {e}", code="TOKEN_GENERIC_INVALID")

    token_type = payload.get("typ")
    if token_type != expected_type:
        raise TokenInvalid(f"Invalid token type. Expected '{expected_type}', got '{token_type}'.", code="TOKEN_TYPE_MISMATCH")

    sub = payload.get("sub")
    if not isinstance(sub, str) or not sub.strip():
        raise TokenInvalid("Token missing 'sub' claim.", code="TOKEN_MISSING_SUB")

    return payload
