"""
Security Utilities
JWT access token verification for the session service
"""

from typing import Any, Dict

from jose import JWTError, jwt

from edumatch.core.config import settings
from edumatch.core.exceptions import AuthenticationException


def decode_token(token: str) -> Dict[str, Any]:
    """Decode and verify a JWT token"""
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError as e:
        raise AuthenticationException(
            message="Invalid token",
            details={"error": str(e)},
        )


def verify_access_token(token: str) -> Dict[str, Any]:
    """Verify an access token and return its payload"""
    payload = decode_token(token)

    if payload.get("type") != "access":
        raise AuthenticationException(
            message="Invalid token type",
            details={"expected": "access", "got": payload.get("type")},
        )

    if not payload.get("sub"):
        raise AuthenticationException(message="Token has no subject")

    return payload
