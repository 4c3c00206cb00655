# src/shared/security.py

from typing import Any, Dict, Optional
from uuid import UUID

import jwt

from src.shared.config import Settings
from src.shared.exceptions import AuthenticationError

# ASP.NET-issued tokens carry the user id under this claim instead of "sub"
NAME_IDENTIFIER_CLAIM = "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/nameidentifier"

def _jwt_verify_key(settings: Settings) -> Any:
    if settings.jwt_algorithm == "RS256":
        return settings.jwt_public_key
    return settings.jwt_secret

def decode_token(token: str, settings: Settings) -> Dict[str, Any]:
    """
    Decode and verify a JWT token.

    Args:
        token: The JWT token string to decode
        settings: Settings carrying the verification key and algorithm

    Returns:
        Dictionary containing the token payload

    Raises:
        AuthenticationError: If token is invalid, expired, or malformed
    """
    try:
        return jwt.decode(
            token,
            _jwt_verify_key(settings),
            algorithms=[settings.jwt_algorithm],
            options={"verify_exp": True, "verify_aud": False},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise AuthenticationError(f"Invalid token: {e}")

def resolve_recipient_id(claims: Dict[str, Any]) -> UUID:
    """
    Resolve the recipient identity a connection belongs to.

    Prefers the name-identifier claim, falls back to ``sub``.

    Raises:
        AuthenticationError: If neither claim holds a UUID
    """
    value = claims.get(NAME_IDENTIFIER_CLAIM) or claims.get("sub")
    if not value:
        raise AuthenticationError("User identifier claim is missing")
    try:
        return UUID(str(value))
    except ValueError:
        raise AuthenticationError("User identifier claim is not a valid UUID")

def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token part of an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
