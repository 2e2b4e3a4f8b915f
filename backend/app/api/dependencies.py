"""
API Dependencies

FastAPI dependency injection for authentication.

Security: JWT tokens are verified cryptographically using Supabase JWKS (ES256)
with HS256 fallback via the JWT secret. Never decode without verification.
"""

import logging
from typing import Optional

import jwt
from jwt import PyJWKClient
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.config.settings import get_settings
from app.domain.user import AuthenticatedUser
from app.infrastructure.exceptions import NotAuthenticatedError


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

# PyJWKClient caches keys internally and refreshes them periodically.
_jwks_client: Optional[PyJWKClient] = None

_REQUIRED_CLAIMS = ["exp", "sub", "iss"]


def _get_jwks_client() -> PyJWKClient:
    """Return a singleton PyJWKClient for the Supabase JWKS endpoint."""
    global _jwks_client
    if _jwks_client is None:
        settings = get_settings()
        jwks_url = f"{settings.supabase_url}/auth/v1/.well-known/jwks.json"
        _jwks_client = PyJWKClient(jwks_url, cache_keys=True)
    return _jwks_client


def _decode_with_jwks(token: str, issuer: str) -> dict:
    """Verify JWT using Supabase JWKS endpoint (ES256 asymmetric keys)."""
    signing_key = _get_jwks_client().get_signing_key_from_jwt(token)
    return jwt.decode(
        token,
        signing_key.key,
        algorithms=["ES256"],
        issuer=issuer,
        audience="authenticated",
        options={"require": _REQUIRED_CLAIMS},
    )


def _decode_with_secret(token: str, secret: str, issuer: str) -> dict:
    """Verify JWT using HS256 symmetric secret (legacy Supabase signing)."""
    return jwt.decode(
        token,
        secret,
        algorithms=["HS256"],
        issuer=issuer,
        audience="authenticated",
        options={"require": _REQUIRED_CLAIMS},
    )


def verify_access_token(token: str) -> dict:
    """
    Verify a Supabase access token and return its claims.

    Verification strategy (in order):
      1. JWKS (ES256), which follows key rotation automatically.
      2. HS256 with ``SUPABASE_JWT_SECRET`` for legacy signing.

    Raises:
        NotAuthenticatedError: token expired, invalid or unverifiable.
    """
    settings = get_settings()
    issuer = f"{settings.supabase_url}/auth/v1"

    try:
        return _decode_with_jwks(token, issuer)
    except (jwt.exceptions.PyJWKClientError, jwt.InvalidTokenError) as jwks_err:
        logger.debug("JWKS verification failed, trying HS256 fallback: %s", jwks_err)

    if not settings.supabase_jwt_secret:
        raise NotAuthenticatedError("Invalid or unverifiable token")

    try:
        return _decode_with_secret(token, settings.supabase_jwt_secret, issuer)
    except jwt.ExpiredSignatureError:
        raise NotAuthenticatedError("Token has expired")
    except jwt.InvalidTokenError as e:
        logger.warning("HS256 JWT verification also failed: %s", e)
        raise NotAuthenticatedError("Invalid or unverifiable token")


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthenticatedUser:
    """
    Resolve the authenticated caller from the ``Authorization: Bearer`` header.

    Raises:
        NotAuthenticatedError: header missing or token rejected (HTTP 401).
    """
    if not credentials:
        raise NotAuthenticatedError("Missing authorization token")

    payload = verify_access_token(credentials.credentials)

    user_id = payload.get("sub")
    if not user_id:
        raise NotAuthenticatedError("Invalid token: missing user ID")

    return AuthenticatedUser(id=user_id, email=payload.get("email"))
