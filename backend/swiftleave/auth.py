"""Identity assertion handling.

The browser signs in with Google Identity Services and hands the resulting ID
token to the API as ``Authorization: Bearer <token>``. The token is verified
against Google's published signing keys (RS256) and must carry the configured
client id as audience and a Google issuer.
"""
import logging
from functools import lru_cache
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from swiftleave.config import settings
from swiftleave.database import get_db
from swiftleave.errors import ConfigMissing, RemoteUnavailable
from swiftleave.schemas.employee import AuthenticatedUser, UserProfile
from swiftleave.services.directory_service import fetch_user_role
from swiftleave.services.session import SessionContext, get_session_context
from swiftleave.services.sheet_client import TabularStore, get_store

logger = logging.getLogger(__name__)

SIGNING_ALGORITHMS = ["RS256"]


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


@lru_cache
def _jwks_client(url: str) -> jwt.PyJWKClient:
    return jwt.PyJWKClient(url)


def signing_key_for(token: str):
    """Public key matching the token's ``kid`` from the JWKS endpoint."""
    return _jwks_client(settings.GOOGLE_JWKS_URL).get_signing_key_from_jwt(token).key


def decode_identity_assertion(token: str) -> AuthenticatedUser:
    """Verify an ID token and read name, email and picture from it."""
    if not settings.GOOGLE_CLIENT_ID:
        raise ConfigMissing("GOOGLE_CLIENT_ID is required to verify sign-in")

    try:
        claims = jwt.decode(
            token,
            signing_key_for(token),
            algorithms=SIGNING_ALGORITHMS,
            audience=settings.GOOGLE_CLIENT_ID,
            options={"require": ["exp", "iss", "aud"]},
        )
    except jwt.PyJWKClientConnectionError as exc:
        raise RemoteUnavailable(f"Could not fetch identity signing keys: {exc}") from exc
    except jwt.PyJWTError as exc:
        logger.info("Rejected identity assertion: %s", exc)
        raise _unauthorized("Invalid identity token")

    issuers = [i.strip() for i in settings.GOOGLE_ISSUERS.split(",") if i.strip()]
    if claims.get("iss") not in issuers:
        logger.info("Rejected identity assertion from issuer %r", claims.get("iss"))
        raise _unauthorized("Identity token has an unexpected issuer")

    email = (claims.get("email") or "").strip().lower()
    if not email:
        raise _unauthorized("Identity token has no email")

    return AuthenticatedUser(email=email, name=claims.get("name"), picture=claims.get("picture"))


def bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise _unauthorized("Not signed in")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise _unauthorized("Expected a Bearer token")
    return token.strip()


def get_current_user(authorization: Optional[str] = Header(None)) -> AuthenticatedUser:
    """FastAPI dependency — the signed-in user from the Authorization header."""
    return decode_identity_assertion(bearer_token(authorization))


def get_current_profile(
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: TabularStore = Depends(get_store),
    ctx: SessionContext = Depends(get_session_context),
) -> UserProfile:
    """Directory profile for the caller; unknown callers get employee access."""
    profile = fetch_user_role(db, store, ctx.role_cache, user.email)
    if profile:
        return profile
    return UserProfile(email=user.email, name=user.name, role="employee")


def require_manager(profile: UserProfile = Depends(get_current_profile)) -> UserProfile:
    if not profile.is_manager:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Manager access required")
    return profile
