from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from uuid import UUID

import requests
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from estategate.core.access.engine import AccessDecisionEngine, AccessSubject
from estategate.core.config import settings
from estategate.core.db import get_db_session
from estategate.core.repositories.base import LookupFailure
from estategate.core.repositories.organizations import UserRepository

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=True)
optional_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(slots=True)
class AuthContext:
    user_id: UUID
    subject: str
    organization_id: UUID | None = None
    profile_id: UUID | None = None
    is_active: bool = True
    claims: dict = field(default_factory=dict)

    def access_subject(self) -> AccessSubject:
        return AccessSubject(
            user_id=self.user_id,
            organization_id=self.organization_id,
            profile_id=self.profile_id,
            is_active=self.is_active,
        )


@dataclass(slots=True)
class OptionalAuth:
    """Caller of an endpoint that also serves anonymous requests."""

    context: AuthContext | None = None
    lookup_failed: bool = False

    def access_subject(self) -> AccessSubject | None:
        return self.context.access_subject() if self.context is not None else None


class JwksCache:
    def __init__(self, ttl_seconds: int = 300) -> None:
        self.ttl_seconds = ttl_seconds
        self._jwks: dict | None = None
        self._fetched_at = 0.0

    def get(self, url: str) -> dict:
        now = time.time()
        if self._jwks is None or (now - self._fetched_at) > self.ttl_seconds:
            response = requests.get(url, timeout=5)
            response.raise_for_status()
            self._jwks = response.json()
            self._fetched_at = now
        return self._jwks


jwks_cache = JwksCache()


def _get_signing_key(token: str) -> dict:
    try:
        unverified_header = jwt.get_unverified_header(token)
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication header",
        ) from exc

    kid = unverified_header.get("kid")
    if not kid:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="JWT is missing key id",
        )

    jwks = jwks_cache.get(settings.jwks_url)
    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="No matching signing key found",
    )


def _decode_jwt(token: str) -> dict:
    key = _get_signing_key(token)

    options = {"verify_aud": bool(settings.jwt_audience)}
    try:
        return jwt.decode(
            token,
            key,
            algorithms=["RS256"],
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience or None,
            options=options,
        )
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        ) from exc


async def _load_context(request: Request, token: str, session: AsyncSession) -> AuthContext:
    claims = _decode_jwt(token)
    subject = claims.get("sub")
    if not subject:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token is missing required claims",
        )

    user = await UserRepository(session).get_by_subject(subject)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not provisioned",
        )

    request.state.user_id = user.id
    request.state.auth_claims = claims

    return AuthContext(
        user_id=user.id,
        subject=subject,
        organization_id=user.organization_id,
        profile_id=user.profile_id,
        is_active=user.is_active is True,
        claims=claims,
    )


async def require_auth_context(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_db_session),
) -> AuthContext:
    context = await _load_context(request, credentials.credentials, session)
    if not context.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is inactive",
        )
    return context


async def optional_auth_context(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(optional_bearer_scheme),
    session: AsyncSession = Depends(get_db_session),
) -> AuthContext | None:
    """Like :func:`require_auth_context` but yields ``None`` for anonymous or unknown callers."""
    if credentials is None:
        return None
    try:
        return await _load_context(request, credentials.credentials, session)
    except HTTPException:
        return None


async def resolve_optional_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(optional_bearer_scheme),
    session: AsyncSession = Depends(get_db_session),
) -> OptionalAuth:
    """Optional caller that records, instead of raising, when the identity lookup is unavailable."""
    try:
        context = await optional_auth_context(request, credentials, session)
    except (LookupFailure, requests.RequestException):
        logger.exception("Caller identity lookup failed path=%s", request.url.path)
        return OptionalAuth(lookup_failed=True)
    return OptionalAuth(context=context)


async def get_access_engine(
    session: AsyncSession = Depends(get_db_session),
) -> AccessDecisionEngine:
    return AccessDecisionEngine.for_session(session)


async def require_super_admin(
    context: AuthContext = Depends(require_auth_context),
    engine: AccessDecisionEngine = Depends(get_access_engine),
) -> AuthContext:
    classification = await engine.classify(context.access_subject())
    if not classification.is_super_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Platform super admin required",
        )
    return context
