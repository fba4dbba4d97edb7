"""
Identity Gate

Turns an ``Authorization: Bearer <token>`` header into a verified user and
enforces the allowed sign-in provider. Two verifiers are available:

- RemoteIdentityVerifier asks the identity provider's user endpoint
- JwtIdentityVerifier validates provider-issued JWTs locally with PyJWT
"""

import logging
import re

from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any, Optional

import httpx
import jwt

from pydantic import BaseModel, Field

from genmedia.common.exception.errors import ForbiddenError, ServiceConfigError, UnauthenticatedError
from genmedia.core.conf import settings

logger = logging.getLogger(__name__)

_BEARER_PATTERN = re.compile(r'^Bearer\s+(.+)$', re.IGNORECASE)


class AuthUser(BaseModel):
    """A verified caller."""

    id: str
    email: Optional[str] = None
    provider: Optional[str] = None
    identities: list[str] = Field(default_factory=list, description='Linked identity providers')

    @classmethod
    def from_claims(cls, data: dict[str, Any]) -> 'AuthUser':
        """Build from a provider user object or JWT claims."""
        app_metadata = data.get('app_metadata') or {}
        identities: list[str] = []
        for provider in app_metadata.get('providers') or []:
            if isinstance(provider, str):
                identities.append(provider)
        for identity in data.get('identities') or []:
            if isinstance(identity, dict) and isinstance(identity.get('provider'), str):
                identities.append(identity['provider'])
        return cls(
            id=str(data.get('id') or data.get('sub') or ''),
            email=data.get('email') or None,
            provider=app_metadata.get('provider'),
            identities=identities,
        )

    def signed_in_with(self, provider: str) -> bool:
        if self.provider == provider:
            return True
        return provider in self.identities


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    match = _BEARER_PATTERN.match(authorization.strip())
    if not match:
        return None
    token = match.group(1).strip()
    return token or None


class IdentityVerifier(ABC):
    """Interface for token verification backends."""

    @abstractmethod
    async def verify(self, token: str) -> AuthUser:
        """Return the verified user or raise UnauthenticatedError."""


class RemoteIdentityVerifier(IdentityVerifier):
    """Verify tokens by fetching the user from the identity provider."""

    def __init__(
        self,
        base_url: str,
        service_key: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not base_url or not service_key:
            raise ServiceConfigError('Identity provider is not configured.')
        self.base_url = base_url.rstrip('/')
        self.service_key = service_key
        self.timeout = timeout
        self._transport = transport

    async def verify(self, token: str) -> AuthUser:
        headers = {'apikey': self.service_key, 'Authorization': f'Bearer {token}'}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(f'{self.base_url}/auth/v1/user', headers=headers)
        except httpx.HTTPError as e:
            logger.warning(f'[AUTH] Identity provider unreachable: {e}')
            raise UnauthenticatedError()

        if response.status_code != 200:
            logger.info(f'[AUTH] Token rejected by identity provider: {response.status_code}')
            raise UnauthenticatedError()
        try:
            data = response.json()
        except ValueError:
            raise UnauthenticatedError()

        user = AuthUser.from_claims(data if isinstance(data, dict) else {})
        if not user.id:
            raise UnauthenticatedError()
        return user


class JwtIdentityVerifier(IdentityVerifier):
    """Verify provider-issued JWTs with a shared secret."""

    def __init__(self, secret: str, algorithm: str = 'HS256', audience: Optional[str] = None) -> None:
        if not secret:
            raise ServiceConfigError('Identity JWT secret is not configured.')
        self.secret = secret
        self.algorithm = algorithm
        self.audience = audience

    async def verify(self, token: str) -> AuthUser:
        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                options={'verify_aud': self.audience is not None, 'require': ['exp', 'sub']},
            )
        except jwt.InvalidTokenError as e:
            logger.info(f'[AUTH] Invalid token: {e}')
            raise UnauthenticatedError()

        user = AuthUser.from_claims(claims)
        if not user.id:
            raise UnauthenticatedError()
        return user


class IdentityGate:
    """
    Authenticates callers and enforces the sign-in provider.

    Usage:
        gate = IdentityGate(verifier, allowed_provider='google')
        user = await gate.require_user(request.headers.get('Authorization'))
    """

    def __init__(self, verifier: IdentityVerifier, allowed_provider: Optional[str] = 'google') -> None:
        self.verifier = verifier
        self.allowed_provider = allowed_provider

    async def require_user(self, authorization: Optional[str]) -> AuthUser:
        token = extract_bearer_token(authorization)
        if not token:
            raise UnauthenticatedError()

        user = await self.verifier.verify(token)
        if self.allowed_provider and not user.signed_in_with(self.allowed_provider):
            logger.info(f'[AUTH] Rejected user {user.id}: provider {user.provider!r} not allowed')
            raise ForbiddenError()
        return user


def build_verifier() -> IdentityVerifier:
    if settings.IDENTITY_VERIFY_MODE == 'jwt':
        return JwtIdentityVerifier(
            settings.IDENTITY_JWT_SECRET,
            algorithm=settings.IDENTITY_JWT_ALGORITHM,
            audience=settings.IDENTITY_JWT_AUDIENCE,
        )
    return RemoteIdentityVerifier(
        settings.IDENTITY_PROVIDER_URL,
        settings.IDENTITY_SERVICE_KEY,
        timeout=settings.IDENTITY_TIMEOUT_SECONDS,
    )


@lru_cache
def get_identity_gate() -> IdentityGate:
    """Identity gate built from settings"""
    return IdentityGate(build_verifier(), allowed_provider=settings.IDENTITY_ALLOWED_PROVIDER)
