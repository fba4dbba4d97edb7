"""Tests for bearer token verification and the provider gate."""

import time

import httpx
import jwt
import pytest

from genmedia.common.exception.errors import ForbiddenError, ServiceConfigError, UnauthenticatedError
from genmedia.core.security.identity import (
    AuthUser,
    IdentityGate,
    JwtIdentityVerifier,
    RemoteIdentityVerifier,
    extract_bearer_token,
)

SECRET = 'test-secret'


def _token(**claims) -> str:
    payload = {
        'sub': 'user-1',
        'email': 'ada@example.com',
        'aud': 'authenticated',
        'exp': int(time.time()) + 300,
        'app_metadata': {'provider': 'google', 'providers': ['google']},
        **claims,
    }
    return jwt.encode(payload, SECRET, algorithm='HS256')


class TestBearerToken:
    @pytest.mark.parametrize(
        'header, token',
        [
            ('Bearer abc', 'abc'),
            ('bearer   abc ', 'abc'),
            ('Basic abc', None),
            ('Bearer ', None),
            (None, None),
        ],
    )
    def test_extract(self, header, token):
        assert extract_bearer_token(header) == token


class TestAuthUser:
    def test_from_provider_user_object(self):
        user = AuthUser.from_claims({
            'id': 'u1',
            'email': 'ada@example.com',
            'app_metadata': {'provider': 'email'},
            'identities': [{'provider': 'google'}],
        })

        assert user.id == 'u1'
        assert user.signed_in_with('google')
        assert not user.signed_in_with('github')


class TestJwtVerifier:
    @pytest.mark.asyncio
    async def test_valid_token(self):
        verifier = JwtIdentityVerifier(SECRET, audience='authenticated')

        user = await verifier.verify(_token())

        assert user.id == 'user-1'
        assert user.email == 'ada@example.com'
        assert user.provider == 'google'

    @pytest.mark.asyncio
    async def test_expired_token(self):
        verifier = JwtIdentityVerifier(SECRET, audience='authenticated')

        with pytest.raises(UnauthenticatedError):
            await verifier.verify(_token(exp=int(time.time()) - 10))

    @pytest.mark.asyncio
    async def test_wrong_secret(self):
        verifier = JwtIdentityVerifier('another-secret', audience='authenticated')

        with pytest.raises(UnauthenticatedError):
            await verifier.verify(_token())

    def test_requires_secret(self):
        with pytest.raises(ServiceConfigError):
            JwtIdentityVerifier('')


class TestRemoteVerifier:
    @pytest.mark.asyncio
    async def test_user_endpoint_is_called_with_keys(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen['url'] = str(request.url)
            seen['apikey'] = request.headers['apikey']
            seen['auth'] = request.headers['Authorization']
            return httpx.Response(200, json={'id': 'u1', 'email': 'ada@example.com', 'app_metadata': {'provider': 'google'}})

        verifier = RemoteIdentityVerifier(
            'https://id.example.com/', 'service-key', transport=httpx.MockTransport(handler)
        )
        user = await verifier.verify('tok')

        assert user.id == 'u1'
        assert seen == {
            'url': 'https://id.example.com/auth/v1/user',
            'apikey': 'service-key',
            'auth': 'Bearer tok',
        }

    @pytest.mark.asyncio
    async def test_rejected_token(self):
        verifier = RemoteIdentityVerifier(
            'https://id.example.com', 'key', transport=httpx.MockTransport(lambda request: httpx.Response(401))
        )

        with pytest.raises(UnauthenticatedError):
            await verifier.verify('tok')

    @pytest.mark.asyncio
    async def test_unreachable_provider(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError('refused', request=request)

        verifier = RemoteIdentityVerifier('https://id.example.com', 'key', transport=httpx.MockTransport(handler))

        with pytest.raises(UnauthenticatedError):
            await verifier.verify('tok')


class TestIdentityGate:
    @pytest.mark.asyncio
    async def test_missing_header(self):
        gate = IdentityGate(JwtIdentityVerifier(SECRET, audience='authenticated'))

        with pytest.raises(UnauthenticatedError) as exc_info:
            await gate.require_user(None)

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_google_user_passes(self):
        gate = IdentityGate(JwtIdentityVerifier(SECRET, audience='authenticated'), allowed_provider='google')

        user = await gate.require_user(f'Bearer {_token()}')

        assert user.id == 'user-1'

    @pytest.mark.asyncio
    async def test_other_provider_is_forbidden(self):
        gate = IdentityGate(JwtIdentityVerifier(SECRET, audience='authenticated'), allowed_provider='google')
        token = _token(app_metadata={'provider': 'email', 'providers': ['email']})

        with pytest.raises(ForbiddenError) as exc_info:
            await gate.require_user(f'Bearer {token}')

        assert exc_info.value.status_code == 403
