"""
Identity Provider Client Tests

Tests token exchange, JWKS caching and rotation, and ID token verification
against the registration's audience and issuers.
"""

import httpx
import jwt
import pytest
from jose import JWTError

from gateway.app.auth.registration import GOOGLE_JWKS_URI, google_registration
from gateway.app.auth.utils import AuthenticationFailedError, IdentityProviderClient, get_signing_key
from gateway.app.tests.helpers import (
    TEST_CLIENT_ID,
    TEST_CLIENT_SECRET,
    TEST_KID,
    TEST_PRIVATE_KEY,
    FakeIdentityProvider,
    create_mock_id_token,
    create_mock_jwks,
)


@pytest.fixture
def registration():
    return google_registration(TEST_CLIENT_ID, TEST_CLIENT_SECRET)


@pytest.fixture
def idp_client(idp):
    return IdentityProviderClient(timeout=5.0, transport=idp.transport)


def jwks_requests(idp: FakeIdentityProvider):
    return [r for r in idp.requests if str(r.url) == GOOGLE_JWKS_URI]


class TestTokenExchange:
    """Test suite for the authorization code exchange"""

    @pytest.mark.asyncio
    async def test_successful_exchange(self, idp, idp_client, registration):
        tokens = await idp_client.exchange_code_for_tokens(
            registration,
            code="mock-auth-code",
            redirect_uri="http://localhost:8080/login/oauth2/code/google",
            code_verifier="verifier-123",
        )

        assert tokens["access_token"] == "mock-access-token"
        assert "id_token" in tokens

        [form] = idp.token_requests()
        assert form["code_verifier"] == ["verifier-123"]

    @pytest.mark.asyncio
    async def test_rejected_exchange(self, idp, idp_client, registration):
        idp.token_status = 400

        with pytest.raises(AuthenticationFailedError) as exc_info:
            await idp_client.exchange_code_for_tokens(
                registration, code="bad-code", redirect_uri="http://localhost:8080/cb"
            )

        assert exc_info.value.status_code == 401
        assert "Bad Request" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_response_without_access_token(self, registration):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"id_token": "x"}))
        idp_client = IdentityProviderClient(transport=transport)

        with pytest.raises(AuthenticationFailedError, match="access_token"):
            await idp_client.exchange_code_for_tokens(
                registration, code="code", redirect_uri="http://localhost:8080/cb"
            )

    @pytest.mark.asyncio
    async def test_network_error_propagates(self, registration):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        idp_client = IdentityProviderClient(transport=httpx.MockTransport(handler))

        with pytest.raises(httpx.HTTPError):
            await idp_client.exchange_code_for_tokens(
                registration, code="code", redirect_uri="http://localhost:8080/cb"
            )

    @pytest.mark.asyncio
    async def test_non_json_token_response(self, idp, idp_client, registration):
        idp.token_body = "<html>Service Unavailable</html>"

        with pytest.raises(AuthenticationFailedError, match="not valid JSON"):
            await idp_client.exchange_code_for_tokens(
                registration, code="code", redirect_uri="http://localhost:8080/cb"
            )


class TestJWKS:
    """Test suite for JWKS fetching and caching"""

    @pytest.mark.asyncio
    async def test_jwks_is_cached(self, idp, idp_client):
        first = await idp_client.fetch_jwks(GOOGLE_JWKS_URI)
        second = await idp_client.fetch_jwks(GOOGLE_JWKS_URI)

        assert first == second
        assert len(jwks_requests(idp)) == 1

    @pytest.mark.asyncio
    async def test_force_refresh(self, idp, idp_client):
        await idp_client.fetch_jwks(GOOGLE_JWKS_URI)
        await idp_client.fetch_jwks(GOOGLE_JWKS_URI, force_refresh=True)

        assert len(jwks_requests(idp)) == 2

    @pytest.mark.asyncio
    async def test_clear_cache(self, idp, idp_client):
        await idp_client.fetch_jwks(GOOGLE_JWKS_URI)
        idp_client.clear_jwks_cache()
        await idp_client.fetch_jwks(GOOGLE_JWKS_URI)

        assert len(jwks_requests(idp)) == 2

    @pytest.mark.asyncio
    async def test_invalid_jwks(self, idp, idp_client):
        idp.jwks = {"not_keys": []}

        with pytest.raises(ValueError, match="missing 'keys'"):
            await idp_client.fetch_jwks(GOOGLE_JWKS_URI)

    def test_get_signing_key(self):
        token = create_mock_id_token()

        assert get_signing_key(token, create_mock_jwks())["kid"] == TEST_KID
        assert get_signing_key(token, create_mock_jwks(kid="other")) is None


class TestVerifyIdToken:
    """Test suite for ID token verification"""

    @pytest.mark.asyncio
    async def test_valid_token(self, idp_client, registration):
        claims = await idp_client.verify_id_token(
            registration, create_mock_id_token(nonce="n-1"), nonce="n-1"
        )

        assert claims["sub"] == "108234567890123456789"
        assert claims["email"] == "ada@example.com"

    @pytest.mark.asyncio
    async def test_rotated_key_triggers_refresh(self, idp, idp_client, registration):
        idp.jwks = create_mock_jwks(kid="old-key")
        await idp_client.fetch_jwks(GOOGLE_JWKS_URI)
        idp.jwks = create_mock_jwks()

        claims = await idp_client.verify_id_token(registration, create_mock_id_token())

        assert claims["sub"]
        assert len(jwks_requests(idp)) == 2

    @pytest.mark.asyncio
    async def test_unknown_kid(self, idp, idp_client, registration):
        idp.jwks = create_mock_jwks(kid="old-key")

        with pytest.raises(JWTError, match="signing key"):
            await idp_client.verify_id_token(registration, create_mock_id_token())

    @pytest.mark.asyncio
    async def test_expired_token(self, idp_client, registration):
        token = create_mock_id_token(exp_delta_minutes=-10)

        with pytest.raises(JWTError, match="expired"):
            await idp_client.verify_id_token(registration, token)

    @pytest.mark.asyncio
    async def test_wrong_audience(self, idp_client, registration):
        token = create_mock_id_token(audience="another-client")

        with pytest.raises(JWTError):
            await idp_client.verify_id_token(registration, token)

    @pytest.mark.asyncio
    async def test_wrong_issuer(self, idp_client, registration):
        token = create_mock_id_token(issuer="https://evil.example")

        with pytest.raises(ValueError, match="issuer"):
            await idp_client.verify_id_token(registration, token)

    @pytest.mark.asyncio
    async def test_issuer_without_scheme_accepted(self, idp_client, registration):
        token = create_mock_id_token(issuer="accounts.google.com")

        claims = await idp_client.verify_id_token(registration, token)

        assert claims["iss"] == "accounts.google.com"

    @pytest.mark.asyncio
    async def test_nonce_mismatch(self, idp_client, registration):
        token = create_mock_id_token(nonce="n-1")

        with pytest.raises(ValueError, match="Nonce"):
            await idp_client.verify_id_token(registration, token, nonce="n-2")

    @pytest.mark.asyncio
    async def test_token_without_kid(self, idp_client, registration):
        token = jwt.encode({"sub": "1"}, TEST_PRIVATE_KEY, algorithm="RS256")

        with pytest.raises(JWTError, match="kid"):
            await idp_client.verify_id_token(registration, token)


class TestUserinfo:
    """Test suite for the userinfo fallback"""

    @pytest.mark.asyncio
    async def test_fetch_userinfo(self, idp, idp_client, registration):
        claims = await idp_client.fetch_userinfo(registration, "mock-access-token")

        assert claims["email"] == "ada@example.com"
        assert idp.requests[-1].headers["authorization"] == "Bearer mock-access-token"

    @pytest.mark.asyncio
    async def test_userinfo_must_be_object(self, idp, idp_client, registration):
        idp.userinfo = ["not", "an", "object"]

        with pytest.raises(ValueError, match="JSON object"):
            await idp_client.fetch_userinfo(registration, "mock-access-token")
