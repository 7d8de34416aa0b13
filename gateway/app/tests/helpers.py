"""
Test helpers: settings built without the environment, an RSA key pair and
JWKS for signing ID tokens, and a fake identity provider served through an
httpx MockTransport.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

import httpx
import jwt
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient
from jwt.algorithms import RSAAlgorithm

from gateway.app.auth.registration import (
    GOOGLE_JWKS_URI,
    GOOGLE_TOKEN_URI,
    GOOGLE_USERINFO_URI,
)
from gateway.app.config import Settings


TEST_CLIENT_ID = "test-client-id.apps.googleusercontent.com"
TEST_CLIENT_SECRET = "test-client-secret"
TEST_KID = "test-key-id-2024"
TEST_ISSUER = "https://accounts.google.com"


# Test RSA key pair generation for mocking JWKS
def generate_test_keys():
    """Generate RSA key pair for testing"""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
        backend=default_backend()
    )

    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )

    return private_key, private_pem.decode()


# Generate test keys once for reuse
TEST_PRIVATE_KEY_OBJ, TEST_PRIVATE_KEY = generate_test_keys()


def create_mock_id_token(
    nonce: Optional[str] = None,
    kid: str = TEST_KID,
    exp_delta_minutes: int = 60,
    audience: str = TEST_CLIENT_ID,
    issuer: str = TEST_ISSUER,
    **claims: Any,
) -> str:
    """Create an ID token signed with the test private key."""
    now = datetime.now(timezone.utc)
    payload = {
        "iss": issuer,
        "sub": "108234567890123456789",
        "aud": audience,
        "exp": now + timedelta(minutes=exp_delta_minutes),
        "iat": now,
        "email": "ada@example.com",
        "name": "Ada Lovelace",
        "picture": "https://lh3.googleusercontent.com/a/ada",
    }
    if nonce is not None:
        payload["nonce"] = nonce
    payload.update(claims)

    return jwt.encode(payload, TEST_PRIVATE_KEY, algorithm="RS256", headers={"kid": kid})


def create_mock_jwks(kid: str = TEST_KID) -> Dict[str, Any]:
    """JWKS containing the test public key."""
    key = RSAAlgorithm.to_jwk(TEST_PRIVATE_KEY_OBJ.public_key(), as_dict=True)
    key["kid"] = kid
    key["use"] = "sig"
    key["alg"] = "RS256"
    return {"keys": [key]}


class FakeIdentityProvider:
    """
    Google's token, JWKS and userinfo endpoints behind an httpx MockTransport.

    Tests adjust the attributes to script failures; every request is kept in
    ``requests`` for assertions.
    """

    def __init__(self):
        self.nonce: Optional[str] = None
        self.token_status = 200
        self.token_body: Optional[str] = None
        self.include_id_token = True
        self.id_token_claims: Dict[str, Any] = {}
        self.jwks = create_mock_jwks()
        self.userinfo = {
            "sub": "108234567890123456789",
            "name": "Ada Lovelace",
            "email": "ada@example.com",
            "picture": "https://lh3.googleusercontent.com/a/ada",
        }
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)

        if url == GOOGLE_TOKEN_URI:
            if self.token_status != 200:
                return httpx.Response(
                    self.token_status,
                    json={"error": "invalid_grant", "error_description": "Bad Request"},
                )
            if self.token_body is not None:
                return httpx.Response(200, text=self.token_body, headers={"content-type": "text/html"})
            body = {"access_token": "mock-access-token", "token_type": "Bearer", "expires_in": 3599}
            if self.include_id_token:
                body["id_token"] = create_mock_id_token(nonce=self.nonce, **self.id_token_claims)
            return httpx.Response(200, json=body)

        if url == GOOGLE_JWKS_URI:
            return httpx.Response(200, json=self.jwks)

        if url == GOOGLE_USERINFO_URI:
            return httpx.Response(200, json=self.userinfo)

        return httpx.Response(404)

    def token_requests(self) -> List[Dict[str, List[str]]]:
        return [
            parse_qs(request.content.decode())
            for request in self.requests
            if str(request.url) == GOOGLE_TOKEN_URI
        ]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def make_settings(**overrides: Any) -> Settings:
    values = {
        "GOOGLE_CLIENT_ID": TEST_CLIENT_ID,
        "GOOGLE_CLIENT_SECRET": TEST_CLIENT_SECRET,
        "SESSION_SECRET_KEY": "test-session-secret-key",
        "FRONTEND_URL": "http://localhost:5173",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def authorization_query(location: str) -> Dict[str, str]:
    """Flatten the query string of an authorization redirect."""
    return {key: values[0] for key, values in parse_qs(urlparse(location).query).items()}


def login(client: TestClient, idp: FakeIdentityProvider, registration_id: str = "google") -> httpx.Response:
    """Run the full redirect + callback flow and return the callback response."""
    start = client.get(f"/oauth2/authorization/{registration_id}")
    assert start.status_code == 302

    query = authorization_query(start.headers["location"])
    idp.nonce = query.get("nonce")

    return client.get(
        f"/login/oauth2/code/{registration_id}",
        params={"code": "mock-auth-code", "state": query["state"]},
    )


