"""
Shared fixtures for gateway tests.
"""

import pytest
from fastapi.testclient import TestClient

from gateway.app.config import Settings
from gateway.app.main import create_app
from gateway.app.tests.helpers import FakeIdentityProvider, login, make_settings


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def idp() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def app(settings, idp):
    return create_app(settings, idp_transport=idp.transport)


@pytest.fixture
def client(app) -> TestClient:
    """Client addressing the gateway as the local development host."""
    return TestClient(app, base_url="http://localhost:8080", follow_redirects=False)


@pytest.fixture
def authenticated_client(client, idp) -> TestClient:
    response = login(client, idp)
    assert response.status_code == 302, response.text
    return client


@pytest.fixture
def unconfigured_client(idp) -> TestClient:
    app = create_app(
        make_settings(GOOGLE_CLIENT_ID=None, GOOGLE_CLIENT_SECRET=None),
        idp_transport=idp.transport,
    )
    return TestClient(app, base_url="http://localhost:8080", follow_redirects=False)
