"""
Tests for Auth service.
"""

import time

import pytest
from fastapi.testclient import TestClient
from unittest.mock import patch
import sys
import os

# Add shared directory to path
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_auth.app.main import create_app
from shared.access_token import AccessToken, TOKEN_LIFETIME
from shared.test_helpers import TestKeyFactory, TestTokenFactory
from shared.token_config import configure, reset_config, with_config


@pytest.fixture(scope="module")
def signing_keypair():
    """RSA key pair used for signing."""
    return TestKeyFactory.create_rsa_key_pair()


@pytest.fixture(scope="module")
def encryption_keypair():
    """RSA key pair used for encryption."""
    return TestKeyFactory.create_rsa_key_pair()


@pytest.fixture
def configured(signing_keypair, encryption_keypair):
    """Configure the process default as a deployed auth service would be."""
    config = configure(
        signing_key=signing_keypair.public_pem,
        encryption_key=encryption_keypair.private_pem
    )
    yield config
    reset_config()


@pytest.fixture
def unconfigured():
    """Run with an empty process default."""
    configure()
    yield
    reset_config()


@pytest.fixture
def client():
    """Create test client."""
    app = create_app()
    return TestClient(app)


@pytest.fixture
def token_string(signing_keypair, encryption_keypair):
    """An encrypted token issued by a peer service."""
    token = AccessToken.for_user(
        user_uuid="user-uuid",
        account_uuid="acct-uuid",
        region="us-west-2",
        instructure_service=True
    )
    with with_config(signing_key=signing_keypair.private_pem, encryption_key=encryption_keypair.public_pem):
        return token.to_token_string()


def test_root_endpoint(client):
    """Test root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "auth"
    assert data["version"] == "1.0.0"


def test_health_check(client, configured):
    """Test health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "auth"
    assert data["status"] == "ok"
    assert data["dependencies"] == {"token_config": "ok"}


def test_health_check_without_signing_key(client, unconfigured):
    """Test health reports an unusable token configuration."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "degraded"
    assert data["dependencies"] == {"token_config": "error"}


def test_verify_token_endpoint(client, configured, token_string):
    """Test token verification endpoint."""
    response = client.post("/auth/verify", json={"token": token_string})
    assert response.status_code == 200
    data = response.json()
    assert data["valid"] is True
    assert data["claims"]["sub"] == "user-uuid"
    assert data["user_info"]["user_uuid"] == "user-uuid"
    assert data["user_info"]["account_uuid"] == "acct-uuid"
    assert data["user_info"]["region"] == "us-west-2"
    assert data["user_info"]["instructure_service"] is True


def test_verify_token_endpoint_with_bearer_prefix(client, configured, token_string):
    """Test the Bearer prefix is tolerated."""
    response = client.post("/auth/verify", json={"token": f"Bearer {token_string}"})
    assert response.status_code == 200
    assert response.json()["valid"] is True


def test_verify_token_endpoint_rejects_garbage(client, configured):
    """Test invalid tokens are reported, not raised."""
    response = client.post("/auth/verify", json={"token": "asdf1234stuff"})
    assert response.status_code == 200
    data = response.json()
    assert data["valid"] is False
    assert data["error"] == "INVALID_TOKEN"
    assert "claims" not in data


def test_verify_token_endpoint_rejects_expired_tokens(client, configured, token_string):
    """Test expired tokens are reported as expired."""
    expired_at = int(time.time()) + 2 * TOKEN_LIFETIME
    with patch("shared.access_token.time") as mock_time:
        mock_time.time.return_value = expired_at
        response = client.post("/auth/verify", json={"token": token_string})

    assert response.status_code == 200
    data = response.json()
    assert data["valid"] is False
    assert data["error"] == "TOKEN_EXPIRED"


def test_verify_token_endpoint_without_configuration(client, unconfigured, token_string):
    """Test a missing signing key surfaces as a server error."""
    response = client.post("/auth/verify", json={"token": token_string})
    assert response.status_code == 500
    data = response.json()
    assert data["code"] == "CONFIG_ERROR"


def test_recognize_token_endpoint(client, configured, token_string):
    """Test the recognition probe."""
    ours = TestTokenFactory.unsigned({"iss": AccessToken.ISSUER})
    theirs = TestTokenFactory.unsigned({"iss": "bridge"})

    assert client.post("/auth/recognize", json={"token": ours}).json() == {"recognized": True}
    assert client.post("/auth/recognize", json={"token": theirs}).json() == {"recognized": False}
    # Encrypted tokens are opaque to the probe
    assert client.post("/auth/recognize", json={"token": token_string}).json() == {"recognized": False}


def test_metrics_endpoint(client, configured, token_string):
    """Test token metrics are exposed."""
    client.post("/auth/verify", json={"token": token_string})
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "access_token_verifications_total" in response.text
