"""Integration tests for JWT authentication.

Validates:
  - /health is public (plain Django view, no DRF).
  - Protected DRF endpoints return 401 without a token or with a bad one.
  - A token obtained from /api/v1/auth/token/ grants access.
"""

import pytest

pytestmark = pytest.mark.integration

TOKEN_URL = "/api/v1/auth/token/"
PROTECTED_URL = "/api/v1/orders/"


class TestPublicEndpoints:
    def test_health_is_public(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestProtectedEndpoints:
    def test_no_token_returns_401(self, api_client):
        response = api_client.get(PROTECTED_URL)
        assert response.status_code == 401

    def test_invalid_token_returns_401(self, api_client):
        api_client.credentials(HTTP_AUTHORIZATION="Bearer invalid.token.here")
        response = api_client.get(PROTECTED_URL)
        assert response.status_code == 401

    def test_malformed_auth_header_returns_401(self, api_client):
        api_client.credentials(HTTP_AUTHORIZATION="Token some-token")
        response = api_client.get(PROTECTED_URL)
        assert response.status_code == 401

    def test_401_includes_www_authenticate_header(self, api_client):
        response = api_client.get(PROTECTED_URL)
        assert "Bearer" in response.get("WWW-Authenticate", "")


class TestTokenFlow:
    def test_obtain_and_use_token(self, api_client, user):
        response = api_client.post(
            TOKEN_URL, {"username": "operator", "password": "testpass123"}, format="json"
        )
        assert response.status_code == 200
        assert {"access", "refresh"} <= set(response.data)

        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")
        assert api_client.get(PROTECTED_URL).status_code == 200

    def test_wrong_password(self, api_client, user):
        response = api_client.post(
            TOKEN_URL, {"username": "operator", "password": "nope"}, format="json"
        )
        assert response.status_code == 401

    def test_refresh(self, api_client, user):
        tokens = api_client.post(
            TOKEN_URL, {"username": "operator", "password": "testpass123"}, format="json"
        ).data
        response = api_client.post(
            "/api/v1/auth/token/refresh/", {"refresh": tokens["refresh"]}, format="json"
        )
        assert response.status_code == 200
        assert "access" in response.data
