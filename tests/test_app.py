"""Tests for the HTTP surface."""

import json

import pytest
from fastapi.testclient import TestClient

HEADERS = {"X-API-Key": "test-key"}


@pytest.fixture
def client(app):
    return TestClient(app)


def build_client(settings, content_store, option_store):
    from wpmcp.main import create_app

    return TestClient(create_app(settings, content_store, option_store))


class TestHealth:
    """Tests for the health endpoint."""

    def test_health_is_public(self, client):
        """Test that health needs no key."""
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "users" not in data["resource_types"]
        assert data["resource_types"][0] == "posts"


class TestAuthentication:
    """Tests for API key checks and rate limiting."""

    def test_missing_key(self, client):
        """Test that protected routes reject requests without a key."""
        response = client.post("/wpmcp/v1/data", json={"kind": "describe"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == -32000

    def test_wrong_key(self, client):
        """Test that a wrong key is rejected."""
        response = client.get("/wpmcp/v1/notifications", headers={"X-API-Key": "nope"})

        assert response.status_code == 401

    @pytest.mark.parametrize("header", ["X-API-Key", "X-ApiKey", "apikey", "api_key"])
    def test_header_variants(self, client, header):
        """Test the accepted key headers."""
        response = client.post("/wpmcp/v1/data", json={"kind": "describe"}, headers={header: "test-key"})

        assert response.status_code == 200
        assert response.json()["kind"] == "success"

    def test_key_in_body(self, client):
        """Test that the key may travel in the request body."""
        response = client.post("/wpmcp/v1/data", json={"kind": "describe", "api_key": "test-key"})

        assert response.status_code == 200

    def test_header_key_takes_precedence_over_body(self, client):
        """Test that a valid header key is used even when the body carries another."""
        response = client.post(
            "/wpmcp/v1/data",
            json={"kind": "describe", "api_key": "wrong"},
            headers=HEADERS,
        )

        assert response.status_code == 200

    def test_openapi_declares_api_key(self, app):
        """Test that the key header is a security scheme on protected routes only."""
        schema = app.openapi()
        schemes = schema["components"]["securitySchemes"]

        assert {"type": "apiKey", "in": "header", "name": "X-API-Key"} in schemes.values()
        assert schema["paths"]["/wpmcp/v1/data"]["post"]["security"]
        assert schema["paths"]["/wpmcp/v1/notifications"]["get"]["security"]
        assert schema["paths"]["/wpmcp/v1/consent"]["post"]["security"]
        assert "security" not in schema["paths"]["/health"]["get"]

    def test_auth_disabled(self, settings, content_store, option_store):
        """Test that no key is needed when auth is off."""
        settings.server.require_auth = False
        client = build_client(settings, content_store, option_store)

        response = client.post("/wpmcp/v1/data", json={"kind": "describe"})

        assert response.status_code == 200

    def test_rate_limit(self, settings, content_store, option_store):
        """Test that clients over the limit get 429 with Retry-After."""
        settings.server.rate_limit_rpm = 2
        client = build_client(settings, content_store, option_store)

        codes = [client.get("/wpmcp/v1/notifications", headers=HEADERS).status_code for _ in range(3)]
        response = client.get("/wpmcp/v1/notifications", headers=HEADERS)

        assert codes == [200, 200, 429]
        assert response.status_code == 429
        assert response.json()["error"]["code"] == -32003
        assert 0 < int(response.headers["Retry-After"]) <= 60


class TestProtocolRoute:
    """Tests for the envelope route."""

    def test_invalid_json(self, client):
        """Test that unparseable bodies are parse errors."""
        response = client.post(
            "/wpmcp/v1/data",
            content=b"{not json",
            headers={**HEADERS, "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json() == {"kind": "error", "error": {"code": -32700, "message": "Parse error"}}

    def test_error_envelope(self, client):
        """Test that protocol errors travel in a 200 response."""
        response = client.post(
            "/wpmcp/v1/data",
            json={"kind": "invoke", "name": "resources/read", "arguments": {"uri": "wp://posts/999999"}},
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["error"]["code"] == -32002

    def test_invoke(self, client, content_store):
        """Test a successful call."""
        content_store.create_item("posts", {"title": "Hello"})

        response = client.post(
            "/wpmcp/v1/data",
            json={"kind": "invoke", "name": "resources/list"},
            headers=HEADERS,
        )

        data = response.json()["data"]
        assert data["resources"][0]["uri"] == "wp://posts/1"
        assert data["nextCursor"] is None


class TestConsentRoute:
    """Tests for recording consent."""

    def test_issue_token(self, client, app, settings):
        """Test that a recorded consent yields a working token."""
        response = client.post(
            "/wpmcp/v1/consent",
            json={
                "tool": "resources/subscribe",
                "session_id": "session-1",
                "user_id": "alice",
                "arguments": {"uri": "wp://posts/1", "token": "hunter2"},
            },
            headers=HEADERS,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["expires_in"] == 300

        result = client.post(
            "/wpmcp/v1/data",
            json={
                "kind": "invoke",
                "name": "resources/subscribe",
                "arguments": {"uri": "wp://posts/1"},
                "consentToken": body["token"],
            },
            headers=HEADERS,
        ).json()
        assert result == {"kind": "success", "data": {"subscribed": True, "uri": "wp://posts/1"}}

        entries = app.state.audit_log.entries()
        assert len(entries) == 1
        assert entries[0].user_id == "alice"
        assert entries[0].arguments["token"] == "[REDACTED]"

        with open(settings.server.consent_log_path) as f:
            logged = [json.loads(line) for line in f]
        assert logged[0]["session_id"] == "session-1"
        assert logged[0]["arguments"]["token"] == "[REDACTED]"

    def test_invalid_body(self, client):
        """Test that incomplete consent requests are rejected."""
        response = client.post("/wpmcp/v1/consent", json={"tool": "resources/subscribe"}, headers=HEADERS)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == -32600


class TestNotificationsRoute:
    """Tests for polling notifications over HTTP."""

    def test_list(self, client, app, content_store):
        """Test that queued notifications are served in batches."""
        dispatcher = app.state.dispatcher
        dispatcher.resources.subscribe("wp://posts/1")
        content_store.create_item("posts", {"title": "Hello"})

        response = client.get("/wpmcp/v1/notifications", headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["nextCursor"] is None
        assert [(n["id"], n["action"]) for n in body["notifications"]] == [(1, "created")]
