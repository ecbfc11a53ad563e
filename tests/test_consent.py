"""Tests for consent tokens."""

import base64
import json

import pytest


def _tamper(token: str, **changes) -> str:
    payload = json.loads(base64.b64decode(token))
    payload.update(changes)
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


@pytest.fixture
def manager(option_store, clock):
    from wpmcp.consent import ConsentManager

    return ConsentManager("shared-secret", option_store, clock=clock)


class TestConsentPolicy:
    """Tests for is_required."""

    def test_endpoint_calls_gated_by_method(self, manager):
        """Test that only mutating verbs need consent for endpoint calls."""
        assert manager.is_required("wp_call_endpoint", "GET") is False
        assert manager.is_required("wp_call_endpoint") is False
        for method in ("POST", "PUT", "DELETE", "PATCH", "post"):
            assert manager.is_required("wp_call_endpoint", method) is True

    def test_subscribe_always_gated(self, manager):
        """Test that subscriptions always need consent."""
        assert manager.is_required("resources/subscribe") is True

    def test_reads_not_gated(self, manager):
        """Test that read-only tools need no consent."""
        assert manager.is_required("resources/read") is False
        assert manager.is_required("resources/list") is False

    def test_global_switch(self, option_store):
        """Test that consent can be disabled entirely."""
        from wpmcp.consent import ConsentManager

        manager = ConsentManager("secret", option_store, enabled=False)

        assert manager.is_required("resources/subscribe") is False
        assert manager.is_required("wp_call_endpoint", "DELETE") is False


class TestConsentTokens:
    """Tests for issue / verify / consume."""

    def test_fresh_token_verifies(self, manager):
        """Test that a token verifies right after issuance."""
        token = manager.issue("wp_call_endpoint")

        assert manager.verify("wp_call_endpoint", token) is True

    def test_token_is_bound_to_tool(self, manager):
        """Test that a token for one tool is rejected for another."""
        token = manager.issue("wp_call_endpoint")

        assert manager.verify("resources/subscribe", token) is False

    def test_token_expires(self, manager, clock):
        """Test the 300 second validity window."""
        token = manager.issue("wp_call_endpoint")

        clock.advance(300)
        assert manager.verify("wp_call_endpoint", token) is True

        clock.advance(1)
        assert manager.verify("wp_call_endpoint", token) is False

    def test_flipped_signature_character_rejected(self, manager):
        """Test that a modified signature fails."""
        token = manager.issue("wp_call_endpoint")
        signature = json.loads(base64.b64decode(token))["signature"]
        flipped = ("0" if signature[0] != "0" else "1") + signature[1:]

        assert manager.verify("wp_call_endpoint", _tamper(token, signature=flipped)) is False

    def test_retargeted_token_rejected(self, manager):
        """Test that rewriting the tool field breaks the signature."""
        token = manager.issue("resources/subscribe")

        assert manager.verify("wp_call_endpoint", _tamper(token, tool="wp_call_endpoint")) is False

    def test_token_from_other_secret_rejected(self, manager, option_store, clock):
        """Test that tokens signed with a different secret fail."""
        from wpmcp.consent import ConsentManager

        other = ConsentManager("another-secret", option_store, clock=clock)

        assert manager.verify("wp_call_endpoint", other.issue("wp_call_endpoint")) is False

    @pytest.mark.parametrize("token", [None, "", "garbage", 12345, "e30=", base64.b64encode(b"[]").decode()])
    def test_malformed_tokens_rejected(self, manager, token):
        """Test that malformed input returns False instead of raising."""
        assert manager.verify("wp_call_endpoint", token) is False
        assert manager.consume("wp_call_endpoint", token) is False

    def test_single_use(self, manager):
        """Test that a token authorizes exactly one call."""
        token = manager.issue("wp_call_endpoint")

        assert manager.consume("wp_call_endpoint", token) is True
        assert manager.consume("wp_call_endpoint", token) is False
        assert manager.verify("wp_call_endpoint", token) is False

    def test_verify_does_not_consume(self, manager):
        """Test that verify is a pure check."""
        token = manager.issue("wp_call_endpoint")

        assert manager.verify("wp_call_endpoint", token) is True
        assert manager.verify("wp_call_endpoint", token) is True
        assert manager.consume("wp_call_endpoint", token) is True

    def test_reusable_tokens_when_single_use_disabled(self, option_store, clock):
        """Test time-window-only tokens."""
        from wpmcp.consent import ConsentManager

        manager = ConsentManager("secret", option_store, single_use=False, clock=clock)
        token = manager.issue("resources/subscribe")

        assert manager.consume("resources/subscribe", token) is True
        assert manager.consume("resources/subscribe", token) is True

    def test_expired_nonces_are_pruned(self, manager, option_store, clock):
        """Test that outstanding nonces do not accumulate."""
        from wpmcp.state import CONSENT_NONCES_KEY

        manager.issue("wp_call_endpoint")
        manager.issue("wp_call_endpoint")
        clock.advance(400)
        manager.issue("wp_call_endpoint")

        assert len(option_store.get(CONSENT_NONCES_KEY, {})) == 1


class TestConsentRequest:
    """Tests for describe_request."""

    def test_describe_request(self, manager):
        """Test the descriptor presented to an approver."""
        request = manager.describe_request(
            "wp_call_endpoint",
            {"endpoint": "/wp/v2/posts", "method": "POST"}
        )

        assert request.tool == "wp_call_endpoint"
        assert request.description == "Execute a WordPress REST API request"
        assert request.arguments["method"] == "POST"
        assert request.expires_in == 300
        assert request.timestamp.startswith("2024-01-01T12:00:00")
        assert manager.verify("wp_call_endpoint", request.token) is True

    def test_default_description(self, manager):
        """Test the fallback description for unknown tools."""
        request = manager.describe_request("custom/tool")

        assert request.description == "Execute a WordPress MCP operation"
        assert request.arguments == {}
