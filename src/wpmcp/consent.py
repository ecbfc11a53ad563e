"""Consent gating for state-changing tool calls.

A consent token is base64 of ``{tool, timestamp, nonce, signature}`` where
the signature is HMAC-SHA256 over ``tool + timestamp + nonce`` keyed with
the shared secret. Tokens expire after the consent TTL. In single-use mode
the nonce is recorded at issuance and consumed on the first successful
verification, so a token authorizes exactly one call.
"""

import base64
import binascii
import hashlib
import hmac
import json
import secrets
from datetime import datetime, timedelta
from typing import Any, Optional

from pydantic import ValidationError

from shared.logging import get_logger
from shared.models import ConsentRequest, ConsentToken
from wpmcp.clock import Clock, format_timestamp, parse_timestamp, utc_now
from wpmcp.state import CONSENT_NONCES_KEY, OptionStore

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 300
MUTATING_METHODS = ("POST", "PUT", "DELETE", "PATCH")

# Tool -> True (always) or the set of HTTP verbs that need consent
CONSENT_POLICY: dict[str, Any] = {
    "wp_call_endpoint": {"methods": MUTATING_METHODS},
    "resources/subscribe": True,
}

TOOL_DESCRIPTIONS = {
    "wp_call_endpoint": "Execute a WordPress REST API request",
    "wp_discover_endpoints": "Discover available WordPress REST API endpoints",
    "resources/list": "List available WordPress resources",
    "resources/read": "Read a WordPress resource",
    "resources/templates/list": "List resource templates",
    "resources/subscribe": "Subscribe to resource changes",
    "resources/notifications/list": "List resource change notifications",
    "resources/notifications/clear": "Clear resource change notifications",
    "prompts/list": "List available prompts",
    "prompts/get": "Get a prompt template",
    "completion/complete": "Complete argument values",
}
DEFAULT_TOOL_DESCRIPTION = "Execute a WordPress MCP operation"


class ConsentManager:
    """
    Issues and verifies consent tokens.

    Tokens are signed with the server's shared secret. Outstanding nonces
    are kept in the option store and pruned once they are past the TTL.
    """

    def __init__(
        self,
        secret: str,
        store: OptionStore,
        enabled: bool = True,
        single_use: bool = True,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Optional[Clock] = None
    ) -> None:
        self._secret = secret.encode("utf-8")
        self.store = store
        self.enabled = enabled
        self.single_use = single_use
        self.ttl = timedelta(seconds=ttl_seconds)
        self.clock = clock or utc_now

    def is_required(self, tool_name: str, method: Optional[str] = None) -> bool:
        """Whether invoking ``tool_name`` (with ``method`` for endpoint calls) needs consent."""
        if not self.enabled:
            return False

        policy = CONSENT_POLICY.get(tool_name)
        if policy is None:
            return False
        if isinstance(policy, dict):
            verb = (method or "GET").upper()
            return verb in policy["methods"]
        return bool(policy)

    def _sign(self, tool: str, timestamp: str, nonce: str) -> str:
        message = f"{tool}{timestamp}{nonce}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def issue(self, tool_name: str) -> str:
        """Issue a fresh token for ``tool_name``."""
        now = self.clock()
        timestamp = format_timestamp(now)
        nonce = secrets.token_hex(16)

        if self.single_use:
            def _record(nonces: dict[str, str]) -> dict[str, str]:
                live = {
                    key: issued for key, issued in nonces.items()
                    if not self._expired(issued, now)
                }
                live[nonce] = timestamp
                return live

            self.store.update(CONSENT_NONCES_KEY, _record, default={})

        token = ConsentToken(
            tool=tool_name,
            timestamp=timestamp,
            nonce=nonce,
            signature=self._sign(tool_name, timestamp, nonce),
        )
        logger.debug("Consent token issued", tool=tool_name)
        return base64.b64encode(token.model_dump_json().encode("utf-8")).decode("ascii")

    def _expired(self, timestamp: str, now: datetime) -> bool:
        issued = parse_timestamp(timestamp)
        return issued is None or now - issued > self.ttl

    def _decode(self, token: Any) -> Optional[ConsentToken]:
        if not token or not isinstance(token, str):
            return None
        try:
            raw = base64.b64decode(token.encode("ascii"), validate=True)
            payload = json.loads(raw.decode("utf-8"))
            return ConsentToken.model_validate(payload)
        except (binascii.Error, UnicodeError, ValueError, ValidationError):
            return None

    def _check(self, tool_name: str, token: ConsentToken) -> bool:
        if token.tool != tool_name:
            return False

        if self._expired(token.timestamp, self.clock()):
            return False

        expected = self._sign(token.tool, token.timestamp, token.nonce)
        return hmac.compare_digest(token.signature.encode("utf-8"), expected.encode("utf-8"))

    def verify(self, tool_name: str, token: Any) -> bool:
        """
        Check a token without consuming it.

        Returns False, never raises, for malformed input, tool mismatch,
        expiry, bad signature or (single-use mode) an unknown nonce.
        """
        data = self._decode(token)
        if data is None or not self._check(tool_name, data):
            return False
        if self.single_use:
            return data.nonce in self.store.get(CONSENT_NONCES_KEY, {})
        return True

    def consume(self, tool_name: str, token: Any) -> bool:
        """Verify a token and, in single-use mode, mark its nonce used."""
        data = self._decode(token)
        if data is None or not self._check(tool_name, data):
            return False
        if not self.single_use:
            return True

        consumed = False

        def _take(nonces: dict[str, str]) -> dict[str, str]:
            nonlocal consumed
            if data.nonce in nonces:
                consumed = True
                del nonces[data.nonce]
            return nonces

        self.store.update(CONSENT_NONCES_KEY, _take, default={})
        if not consumed:
            logger.warning("Consent token replayed", tool=tool_name)
        return consumed

    def describe_request(self, tool_name: str, arguments: Optional[dict[str, Any]] = None) -> ConsentRequest:
        """Describe a gated call for a human approver, with a fresh token."""
        return ConsentRequest(
            tool=tool_name,
            description=TOOL_DESCRIPTIONS.get(tool_name, DEFAULT_TOOL_DESCRIPTION),
            arguments=arguments or {},
            timestamp=format_timestamp(self.clock()),
            token=self.issue(tool_name),
            expires_in=int(self.ttl.total_seconds()),
        )
