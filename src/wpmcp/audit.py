"""Consent audit log.

Records every consent decision in the option store (last 1000 entries)
and mirrors it to a JSON-lines file. The log is informational; nothing in
the authorization path reads it.
"""

import asyncio
from pathlib import Path
from typing import Any, Optional

import aiofiles

from shared.logging import get_logger
from shared.models import ConsentLogEntry
from wpmcp.clock import Clock, format_timestamp, utc_now
from wpmcp.state import CONSENT_LOGS_KEY, OptionStore

logger = get_logger(__name__)

MAX_CONSENT_LOGS = 1000


class ConsentAuditLog:
    """
    Audit trail of consent decisions.

    Each entry carries:
    - Tool name and its (redacted) arguments
    - User and session identity
    - Timestamp and client IP
    """

    # Argument names whose values never reach the log
    SENSITIVE_PARAMS = {"password", "token", "secret", "api_key", "apikey", "credential", "consenttoken"}

    def __init__(
        self,
        store: OptionStore,
        log_path: Optional[str] = "logs/consent.log",
        enabled: bool = True,
        max_entries: int = MAX_CONSENT_LOGS,
        clock: Optional[Clock] = None
    ) -> None:
        self.store = store
        self.log_path = Path(log_path) if log_path else None
        self.enabled = enabled
        self.max_entries = max_entries
        self.clock = clock or utc_now
        self._lock = asyncio.Lock()

    def _redact_sensitive(self, params: dict[str, Any]) -> dict[str, Any]:
        """Redact sensitive arguments, including inside nested mappings."""
        redacted = {}
        for key, value in params.items():
            if key.lower() in self.SENSITIVE_PARAMS:
                redacted[key] = "[REDACTED]"
            elif isinstance(value, dict):
                redacted[key] = self._redact_sensitive(value)
            else:
                redacted[key] = value
        return redacted

    def create_entry(
        self,
        tool: str,
        arguments: dict[str, Any],
        session_id: str,
        user_id: Optional[str] = None,
        ip: Optional[str] = None
    ) -> ConsentLogEntry:
        return ConsentLogEntry(
            tool=tool,
            arguments=self._redact_sensitive(arguments),
            user_id=user_id or "anonymous",
            session_id=session_id,
            timestamp=format_timestamp(self.clock()),
            ip=ip or "",
        )

    async def record(
        self,
        tool: str,
        arguments: dict[str, Any],
        session_id: str,
        user_id: Optional[str] = None,
        ip: Optional[str] = None
    ) -> ConsentLogEntry:
        """
        Record a consent decision.

        Args:
            tool: Tool the consent applies to
            arguments: Arguments the user approved
            session_id: Client session identifier
            user_id: Approving user
            ip: Client address

        Returns:
            The stored entry
        """
        entry = self.create_entry(tool, arguments, session_id, user_id, ip)
        if not self.enabled:
            return entry

        def _append(entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
            entries.append(entry.model_dump(mode="json"))
            if len(entries) > self.max_entries:
                entries = entries[-self.max_entries:]
            return entries

        self.store.update(CONSENT_LOGS_KEY, _append, default=[])
        logger.info(
            "Consent recorded",
            tool=entry.tool,
            user=entry.user_id,
            session_id=entry.session_id
        )

        if self.log_path is not None:
            await self._write(entry)
        return entry

    async def _write(self, entry: ConsentLogEntry) -> None:
        async with self._lock:
            try:
                self.log_path.parent.mkdir(parents=True, exist_ok=True)
                async with aiofiles.open(self.log_path, "a") as f:
                    await f.write(entry.model_dump_json() + "\n")
            except OSError as e:
                logger.error("Failed to write consent log", path=str(self.log_path), error=str(e))

    def entries(self, limit: Optional[int] = None) -> list[ConsentLogEntry]:
        """Stored entries, oldest first; the newest ``limit`` if given."""
        raw = self.store.get(CONSENT_LOGS_KEY, [])
        if limit is not None:
            raw = raw[-limit:] if limit > 0 else []
        return [ConsentLogEntry.model_validate(item) for item in raw]
