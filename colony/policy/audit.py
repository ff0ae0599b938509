"""Audit Trail — append-only log of every sandbox dispatch.

Each script invocation and each rejected path gets recorded here,
timestamped, so security-relevant refusals are never lost. The trail
listens on the event bus (attach) rather than being called by the
runner directly.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any

import aiosqlite
import orjson
from pydantic import BaseModel, Field

from colony.events.bus import (
    SANDBOX_EXITED,
    SANDBOX_REJECTED,
    SANDBOX_TERMINATED,
    Event,
    EventBus,
    RejectedEvent,
    RunFinishedEvent,
)
from colony.types import new_id


class AuditEntry(BaseModel):
    """A single audit log entry."""

    id: str = Field(default_factory=new_id)
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    action: str = ""  # "invocation", "rejection"
    mode: str = ""
    script: str = ""
    arguments: dict[str, Any] = Field(default_factory=dict)
    detail: str = ""
    exit_code: int | None = None
    success: bool = True


class AuditTrail:
    """Append-only audit log, optionally backed by SQLite.

    Without ``initialize()`` the trail lives in memory only.
    """

    def __init__(self, db_path: str = "") -> None:
        self._db_path = db_path
        self._entries: list[AuditEntry] = []
        self._lock = asyncio.Lock()
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Create the audit table if needed."""
        if not self._db_path:
            return
        self._db = await aiosqlite.connect(self._db_path)
        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS audit_log (
                id TEXT PRIMARY KEY,
                timestamp TEXT NOT NULL,
                action TEXT NOT NULL,
                mode TEXT,
                script TEXT,
                arguments TEXT,
                detail TEXT,
                exit_code INTEGER,
                success INTEGER DEFAULT 1
            )
        """)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    async def record(self, entry: AuditEntry) -> None:
        """Record an audit entry (immutable append)."""
        async with self._lock:
            self._entries.append(entry)
            if self._db:
                await self._db.execute(
                    """INSERT INTO audit_log
                       (id, timestamp, action, mode, script, arguments,
                        detail, exit_code, success)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        entry.id,
                        entry.timestamp.isoformat(),
                        entry.action,
                        entry.mode,
                        entry.script,
                        orjson.dumps(entry.arguments).decode(),
                        entry.detail,
                        entry.exit_code,
                        int(entry.success),
                    ),
                )
                await self._db.commit()

    async def log_invocation(
        self,
        mode: str,
        script: str,
        arguments: dict,
        exit_code: int | None,
        success: bool,
        detail: str = "",
    ) -> AuditEntry:
        """Convenience: log a completed (or failed) script run."""
        entry = AuditEntry(
            action="invocation",
            mode=mode,
            script=script,
            arguments=arguments,
            exit_code=exit_code,
            success=success,
            detail=detail[:500],
        )
        await self.record(entry)
        return entry

    async def log_rejection(self, mode: str, script: str, reason: str) -> AuditEntry:
        """Convenience: log a script refused before spawn."""
        entry = AuditEntry(
            action="rejection",
            mode=mode,
            script=script,
            detail=reason,
            success=False,
        )
        await self.record(entry)
        return entry

    async def query(self, action: str = "", script: str = "", limit: int = 50) -> list[AuditEntry]:
        """Query the audit log with filters, most recent first."""
        results = self._entries

        if action:
            results = [e for e in results if e.action == action]
        if script:
            results = [e for e in results if e.script == script]

        results = sorted(results, key=lambda e: e.timestamp, reverse=True)
        return results[:limit]

    async def count(self) -> int:
        """Total number of audit entries."""
        return len(self._entries)

    async def rejections(self, limit: int = 50) -> list[AuditEntry]:
        """Get recent sandbox rejections."""
        return await self.query(action="rejection", limit=limit)

    def attach(self, bus: EventBus) -> None:
        """Record sandbox rejections and finished runs published on ``bus``."""
        bus.subscribe(SANDBOX_REJECTED, self._on_rejected)
        bus.subscribe(SANDBOX_EXITED, self._on_finished)
        bus.subscribe(SANDBOX_TERMINATED, self._on_finished)

    async def _on_rejected(self, event: Event) -> None:
        rejected = RejectedEvent(**event.data)
        await self.log_rejection(rejected.mode, rejected.script, rejected.reason)

    async def _on_finished(self, event: Event) -> None:
        run = RunFinishedEvent(**event.data)
        await self.log_invocation(
            run.mode, run.script, {"argv": run.argv}, run.exit_code, run.succeeded,
            detail=run.reason,
        )

    def __repr__(self) -> str:
        return f"AuditTrail(entries={len(self._entries)})"
