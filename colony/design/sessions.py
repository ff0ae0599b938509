"""Design sessions — launch the ADAS meta-agent and keep its results.

MetaDesigner runs the meta-agent script through the sandbox, then
picks the newest script it left in the discovered archive.
DesignSessionStore maps an opaque session ID to that artifact for the
lifetime of the process. Nothing here survives a restart.
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Any

import orjson
from pydantic import BaseModel, Field

from colony.exceptions import ArchiveEmptyError, SessionNotFoundError
from colony.sandbox.runner import ScriptRunner
from colony.types import SessionId, new_id

_logger = logging.getLogger(__name__)

ADAS_SCRIPT = "evolution/adas-meta-agent.sh"
DISCOVERED_DIR = "discovered"


class DesignArtifact(BaseModel):
    name: str
    script: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class DesignSession(BaseModel):
    session_id: SessionId = Field(default_factory=new_id, alias="sessionId")
    domain: str
    iterations: int
    artifact: DesignArtifact
    created_at: float = Field(default_factory=time.time)

    model_config = {"populate_by_name": True}


class DesignSessionStore:
    """In-memory session ID -> design result map."""

    def __init__(self) -> None:
        self._sessions: dict[SessionId, DesignSession] = {}
        self._lock = asyncio.Lock()

    async def put(self, session: DesignSession) -> DesignSession:
        async with self._lock:
            self._sessions[session.session_id] = session
        return session

    async def get(self, session_id: SessionId) -> DesignSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"session id not found: {session_id}")
        return session

    def list_sessions(self) -> list[DesignSession]:
        return sorted(self._sessions.values(), key=lambda s: s.created_at, reverse=True)

    def __len__(self) -> int:
        return len(self._sessions)


class MetaDesigner:
    def __init__(
        self,
        runner: ScriptRunner,
        archive_dir: Path | str,
        script: str = ADAS_SCRIPT,
    ) -> None:
        self._runner = runner
        self._discovered = Path(archive_dir) / DISCOVERED_DIR
        self._script = script

    async def design(self, domain: str, iterations: int) -> DesignArtifact:
        """Run the meta-agent, then return what it discovered most recently."""
        result = await self._runner.run(self._script, [domain, str(iterations)], label="adas")
        _logger.debug("Meta-agent output (%d bytes)", len(result.output))
        return self.latest_artifact()

    def latest_artifact(self) -> DesignArtifact:
        scripts = list(self._discovered.glob("*.sh")) if self._discovered.is_dir() else []
        if not scripts:
            raise ArchiveEmptyError("No scripts found in archive")

        latest = max(scripts, key=lambda p: p.stat().st_mtime)
        return DesignArtifact(
            name=latest.name,
            script=latest.read_text(encoding="utf-8", errors="replace"),
            metadata=self._read_metadata(latest.with_name(latest.name[:-3] + ".meta.json")),
        )

    @staticmethod
    def _read_metadata(path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        try:
            data = orjson.loads(path.read_bytes())
        except orjson.JSONDecodeError as e:
            _logger.warning("Ignoring unreadable metadata %s: %s", path.name, e)
            return {}
        return data if isinstance(data, dict) else {}
