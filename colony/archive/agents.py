"""Agent archive — per-agent metadata files and fitness ranking.

Evolution scripts drop ``<agent_id>.meta.json`` files into the archive
directory. This module reads them, merges new fitness scores into them,
and ranks agents by their mean score.
"""

from __future__ import annotations

import logging
from pathlib import Path

import orjson
from pydantic import BaseModel, Field, ValidationError

from colony.exceptions import InvalidAgentIdError, StorageError

_logger = logging.getLogger(__name__)

META_SUFFIX = ".meta.json"


class AgentMetadata(BaseModel):
    id: str
    name: str | None = None
    generation: int | None = None
    parent_ids: list[str] = Field(default_factory=list)
    fitness_scores: dict[str, float] = Field(default_factory=dict)
    created_at: float | None = None
    lineage: list[str] = Field(default_factory=list)

    model_config = {"extra": "allow"}

    @property
    def average_fitness(self) -> float:
        scores = list(self.fitness_scores.values())
        return sum(scores) / len(scores) if scores else 0.0


class AgentArchive:
    def __init__(self, root: Path | str, dirname: str = "evolution-archive") -> None:
        self._dir = Path(root) / dirname

    @property
    def archive_dir(self) -> Path:
        return self._dir

    async def list_agents(self) -> list[AgentMetadata]:
        if not self._dir.is_dir():
            return []
        return [self._read(p) for p in sorted(self._dir.glob(f"*{META_SUFFIX}"))]

    async def get(self, agent_id: str) -> AgentMetadata | None:
        path = self._path_for(agent_id)
        return self._read(path) if path.exists() else None

    async def persist_fitness(self, agent_id: str, scores: dict[str, float]) -> AgentMetadata:
        """Merge scores into the agent's metadata, creating it if needed."""
        meta = await self.get(agent_id) or AgentMetadata(id=agent_id)
        meta.fitness_scores = {**meta.fitness_scores, **scores}
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            self._path_for(agent_id).write_bytes(
                orjson.dumps(meta.model_dump(mode="json"), option=orjson.OPT_INDENT_2)
            )
        except OSError as e:
            raise StorageError(f"Failed to write metadata for {agent_id}: {e}") from e
        return meta

    async def best_agents(self, top_n: int = 5) -> list[AgentMetadata]:
        agents = await self.list_agents()
        return sorted(agents, key=lambda a: a.average_fitness, reverse=True)[:top_n]

    def _path_for(self, agent_id: str) -> Path:
        if not agent_id or "/" in agent_id or agent_id.startswith("."):
            raise InvalidAgentIdError(f"Invalid agent id: {agent_id!r}")
        return self._dir / f"{agent_id}{META_SUFFIX}"

    def _read(self, path: Path) -> AgentMetadata:
        try:
            return AgentMetadata(**orjson.loads(path.read_bytes()))
        except OSError as e:
            raise StorageError(f"Failed to read {path.name}: {e}") from e
        except (orjson.JSONDecodeError, ValidationError, TypeError) as e:
            raise StorageError(f"Malformed agent metadata {path.name}: {e}") from e
