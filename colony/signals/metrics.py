"""Colony metrics — how many signals each partition holds on disk.

Counts raw records, decayed or not. Useful as a cheap health view of
the hive-signals directory.
"""

from __future__ import annotations

import time

from pydantic import BaseModel, Field

from colony.signals.trails import PheromoneTrails
from colony.types import SignalKind


class ColonySummary(BaseModel):
    discoveries: int = 0
    requests: int = 0
    metrics: int = 0
    last_updated: float = Field(default_factory=time.time)


class ColonyMetrics:
    def __init__(self, trails: PheromoneTrails) -> None:
        self._trails = trails

    async def summarize(self) -> ColonySummary:
        counts = {kind: self._count(kind) for kind in SignalKind}
        return ColonySummary(
            discoveries=counts[SignalKind.DISCOVERY],
            requests=counts[SignalKind.REQUEST],
            metrics=counts[SignalKind.METRIC],
        )

    def _count(self, kind: SignalKind) -> int:
        directory = self._trails.partition(kind)
        if not directory.is_dir():
            return 0
        return sum(1 for _ in directory.glob("*.json"))
