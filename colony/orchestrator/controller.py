"""Hybrid controller — the closed sensing/dispatch/feedback loop.

One cycle:
1. validate the thought batch
2. sense the strongest recent discovery and metric signals and choose
   a mode from them (or from explicit features)
3. rewrite the last thought's intent to match that mode, so the
   returned steps record the decision
4. hand the biased batch and the mode to the HybridEvolutionServer;
   the explicit mode wins over an older intent still in the window
5. leave a metric signal recording the decision

A cycle that fails in validation or in the sandbox leaves no metric
behind. Concurrent cycles are not serialized.
"""

from __future__ import annotations

import orjson
import structlog

from colony.events.bus import (
    CYCLE_COMPLETED,
    CYCLE_FAILED,
    CYCLE_STARTED,
    CycleEvent,
    EventBus,
)
from colony.orchestrator.server import EvolutionResponse, HybridEvolutionServer
from colony.policy.modes import (
    ModeFeatures,
    intent_for_mode,
    select_mode_from_features,
    select_mode_from_signals,
)
from colony.sandbox.runner import ScriptRunner
from colony.signals.trails import PheromoneTrails
from colony.thoughts.sequential import Thought, process_thoughts
from colony.types import Mode, SignalKind

logger = structlog.get_logger()

SENSE_LIMIT = 5
FEEDBACK_STRENGTH = 0.8


class HybridController:
    """Runs orchestration cycles against a signal store and a script runner."""

    def __init__(
        self,
        runner: ScriptRunner,
        trails: PheromoneTrails,
        event_bus: EventBus | None = None,
    ) -> None:
        self._runner = runner
        self._trails = trails
        self._bus = event_bus
        self._server = HybridEvolutionServer(runner)

    @property
    def trails(self) -> PheromoneTrails:
        return self._trails

    async def run(self, thoughts: list[Thought]) -> EvolutionResponse:
        """Full cycle with the mode chosen from pheromone signals.

        The batch is validated before any signal is read, so a bad batch
        fails as a validation error whatever state the signal store is in.
        """
        process_thoughts(thoughts)
        mode = await self.select_mode(thoughts)
        return await self._run_cycle(thoughts, mode, source="signals")

    async def run_with_features(
        self, thoughts: list[Thought], features: ModeFeatures,
    ) -> EvolutionResponse:
        """Full cycle with the mode chosen from explicit problem features."""
        mode = select_mode_from_features(features)
        return await self._run_cycle(thoughts, mode, source="features")

    async def select_mode(self, thoughts: list[Thought]) -> Mode:
        discoveries = await self._trails.sense(SignalKind.DISCOVERY, limit=SENSE_LIMIT)
        metrics = await self._trails.sense(SignalKind.METRIC, limit=SENSE_LIMIT)
        mode = select_mode_from_signals(discoveries, metrics, thoughts)
        logger.debug(
            "mode_selected",
            mode=mode.value,
            discovery_strength=round(sum(s.strength for s in discoveries), 3),
            metric_strength=round(sum(s.strength for s in metrics), 3),
        )
        return mode

    async def _run_cycle(
        self, thoughts: list[Thought], mode: Mode, source: str,
    ) -> EvolutionResponse:
        await self._emit(CYCLE_STARTED, CycleEvent(mode=mode.value, source=source))
        try:
            response = await self._server.handle(bias_thoughts(thoughts, mode), mode=mode)
        except Exception as e:
            logger.warning("cycle_failed", mode=mode.value, error=str(e))
            await self._emit(CYCLE_FAILED, CycleEvent(
                mode=mode.value, source=source, error=str(e)[:300], error_type=type(e).__name__,
            ))
            raise

        feedback = {"mode_chosen": response.mode.value, "summary": response.processed.summary}
        await self._trails.emit(
            SignalKind.METRIC, orjson.dumps(feedback).decode(), FEEDBACK_STRENGTH,
        )

        logger.info("cycle_completed", mode=response.mode.value, summary=response.processed.summary)
        await self._emit(CYCLE_COMPLETED, CycleEvent(
            mode=response.mode.value,
            source=source,
            summary=response.processed.summary,
            output_bytes=len(response.output),
        ))
        return response

    async def _emit(self, topic: str, payload: CycleEvent) -> None:
        if self._bus:
            await self._bus.emit(topic, payload, source="controller")


def bias_thoughts(thoughts: list[Thought], mode: Mode) -> list[Thought]:
    """Copy of the batch with the last intent set to the mode's canonical intent."""
    biased = list(thoughts)
    if biased:
        biased[-1] = biased[-1].model_copy(update={"intent": intent_for_mode(mode)})
    return biased
