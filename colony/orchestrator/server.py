"""Hybrid evolution server — one thought batch in, one script run out.

Validates the batch, picks a mode from the intent window, and
dispatches the last thought to a script with parameters derived from
its action.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel

from colony.policy.modes import select_mode_from_intents
from colony.sandbox.runner import ScriptRunner
from colony.thoughts.sequential import ProcessedThoughts, Thought, process_thoughts
from colony.types import Action, Mode

_logger = logging.getLogger(__name__)

DEFAULT_SCRIPTS: dict[Mode, str] = {
    Mode.SCOUT: "evolution/emergent-capability-discovery.sh",
    Mode.ADAS: "evolution/adas-meta-agent.sh",
    Mode.HYBRID: "evolution/evolution-engine.sh",
}

ACTION_PARAMS: dict[Action, dict[str, Any]] = {
    Action.SCAN: {"max": 50},
    Action.MUTATE: {"rate": 0.3},
    Action.CROSSOVER: {"prob": 0.5},
    Action.EVALUATE: {"benchmark": True},
    Action.ARCHIVE: {"persist": True},
}


class EvolutionResponse(BaseModel):
    mode: Mode
    output: str
    processed: ProcessedThoughts


def pick_script(mode: Mode, thought: Thought) -> str:
    """Explicit target script, else the mode's default."""
    if thought.target_script:
        return thought.target_script
    return DEFAULT_SCRIPTS[mode]


def pick_params(thought: Thought) -> dict[str, Any]:
    """Fixed params per action. Mode never changes them."""
    if thought.action is None:
        return {}
    return dict(ACTION_PARAMS.get(thought.action, {}))


class HybridEvolutionServer:
    def __init__(self, runner: ScriptRunner) -> None:
        self._runner = runner

    async def handle(self, thoughts: list[Thought], mode: Mode | None = None) -> EvolutionResponse:
        """Run the batch. An explicit ``mode`` overrides the intent window."""
        # Validation failures raise before anything is dispatched.
        processed = process_thoughts(thoughts)
        if mode is None:
            mode = select_mode_from_intents(thoughts)
        output = await self.dispatch(mode, thoughts[-1])
        return EvolutionResponse(mode=mode, output=output, processed=processed)

    async def dispatch(self, mode: Mode, thought: Thought) -> str:
        script = pick_script(mode, thought)
        params = pick_params(thought)
        _logger.info("Dispatching %s to %s with %s", mode.value, script, params)
        return await self._runner.execute(mode, script, params)
