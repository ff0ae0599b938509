"""Mode policy — pure functions from evidence to scout / adas / hybrid.

Three independent readings of the same question, each defaulting to
hybrid when the evidence is inconclusive:
- intent window: what the last few thoughts asked for
- signals: how strong recent discoveries and metrics are
- features: explicit problem characteristics
"""

from __future__ import annotations

from typing import Iterable, Sequence

from pydantic import BaseModel, Field

from colony.signals.trails import Signal
from colony.thoughts.sequential import Thought
from colony.types import Intent, Mode

INTENT_WINDOW = 3

# Signal thresholds, on sums of decayed strength
QUIET_DISCOVERY = 0.2
ACTIVE_METRICS = 0.3
PRODUCTIVE_DISCOVERY = 0.6

_MODE_INTENTS = {
    Mode.ADAS: Intent.DESIGN,
    Mode.SCOUT: Intent.EXPLORE,
    Mode.HYBRID: Intent.BALANCE,
}


class ModeFeatures(BaseModel):
    problem_size: float | None = Field(default=None, alias="problemSize")
    time_budget_sec: float | None = Field(default=None, alias="timeBudgetSec")
    novelty_required: bool = Field(default=False, alias="noveltyRequired")
    reliability_required: bool = Field(default=False, alias="reliabilityRequired")

    model_config = {"populate_by_name": True}


def intent_for_mode(mode: Mode) -> Intent:
    return _MODE_INTENTS[Mode(mode)]


def select_mode_from_intents(thoughts: Sequence[Thought]) -> Mode:
    """explore beats design beats the hybrid default, over the last 3 thoughts."""
    intents = {t.intent for t in thoughts[-INTENT_WINDOW:]}
    if Intent.EXPLORE in intents:
        return Mode.SCOUT
    if Intent.DESIGN in intents:
        return Mode.ADAS
    return Mode.HYBRID


def select_mode_from_signals(
    discoveries: Iterable[Signal],
    metrics: Iterable[Signal],
    thoughts: Sequence[Thought],
) -> Mode:
    """Signal strength first, then the last thought's intent."""
    discovery_strength = sum(s.strength for s in discoveries)
    metric_strength = sum(s.strength for s in metrics)

    # Exploration went quiet while outcomes keep arriving: stalling.
    if discovery_strength < QUIET_DISCOVERY and metric_strength > ACTIVE_METRICS:
        return Mode.ADAS
    if discovery_strength > PRODUCTIVE_DISCOVERY:
        return Mode.SCOUT

    last_intent = thoughts[-1].intent if thoughts else None
    if last_intent == Intent.DESIGN:
        return Mode.ADAS
    if last_intent == Intent.EXPLORE:
        return Mode.SCOUT
    return Mode.HYBRID


def select_mode_from_features(features: ModeFeatures) -> Mode:
    if features.reliability_required and not features.novelty_required:
        return Mode.ADAS
    if features.novelty_required and not features.reliability_required:
        return Mode.SCOUT
    if (features.problem_size or 0) > 1000 and (features.time_budget_sec or 0) < 60:
        return Mode.ADAS
    return Mode.HYBRID
