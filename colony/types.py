"""Core types shared across all colony subsystems."""

from __future__ import annotations

import uuid
from enum import Enum
from typing import TypeAlias, Union

from pydantic import StrictBool, StrictFloat, StrictInt, StrictStr

# ── ID Types ──────────────────────────────────────────────────────────────────

SignalId: TypeAlias = str
SessionId: TypeAlias = str


def new_id() -> str:
    return uuid.uuid4().hex[:12]


# ── Modes ─────────────────────────────────────────────────────────────────────


class Mode(str, Enum):
    SCOUT = "scout"
    ADAS = "adas"
    HYBRID = "hybrid"


# ── Signals ───────────────────────────────────────────────────────────────────


class SignalKind(str, Enum):
    DISCOVERY = "discovery"
    REQUEST = "request"
    METRIC = "metric"

    @property
    def partition(self) -> str:
        """Directory name under hive-signals/ holding this kind."""
        return {
            SignalKind.DISCOVERY: "discoveries",
            SignalKind.REQUEST: "requests",
            SignalKind.METRIC: "metrics",
        }[self]


# ── Thoughts ──────────────────────────────────────────────────────────────────


class ThoughtKind(str, Enum):
    GOAL = "goal"
    PLAN = "plan"
    ACTION = "action"
    OBSERVATION = "observation"
    REFLECTION = "reflection"
    DECISION = "decision"


class Intent(str, Enum):
    EXPLORE = "explore"
    DESIGN = "design"
    BALANCE = "balance"


class Action(str, Enum):
    SCAN = "scan"
    MUTATE = "mutate"
    CROSSOVER = "crossover"
    EVALUATE = "evaluate"
    ARCHIVE = "archive"


# ── Script parameters ─────────────────────────────────────────────────────────

# The closed set of values a script may receive as --key value pairs.
# Bool comes first so pydantic never coerces True into 1.
ParamValue: TypeAlias = Union[StrictBool, StrictInt, StrictFloat, StrictStr]
ScriptParams: TypeAlias = dict[str, Union[ParamValue, None]]
