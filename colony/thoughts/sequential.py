"""Sequential thoughts — validation, normalization and summary of a batch.

A batch is all-or-nothing: every thought is checked, every violation is
collected, and a single ThoughtValidationError carries them all.
"""

from __future__ import annotations

import re
import time
from typing import Any

from pydantic import BaseModel, Field

from colony.exceptions import ThoughtValidationError
from colony.types import Action, Intent, ThoughtKind, new_id

THOUGHT_KINDS = [k.value for k in ThoughtKind]

_WHITESPACE = re.compile(r"\s+")


class Thought(BaseModel):
    """One reasoning step. ``kind`` and ``content`` are checked by validate_thought."""

    id: str | None = None
    kind: str | None = None
    content: str | None = None
    timestamp: float | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    intent: Intent | None = None
    action: Action | None = None
    target_script: str | None = Field(default=None, alias="targetScript")

    model_config = {"populate_by_name": True}


class ProcessedThoughts(BaseModel):
    steps: list[Thought]
    summary: str


def validate_thought(thought: Thought) -> list[str]:
    """Return every problem with a thought (empty when valid)."""
    errors: list[str] = []
    if not thought.kind:
        errors.append("kind is required")
    if not thought.content or not thought.content.strip():
        errors.append("content is required")
    if thought.kind and thought.kind not in THOUGHT_KINDS:
        errors.append(f"invalid kind: {thought.kind}")
    return errors


def format_content(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def normalize_thought(thought: Thought) -> Thought:
    return thought.model_copy(update={
        "id": thought.id or new_id(),
        "timestamp": thought.timestamp if thought.timestamp is not None else time.time(),
        "content": format_content(thought.content or ""),
    })


def build_summary(steps: list[Thought]) -> str:
    """``kind:count`` pairs in canonical kind order, e.g. ``goal:1 | action:2``."""
    counts: dict[str, int] = {}
    for step in steps:
        counts[step.kind] = counts.get(step.kind, 0) + 1
    return " | ".join(f"{k}:{counts[k]}" for k in THOUGHT_KINDS if counts.get(k))


def process_thoughts(batch: list[Thought]) -> ProcessedThoughts:
    """Validate the whole batch, then normalize it."""
    if not batch:
        raise ThoughtValidationError(["at least one thought is required"])

    errors: list[str] = []
    for i, thought in enumerate(batch):
        errors.extend(f"thought[{i}]: {e}" for e in validate_thought(thought))
    if errors:
        raise ThoughtValidationError(errors)

    steps = [normalize_thought(t) for t in batch]
    return ProcessedThoughts(steps=steps, summary=build_summary(steps))
