"""Tests for sequential thought validation, normalization and summaries."""

import pytest
from pydantic import ValidationError

from colony.exceptions import ThoughtValidationError
from colony.thoughts.sequential import (
    Thought,
    build_summary,
    format_content,
    normalize_thought,
    process_thoughts,
    validate_thought,
)
from colony.types import Action, Intent


def test_valid_thought_has_no_errors():
    assert validate_thought(Thought(kind="goal", content="ship it")) == []


def test_missing_kind():
    assert validate_thought(Thought(content="orphan")) == ["kind is required"]


def test_blank_content():
    assert validate_thought(Thought(kind="plan", content="   ")) == ["content is required"]


def test_invalid_kind():
    assert validate_thought(Thought(kind="dream", content="x")) == ["invalid kind: dream"]


def test_multiple_errors_on_one_thought():
    errors = validate_thought(Thought())
    assert errors == ["kind is required", "content is required"]


def test_format_content_collapses_whitespace():
    assert format_content("  a\n\tb   c  ") == "a b c"


def test_normalize_fills_id_and_timestamp():
    t = normalize_thought(Thought(kind="goal", content=" a  b "))
    assert t.id
    assert t.timestamp is not None
    assert t.content == "a b"


def test_normalize_keeps_given_id_and_timestamp():
    t = normalize_thought(Thought(id="t1", kind="goal", content="a", timestamp=42.0))
    assert (t.id, t.timestamp) == ("t1", 42.0)


def test_summary_uses_canonical_order():
    steps = [
        Thought(kind="decision", content="d"),
        Thought(kind="goal", content="g"),
        Thought(kind="action", content="a"),
        Thought(kind="action", content="b"),
    ]
    assert build_summary(steps) == "goal:1 | action:2 | decision:1"


def test_process_batch():
    result = process_thoughts([
        Thought(kind="goal", content="a"),
        Thought(kind="action", content="b"),
    ])
    assert result.summary == "goal:1 | action:1"
    assert len(result.steps) == 2
    assert all(s.id for s in result.steps)


def test_process_fails_whole_batch_with_every_violation():
    with pytest.raises(ThoughtValidationError) as exc_info:
        process_thoughts([
            Thought(kind="goal", content="fine"),
            Thought(content="no kind"),
            Thought(kind="wish", content=""),
        ])
    err = exc_info.value
    assert err.errors == [
        "thought[1]: kind is required",
        "thought[2]: content is required",
        "thought[2]: invalid kind: wish",
    ]
    assert "kind is required" in str(err)


def test_empty_batch_is_invalid():
    with pytest.raises(ThoughtValidationError, match="at least one thought"):
        process_thoughts([])


def test_thought_accepts_camel_case_target_script():
    t = Thought(**{"kind": "action", "content": "x", "targetScript": "evolution/a.sh",
                   "intent": "design", "action": "mutate"})
    assert t.target_script == "evolution/a.sh"
    assert t.intent == Intent.DESIGN
    assert t.action == Action.MUTATE


def test_thought_rejects_unknown_intent():
    with pytest.raises(ValidationError):
        Thought(kind="plan", content="x", intent="wander")
