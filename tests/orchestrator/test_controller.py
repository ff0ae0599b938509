"""Tests for the hybrid controller."""

import orjson
import pytest

from colony.exceptions import ScriptFailedError, ThoughtValidationError
from colony.orchestrator.controller import FEEDBACK_STRENGTH, HybridController, bias_thoughts
from colony.orchestrator.server import DEFAULT_SCRIPTS
from colony.policy.modes import ModeFeatures
from colony.thoughts.sequential import Thought
from colony.types import Intent, Mode, SignalKind
from tests.conftest import write_script

ECHO = 'echo "$(basename "$0")"; for a in "$@"; do echo "$a"; done'


@pytest.fixture
def controller(runner, trails, event_bus, repo_root):
    for rel in DEFAULT_SCRIPTS.values():
        write_script(repo_root, rel, ECHO)
    return HybridController(runner, trails, event_bus=event_bus)


def _batch(intent=None, **last):
    return [
        Thought(kind="goal", content="improve retrieval"),
        Thought(kind="action", content="go", intent=intent, **last),
    ]


# ── bias_thoughts ──────────────────────────────────────────────


def test_bias_rewrites_only_last_intent_on_a_copy():
    thoughts = _batch("explore")
    biased = bias_thoughts(thoughts, Mode.ADAS)
    assert biased[-1].intent == Intent.DESIGN
    assert biased[0] is thoughts[0]
    assert thoughts[-1].intent == Intent.EXPLORE


def test_bias_empty_batch():
    assert bias_thoughts([], Mode.SCOUT) == []


# ── Cycles ─────────────────────────────────────────────────────


async def test_quiet_discoveries_drive_adas(controller, trails):
    await trails.emit(SignalKind.DISCOVERY, "little found", 0.1)
    await trails.emit(SignalKind.METRIC, "cpu busy", 0.5)

    response = await controller.run(_batch("explore", action="mutate"))

    assert response.mode == Mode.ADAS
    assert response.output.splitlines() == [
        "adas-meta-agent.sh", "--mode", "adas", "--rate", "0.3",
    ]
    assert response.processed.steps[-1].intent == Intent.DESIGN


async def test_productive_discoveries_drive_scout(controller, trails):
    await trails.emit(SignalKind.DISCOVERY, "found a", 0.5)
    await trails.emit(SignalKind.DISCOVERY, "found b", 0.4)

    response = await controller.run(_batch("design"))

    assert response.mode == Mode.SCOUT
    assert response.output.splitlines()[0] == "emergent-capability-discovery.sh"


async def test_no_signals_fall_back_to_last_intent(controller):
    response = await controller.run(_batch("design"))
    assert response.mode == Mode.ADAS


async def test_successful_cycle_leaves_metric(controller, trails):
    response = await controller.run(_batch())

    metrics = await trails.sense(SignalKind.METRIC)
    assert len(metrics) == 1
    assert metrics[0].strength == pytest.approx(FEEDBACK_STRENGTH)
    assert orjson.loads(metrics[0].content) == {
        "mode_chosen": response.mode.value,
        "summary": "goal:1 | action:1",
    }


async def test_validation_failure_leaves_no_metric(controller, trails, event_bus):
    with pytest.raises(ThoughtValidationError):
        await controller.run([Thought(kind="goal")])

    assert await trails.sense(SignalKind.METRIC) == []
    assert event_bus.history("cycle.*") == []


async def test_invalid_batch_fails_before_signals_are_read(controller, trails):
    partition = trails.partition(SignalKind.DISCOVERY)
    partition.mkdir(parents=True)
    (partition / "0_broken.json").write_text("{not json")

    with pytest.raises(ThoughtValidationError):
        await controller.run([])


async def test_features_cycle_validation_failure_is_reported(controller, event_bus):
    with pytest.raises(ThoughtValidationError):
        await controller.run_with_features([Thought(content="x")], ModeFeatures())
    failed = event_bus.history("cycle.failed")[0]
    assert failed.data["error_type"] == "ThoughtValidationError"
    assert failed.data["source"] == "features"


async def test_script_failure_leaves_no_metric(controller, trails, repo_root):
    write_script(repo_root, "evolution/broken.sh", "exit 2")
    with pytest.raises(ScriptFailedError):
        await controller.run(_batch(target_script="evolution/broken.sh"))
    assert await trails.sense(SignalKind.METRIC) == []


async def test_cycle_events(controller, event_bus):
    await controller.run(_batch())
    topics = [e.topic for e in reversed(event_bus.history("cycle.*"))]
    assert topics == ["cycle.started", "cycle.completed"]
    started = event_bus.history("cycle.started")[0]
    assert started.data["source"] == "signals"


async def test_run_with_features(controller, trails):
    # strong discoveries would pick scout; features take precedence
    await trails.emit(SignalKind.DISCOVERY, "found", 1.0)

    response = await controller.run_with_features(
        _batch("explore"), ModeFeatures(reliability_required=True),
    )

    assert response.mode == Mode.ADAS
    assert response.processed.steps[-1].intent == Intent.DESIGN
    assert len(await trails.sense(SignalKind.METRIC)) == 1


async def test_feedback_metrics_accumulate_towards_adas(controller, trails):
    # Two cycles leave 1.6 of metric strength with no discoveries
    await controller.run(_batch())
    await controller.run(_batch())
    assert await controller.select_mode(_batch("explore")) == Mode.ADAS
