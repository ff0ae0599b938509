"""Tests for the colony CLI."""

import orjson
import pytest
from typer.testing import CliRunner

from colony.cli.main import app, parse_param
from colony.config import settings
from tests.conftest import write_script

cli = CliRunner()


@pytest.fixture(autouse=True)
def local_repo(repo_root, monkeypatch):
    monkeypatch.setattr(settings, "repo_root", repo_root)
    return repo_root


@pytest.mark.parametrize("raw,expected", [
    ("rate=0.3", ("rate", 0.3)),
    ("max=50", ("max", 50)),
    ("verbose=true", ("verbose", True)),
    ("name=a=b", ("name", "a=b")),
])
def test_parse_param(raw, expected):
    assert parse_param(raw) == expected


def test_emit_then_sense():
    result = cli.invoke(app, ["emit", "discovery", "cache warmed", "--strength", "0.7"])
    assert result.exit_code == 0
    assert "Emitted discovery signal" in result.output

    result = cli.invoke(app, ["sense", "discovery"])
    assert result.exit_code == 0
    assert "cache warmed" in result.output


def test_unknown_signal_kind_is_usage_error():
    result = cli.invoke(app, ["emit", "gossip", "x"])
    assert result.exit_code == 2

    result = cli.invoke(app, ["sense", "gossip"])
    assert result.exit_code == 2


def test_sense_empty():
    result = cli.invoke(app, ["sense", "request"])
    assert "No live request signals" in result.output


def test_status_counts():
    cli.invoke(app, ["emit", "metric", "m1"])
    result = cli.invoke(app, ["status"])
    assert result.exit_code == 0
    assert "Metrics:      1" in result.output


def test_dispatch(local_repo):
    write_script(local_repo, "dev-tools/show.sh", 'echo "$@"')
    result = cli.invoke(app, ["dispatch", "scout", "dev-tools/show.sh", "-P", "max=5", "-P", "fast=true"])
    assert result.exit_code == 0
    assert "--mode scout --max 5 --fast true" in result.output


def test_dispatch_rejected_path():
    result = cli.invoke(app, ["dispatch", "scout", "../escape.sh"])
    assert result.exit_code == 1
    assert "PathNotAllowedError" in result.output


def test_dispatch_unknown_mode_is_usage_error():
    result = cli.invoke(app, ["dispatch", "warp", "dev-tools/show.sh"])
    assert result.exit_code == 2


def test_run_local_cycle(local_repo, tmp_path):
    write_script(local_repo, "evolution/adas-meta-agent.sh", 'echo "designing $*"')
    thoughts = tmp_path / "thoughts.json"
    thoughts.write_bytes(orjson.dumps([
        {"kind": "goal", "content": "faster"},
        {"kind": "action", "content": "go", "intent": "design", "action": "mutate"},
    ]))

    result = cli.invoke(app, ["run", str(thoughts)])
    assert result.exit_code == 0
    assert "adas" in result.output
    assert "designing --mode adas --rate 0.3" in result.output


def test_run_invalid_batch(tmp_path):
    thoughts = tmp_path / "thoughts.json"
    thoughts.write_bytes(orjson.dumps({"thoughts": [{"kind": "goal"}]}))
    result = cli.invoke(app, ["run", str(thoughts)])
    assert result.exit_code == 1
    assert "content is required" in result.output


def test_run_malformed_json(tmp_path):
    thoughts = tmp_path / "thoughts.json"
    thoughts.write_text("[{\"kind\": ")
    result = cli.invoke(app, ["run", str(thoughts)])
    assert result.exit_code == 1
    assert "Cannot read thoughts" in result.output


def test_run_missing_file(tmp_path):
    result = cli.invoke(app, ["run", str(tmp_path / "absent.json")])
    assert result.exit_code == 1
    assert "Cannot read thoughts" in result.output


def test_run_non_object_thought(tmp_path):
    thoughts = tmp_path / "thoughts.json"
    thoughts.write_bytes(orjson.dumps([1]))
    result = cli.invoke(app, ["run", str(thoughts)])
    assert result.exit_code == 1
    assert "Invalid thought batch" in result.output


def test_run_scalar_body(tmp_path):
    thoughts = tmp_path / "thoughts.json"
    thoughts.write_bytes(orjson.dumps("goal"))
    result = cli.invoke(app, ["run", str(thoughts)])
    assert result.exit_code == 1
    assert "Expected a list of thoughts" in result.output


def test_best_empty_archive():
    result = cli.invoke(app, ["best"])
    assert "Archive is empty" in result.output


def test_version():
    result = cli.invoke(app, ["version"])
    assert result.output.startswith("colony v")


def test_score_then_best():
    result = cli.invoke(app, ["score", "a1", "speed=0.5", "accuracy=1"])
    assert result.exit_code == 0
    assert "a1 average fitness 0.750" in result.output

    result = cli.invoke(app, ["best"])
    assert "a1" in result.output
    assert "0.750" in result.output


def test_score_rejects_non_numeric():
    result = cli.invoke(app, ["score", "a1", "speed=fast"])
    assert result.exit_code == 2


def test_score_rejects_hidden_agent_id():
    result = cli.invoke(app, ["score", ".hidden", "speed=1"])
    assert result.exit_code == 1
    assert "InvalidAgentIdError" in result.output


def test_benchmark(local_repo):
    write_script(local_repo, "evolution/fitness-evaluator.sh", 'echo "{}" > "$3"')
    result = cli.invoke(app, ["benchmark", "-o", "evolution-archive/run.json"])
    assert result.exit_code == 0
    assert "Benchmark written to" in result.output
    assert (local_repo / "evolution-archive" / "run.json").exists()


def test_benchmark_failure_exits_nonzero(local_repo):
    write_script(local_repo, "evolution/fitness-evaluator.sh", "exit 3")
    result = cli.invoke(app, ["benchmark"])
    assert result.exit_code == 1
    assert "Benchmark failed" in result.output
