"""Tests for the fitness benchmark runner."""

import orjson
import pytest

from colony.archive.fitness import DEFAULT_OUTPUT, FITNESS_SCRIPT, BenchmarkSummary, FitnessEvaluator
from colony.exceptions import PathNotAllowedError, SpawnError
from tests.conftest import write_script

EVALUATOR = """
[ "$1" = "--benchmark-mode" ] || exit 9
[ "$2" = "--output" ] || exit 9
echo '{"speed": 0.9}' > "$3"
echo "benchmark complete"
"""


@pytest.fixture
def evaluator(runner, repo_root):
    write_script(repo_root, FITNESS_SCRIPT, EVALUATOR)
    return FitnessEvaluator(runner)


async def test_benchmark_writes_results(evaluator, repo_root):
    summary = await evaluator.run_benchmark("evolution-archive/bench/run-1.json")

    assert summary.ok is True
    assert summary.exit_code == 0
    assert summary.output_path == "evolution-archive/bench/run-1.json"
    written = repo_root / "evolution-archive" / "bench" / "run-1.json"
    assert orjson.loads(written.read_bytes()) == {"speed": 0.9}


async def test_default_output_location(evaluator, repo_root):
    summary = await evaluator.run_benchmark()
    assert summary.output_path == DEFAULT_OUTPUT
    assert (repo_root / DEFAULT_OUTPUT).exists()


async def test_failing_evaluator_reports_not_ok(runner, repo_root):
    write_script(repo_root, FITNESS_SCRIPT, "echo broken >&2; exit 3")
    summary = await FitnessEvaluator(runner).run_benchmark("out/result.json")

    assert summary.ok is False
    assert summary.exit_code == 3
    # The output directory is prepared even when the run fails
    assert (repo_root / "out").is_dir()


async def test_benchmark_run_is_audited(evaluator, audit):
    await evaluator.run_benchmark("out/result.json")

    entry = (await audit.query(action="invocation"))[0]
    assert entry.mode == "fitness"
    assert entry.script == FITNESS_SCRIPT
    assert entry.arguments["argv"][:2] == ["--benchmark-mode", "--output"]
    assert entry.arguments["argv"][2].endswith("out/result.json")


async def test_output_outside_root_is_rejected(evaluator, tmp_path_factory):
    outside = tmp_path_factory.mktemp("elsewhere") / "result.json"
    with pytest.raises(PathNotAllowedError):
        await evaluator.run_benchmark(outside)
    with pytest.raises(PathNotAllowedError):
        await evaluator.run_benchmark("../escape.json")


async def test_missing_evaluator_script_raises(runner):
    with pytest.raises(SpawnError):
        await FitnessEvaluator(runner).run_benchmark("out/result.json")


def test_summary_serializes_camel_case():
    summary = BenchmarkSummary(output_path="a.json", ok=True, exit_code=0)
    assert summary.model_dump(by_alias=True) == {"outputPath": "a.json", "ok": True, "exitCode": 0}
