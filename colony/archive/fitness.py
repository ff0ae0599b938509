"""Fitness benchmark — run the evaluator script and report where it wrote.

The evaluator is an ordinary sandboxed script: it goes through the same
containment, permission and capture rules as any dispatch, and its run
is published to the event bus (and so to the audit trail).

    evolution/fitness-evaluator.sh --benchmark-mode --output <path>
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, Field

from colony.exceptions import PathNotAllowedError, ScriptFailedError, StorageError
from colony.sandbox.runner import ScriptRunner

_logger = logging.getLogger(__name__)

FITNESS_SCRIPT = "evolution/fitness-evaluator.sh"
DEFAULT_OUTPUT = "evolution-archive/benchmarks/latest.json"


class BenchmarkSummary(BaseModel):
    output_path: str = Field(alias="outputPath")
    ok: bool
    exit_code: int | None = Field(default=None, alias="exitCode")

    model_config = {"populate_by_name": True}


class FitnessEvaluator:
    def __init__(self, runner: ScriptRunner, script: str = FITNESS_SCRIPT) -> None:
        self._runner = runner
        self._script = script

    async def run_benchmark(self, output_path: str | Path = DEFAULT_OUTPUT) -> BenchmarkSummary:
        """Run the evaluator in benchmark mode.

        A non-zero exit is reported as ``ok=False``. Path and spawn
        problems raise, since no benchmark ran at all.
        """
        target = self.resolve_output(output_path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create benchmark output directory: {e}") from e

        rel = str(target.relative_to(self._runner.root))
        argv = ["--benchmark-mode", "--output", str(target)]
        try:
            result = await self._runner.run(self._script, argv, label="fitness")
        except ScriptFailedError as e:
            _logger.warning("Fitness benchmark failed with exit code %s", e.exit_code)
            return BenchmarkSummary(output_path=rel, ok=False, exit_code=e.exit_code)

        return BenchmarkSummary(output_path=rel, ok=True, exit_code=result.exit_code)

    def resolve_output(self, output_path: str | Path) -> Path:
        """Output paths are relative to the root and must stay inside it."""
        candidate = Path(output_path)
        if not candidate.is_absolute():
            candidate = self._runner.root / candidate
        resolved = candidate.resolve()
        try:
            resolved.relative_to(self._runner.root)
        except ValueError:
            raise PathNotAllowedError(f"Benchmark output outside the repository: {output_path}") from None
        return resolved
