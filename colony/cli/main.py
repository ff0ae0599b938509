"""colony CLI — serve the API or drive the colony from the shell.

`colony serve` starts the HTTP server. The other commands work directly
against the repository on disk, or against a running server with --url
where that makes sense.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Coroutine, NoReturn

import orjson
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from colony.archive.fitness import DEFAULT_OUTPUT
from colony.config import settings
from colony.exceptions import ColonyError
from colony.types import Mode, SignalKind

console = Console()

app = typer.Typer(
    name="colony",
    help="colony -- pheromone-guided dispatch of scout, adas and hybrid evolution scripts.",
    no_args_is_help=True,
)


def run_async(coro: Coroutine) -> Any:
    """Run an async coroutine from sync CLI code."""
    return asyncio.run(coro)


def _local_colony():
    from colony.serve import build_colony
    return run_async(build_colony(persist_audit=False))


def _fail(message: str) -> NoReturn:
    console.print(f"[red]{escape(message)}[/red]")
    raise typer.Exit(1)


def parse_param(raw: str) -> tuple[str, Any]:
    """``key=value`` with booleans and numbers recognised."""
    if "=" not in raw:
        raise typer.BadParameter(f"Expected key=value, got '{raw}'")
    key, value = raw.split("=", 1)
    if value in ("true", "false"):
        return key, value == "true"
    for cast in (int, float):
        try:
            return key, cast(value)
        except ValueError:
            continue
    return key, value


@app.command("serve")
def serve(
    host: str = typer.Option(None, "--host", help="Bind address"),
    port: int = typer.Option(None, "--port", "-p", help="Port"),
):
    """Start the colony HTTP server."""
    from colony.serve import main

    if host:
        settings.host = host
    if port:
        settings.port = port
    run_async(main(settings))


@app.command("emit")
def emit(
    kind: SignalKind = typer.Argument(help="Signal kind"),
    content: str = typer.Argument(help="Signal payload"),
    strength: float = typer.Option(1.0, "--strength", "-s", help="Initial strength (0..1)"),
):
    """Leave a pheromone signal."""
    colony = _local_colony()
    signal = run_async(colony.trails.emit(kind, content, strength))
    console.print(f"[green]Emitted {signal.kind.value} signal {signal.id}[/green] (strength {signal.strength:.2f})")


@app.command("sense")
def sense(
    kind: SignalKind = typer.Argument(help="Signal kind"),
    limit: int = typer.Option(20, "--limit", "-n", help="Max results"),
):
    """Show live signals of one kind, strongest first."""
    colony = _local_colony()
    signals = run_async(colony.trails.sense(kind, limit=limit))

    if not signals:
        console.print(f"[dim]No live {kind.value} signals.[/dim]")
        return

    table = Table(title=f"Signals: {kind.value}")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Strength", style="cyan", justify="right")
    table.add_column("Content", style="white")
    for s in signals:
        table.add_row(
            s.id,
            f"{s.strength:.3f}",
            s.content[:100] + ("..." if len(s.content) > 100 else ""),
        )
    console.print(table)


@app.command("status")
def status():
    """Show signal counts per partition."""
    colony = _local_colony()
    summary = run_async(colony.colony_metrics.summarize())
    console.print(Panel(
        f"Root:         {colony.runner.root}\n"
        f"Half-life:    {colony.trails.half_life:.0f}s\n"
        f"Discoveries:  {summary.discoveries}\n"
        f"Requests:     {summary.requests}\n"
        f"Metrics:      {summary.metrics}",
        title="Colony",
        border_style="cyan",
    ))


@app.command("run")
def run(
    thoughts_file: Path = typer.Argument(help="JSON file holding a list of thoughts"),
    url: str = typer.Option("", "--url", help="Run against a colony server instead"),
):
    """Run one orchestration cycle over a thought batch."""
    try:
        thoughts = orjson.loads(thoughts_file.read_bytes())
    except (OSError, orjson.JSONDecodeError) as e:
        _fail(f"Cannot read thoughts from {thoughts_file}: {e}")
    if isinstance(thoughts, dict):
        thoughts = thoughts.get("thoughts", [])
    if not isinstance(thoughts, list):
        _fail("Expected a list of thoughts or {\"thoughts\": [...]}")

    if url:
        from colony.api.client import ColonyAPIError, ColonyClient
        try:
            result = run_async(ColonyClient(url).run_cycle(thoughts))
        except ColonyAPIError as e:
            _fail(str(e))
        mode, summary, output = result["mode"], result["summary"], result["output"]
    else:
        from colony.thoughts.sequential import Thought
        try:
            batch = [Thought.model_validate(t) for t in thoughts]
        except ValidationError as e:
            _fail(f"Invalid thought batch: {e}")
        colony = _local_colony()
        try:
            response = run_async(colony.controller.run(batch))
        except ColonyError as e:
            _fail(f"{type(e).__name__}: {e}")
        mode, summary, output = response.mode.value, response.processed.summary, response.output

    console.print(f"[bold]mode[/bold] {mode}   [bold]summary[/bold] {summary}")
    if output:
        console.print(output, markup=False, highlight=False)


@app.command("dispatch")
def dispatch(
    mode: Mode = typer.Argument(help="Dispatch mode"),
    script: str = typer.Argument(help="Script path under an allowed directory"),
    param: list[str] = typer.Option([], "--param", "-P", help="key=value, repeatable"),
):
    """Run one script through the sandbox directly."""
    params = dict(parse_param(p) for p in param)
    colony = _local_colony()
    try:
        output = run_async(colony.runner.execute(mode, script, params))
    except ColonyError as e:
        _fail(f"{type(e).__name__}: {e}")
    console.print(output, markup=False, highlight=False)


@app.command("best")
def best(
    top: int = typer.Option(5, "--top", "-n", help="How many agents"),
):
    """Rank archived agents by average fitness."""
    colony = _local_colony()
    agents = run_async(colony.archive.best_agents(top))

    if not agents:
        console.print("[dim]Archive is empty.[/dim]")
        return

    table = Table(title="Best agents")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Gen", justify="right")
    table.add_column("Fitness", justify="right", style="green")
    for a in agents:
        table.add_row(a.id, a.name or "", str(a.generation or 0), f"{a.average_fitness:.3f}")
    console.print(table)


@app.command("score")
def score(
    agent_id: str = typer.Argument(help="Archived agent id"),
    scores: list[str] = typer.Argument(help="metric=value pairs"),
):
    """Merge fitness scores into an agent's archive metadata."""
    parsed: dict[str, float] = {}
    for raw in scores:
        key, value = parse_param(raw)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise typer.BadParameter(f"Score for '{key}' must be a number")
        parsed[key] = float(value)

    colony = _local_colony()
    try:
        agent = run_async(colony.archive.persist_fitness(agent_id, parsed))
    except ColonyError as e:
        _fail(f"{type(e).__name__}: {e}")
    console.print(f"[green]{escape(agent.id)}[/green] average fitness {agent.average_fitness:.3f}")


@app.command("benchmark")
def benchmark(
    output: str = typer.Option(
        DEFAULT_OUTPUT, "--output", "-o",
        help="Result file, relative to the repository root",
    ),
):
    """Run the fitness evaluator script in benchmark mode."""
    colony = _local_colony()
    try:
        summary = run_async(colony.fitness.run_benchmark(output))
    except ColonyError as e:
        _fail(f"{type(e).__name__}: {e}")
    if not summary.ok:
        _fail(f"Benchmark failed (exit code {summary.exit_code}), output {summary.output_path}")
    console.print(f"[green]Benchmark written to {escape(summary.output_path)}[/green]")


@app.command("version")
def version_cmd():
    """Show colony version."""
    from colony import __version__
    console.print(f"colony v{__version__}")
