"""HTTP surface — FastAPI routes over the orchestration core.

`colony serve` launches this app. Components are injected with
configure(); routes answer 503 until they are.

Client mistakes (bad thoughts, disallowed paths, bad agent ids) map to
400, unknown design sessions to 404, and sandbox or storage failures to
500. Every error body is {"error": message, "type": error class}.
"""

from __future__ import annotations

import time
import uuid
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from colony import __version__
from colony.archive.fitness import DEFAULT_OUTPUT
from colony.design.sessions import DesignSession
from colony.exceptions import (
    ColonyError,
    ScriptFailedError,
    SessionNotFoundError,
    ThoughtValidationError,
    is_client_error,
)
from colony.policy.modes import ModeFeatures
from colony.sandbox.runner import InvocationRequest
from colony.thoughts.sequential import Thought, process_thoughts
from colony.types import SignalKind

colony_app = FastAPI(title="colony", version=__version__)

_controller = None
_runner = None
_trails = None
_colony_metrics = None
_archive = None
_fitness = None
_designer = None
_sessions = None
_event_bus = None
_audit_trail = None
_start_time = time.time()


def configure(controller=None, runner=None, trails=None, colony_metrics=None,
              archive=None, fitness=None, designer=None, sessions=None,
              event_bus=None, audit_trail=None) -> None:
    global _controller, _runner, _trails, _colony_metrics, _archive, _fitness
    global _designer, _sessions, _event_bus, _audit_trail
    _controller = controller
    _runner = runner
    _trails = trails
    _colony_metrics = colony_metrics
    _archive = archive
    _fitness = fitness
    _designer = designer
    _sessions = sessions
    _event_bus = event_bus
    _audit_trail = audit_trail


def _require(component: Any, name: str) -> Any:
    if component is None:
        raise HTTPException(status_code=503, detail=f"{name} not initialized")
    return component


@colony_app.exception_handler(ColonyError)
async def _colony_error(request: Request, exc: ColonyError) -> JSONResponse:
    if is_client_error(exc):
        status = 400
    elif isinstance(exc, SessionNotFoundError):
        status = 404
    else:
        status = 500

    body: dict[str, Any] = {"error": str(exc), "type": type(exc).__name__}
    if isinstance(exc, ThoughtValidationError):
        body["errors"] = exc.errors
    if isinstance(exc, ScriptFailedError):
        body["exitCode"] = exc.exit_code
    return JSONResponse(body, status_code=status)


# ── Request bodies ───────────────────────────────────────────────


class ThoughtBatch(BaseModel):
    thoughts: list[Thought] = Field(default_factory=list)


class HybridRequest(ThoughtBatch):
    features: ModeFeatures | None = None


class DesignRequest(BaseModel):
    domain: str = ""
    iterations: int = 0
    session_id: str | None = Field(default=None, alias="sessionId")

    model_config = {"populate_by_name": True}


class EmitRequest(BaseModel):
    content: str
    strength: float = 1.0


class FitnessRequest(BaseModel):
    scores: dict[str, float]


class BenchmarkRequest(BaseModel):
    output: str = DEFAULT_OUTPUT


def _dump_steps(steps: list[Thought]) -> list[dict]:
    return [s.model_dump(mode="json", by_alias=True, exclude_none=True) for s in steps]


# ── Orchestration ────────────────────────────────────────────────


@colony_app.post("/sequential-thoughts")
async def sequential_thoughts(batch: ThoughtBatch) -> dict:
    processed = process_thoughts(batch.thoughts)
    return {"steps": _dump_steps(processed.steps), "summary": processed.summary}


@colony_app.post("/hybrid-evolution")
async def hybrid_evolution(payload: HybridRequest) -> dict:
    controller = _require(_controller, "controller")
    if payload.features is not None:
        response = await controller.run_with_features(payload.thoughts, payload.features)
    else:
        response = await controller.run(payload.thoughts)
    return {
        "mode": response.mode.value,
        "output": response.output,
        "summary": response.processed.summary,
        "steps": _dump_steps(response.processed.steps),
    }


@colony_app.post("/dispatch")
async def dispatch(request: InvocationRequest) -> dict:
    runner = _require(_runner, "runner")
    output = await runner.execute(request.mode, request.script_path, request.params)
    return {"mode": request.mode.value, "output": output}


# ── Design sessions ──────────────────────────────────────────────


@colony_app.post("/design-agent")
async def design_agent(payload: DesignRequest) -> JSONResponse:
    designer = _require(_designer, "designer")
    sessions = _require(_sessions, "sessions")
    if not payload.domain or payload.iterations <= 0:
        return JSONResponse({"error": "domain and iterations required"}, status_code=400)

    artifact = await designer.design(payload.domain, payload.iterations)
    session = await sessions.put(DesignSession(
        session_id=payload.session_id or str(uuid.uuid4()),
        domain=payload.domain,
        iterations=payload.iterations,
        artifact=artifact,
    ))
    return JSONResponse({"sessionId": session.session_id, **artifact.model_dump(mode="json")})


@colony_app.get("/design-agent")
async def list_designs() -> list[dict]:
    sessions = _require(_sessions, "sessions")
    return [
        {
            "sessionId": s.session_id,
            "domain": s.domain,
            "iterations": s.iterations,
            "name": s.artifact.name,
            "created_at": s.created_at,
        }
        for s in sessions.list_sessions()
    ]


@colony_app.get("/design-agent/{session_id}")
async def get_design(session_id: str) -> dict:
    sessions = _require(_sessions, "sessions")
    session = await sessions.get(session_id)
    return {"sessionId": session.session_id, **session.artifact.model_dump(mode="json")}


# ── Signals ──────────────────────────────────────────────────────


@colony_app.get("/api/signals/{kind}")
async def sense_signals(kind: SignalKind, limit: int = 20) -> list[dict]:
    trails = _require(_trails, "trails")
    signals = await trails.sense(kind, limit=limit)
    return [s.model_dump(mode="json") for s in signals]


@colony_app.post("/api/signals/{kind}")
async def emit_signal(kind: SignalKind, payload: EmitRequest) -> dict:
    trails = _require(_trails, "trails")
    signal = await trails.emit(kind, payload.content, payload.strength)
    return signal.model_dump(mode="json")


@colony_app.get("/api/colony")
async def colony_summary() -> dict:
    metrics = _require(_colony_metrics, "colony metrics")
    summary = await metrics.summarize()
    return summary.model_dump(mode="json")


@colony_app.get("/api/archive/best")
async def best_agents(top: int = 5) -> list[dict]:
    archive = _require(_archive, "archive")
    agents = await archive.best_agents(top)
    return [
        {**a.model_dump(mode="json"), "average_fitness": a.average_fitness}
        for a in agents
    ]


@colony_app.post("/api/archive/benchmark")
async def run_benchmark(payload: BenchmarkRequest) -> dict:
    fitness = _require(_fitness, "fitness evaluator")
    summary = await fitness.run_benchmark(payload.output)
    return summary.model_dump(mode="json", by_alias=True)


@colony_app.post("/api/archive/{agent_id}/fitness")
async def record_fitness(agent_id: str, payload: FitnessRequest) -> dict:
    archive = _require(_archive, "archive")
    agent = await archive.persist_fitness(agent_id, payload.scores)
    return {**agent.model_dump(mode="json"), "average_fitness": agent.average_fitness}


# ── Observability ────────────────────────────────────────────────


@colony_app.get("/api/events")
async def list_events(topic: str = "*", limit: int = 50) -> list[dict]:
    if _event_bus is None:
        return []
    events = _event_bus.history(topic_filter=topic, limit=limit)
    return [e.model_dump(mode="json") for e in events]


@colony_app.get("/api/audit")
async def list_audit(action: str = "", limit: int = 50) -> list[dict]:
    if _audit_trail is None:
        return []
    entries = await _audit_trail.query(action=action, limit=limit)
    return [e.model_dump(mode="json") for e in entries]


@colony_app.get("/api/audit/rejections")
async def list_rejections(limit: int = 50) -> list[dict]:
    if _audit_trail is None:
        return []
    entries = await _audit_trail.rejections(limit=limit)
    return [e.model_dump(mode="json") for e in entries]


@colony_app.get("/api/status")
async def status() -> dict:
    return {
        "version": __version__,
        "controller_ready": _controller is not None,
        "sandbox_root": str(_runner.root) if _runner else "",
        "design_sessions": len(_sessions) if _sessions is not None else 0,
        "audit_entries": await _audit_trail.count() if _audit_trail else 0,
        "uptime_s": int(time.time() - _start_time),
    }
