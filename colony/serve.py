"""colony server — wires the orchestration core into the HTTP app and serves it."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import uvicorn

from colony.api.app import colony_app, configure
from colony.archive.agents import AgentArchive
from colony.archive.fitness import FitnessEvaluator
from colony.config import ColonySettings, settings
from colony.design.sessions import DesignSessionStore, MetaDesigner
from colony.events.bus import EventBus, attach_log_sink
from colony.orchestrator.controller import HybridController
from colony.policy.audit import AuditTrail
from colony.sandbox.runner import SandboxConfig, ScriptRunner
from colony.signals.metrics import ColonyMetrics
from colony.signals.trails import PheromoneTrails

_logger = logging.getLogger(__name__)


@dataclass
class Colony:
    """Every long-lived component of one colony process."""

    event_bus: EventBus
    audit_trail: AuditTrail
    trails: PheromoneTrails
    runner: ScriptRunner
    controller: HybridController
    colony_metrics: ColonyMetrics
    archive: AgentArchive
    fitness: FitnessEvaluator
    designer: MetaDesigner
    sessions: DesignSessionStore


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def build_colony(cfg: ColonySettings | None = None, persist_audit: bool = True) -> Colony:
    """Construct and initialize all components from settings."""
    cfg = cfg or settings
    event_bus = EventBus()

    db_path = ""
    if persist_audit:
        cfg.workspace_dir.mkdir(parents=True, exist_ok=True)
        db_path = str(cfg.workspace_dir / "audit.db")
    audit_trail = AuditTrail(db_path)
    await audit_trail.initialize()
    audit_trail.attach(event_bus)

    trails = PheromoneTrails(cfg.repo_root, half_life_seconds=cfg.signals_half_life_seconds)
    runner = ScriptRunner(SandboxConfig.from_settings(cfg), event_bus=event_bus)
    archive_dir = cfg.repo_root / cfg.archive_dir

    return Colony(
        event_bus=event_bus,
        audit_trail=audit_trail,
        trails=trails,
        runner=runner,
        controller=HybridController(runner, trails, event_bus=event_bus),
        colony_metrics=ColonyMetrics(trails),
        archive=AgentArchive(cfg.repo_root, cfg.archive_dir),
        fitness=FitnessEvaluator(runner),
        designer=MetaDesigner(runner, archive_dir),
        sessions=DesignSessionStore(),
    )


async def main(cfg: ColonySettings | None = None) -> None:
    cfg = cfg or settings
    setup_logging(cfg.log_level)

    colony = await build_colony(cfg)
    attach_log_sink(colony.event_bus)
    configure(
        controller=colony.controller,
        runner=colony.runner,
        trails=colony.trails,
        colony_metrics=colony.colony_metrics,
        archive=colony.archive,
        fitness=colony.fitness,
        designer=colony.designer,
        sessions=colony.sessions,
        event_bus=colony.event_bus,
        audit_trail=colony.audit_trail,
    )
    _logger.info(
        "colony serving %s on %s:%d (sandbox root %s)",
        cfg.repo_root, cfg.host, cfg.port, colony.runner.root,
    )

    config = uvicorn.Config(
        colony_app,
        host=cfg.host,
        port=cfg.port,
        log_level="warning",
    )
    server = uvicorn.Server(config)
    try:
        await server.serve()
    finally:
        await colony.audit_trail.close()


if __name__ == "__main__":
    asyncio.run(main())
