"""Pheromone trails — typed signals that decay with age.

Each signal is written to its own JSON file under
``<root>/hive-signals/<partition>/``, named ``<created_ms>_<id>.json``.
Two emitters never touch the same file, so no locking is needed. Files
appear atomically (write to a hidden temp name, then rename).

Strength is never rewritten on disk. Every ``sense`` call recomputes
the effective strength from the stored one:

    strength(t) = strength0 * exp(-ln(2) / half_life * age_seconds)

and drops anything at or below the relevance floor.

Usage:
    trails = PheromoneTrails(repo_root)
    await trails.emit(SignalKind.DISCOVERY, "found a faster crossover", 0.9)
    recent = await trails.sense(SignalKind.DISCOVERY, limit=5)
"""

from __future__ import annotations

import contextlib
import logging
import math
import os
import time
from pathlib import Path
from typing import Callable

import orjson
from pydantic import BaseModel, Field, ValidationError

from colony.exceptions import SignalDecodeError, StorageError
from colony.types import SignalKind, new_id

_logger = logging.getLogger(__name__)

DEFAULT_HALF_LIFE = 3600.0  # seconds
RELEVANCE_FLOOR = 0.05
SIGNALS_DIR = "hive-signals"
TEMP_SUFFIX = ".tmp"


class Signal(BaseModel):
    """A timestamped piece of coordination evidence."""

    id: str = Field(default_factory=new_id)
    kind: SignalKind
    content: str
    strength: float = 1.0
    created_at: float = Field(default_factory=time.time)

    model_config = {"frozen": True}


def clamp_strength(strength: float) -> float:
    return max(0.0, min(1.0, strength))


def decayed_strength(
    signal: Signal, now: float, half_life: float = DEFAULT_HALF_LIFE,
) -> float:
    """Effective strength of a signal at time ``now``.

    Ages below zero (clock skew between writers) count as zero, so a
    signal never reads stronger than it was emitted.
    """
    age = max(0.0, now - signal.created_at)
    decay_rate = math.log(2) / half_life
    return signal.strength * math.exp(-decay_rate * age)


class PheromoneTrails:
    """File-backed signal store with exponential decay on read."""

    def __init__(
        self,
        root: Path | str,
        half_life_seconds: float = DEFAULT_HALF_LIFE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if half_life_seconds <= 0:
            raise ValueError("half_life_seconds must be positive")
        self._base = Path(root) / SIGNALS_DIR
        self._half_life = half_life_seconds
        self._clock = clock

    @property
    def base_dir(self) -> Path:
        return self._base

    @property
    def half_life(self) -> float:
        return self._half_life

    def partition(self, kind: SignalKind) -> Path:
        return self._base / SignalKind(kind).partition

    async def emit(
        self, kind: SignalKind | str, content: str, strength: float = 1.0,
    ) -> Signal:
        """Persist a new signal and return it as stored.

        The record is written under a hidden temporary name and renamed
        into place, so readers only ever see complete files.
        """
        kind = SignalKind(kind)
        signal = Signal(
            kind=kind,
            content=content,
            strength=clamp_strength(strength),
            created_at=self._clock(),
        )
        directory = self.partition(kind)
        name = f"{int(signal.created_at * 1000)}_{signal.id}.json"
        staging = directory / f".{name}{TEMP_SUFFIX}"
        try:
            directory.mkdir(parents=True, exist_ok=True)
            staging.write_bytes(
                orjson.dumps(signal.model_dump(mode="json"), option=orjson.OPT_INDENT_2)
            )
            os.replace(staging, directory / name)
        except OSError as e:
            with contextlib.suppress(OSError):
                staging.unlink()
            raise StorageError(f"Failed to persist {kind.value} signal: {e}") from e

        _logger.debug("Emitted %s signal %s (strength=%.2f)", kind.value, signal.id, signal.strength)
        return signal

    async def sense(self, kind: SignalKind | str, limit: int = 20) -> list[Signal]:
        """Signals of one kind, strongest first, with decay applied.

        Returned signals carry their decayed strength. Nothing is written.
        Records removed between listing and reading are skipped.
        """
        kind = SignalKind(kind)
        directory = self.partition(kind)
        if not directory.is_dir():
            return []

        now = self._clock()
        live: list[Signal] = []
        for path in directory.glob("*.json"):
            stored = self._load(path)
            if stored is None:
                continue
            strength = decayed_strength(stored, now, self._half_life)
            if strength > RELEVANCE_FLOOR:
                live.append(stored.model_copy(update={"strength": strength}))

        live.sort(key=lambda s: s.strength, reverse=True)
        return live[:max(0, limit)]

    def _load(self, path: Path) -> Signal | None:
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            _logger.debug("Signal record %s vanished before it was read", path.name)
            return None
        except OSError as e:
            raise StorageError(f"Failed to read signal {path.name}: {e}") from e
        try:
            return Signal(**orjson.loads(raw))
        except (orjson.JSONDecodeError, ValidationError, TypeError) as e:
            raise SignalDecodeError(f"Malformed signal record {path.name}: {e}") from e

    def __repr__(self) -> str:
        return f"PheromoneTrails(base={self._base}, half_life={self._half_life})"
