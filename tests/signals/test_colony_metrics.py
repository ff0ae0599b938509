"""Tests for colony metrics — raw per-partition counts."""

from colony.signals.metrics import ColonyMetrics
from colony.types import SignalKind


async def test_empty_colony_counts_zero(trails):
    summary = await ColonyMetrics(trails).summarize()
    assert (summary.discoveries, summary.requests, summary.metrics) == (0, 0, 0)
    assert summary.last_updated > 0


async def test_counts_include_decayed_signals(trails, clock):
    await trails.emit(SignalKind.DISCOVERY, "a")
    await trails.emit(SignalKind.DISCOVERY, "b")
    await trails.emit(SignalKind.METRIC, "m")
    clock.advance(10 * 3600)

    summary = await ColonyMetrics(trails).summarize()
    assert summary.discoveries == 2
    assert summary.requests == 0
    assert summary.metrics == 1
