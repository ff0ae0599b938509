"""Pheromone signals — decaying, file-persisted coordination evidence.

Callers leave signals behind; later, uncoordinated callers sense them.
Influence fades with age, so stale evidence stops biasing decisions
without any expiry bookkeeping:
- PheromoneTrails: emit and sense typed signals
- ColonyMetrics: per-partition record counts
"""
