"""Hybrid orchestration — sense, select, dispatch, feed back.

- HybridEvolutionServer: validate a thought batch, pick a mode from the
  intent window, dispatch the last thought to a script
- HybridController: the closed loop around it, driven by pheromone signals
"""
