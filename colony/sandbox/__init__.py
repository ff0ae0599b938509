"""Script sandbox — contained execution of external evolution scripts.

Resolves a script against an allow-list of top-level directories,
normalizes its permissions, spawns it under a constrained environment
and captures its output up to a byte ceiling.
"""
