"""colony — pheromone-guided orchestration of external evolution scripts."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("colony")
except PackageNotFoundError:
    __version__ = "0.1.0"  # fallback for development
