"""Global configuration — loaded from environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings


class ColonySettings(BaseSettings):
    repo_root: Path = Path(".")
    workspace_dir: Path = Path(".colony")
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8420

    # Pheromone signals
    signals_half_life_seconds: float = 3600.0

    # Script sandbox
    sandbox_max_output_bytes: int = 200_000
    sandbox_timeout_seconds: float | None = None  # None = output ceiling only
    sandbox_auto_chmod: bool = True  # False = fail on non-executable scripts
    sandbox_interpreter: str = "bash"

    # Evolution archive (relative to repo_root)
    archive_dir: str = "evolution-archive"

    model_config = {"env_prefix": "COLONY_"}


settings = ColonySettings()
