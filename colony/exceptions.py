"""Custom exception hierarchy for colony."""

from __future__ import annotations


class ColonyError(Exception):
    """Base for all colony errors."""


class ThoughtValidationError(ColonyError):
    """A thought batch failed validation. Carries every violation found."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__(f"Invalid thought: {', '.join(self.errors)}")


# ── Sandbox ──────────────────────────────────────────────────────


class SandboxError(ColonyError):
    """Base for script sandbox failures."""


class PathNotAllowedError(SandboxError):
    """Script path resolves outside the root or the allowed directories."""


class UnsupportedScriptTypeError(SandboxError):
    """Script does not carry the approved extension."""


class SpawnError(SandboxError):
    """The external process could not be launched."""


class ScriptNotExecutableError(SpawnError):
    """Script lacks the execute bit and auto-chmod is disabled."""


class ScriptFailedError(SandboxError):
    """The external process exited with a non-zero code."""

    def __init__(self, exit_code: int | None, output: str = "") -> None:
        self.exit_code = exit_code
        self.output = output
        super().__init__(f"Script exited with code {exit_code}")


# ── Storage ──────────────────────────────────────────────────────


class StorageError(ColonyError):
    """Signal or archive persistence failed."""


class SignalDecodeError(StorageError):
    """A persisted signal record could not be decoded."""


# ── Design sessions ──────────────────────────────────────────────


class SessionNotFoundError(ColonyError):
    """No design session with the given ID exists."""


class ArchiveEmptyError(ColonyError):
    """The discovered-agents archive holds no scripts."""


class InvalidAgentIdError(ColonyError, ValueError):
    """An agent id that cannot name a metadata file."""


_CLIENT_ERRORS = (
    ThoughtValidationError,
    PathNotAllowedError,
    UnsupportedScriptTypeError,
    InvalidAgentIdError,
)


def is_client_error(exc: BaseException) -> bool:
    """True for errors the caller can fix by changing the request."""
    return isinstance(exc, _CLIENT_ERRORS)
