"""Error taxonomy shared by the memory store, VCS wrapper and CLI."""

from __future__ import annotations


class AgentMemError(Exception):
    """Base class for user-facing errors. The CLI prints these on one line."""


class NotFoundError(AgentMemError):
    """A file, branch or memory root that was asked for does not exist."""


class InvalidPathError(AgentMemError):
    """A path escapes the memory root."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Invalid path — must be inside .context/: {path}")
        self.path = path


class ConflictError(AgentMemError):
    """Name collision: existing branch, or existing .context/ on init."""


class ConfigError(AgentMemError):
    """config.yaml could not be parsed."""


class VcsError(AgentMemError):
    """A git command failed."""

    def __init__(self, command: list[str], stderr: str) -> None:
        self.command = command
        self.stderr = stderr.strip()
        super().__init__(f"{' '.join(command)} failed: {self.stderr or 'unknown error'}")
