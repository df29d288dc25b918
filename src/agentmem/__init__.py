"""agent-mem — git-versioned, branchable markdown memory for AI coding agents."""

__version__ = "0.4.0"
