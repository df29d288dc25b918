"""Configuration loading from config.yaml and environment variables.

The memory root's ``config.yaml`` is a flat mapping with one level of
nesting (``reflection:``, ``compact:``). Unknown keys are carried through
untouched so ``config set`` never drops settings written by newer versions.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from agentmem.errors import ConfigError, NotFoundError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.yaml"
CONTEXT_DIRNAME = ".context"
DEFAULT_BRANCH = "main"


@dataclass
class ReflectionConfig:
    """Reflection trigger and defrag thresholds."""

    trigger: str = "manual"
    frequency: int = 5
    model: str | None = None
    defrag_threshold: int = 50
    defrag_size_kb: int = 10
    stale_days: int = 30


@dataclass
class CompactConfig:
    """Retention window for default-mode compaction."""

    retain_days: int = 7


@dataclass
class MemConfig:
    """Top-level memory configuration."""

    auto_commit: bool = True
    auto_commit_interval: int = 10
    reflection: ReflectionConfig = field(default_factory=ReflectionConfig)
    compact: CompactConfig = field(default_factory=CompactConfig)
    system_files_max: int = 10
    memory_files_max: int = 25
    branch: str = DEFAULT_BRANCH
    extra: dict[str, Any] = field(default_factory=dict)
    log_level: str = "WARNING"


_SECTIONS = {"reflection": ReflectionConfig, "compact": CompactConfig}
# Runtime-only fields never written back to config.yaml
_RUNTIME_FIELDS = {"extra", "log_level"}


def find_context_root(cwd: Path) -> Path | None:
    """Walk up from ``cwd``; return the first directory holding ``.context/``."""
    p = cwd.resolve()
    while True:
        if (p / CONTEXT_DIRNAME).is_dir():
            return p
        if p == p.parent:
            return None
        p = p.parent


def context_dir(project_root: Path) -> Path:
    return project_root / CONTEXT_DIRNAME


def require_context_dir(cwd: Path) -> Path:
    root = find_context_root(cwd)
    if root is None:
        raise NotFoundError("No .context/ found. Run 'amem init' first.")
    return context_dir(root)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _build_section(cls: type, data: Any) -> Any:
    if not isinstance(data, dict):
        return cls()
    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in known})


def load_config(ctx_dir: Path) -> MemConfig:
    """Load config.yaml from the memory root.

    Priority: environment variables > config.yaml > defaults.
    """
    file_data: dict[str, Any] = {}
    path = ctx_dir / CONFIG_FILENAME
    if path.exists():
        try:
            loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse {CONFIG_FILENAME}: {e}") from e
        if isinstance(loaded, dict):
            file_data = loaded

    top_level = {f.name for f in fields(MemConfig)} - _RUNTIME_FIELDS - set(_SECTIONS)
    config = MemConfig(
        reflection=_build_section(ReflectionConfig, file_data.get("reflection")),
        compact=_build_section(CompactConfig, file_data.get("compact")),
        **{k: v for k, v in file_data.items() if k in top_level},
    )
    config.extra = {
        k: v for k, v in file_data.items() if k not in top_level and k not in _SECTIONS
    }
    config.auto_commit = _env_bool("AMEM_AUTO_COMMIT", bool(config.auto_commit))
    config.log_level = os.getenv("AMEM_LOG_LEVEL", config.log_level)
    if not config.branch:
        config.branch = DEFAULT_BRANCH
    return config


def config_to_dict(config: MemConfig) -> dict[str, Any]:
    data = asdict(config)
    for name in _RUNTIME_FIELDS:
        data.pop(name, None)
    data.update(config.extra)
    return data


def save_config(ctx_dir: Path, config: MemConfig) -> None:
    """Write config.yaml in a single write."""
    body = yaml.safe_dump(config_to_dict(config), sort_keys=False, default_flow_style=False)
    (ctx_dir / CONFIG_FILENAME).write_text(
        "# agent-mem configuration\n" + body, encoding="utf-8"
    )


def parse_value(raw: str) -> Any:
    """Parse a CLI value: true/false/null/integers, everything else a string."""
    s = raw.strip().strip("'\"")
    if s == "true":
        return True
    if s == "false":
        return False
    if s in ("null", ""):
        return None
    if s.isdigit():
        return int(s)
    return s


def set_value(config: MemConfig, key: str, raw: str) -> None:
    """Set a flat (``branch``) or dotted (``reflection.stale_days``) key."""
    value = parse_value(raw)
    parts = key.split(".")
    if len(parts) == 2 and parts[0] in _SECTIONS:
        section = getattr(config, parts[0])
        if parts[1] not in {f.name for f in fields(section)}:
            raise NotFoundError(f"Unknown config key: {key}")
        setattr(section, parts[1], value)
    elif len(parts) == 1 and key in {f.name for f in fields(MemConfig)} - _RUNTIME_FIELDS:
        if key in _SECTIONS:
            raise NotFoundError(f"'{key}' is a section; set {key}.<name> instead")
        setattr(config, key, value)
    elif len(parts) == 1:
        config.extra[key] = value
    else:
        raise NotFoundError(f"Unknown config key: {key}")
