"""Shared fixtures: isolated git identity and a freshly initialized memory root."""

from __future__ import annotations

from pathlib import Path

import pytest

from agentmem import vcs
from agentmem.memory.store import MemoryStore, init_context


@pytest.fixture(autouse=True)
def git_env(tmp_path: Path, monkeypatch):
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "test")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "test")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")
    for key in ("AMEM_AUTO_COMMIT", "AMEM_LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "myproject"
    root.mkdir()
    return root


@pytest.fixture
def store(project: Path) -> MemoryStore:
    store, _ = init_context(project)
    return store


@pytest.fixture
def bare_remote(tmp_path: Path) -> Path:
    path = tmp_path / "remote.git"
    path.mkdir()
    vcs.git(["init", "--bare", "--quiet"], path)
    return path
