"""Tests for the memory store."""

from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from agentmem import vcs
from agentmem.errors import AgentMemError, ConflictError, InvalidPathError, NotFoundError
from agentmem.memory.store import (
    MemoryStore,
    init_context,
    parse_lesson_shorthand,
    reflection_sort_key,
)


class TestInitContext:
    def test_creates_directory_structure(self, store: MemoryStore):
        assert (store.root / "system" / "project.md").is_file()
        assert (store.root / "system" / "conventions.md").is_file()
        assert (store.root / "main.md").is_file()
        assert (store.root / "config.yaml").is_file()
        for sub in ("memory", "branches", "reflections"):
            assert (store.root / sub).is_dir()

    def test_own_repo_with_initial_commit(self, store: MemoryStore):
        assert vcs.is_repo(store.root)
        assert vcs.commit_count(store.root) == 1
        assert vcs.last_commit(store.root).message == "init: bootstrap context"

    def test_refuses_existing_without_force(self, store: MemoryStore, project: Path):
        with pytest.raises(ConflictError):
            init_context(project)

    def test_force_keeps_memory(self, store: MemoryStore, project: Path):
        store.remember("keep me", "decision")
        init_context(project, force=True)
        assert "keep me" in store.read("memory/decisions.md")


class TestPaths:
    @pytest.mark.parametrize("bad", ["../outside.md", "memory/../../x.md", "/etc/passwd", ".git/config", "."])
    def test_rejects_escapes(self, store: MemoryStore, bad: str):
        with pytest.raises(InvalidPathError):
            store.safe_path(bad)

    def test_normalizes(self, store: MemoryStore):
        assert store.safe_path("memory/./notes.md") == "memory/notes.md"

    def test_read_absent_returns_none(self, store: MemoryStore):
        assert store.read("memory/nothing.md") is None

    def test_resolve_on_main_is_identity(self, store: MemoryStore):
        assert store.resolve("memory/notes.md") == "memory/notes.md"

    def test_resolve_on_branch(self, store: MemoryStore):
        store.config.branch = "try-redis"
        assert store.resolve("memory/notes.md") == "branches/try-redis/memory/notes.md"
        assert store.resolve("system/project.md") == "system/project.md"


class TestRemember:
    def test_appends_to_category_file(self, store: MemoryStore):
        target = store.remember("Chose SQLite", "decision")
        assert target == "memory/decisions.md"
        memory_file = store.load(target)
        assert memory_file.entries[-1].text == "Chose SQLite"
        assert memory_file.entries[-1].date == date.today()
        assert memory_file.metadata["description"]

    def test_insertion_order(self, store: MemoryStore):
        for text in ("one", "two", "three"):
            store.remember(text)
        assert [e.text for e in store.load("memory/notes.md").entries] == ["one", "two", "three"]

    def test_custom_file(self, store: MemoryStore):
        target = store.remember("x", "pattern", file="memory/api.md")
        assert target == "memory/api.md"

    def test_branch_scoped(self, store: MemoryStore):
        store.config.branch = "exp"
        target = store.remember("on branch", "note")
        assert target == "branches/exp/memory/notes.md"
        assert store.read("memory/notes.md") is None

    def test_rejects_unknown_category(self, store: MemoryStore):
        with pytest.raises(AgentMemError):
            store.remember("x", "idea")

    def test_rejects_empty(self, store: MemoryStore):
        with pytest.raises(AgentMemError):
            store.remember("   ")


class TestLesson:
    def test_block_form(self, store: MemoryStore):
        target = store.lesson("Rate limit", "429s", "Backoff", tags="api")
        entry = store.load(target).entries[-1]
        assert entry.is_lesson
        assert entry.problem == "429s"
        assert entry.resolution == "Backoff"
        assert entry.tags == ["api"]

    def test_shorthand(self):
        title, problem, resolution = parse_lesson_shorthand("tests hang -> set a timeout")
        assert problem == "tests hang"
        assert resolution == "set a timeout"
        assert "—" in title

    @pytest.mark.parametrize("text", ["no arrow here", " -> only resolution", "only problem -> "])
    def test_shorthand_rejects(self, text: str):
        with pytest.raises(AgentMemError):
            parse_lesson_shorthand(text)


class TestForget:
    def test_archives_identical_copy_before_delete(self, store: MemoryStore):
        store.remember("old idea", "note")
        original = store.read("memory/notes.md")
        archived = store.forget("memory/notes.md")
        assert archived == f"archive/forgotten-{date.today().isoformat()}/memory/notes.md"
        assert store.read(archived) == original
        assert store.read("memory/notes.md") is None

    def test_refuses_pinned_and_config(self, store: MemoryStore):
        with pytest.raises(AgentMemError):
            store.forget("system/project.md")
        with pytest.raises(AgentMemError):
            store.forget("config.yaml")

    def test_missing(self, store: MemoryStore):
        with pytest.raises(NotFoundError):
            store.forget("memory/ghost.md")


class TestPinning:
    def test_pin_and_unpin_preserve_content(self, store: MemoryStore):
        store.remember("pin me", "pattern")
        content = store.read("memory/patterns.md")
        assert store.pin("memory/patterns.md") == "system/patterns.md"
        assert store.read("system/patterns.md") == content
        assert store.read("memory/patterns.md") is None
        assert store.unpin("patterns.md") == "memory/patterns.md"
        assert store.read("memory/patterns.md") == content

    def test_pin_already_pinned(self, store: MemoryStore):
        assert store.pin("system/project.md") is None

    def test_pin_collision(self, store: MemoryStore):
        store.write("memory/project.md", "# other\n")
        with pytest.raises(ConflictError):
            store.pin("memory/project.md")


class TestViews:
    def test_search_case_insensitive(self, store: MemoryStore):
        store.remember("Prefer HTTPX over requests", "decision")
        hits = store.search("httpx")
        assert any(h.path == "memory/decisions.md" for h in hits)

    def test_tree_descriptions(self, store: MemoryStore):
        nodes = {n.path: n for n in store.tree()}
        assert nodes["system/conventions.md"].description == "Coding conventions and style rules"
        assert nodes["system"].is_dir

    def test_context_bytes_excludes_archive(self, store: MemoryStore):
        before = store.context_bytes()
        store.write("archive/compact-2026-01-01/memory/notes.md", "x" * 100)
        assert store.context_bytes() == before

    def test_reflection_order(self, store: MemoryStore):
        for name in ("2026-02-18-2.md", "2026-02-18.md", "2026-02-17.md", "2026-02-18-10.md"):
            store.write(f"reflections/{name}", "x\n")
        assert [r.rsplit("/", 1)[-1] for r in store.reflection_files()] == [
            "2026-02-17.md",
            "2026-02-18.md",
            "2026-02-18-2.md",
            "2026-02-18-10.md",
        ]
        assert reflection_sort_key("reflections/2026-02-18.md") == ("2026-02-18", 1)


class TestCommits:
    def test_auto_commit_on(self, store: MemoryStore):
        store.remember("x")
        assert store.maybe_auto_commit("remember note") is not None
        assert vcs.last_commit(store.root).message == "auto: remember note"

    def test_auto_commit_off(self, store: MemoryStore):
        store.config.auto_commit = False
        store.remember("x")
        assert store.maybe_auto_commit("remember note") is None
        assert vcs.has_changes(store.root)

    def test_commit_clean_tree_returns_none(self, store: MemoryStore):
        assert store.commit("nothing") is None
