"""Tests for the sparse branch namespace."""

from __future__ import annotations

import pytest

from agentmem.errors import AgentMemError, ConflictError, NotFoundError
from agentmem.memory.branches import BranchNamespace, resolve_target
from agentmem.memory.entries import start_entry
from agentmem.memory.store import MemoryStore


@pytest.fixture
def branches(store: MemoryStore) -> BranchNamespace:
    return BranchNamespace(store)


class TestResolveTarget:
    def test_default_branch_is_identity(self):
        assert resolve_target("memory/decisions.md", "main") == "memory/decisions.md"

    def test_memory_paths_rewritten(self):
        assert resolve_target("memory/decisions.md", "exp") == "branches/exp/memory/decisions.md"

    @pytest.mark.parametrize("path", ["system/project.md", "config.yaml", "main.md"])
    def test_other_paths_global(self, path: str):
        assert resolve_target(path, "exp") == path


class TestCreate:
    def test_creates_metadata_and_switches(self, store: MemoryStore, branches: BranchNamespace):
        branches.create("try-redis", "Evaluate Redis for caching")
        for name in ("purpose.md", "commits.md", "trace.md"):
            assert store.exists(f"branches/try-redis/{name}")
        assert store.branch == "try-redis"
        assert "branch: try-redis" in store.read("config.yaml")
        assert branches.purpose("try-redis") == "Evaluate Redis for caching"

    def test_sparse_no_copy_of_main(self, store: MemoryStore, branches: BranchNamespace):
        store.remember("main entry", "decision")
        branches.create("exp")
        assert not store.exists("branches/exp/memory/decisions.md")

    def test_default_purpose(self, branches: BranchNamespace):
        branches.create("exp")
        assert branches.purpose("exp") == "Purpose not specified."

    def test_duplicate_name(self, branches: BranchNamespace):
        branches.create("exp")
        with pytest.raises(ConflictError):
            branches.create("exp")

    @pytest.mark.parametrize("name", ["main", "../up", "a/b", ""])
    def test_invalid_name(self, branches: BranchNamespace, name: str):
        with pytest.raises(AgentMemError):
            branches.create(name)


class TestSwitch:
    def test_unknown_branch(self, branches: BranchNamespace):
        with pytest.raises(NotFoundError):
            branches.switch_to("nope")

    def test_back_to_main(self, store: MemoryStore, branches: BranchNamespace):
        branches.create("exp")
        assert branches.switch_to("main") == "exp"
        assert store.branch == "main"

    @pytest.mark.parametrize("name", ["..", "../..", ".", "memory/../.."])
    def test_traversal_names_rejected(self, store: MemoryStore, branches: BranchNamespace, name: str):
        with pytest.raises(NotFoundError):
            branches.switch_to(name)
        assert store.branch == "main"
        assert MemoryStore(store.root).config.branch == "main"
        assert store.remember("still writable", "note") == "memory/notes.md"

    @pytest.mark.parametrize("name", ["..", "../.."])
    def test_traversal_names_not_diffed_or_merged(self, branches: BranchNamespace, name: str):
        assert not branches.exists(name)
        with pytest.raises(NotFoundError):
            branches.diff(name)
        with pytest.raises(NotFoundError):
            branches.merge_back(name, "nothing")


class TestDiff:
    def test_fresh_branch_has_no_differences(self, store: MemoryStore, branches: BranchNamespace):
        store.remember("main only", "decision")
        branches.create("exp")
        assert branches.diff("exp") == []

    def test_branch_write_reported_as_added(self, store: MemoryStore, branches: BranchNamespace):
        branches.create("exp")
        store.remember("branch idea", "note")
        diffs = branches.diff("exp")
        assert [(d.path, d.status) for d in diffs] == [("memory/notes.md", "added")]

    def test_modified_file_lines(self, store: MemoryStore, branches: BranchNamespace):
        store.remember("shared", "decision")
        shared = store.read("memory/decisions.md")
        branches.create("exp")
        store.write("branches/exp/memory/decisions.md", shared + "- [2026-01-01 10:00] branch only\n")
        (d,) = branches.diff("exp")
        assert d.status == "modified"
        assert d.added == ["- [2026-01-01 10:00] branch only"]
        assert d.removed == []

    def test_main_only_files_never_removed(self, store: MemoryStore, branches: BranchNamespace):
        store.remember("decision on main", "decision")
        store.remember("pattern on main", "pattern")
        branches.create("exp")
        store.remember("note on branch", "note")
        paths = {d.path for d in branches.diff("exp")}
        assert paths == {"memory/notes.md"}


class TestMergeBack:
    def test_try_redis_scenario(self, store: MemoryStore, branches: BranchNamespace):
        branches.create("try-redis", "Evaluate Redis")
        store.remember("Redis needs a sidecar", "note")
        result = branches.merge_back("try-redis", "Redis too complex")

        decisions = store.read("memory/decisions.md")
        assert "Redis too complex" in decisions
        assert "Merged branch: try-redis" in decisions
        assert store.branch == "main"
        assert "Redis needs a sidecar" in store.read("memory/notes.md")
        assert result.appended == {"memory/notes.md": 1}

    def test_branch_retained_and_flagged_merged(self, store: MemoryStore, branches: BranchNamespace):
        branches.create("exp")
        branches.merge_back("exp", "done")
        assert branches.exists("exp")
        (info,) = branches.list()
        assert info.merged
        assert not info.current

    def test_set_difference_no_duplicates(self, store: MemoryStore, branches: BranchNamespace):
        store.remember("already on main", "decision")
        main_before = store.read("memory/decisions.md")
        existing_line = main_before.strip().split("\n")[-1]
        branches.create("exp")
        store.write(
            "branches/exp/memory/decisions.md",
            "# Decisions\n\n" + existing_line + "\n- [2026-05-05 12:00] new on branch\n",
        )
        branches.merge_back("exp", "")

        merged = store.read("memory/decisions.md")
        assert merged.count(existing_line) == 1
        assert merged.count("- [2026-05-05 12:00] new on branch") == 1
        assert merged.startswith(main_before)

    def test_merge_record_parses_as_one_entry(self, store: MemoryStore, branches: BranchNamespace):
        branches.create("exp", "Try things")
        store.append_entry("branches/exp/commits.md", start_entry("- [2026-01-01 09:00] milestone one"))
        branches.merge_back("exp", "worked out")
        record = store.load("memory/decisions.md").entries[-1]
        assert record.kind == "block"
        assert record.text == "Merged branch: exp"
        assert "**Purpose:** Try things" in record.raw
        assert "**Summary:** worked out" in record.raw
        assert "  - [2026-01-01 09:00] milestone one" in record.raw

    def test_merge_twice_is_stable(self, store: MemoryStore, branches: BranchNamespace):
        branches.create("exp")
        store.remember("branch fact", "pattern")
        branches.merge_back("exp", "first")
        branches.merge_back("exp", "second")
        assert store.read("memory/patterns.md").count("branch fact") == 1

    def test_unknown_branch(self, branches: BranchNamespace):
        with pytest.raises(NotFoundError):
            branches.merge_back("ghost", "")
