"""Branch namespace — sparse, isolated memory for exploratory work.

A branch lives under ``branches/<name>/``: three metadata files plus a
``memory/`` subtree that only holds files actually written on the branch.
Absence of a branch file never means "deleted relative to main".
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING

from agentmem.config import DEFAULT_BRANCH
from agentmem.errors import AgentMemError, ConflictError, NotFoundError
from agentmem.memory.entries import MemoryFile, default_header, now_stamp, start_entry

if TYPE_CHECKING:
    from agentmem.memory.store import MemoryStore

logger = logging.getLogger(__name__)

BRANCH_METADATA = ("purpose.md", "commits.md", "trace.md")
DECISIONS_FILE = "memory/decisions.md"
MERGE_EXCERPT_LINES = 20

_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def resolve_target(path: str, branch: str | None) -> str:
    """Rewrite ``memory/…`` into the branch subtree; everything else is global."""
    if not branch or branch == DEFAULT_BRANCH or not path.startswith("memory/"):
        return path
    return f"branches/{branch}/{path}"


@dataclass
class BranchInfo:
    name: str
    purpose: str
    merged: bool = False
    current: bool = False


@dataclass
class FileDiff:
    """Difference between one branch file and its main-line counterpart."""

    path: str
    status: str  # "added" | "modified"
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    lines: int = 0


@dataclass
class MergeResult:
    name: str
    record_file: str
    appended: dict[str, int] = field(default_factory=dict)

    @property
    def total_appended(self) -> int:
        return sum(self.appended.values())


def _body_lines(content: str, skip_prefixes: tuple[str, ...] = ()) -> list[str]:
    """Non-empty lines minus headings, front-matter fences and given prefixes."""
    lines = []
    for line in content.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or stripped.startswith("---"):
            continue
        if skip_prefixes and stripped.startswith(skip_prefixes):
            continue
        lines.append(stripped)
    return lines


class BranchNamespace:
    """Create, switch, list, diff and merge branches of one memory root."""

    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    def _dir(self, name: str) -> str:
        return f"branches/{name}"

    def exists(self, name: str) -> bool:
        if not _NAME_RE.match(name):
            return False
        return (self.store.root / self._dir(name)).is_dir()

    def require(self, name: str) -> None:
        if not self.exists(name):
            raise NotFoundError(f"Branch \"{name}\" not found. Run 'amem branches' to see available.")

    # ── Lifecycle ─────────────────────────────────────────────

    def create(self, name: str, purpose: str = "") -> None:
        """Write the three metadata stubs, then point the active branch at ``name``."""
        if not _NAME_RE.match(name) or name == DEFAULT_BRANCH:
            raise AgentMemError(f"Invalid branch name: {name}")
        if self.exists(name):
            raise ConflictError(f'Branch "{name}" already exists.')

        today = date.today().isoformat()
        base = self._dir(name)
        self.store.write(
            f"{base}/purpose.md",
            "\n".join(
                [f"# Branch: {name}", "", purpose or "Purpose not specified.", "", f"Created: {today}", ""]
            ),
        )
        self.store.write(
            f"{base}/commits.md",
            "\n".join([f"# Commits: {name}", "", "Milestone log for this branch.", ""]),
        )
        self.store.write(
            f"{base}/trace.md",
            "\n".join([f"# Trace: {name}", "", "Fine-grained execution log.", ""]),
        )

        self.store.config.branch = name
        self.store.save_config()
        logger.info("Created branch %s", name)

    def switch_to(self, name: str) -> str:
        """Switch the active branch; returns the previous one."""
        if name != DEFAULT_BRANCH:
            self.require(name)
        previous = self.store.branch
        self.store.config.branch = name
        self.store.save_config()
        return previous

    # ── Views ─────────────────────────────────────────────────

    def purpose(self, name: str) -> str:
        content = self.store.read(f"{self._dir(name)}/purpose.md") or ""
        lines = _body_lines(content, skip_prefixes=("Created:",))
        return lines[0] if lines else ""

    def is_merged(self, name: str) -> bool:
        decisions = self.store.read(DECISIONS_FILE) or ""
        pattern = re.compile(rf"Merged branch: {re.escape(name)}\s*$", re.MULTILINE | re.IGNORECASE)
        return bool(pattern.search(decisions))

    def names(self) -> list[str]:
        return [n for n in self.store.list_dir("branches") if self.exists(n)]

    def list(self) -> list[BranchInfo]:
        current = self.store.branch
        return [
            BranchInfo(
                name=name,
                purpose=self.purpose(name),
                merged=self.is_merged(name),
                current=name == current,
            )
            for name in self.names()
        ]

    def memory_files(self, name: str) -> list[str]:
        """Branch-local memory files, as main-line relative paths."""
        prefix = f"{self._dir(name)}/"
        return [
            rel[len(prefix):]
            for rel in self.store.walk(f"{self._dir(name)}/memory")
            if rel.endswith(".md")
        ]

    # ── Diff ──────────────────────────────────────────────────

    def diff(self, name: str) -> list[FileDiff]:
        """Compare files present on the branch with main. Main-only files are ignored."""
        self.require(name)
        prefix = f"{self._dir(name)}/"
        diffs: list[FileDiff] = []
        for rel in self.store.walk(self._dir(name)):
            path = rel[len(prefix):]
            if path in BRANCH_METADATA:
                continue
            branch_content = self.store.read(rel) or ""
            main_content = self.store.read(path)
            if main_content == branch_content:
                continue
            if main_content is None:
                diffs.append(
                    FileDiff(path=path, status="added", lines=len(branch_content.split("\n")))
                )
                continue
            main_lines = set(main_content.split("\n"))
            branch_lines = set(branch_content.split("\n"))
            added = [l for l in branch_content.split("\n") if l not in main_lines]
            removed = [l for l in main_content.split("\n") if l not in branch_lines]
            if added or removed:
                diffs.append(FileDiff(path=path, status="modified", added=added, removed=removed))
        return diffs

    # ── Merge ─────────────────────────────────────────────────

    def _merge_record(self, name: str, summary: str) -> list[str]:
        day, hm = now_stamp()
        purpose = " ".join(
            _body_lines(
                self.store.read(f"{self._dir(name)}/purpose.md") or "",
                skip_prefixes=("Created:",),
            )
        )
        commits = _body_lines(
            self.store.read(f"{self._dir(name)}/commits.md") or "",
            skip_prefixes=("Milestone log for this branch.",),
        )
        lines = [f"### [{day} {hm}] Merged branch: {name}"]
        if purpose:
            lines.append(f"**Purpose:** {purpose}")
        if summary:
            lines.append(f"**Summary:** {' '.join(summary.split())}")
        if commits:
            lines.append("**Commits:**")
            # Indented so logged bullets are not re-read as memory entries
            lines.extend(f"  {c}" for c in commits[-MERGE_EXCERPT_LINES:])
        return lines

    def merge_back(self, name: str, summary: str = "") -> MergeResult:
        """Record the merge in decisions, append branch-only entries to main, reset to main."""
        self.require(name)
        result = MergeResult(name=name, record_file=DECISIONS_FILE)

        record_lines = self._merge_record(name, summary)
        record = start_entry(record_lines[0])
        record.lines.extend(record_lines[1:])
        record.category = "decision"
        decisions = self.store.load(DECISIONS_FILE) or MemoryFile(
            header=default_header("decision", DECISIONS_FILE), path=DECISIONS_FILE
        )
        decisions.append(record)
        self.store.save(decisions)

        for path in self.memory_files(name):
            branch_file = self.store.load(f"{self._dir(name)}/{path}")
            if branch_file is None:
                continue
            main_file = self.store.load(path)
            if main_file is None:
                main_file = MemoryFile(header=branch_file.header, path=path)
            existing = set(main_file.serialize().split("\n"))

            appended = 0
            for entry in branch_file.live_entries:
                if entry.head in existing:
                    continue
                while len(entry.lines) > 1 and not entry.lines[-1].strip():
                    entry.lines.pop()
                main_file.append(entry)
                existing.update(entry.lines)
                appended += 1
            if appended:
                self.store.save(main_file)
                result.appended[path] = appended
                logger.info("Merged %d entries from %s into %s", appended, name, path)

        self.store.config.branch = DEFAULT_BRANCH
        self.store.save_config()
        return result
