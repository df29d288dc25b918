"""Memory store — read/write access to a ``.context/`` directory.

Markdown files are the source of truth; git (see :mod:`agentmem.vcs`) is the
history. All relative paths are validated against the memory root before
any filesystem access.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from pathlib import Path

from agentmem import vcs
from agentmem.config import MemConfig, context_dir, load_config, save_config
from agentmem.errors import AgentMemError, ConflictError, InvalidPathError, NotFoundError
from agentmem.lock import ContextLock
from agentmem.memory.branches import resolve_target
from agentmem.memory.entries import (
    CATEGORIES,
    Entry,
    MemoryFile,
    default_header,
    header_metadata,
    parse,
)

logger = logging.getLogger(__name__)

TREE_SUFFIXES = (".md", ".yaml", ".yml")
TREE_MAX_DEPTH = 4
REFLECTIONS_DIR = "reflections"

_REFLECTION_NAME_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})(?:-(\d+))?\.md$")


@dataclass
class TreeEntry:
    """One node of the context tree as shown by ``snapshot``."""

    path: str
    name: str
    is_dir: bool
    depth: int
    description: str = ""
    size: int = 0


@dataclass
class SearchHit:
    path: str
    line: int
    text: str


def reflection_sort_key(rel: str) -> tuple[str, int]:
    """Order same-day reflections by suffix: 2026-02-18.md, then -2, -3."""
    name = rel.rsplit("/", 1)[-1]
    m = _REFLECTION_NAME_RE.match(name)
    if m is None:
        return name, 0
    return m.group(1), int(m.group(2) or 1)


def summarize_line(text: str) -> str:
    """First meaningful line of a file, truncated to 80 characters."""
    for line in text.splitlines():
        if line.strip() and not line.startswith("---") and not line.startswith("#"):
            first = line.strip()
            return first if len(first) <= 80 else first[:77] + "..."
    return ""


def parse_lesson_shorthand(text: str) -> tuple[str, str, str]:
    """Split ``"problem -> resolution"`` into (title, problem, resolution)."""
    if "->" not in text:
        raise AgentMemError(
            'Lessons need a problem and resolution: use --problem/--resolution or "problem -> resolution"'
        )
    before, after = (part.strip() for part in text.split("->", 1))
    if not before or not after:
        raise AgentMemError("Both sides of -> must have content.")
    return text.replace("->", "—", 1).strip(), before, after


class MemoryStore:
    """Read/write access to one memory root."""

    def __init__(self, root: Path, config: MemConfig | None = None) -> None:
        self.root = root
        self.config = config or load_config(root)

    @property
    def project_root(self) -> Path:
        return self.root.parent

    @property
    def project_name(self) -> str:
        return self.project_root.name

    @property
    def branch(self) -> str:
        return self.config.branch

    # ── Paths ─────────────────────────────────────────────────

    def safe_path(self, rel: str) -> str:
        """Normalize ``rel``; raise InvalidPathError if it escapes the root."""
        base = self.root.resolve()
        full = (base / rel).resolve()
        try:
            normalized = full.relative_to(base).as_posix()
        except ValueError:
            raise InvalidPathError(rel) from None
        if normalized == "." or normalized.split("/", 1)[0] == ".git":
            raise InvalidPathError(rel)
        return normalized

    def full_path(self, rel: str) -> Path:
        return self.root / self.safe_path(rel)

    def resolve(self, rel: str) -> str:
        """Branch-scoped target for ``rel`` under the active branch."""
        return resolve_target(self.safe_path(rel), self.branch)

    # ── Raw file access ───────────────────────────────────────

    def exists(self, rel: str) -> bool:
        return self.full_path(rel).is_file()

    def read(self, rel: str) -> str | None:
        """File content, or None when absent."""
        path = self.full_path(rel)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def write(self, rel: str, content: str) -> None:
        path = self.full_path(rel)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")

    def delete(self, rel: str) -> None:
        self.full_path(rel).unlink(missing_ok=True)

    def move(self, src: str, dst: str) -> None:
        src_path = self.full_path(src)
        if not src_path.is_file():
            raise NotFoundError(f"File not found: .context/{src}")
        dst_path = self.full_path(dst)
        dst_path.parent.mkdir(parents=True, exist_ok=True)
        src_path.rename(dst_path)

    def list_dir(self, sub: str) -> list[str]:
        """Non-hidden names directly under ``sub``, sorted."""
        d = self.root / sub
        if not d.is_dir():
            return []
        return sorted(p.name for p in d.iterdir() if not p.name.startswith("."))

    def memory_files(self, sub: str = "memory") -> list[str]:
        """Relative paths of ``*.md`` files directly under ``sub``."""
        d = self.root / sub
        if not d.is_dir():
            return []
        return sorted(
            f"{sub}/{p.name}"
            for p in d.iterdir()
            if p.is_file() and p.suffix == ".md" and not p.name.startswith(".")
        )

    def reflection_files(self) -> list[str]:
        """Reflection files, oldest first."""
        return sorted(self.memory_files(REFLECTIONS_DIR), key=reflection_sort_key)

    def walk(self, sub: str = "") -> list[str]:
        """All non-hidden files under ``sub`` (recursive), relative to the root."""
        base = self.root / sub if sub else self.root
        if not base.is_dir():
            return []
        found = []
        for path in sorted(base.rglob("*")):
            rel = path.relative_to(self.root)
            if any(part.startswith(".") for part in rel.parts):
                continue
            if path.is_file():
                found.append(rel.as_posix())
        return found

    def tree(self, sub: str = "", depth: int = 0) -> list[TreeEntry]:
        """Directory tree of readable files (.md/.yaml) with descriptions."""
        entries: list[TreeEntry] = []
        base = self.root / sub if sub else self.root
        if not base.is_dir() or depth > TREE_MAX_DEPTH:
            return entries
        for name in self.list_dir(sub or "."):
            rel = f"{sub}/{name}" if sub else name
            path = self.root / rel
            if path.is_dir():
                entries.append(TreeEntry(path=rel, name=name, is_dir=True, depth=depth))
                entries.extend(self.tree(rel, depth + 1))
            elif name.endswith(TREE_SUFFIXES):
                content = path.read_text(encoding="utf-8")
                meta = header_metadata(content)
                entries.append(
                    TreeEntry(
                        path=rel,
                        name=name,
                        is_dir=False,
                        depth=depth,
                        description=str(meta.get("description") or summarize_line(content)),
                        size=path.stat().st_size,
                    )
                )
        return entries

    def context_bytes(self, exclude: tuple[str, ...] = ("archive",)) -> int:
        """Total size of live files (archive bundles excluded)."""
        total = 0
        for rel in self.walk():
            if rel.split("/", 1)[0] in exclude:
                continue
            total += (self.root / rel).stat().st_size
        return total

    # ── Entry files ───────────────────────────────────────────

    def load(self, rel: str) -> MemoryFile | None:
        content = self.read(rel)
        if content is None:
            return None
        return parse(content, path=self.safe_path(rel))

    def save(self, memory_file: MemoryFile) -> None:
        self.write(memory_file.path, memory_file.serialize())

    def append_entry(self, rel: str, entry: Entry, category: str | None = None) -> str:
        """Append ``entry`` to ``rel``, creating the file with a default header."""
        rel = self.safe_path(rel)
        memory_file = self.load(rel)
        if memory_file is None:
            memory_file = MemoryFile(header=default_header(category, rel), path=rel)
        memory_file.append(entry)
        self.save(memory_file)
        logger.debug("Appended %s entry to %s", entry.kind, rel)
        return rel

    # ── High-level operations ─────────────────────────────────

    def remember(self, text: str, category: str = "note", file: str | None = None) -> str:
        """Append a bullet entry to the category file on the active branch."""
        if category not in CATEGORIES or category == "lesson":
            raise AgentMemError(f"Unknown category: {category}")
        if not text.strip():
            raise AgentMemError("No text provided.")
        target = self.resolve(file or CATEGORIES[category].file)
        return self.append_entry(target, Entry.bullet(text), category)

    def lesson(
        self, title: str, problem: str, resolution: str, tags: str | None = None
    ) -> str:
        target = self.resolve(CATEGORIES["lesson"].file)
        entry = Entry.lesson(title, problem, resolution, tags)
        return self.append_entry(target, entry, "lesson")

    def forget(self, rel: str) -> str:
        """Archive ``rel`` under ``archive/forgotten-<date>/`` and delete it."""
        rel = self.safe_path(rel)
        if rel == "system" or rel.startswith("system/"):
            raise AgentMemError("Cannot forget pinned files. Run 'amem unpin' first.")
        if rel == "config.yaml":
            raise AgentMemError("Cannot forget config.yaml.")
        content = self.read(rel)
        if content is None:
            raise NotFoundError(f"File not found: .context/{rel}")

        archive_path = f"archive/forgotten-{date.today().isoformat()}/{rel}"
        self.write(archive_path, content)
        self.delete(rel)
        logger.info("Forgot %s (archived to %s)", rel, archive_path)
        return archive_path

    def pin(self, rel: str) -> str | None:
        """Move a file into ``system/``. Returns None if already pinned."""
        rel = self.safe_path(rel)
        if rel.startswith("system/"):
            return None
        dest = f"system/{Path(rel).name}"
        if self.exists(dest):
            raise ConflictError(f"Pinned file already exists: .context/{dest}")
        self.move(rel, dest)
        return dest

    def unpin(self, rel: str) -> str:
        rel = self.safe_path(rel if rel.startswith("system/") else f"system/{rel}")
        dest = f"memory/{Path(rel).name}"
        if self.exists(dest):
            raise ConflictError(f"Memory file already exists: .context/{dest}")
        self.move(rel, dest)
        return dest

    def search(self, query: str) -> list[SearchHit]:
        """Case-insensitive line search across the context tree."""
        q = query.lower()
        hits = []
        for node in self.tree():
            if node.is_dir:
                continue
            content = self.read(node.path) or ""
            for lineno, line in enumerate(content.splitlines(), start=1):
                if q in line.lower():
                    hits.append(SearchHit(path=node.path, line=lineno, text=line.strip()))
        return hits

    # ── Config, commits, locking ──────────────────────────────

    def save_config(self) -> None:
        save_config(self.root, self.config)

    def commit(self, message: str) -> str | None:
        return vcs.commit(self.root, message)

    def maybe_auto_commit(self, description: str) -> str | None:
        """Commit a simple write when ``auto_commit`` is enabled."""
        if not self.config.auto_commit:
            return None
        return self.commit(f"auto: {description}")

    def locked(self) -> ContextLock:
        return ContextLock(self.project_root)


# ── Bootstrap ─────────────────────────────────────────────────


def _init_files(project_name: str, today: str) -> dict[str, str]:
    return {
        "main.md": "\n".join(
            [
                f"# {project_name}",
                "",
                "## Goals",
                "- [ ] Define project goals",
                "",
                "## Milestones",
                "- [ ] Define milestones",
                "",
                "## Status",
                f"Initialized: {today}",
                "",
            ]
        ),
        "system/project.md": "\n".join(
            [
                "---",
                f'description: "Project: {project_name}"',
                "limit: 10000",
                "---",
                "",
                f"# {project_name}",
                "",
                "Describe the project, its stack and its layout here.",
                "",
            ]
        ),
        "system/conventions.md": "\n".join(
            [
                "---",
                'description: "Coding conventions and style rules"',
                "limit: 5000",
                "---",
                "",
                "# Conventions",
                "",
                "Add project-specific coding conventions here.",
                "",
            ]
        ),
    }


def init_context(project_root: Path, force: bool = False) -> tuple[MemoryStore, str | None]:
    """Create ``.context/`` with starter files, its own git repo and a first commit.

    With ``force`` an existing root is refreshed: starter files are rewritten,
    memory, branches and reflections are left alone.
    """
    ctx_dir = context_dir(project_root)
    if ctx_dir.exists() and not force:
        raise ConflictError(".context/ already exists. Use --force to reinitialize.")

    for sub in ("system", "memory", "branches", "reflections"):
        (ctx_dir / sub).mkdir(parents=True, exist_ok=True)

    store = MemoryStore(ctx_dir)
    for rel, content in _init_files(project_root.name, date.today().isoformat()).items():
        store.write(rel, content)
    store.save_config()

    vcs.init_repo(ctx_dir)
    return store, store.commit("init: bootstrap context")
