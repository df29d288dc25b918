"""Conflict resolver for memory files left with git conflict markers.

A conflict block is only recognized when all three markers are present in
order, each anchored at the start of a line::

    <<<<<<< ours
    ...
    =======
    ...
    >>>>>>> theirs

Each block is resolved on its own, in document order, with a strategy picked
by the file's location. Lines outside blocks are never touched.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from agentmem import vcs

if TYPE_CHECKING:
    from agentmem.memory.store import MemoryStore

logger = logging.getLogger(__name__)

START_RE = re.compile(r"^<{7}(?!<)")
BASE_RE = re.compile(r"^\|{7}(?!\|)")
SEP_RE = re.compile(r"^={7}$")
END_RE = re.compile(r"^>{7}(?!>)")

KEEP_BOTH_SEPARATOR = ["", "--- merged ---", ""]

Strategy = Callable[[list[str], list[str]], list[str]]


# ── Strategies ────────────────────────────────────────────────


def append_only(ours: list[str], theirs: list[str]) -> list[str]:
    """All of ours, then theirs lines not exactly equal to a kept line."""
    kept = list(ours)
    seen = set(ours)
    for line in theirs:
        if line not in seen:
            kept.append(line)
            seen.add(line)
    return kept


def prefer_ours(ours: list[str], theirs: list[str]) -> list[str]:
    return list(ours)


def keep_both(ours: list[str], theirs: list[str]) -> list[str]:
    return [*ours, *KEEP_BOTH_SEPARATOR, *theirs]


STRATEGIES: dict[str, Strategy] = {
    "append-only": append_only,
    "prefer-ours": prefer_ours,
    "keep-both": keep_both,
}


def strategy_for(path: str) -> str:
    """Pick a strategy name from the file's relative path."""
    parts = path.split("/")
    if parts[0] in ("memory", "archive"):
        return "append-only"
    if path == "config.yaml":
        return "prefer-ours"
    return "keep-both"


# ── Block scanning ────────────────────────────────────────────


@dataclass
class ConflictBlock:
    start: int
    end: int  # index of the >>>>>>> line
    ours: list[str] = field(default_factory=list)
    theirs: list[str] = field(default_factory=list)


def _read_block(lines: list[str], start: int) -> ConflictBlock | None:
    """Parse a block opening at ``start``; None when it is not well-formed."""
    block = ConflictBlock(start=start, end=-1)
    side = block.ours
    in_base = False
    for i in range(start + 1, len(lines)):
        line = lines[i]
        if START_RE.match(line):
            return None
        if side is block.ours and BASE_RE.match(line):
            # diff3 style: drop the common ancestor section
            in_base = True
            continue
        if side is block.ours and SEP_RE.match(line):
            side = block.theirs
            in_base = False
            continue
        if side is block.theirs and END_RE.match(line):
            block.end = i
            return block
        if not in_base:
            side.append(line)
    return None


def find_blocks(content: str) -> list[ConflictBlock]:
    lines = content.split("\n")
    blocks = []
    i = 0
    while i < len(lines):
        if START_RE.match(lines[i]):
            block = _read_block(lines, i)
            if block is not None:
                blocks.append(block)
                i = block.end + 1
                continue
        i += 1
    return blocks


def is_conflicted(content: str) -> bool:
    return bool(find_blocks(content))


def resolve_content(content: str, strategy: str) -> tuple[str, int]:
    """Resolve every well-formed block. Returns (new content, blocks resolved)."""
    apply = STRATEGIES[strategy]
    lines = content.split("\n")
    out: list[str] = []
    cursor = 0
    blocks = find_blocks(content)
    for block in blocks:
        out.extend(lines[cursor:block.start])
        out.extend(apply(block.ours, block.theirs))
        cursor = block.end + 1
    out.extend(lines[cursor:])
    return "\n".join(out), len(blocks)


# ── Store-level operation ─────────────────────────────────────


@dataclass
class ResolvedFile:
    path: str
    strategy: str
    blocks: int


@dataclass
class ResolveReport:
    files: list[ResolvedFile] = field(default_factory=list)
    commit: str | None = None
    dry_run: bool = False


def find_conflicted(store: MemoryStore) -> list[str]:
    """Relative paths of every text file holding a well-formed conflict block."""
    found = []
    for rel in store.walk():
        try:
            content = store.read(rel) or ""
        except UnicodeDecodeError:
            continue
        if is_conflicted(content):
            found.append(rel)
    return found


def resolve_all(store: MemoryStore, dry_run: bool = False) -> ResolveReport:
    """Resolve all conflicted files, stage them and commit once."""
    report = ResolveReport(dry_run=dry_run)
    for rel in find_conflicted(store):
        strategy = strategy_for(rel)
        resolved, count = resolve_content(store.read(rel) or "", strategy)
        report.files.append(ResolvedFile(path=rel, strategy=strategy, blocks=count))
        if not dry_run:
            store.write(rel, resolved)
            logger.info("Resolved %d conflict block(s) in %s (%s)", count, rel, strategy)

    if report.files and not dry_run:
        vcs.stage_all(store.root)
        report.commit = store.commit(f"resolve: auto-resolved {len(report.files)} conflicted file(s)")
    return report
