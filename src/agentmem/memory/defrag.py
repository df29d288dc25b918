"""Defrag analyzer — health diagnostics over ``memory/*.md``.

Four kinds of findings, always reported in this order:

- oversized files (entry count or byte size over the configured thresholds)
- near-duplicate bullets within one file (Jaccard similarity of word sets)
- stale bullets (older than ``stale_days`` and never reaffirmed by a reflection)
- structural defects (missing description, empty file)

Flagging is non-destructive: a stale marker line is inserted after the entry.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import TYPE_CHECKING

from agentmem.memory.entries import STALE_RE, Entry, parse, strip_frontmatter

if TYPE_CHECKING:
    from agentmem.memory.store import MemoryStore

logger = logging.getLogger(__name__)

DUPLICATE_THRESHOLD = 0.6
REAFFIRM_PREFIX = 30
EMPTY_FILE_MAX_LINES = 6

_NON_WORD_RE = re.compile(r"[^a-z0-9\s]")
_REAFFIRM_RE = re.compile(
    r"## (?:Patterns Identified|Decisions Validated)\n[\s\S]*?(?=\n## |\Z)"
)


def word_set(text: str) -> set[str]:
    """Lowercase alphanumeric tokens longer than two characters."""
    return {w for w in _NON_WORD_RE.sub(" ", text.lower()).split() if len(w) > 2}


def jaccard(a: set[str], b: set[str]) -> float:
    if not a and not b:
        return 0.0
    union = len(a | b)
    return len(a & b) / union if union else 0.0


@dataclass
class OversizedFile:
    file: str
    entries: int
    size: int


@dataclass
class Duplicate:
    file: str
    line_a: int
    line_b: int
    text_a: str
    text_b: str
    similarity: float


@dataclass
class StaleFinding:
    file: str
    line: int  # 1-based line the marker goes after
    date: str
    text: str


@dataclass
class StructuralIssue:
    file: str
    issue: str


@dataclass
class DefragAnalysis:
    oversized: list[OversizedFile] = field(default_factory=list)
    duplicates: list[Duplicate] = field(default_factory=list)
    stale: list[StaleFinding] = field(default_factory=list)
    structural: list[StructuralIssue] = field(default_factory=list)
    stale_days: int = 30

    @property
    def issue_count(self) -> int:
        return len(self.oversized) + len(self.duplicates) + len(self.stale) + len(self.structural)

    @property
    def health(self) -> str:
        n = self.issue_count
        if n == 0:
            return "GOOD"
        return "FAIR" if n <= 3 else "NEEDS_ATTENTION"


def marker_anchor(entry: Entry) -> int:
    """Line number of the last non-blank line of ``entry``."""
    offset = 0
    for i, line in enumerate(entry.lines):
        if line.strip():
            offset = i
    return entry.line + offset


def reaffirmed_text(store: MemoryStore) -> str:
    """Lowercased "Patterns Identified"/"Decisions Validated" sections of every reflection."""
    chunks = []
    for rel in store.reflection_files():
        body = strip_frontmatter(store.read(rel) or "")
        chunks.extend(m.group(0) for m in _REAFFIRM_RE.finditer(body))
    return "\n".join(chunks).lower()


def analyze(store: MemoryStore, today: date | None = None) -> DefragAnalysis:
    cfg = store.config.reflection
    analysis = DefragAnalysis(stale_days=cfg.stale_days)
    stale_before = (today or date.today()) - timedelta(days=cfg.stale_days)
    reaffirmed = reaffirmed_text(store)

    for rel in store.memory_files("memory"):
        content = store.read(rel)
        if not content:
            continue
        memory_file = parse(content, path=rel)
        live = memory_file.live_entries
        bullets = [e for e in live if e.kind == "bullet"]
        size = store.full_path(rel).stat().st_size

        if len(live) > cfg.defrag_threshold or size > cfg.defrag_size_kb * 1024:
            analysis.oversized.append(OversizedFile(file=rel, entries=len(live), size=size))

        if live and not memory_file.metadata.get("description"):
            analysis.structural.append(
                StructuralIssue(file=rel, issue="missing frontmatter (description)")
            )
        if not live and len(content.strip().split("\n")) <= EMPTY_FILE_MAX_LINES:
            analysis.structural.append(StructuralIssue(file=rel, issue="empty (no entries)"))

        words = [word_set(e.text) for e in bullets]
        for i, a in enumerate(bullets):
            for j in range(i + 1, len(bullets)):
                sim = jaccard(words[i], words[j])
                if sim >= DUPLICATE_THRESHOLD:
                    b = bullets[j]
                    analysis.duplicates.append(
                        Duplicate(
                            file=rel,
                            line_a=a.line,
                            line_b=b.line,
                            text_a=a.text[:80],
                            text_b=b.text[:80],
                            similarity=sim,
                        )
                    )

        for entry in bullets:
            if entry.date is None or entry.date >= stale_before:
                continue
            if entry.text.lower()[:REAFFIRM_PREFIX] in reaffirmed:
                continue
            analysis.stale.append(
                StaleFinding(
                    file=rel,
                    line=entry.line,
                    date=entry.date.isoformat(),
                    text=entry.text[:80],
                )
            )

    logger.debug("Defrag found %d issues", analysis.issue_count)
    return analysis


def format_report(analysis: DefragAnalysis, dry_run: bool = False) -> str:
    lines = [f"🔧 DEFRAG ANALYSIS{' (dry run — no changes)' if dry_run else ''}", ""]

    if analysis.oversized:
        lines.append("OVERSIZED FILES:")
        for o in analysis.oversized:
            lines.append(f"  {o.file} — {o.entries} entries, {o.size / 1024:.1f}KB")
            lines.append("  ⤷ Suggest: split by domain or time period")
        lines.append("")

    if analysis.duplicates:
        lines.append("POTENTIAL DUPLICATES:")
        for d in analysis.duplicates:
            lines.append(
                f"  {d.file} line {d.line_a} ↔ line {d.line_b} ({d.similarity * 100:.0f}% similar)"
            )
            lines.append(f'    "{d.text_a}"')
            lines.append(f'    "{d.text_b}"')
            lines.append("  ⤷ Suggest: merge into single, more specific entry")
        lines.append("")

    if analysis.stale:
        lines.append(f"STALE ENTRIES (>{analysis.stale_days} days, unreferenced):")
        for s in analysis.stale:
            lines.append(f'  {s.file} line {s.line} — [{s.date}] "{s.text}"')
        lines.append("  ⤷ Suggest: archive or remove if no longer relevant")
        lines.append("")

    if analysis.structural:
        lines.append("STRUCTURAL ISSUES:")
        for s in analysis.structural:
            lines.append(f"  {s.file} — {s.issue}")
        lines.append("")

    if analysis.issue_count == 0:
        lines.extend(["No issues found.", ""])

    lines.append(f"Memory health: {analysis.health} ({analysis.issue_count} issues)")
    lines.append("")
    lines.append("═══ INSTRUCTIONS ═══")
    lines.append("To act on suggestions:")
    lines.append('  amem write memory/<file>.md "<cleaned content>"')
    lines.append('  amem commit "defrag: reorganized memory files"')
    lines.append("")
    lines.append("Or run a full reflect cycle to address holistically:")
    lines.append("  amem reflect gather --deep")
    return "\n".join(lines)


def apply_stale_markers(
    store: MemoryStore, findings: list[StaleFinding], day: str | None = None
) -> int:
    """Insert a stale marker after each flagged line. Returns markers written."""
    marker = Entry.stale_marker(day).head
    by_file: dict[str, list[int]] = {}
    for f in findings:
        by_file.setdefault(f.file, []).append(f.line)

    marked = 0
    for rel, line_numbers in by_file.items():
        content = store.read(rel)
        if content is None:
            continue
        lines = content.split("\n")
        # Descending so earlier insertions don't shift later targets
        for lineno in sorted(set(line_numbers), reverse=True):
            idx = lineno - 1
            if not 0 <= idx < len(lines) or STALE_RE.match(lines[idx]):
                continue
            if idx + 1 < len(lines) and STALE_RE.match(lines[idx + 1]):
                continue
            lines.insert(idx + 1, marker)
            marked += 1
        store.write(rel, "\n".join(lines))
        logger.info("Flagged %d stale entries in %s", len(line_numbers), rel)
    return marked
