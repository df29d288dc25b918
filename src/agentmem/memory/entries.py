"""Entry model — parse and serialize categorized memory files.

A memory file is a header (YAML front-matter plus a title line) followed by
entries in insertion order::

    ---
    description: "Architectural decisions and rationale"
    ---

    # Decisions

    - [2026-02-21 14:30] Chose SQLite over Postgres for the local index
    ### [2026-02-21 15:00] Hit 429 rate limit
    **Problem:** Rapid calls to the embeddings API
    **Resolution:** Exponential backoff

Bullets are single lines; lesson blocks start at a ``### [date]`` heading.
Any other line after an entry travels with that entry, so a parse/serialize
round trip never loses content.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

import frontmatter

logger = logging.getLogger(__name__)

BULLET_RE = re.compile(r"^- \[(\d{4}-\d{2}-\d{2})([\s\d:]*)\]\s*(.+)$")
BLOCK_RE = re.compile(r"^### \[(\d{4}-\d{2}-\d{2})([\s\d:]*)\]\s*(.+)$")
STALE_RE = re.compile(r"^- \[\d{4}-\d{2}-\d{2} STALE\]")

STALE_MARKER_TEXT = "^^^ flagged by reflection — may be outdated"

_FIELD_RE = re.compile(r"^\*\*(Problem|Resolution|Tags):\*\*\s*(.*)$")


@dataclass(frozen=True)
class Category:
    """Where a category's entries live and how a fresh file is titled."""

    name: str
    file: str
    title: str
    description: str


CATEGORIES: dict[str, Category] = {
    "decision": Category(
        "decision", "memory/decisions.md", "Decisions", "Architectural decisions and rationale"
    ),
    "pattern": Category(
        "pattern", "memory/patterns.md", "Patterns", "Learned patterns and best practices"
    ),
    "mistake": Category(
        "mistake", "memory/mistakes.md", "Mistakes", "Anti-patterns and things to avoid"
    ),
    "note": Category("note", "memory/notes.md", "Notes", "Quick notes and observations"),
    "lesson": Category(
        "lesson",
        "memory/lessons.md",
        "Lessons Learned",
        "Lessons learned — problem/resolution pairs",
    ),
}


def category_for_path(path: str) -> str | None:
    """Map ``memory/decisions.md`` (or a branch copy) back to ``decision``."""
    name = path.rsplit("/", 1)[-1]
    for cat in CATEGORIES.values():
        if cat.file.endswith("/" + name):
            return cat.name
    return None


def now_stamp() -> tuple[str, str]:
    """Today's date and HH:MM, the timestamp written on new entries."""
    now = datetime.now()
    return now.strftime("%Y-%m-%d"), now.strftime("%H:%M")


def _parse_date(raw: str) -> date | None:
    try:
        return date.fromisoformat(raw)
    except ValueError:
        return None


@dataclass
class Entry:
    """One memory record: a bullet line, a lesson block, or a stale marker."""

    kind: str  # "bullet" | "block" | "marker"
    date: date | None
    text: str
    lines: list[str]
    time: str | None = None
    line: int = 0  # 1-based position of the first line; 0 until parsed from disk
    category: str | None = None

    @property
    def raw(self) -> str:
        return "\n".join(self.lines)

    @property
    def head(self) -> str:
        return self.lines[0]

    @property
    def is_marker(self) -> bool:
        return self.kind == "marker"

    @property
    def is_lesson(self) -> bool:
        return self.kind == "block"

    def _field(self, name: str) -> str | None:
        for line in self.lines[1:]:
            m = _FIELD_RE.match(line.strip())
            if m and m.group(1) == name:
                return m.group(2).strip()
        return None

    @property
    def problem(self) -> str | None:
        return self._field("Problem")

    @property
    def resolution(self) -> str | None:
        return self._field("Resolution")

    @property
    def tags(self) -> list[str]:
        raw = self._field("Tags")
        return [t.strip() for t in raw.split(",") if t.strip()] if raw else []

    # ── Constructors ──────────────────────────────────────────

    @classmethod
    def bullet(cls, text: str, when: tuple[str, str] | None = None) -> Entry:
        day, hm = when or now_stamp()
        text = " ".join(text.split())
        return cls(
            kind="bullet",
            date=_parse_date(day),
            time=hm,
            text=text,
            lines=[f"- [{day} {hm}] {text}"],
        )

    @classmethod
    def lesson(
        cls,
        title: str,
        problem: str,
        resolution: str,
        tags: str | None = None,
        when: tuple[str, str] | None = None,
    ) -> Entry:
        day, hm = when or now_stamp()
        lines = [
            f"### [{day} {hm}] {title}",
            f"**Problem:** {problem}",
            f"**Resolution:** {resolution}",
        ]
        if tags:
            lines.append(f"**Tags:** {tags}")
        return cls(
            kind="block",
            date=_parse_date(day),
            time=hm,
            text=title,
            lines=lines,
            category="lesson",
        )

    @classmethod
    def stale_marker(cls, day: str | None = None) -> Entry:
        day = day or now_stamp()[0]
        return cls(
            kind="marker",
            date=_parse_date(day),
            text=STALE_MARKER_TEXT,
            lines=[f"- [{day} STALE] {STALE_MARKER_TEXT}"],
        )


def start_entry(line: str, lineno: int = 0) -> Entry | None:
    """Recognize the first line of an entry, or return None."""
    if STALE_RE.match(line):
        day = line[3:13]
        return Entry(
            kind="marker", date=_parse_date(day), text=STALE_MARKER_TEXT, lines=[line], line=lineno
        )
    for kind, regex in (("block", BLOCK_RE), ("bullet", BULLET_RE)):
        m = regex.match(line)
        if m:
            hm = m.group(2).strip() or None
            return Entry(
                kind=kind,
                date=_parse_date(m.group(1)),
                time=hm,
                text=m.group(3).strip(),
                lines=[line],
                line=lineno,
            )
    return None


@dataclass
class MemoryFile:
    """Header text plus ordered entries."""

    header: str
    entries: list[Entry] = field(default_factory=list)
    path: str = ""

    @property
    def live_entries(self) -> list[Entry]:
        return [e for e in self.entries if not e.is_marker]

    @property
    def metadata(self) -> dict[str, Any]:
        return header_metadata(self.header)

    def serialize(self) -> str:
        return serialize(self.header, self.entries)

    def append(self, entry: Entry) -> None:
        """Append keeping a blank line before the first entry and before lesson blocks."""
        if not self.entries:
            if self.header and not self.header.endswith("\n"):
                self.header += "\n"
        elif entry.is_lesson and self.entries[-1].lines[-1].strip():
            self.entries[-1].lines.append("")
        self.entries.append(entry)


def parse(content: str, path: str = "") -> MemoryFile:
    """Split a file into header and ordered entries."""
    body = content[:-1] if content.endswith("\n") else content
    lines = body.split("\n") if body else []
    category = category_for_path(path) if path else None

    header_lines: list[str] = []
    entries: list[Entry] = []
    for lineno, line in enumerate(lines, start=1):
        entry = start_entry(line, lineno)
        if entry is not None:
            entry.category = "lesson" if entry.is_lesson else category
            entries.append(entry)
        elif entries:
            entries[-1].lines.append(line)
        else:
            header_lines.append(line)

    return MemoryFile(header="\n".join(header_lines), entries=entries, path=path)


def serialize(header: str, entries: list[Entry]) -> str:
    """Header, entries joined by newline, trailing newline."""
    if not entries:
        return header + "\n"
    return header + "\n" + "\n".join(e.raw for e in entries) + "\n"


def default_header(category: str | None, path: str = "") -> str:
    """Front-matter and title for a file created by the first append."""
    cat = CATEGORIES.get(category or "")
    if cat is None:
        stem = path.rsplit("/", 1)[-1].removesuffix(".md") or "notes"
        title = stem.replace("-", " ").replace("_", " ").title()
        description = f"{title} — memory entries"
    else:
        title, description = cat.title, cat.description
    return "\n".join(["---", f'description: "{description}"', "---", "", f"# {title}", ""])


def header_metadata(content: str) -> dict[str, Any]:
    """Front-matter as a dict; empty when missing or malformed."""
    try:
        return dict(frontmatter.loads(content).metadata)
    except Exception:
        return {}


def strip_frontmatter(content: str) -> str:
    try:
        return frontmatter.loads(content).content
    except Exception:
        return content
