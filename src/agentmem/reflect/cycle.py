"""Reflection cycle: gather → (agent reasons) → save, plus history.

``gather`` renders a prompt covering everything committed since the last
reflection and drops a breadcrumb (``.reflect-state.json``) recording the
window. ``save`` parses the agent's answer, appends proposed entries,
flags stale ones, writes ``reflections/<date>[-n].md`` and commits.
"""

from __future__ import annotations

import json
import logging
import re
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Any

import frontmatter

from agentmem import vcs
from agentmem.errors import AgentMemError
from agentmem.memory.branches import BranchNamespace
from agentmem.memory.defrag import StaleFinding, apply_stale_markers, marker_anchor
from agentmem.memory.entries import header_metadata, strip_frontmatter
from agentmem.memory.store import REFLECTIONS_DIR, MemoryStore
from agentmem.reflect.parse import (
    Gap,
    StaleRef,
    extract_gaps,
    extract_stale_entries,
    extract_summary,
    parse_reflection,
)

logger = logging.getLogger(__name__)

STATE_FILE = ".reflect-state.json"
MAX_COMMITS = 50
HISTORY_DEFAULT = 5
THEME_MIN_REFLECTIONS = 3

_RULE = "═══"
_ENTRY_PREFIX_RE = re.compile(r"^-?\s*\[[^\]]*\]\s*")


# ── Breadcrumb state ──────────────────────────────────────────


@dataclass
class ReflectionState:
    window_start: str
    window_end: str
    commits_reviewed: int
    last_commit_hash: str | None
    since_ref: str | None
    gathered_at: str
    saved_at: str | None = None
    reflection_file: str | None = None


def read_state(store: MemoryStore) -> ReflectionState | None:
    """Breadcrumb from the last gather; None when missing or unreadable."""
    path = store.root / STATE_FILE
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return ReflectionState(**data)
    except (json.JSONDecodeError, TypeError, UnicodeDecodeError) as e:
        logger.warning("Ignoring corrupted %s: %s", STATE_FILE, e)
        return None


def write_state(store: MemoryStore, state: ReflectionState) -> None:
    (store.root / STATE_FILE).write_text(
        json.dumps(asdict(state), indent=2) + "\n", encoding="utf-8"
    )


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── Reflection files ──────────────────────────────────────────


def reflection_metadata(store: MemoryStore, rel: str) -> dict[str, Any]:
    return header_metadata(store.read(rel) or "")


def next_reflection_path(store: MemoryStore, day: str) -> str:
    """``reflections/<day>.md``, or ``-2``, ``-3``… when taken."""
    rel = f"{REFLECTIONS_DIR}/{day}.md"
    n = 2
    while store.exists(rel):
        rel = f"{REFLECTIONS_DIR}/{day}-{n}.md"
        n += 1
    return rel


@dataclass
class LastReflection:
    file: str
    date: str
    summary: str | None


def last_reflection(store: MemoryStore) -> LastReflection | None:
    files = store.reflection_files()
    if not files:
        return None
    rel = files[-1]
    content = store.read(rel) or ""
    summary_lines = parse_reflection(strip_frontmatter(content)).get("summary")
    day = header_metadata(content).get("date") or rel.rsplit("/", 1)[-1].removesuffix(".md")
    return LastReflection(
        file=rel,
        date=str(day),
        summary="\n".join(summary_lines).strip() or None,
    )


def resolve_since_ref(store: MemoryStore, explicit: str | None = None) -> str | None:
    """explicit > breadcrumb hash > newest reflection's hash > first commit."""
    if explicit:
        return explicit
    state = read_state(store)
    if state is not None and state.last_commit_hash:
        return state.last_commit_hash
    files = store.reflection_files()
    if files:
        recorded = reflection_metadata(store, files[-1]).get("last_commit_hash")
        if recorded:
            return str(recorded)
    return vcs.first_commit(store.root)


# ── Gather ────────────────────────────────────────────────────


@dataclass
class GatherResult:
    empty: bool
    since_ref: str | None
    prompt: str = ""
    state: ReflectionState | None = None


def _format_size(n: int) -> str:
    return f"{n}B" if n < 1024 else f"{n / 1024:.1f}KB"


def _memory_state(store: MemoryStore) -> list[str]:
    lines = []
    files = store.memory_files("memory")
    if not files:
        return ["(no memory files yet)", ""]
    for rel in files:
        memory_file = store.load(rel)
        live = memory_file.live_entries if memory_file else []
        size = store.full_path(rel).stat().st_size
        lines.append(f"{rel} ({len(live)} entries, {_format_size(size)}):")
        if not live:
            lines.append("  (empty)")
        lines.extend(f"  {e.head}" for e in live)
        lines.append("")
    return lines


def _branch_status(store: MemoryStore) -> list[str]:
    branches = BranchNamespace(store).list()
    if not branches:
        return []
    lines = ["BRANCHES:"]
    for b in (b for b in branches if b.merged):
        lines.append(f'  MERGED: {b.name} → "{b.purpose or b.name}"')
    for b in (b for b in branches if not b.merged):
        lines.append(f'  ACTIVE: {b.name}{" *" if b.current else ""} → "{b.purpose or b.name}"')
    lines.append("")
    return lines


FIRST_REFLECTION_GUIDANCE = [
    "First reflection — no prior context.",
    "",
    "This is your first reflection for this project. Focus on:",
    "1. Are the memory entries so far capturing the RIGHT things?",
    "2. Are any decisions already outdated?",
    "3. What implicit knowledge about this project have you NOT written down?",
    "4. Are the system/ files (conventions, project overview) still accurate?",
]

COMPACTION_GUIDANCE = [
    f"{_RULE} COMPACTION MODE {_RULE}",
    "Your context window is filling up. Focus on:",
    "1. Summarize work into concise status (not deep analysis)",
    "2. Identify memory entries to archive",
    "3. Identify system/ files to shorten or unpin",
    "4. After saving, consider unpinning less critical system files",
    "",
]

REFLECTION_QUESTIONS = [
    f"{_RULE} REFLECTION QUESTIONS {_RULE}",
    "",
    "1. PATTERNS: What recurring approaches or successful strategies emerged?",
    "2. CONTRADICTIONS: Do any new entries conflict with existing ones?",
    "3. CONSOLIDATION: Can entries be merged, clarified, or made more specific?",
    "4. GAPS: What important context is NOT yet captured?",
    "5. THEMES: What overarching directions are emerging?",
    "6. STALE: Are any existing entries outdated?",
    "",
]

SAVE_FORMAT = """\
## Patterns Identified
- <pattern>

## Decisions Validated
- <decision confirmed by recent work>

## Contradictions Found
- <what conflicts, and resolution>

## Stale Entries
- <file>: <entry to flag>

## Gaps Filled
- type: decision|pattern|mistake|note
  text: <new entry to add>
- type: lesson
  text: <title>
  problem: <what went wrong>
  resolution: <what fixed it>

## Themes
- <overarching theme>

## Summary
<2-3 sentence summary>"""


def gather(
    store: MemoryStore,
    since: str | None = None,
    deep: bool = False,
    compaction: bool = False,
) -> GatherResult:
    """Build the reflection prompt. Writes the breadcrumb unless the window is empty."""
    since_ref = resolve_since_ref(store, since)
    total = vcs.commit_count_since(store.root, since_ref)
    if total == 0:
        return GatherResult(empty=True, since_ref=since_ref)

    commits = vcs.log(store.root, since_ref, MAX_COMMITS)
    stats = vcs.diff_stat(store.root, since_ref)
    previous = last_reflection(store)
    last = vcs.last_commit(store.root)

    window_end = date.today().isoformat()
    window_start = commits[-1].date[:10] if commits and commits[-1].date else "unknown"
    state = ReflectionState(
        window_start=window_start,
        window_end=window_end,
        commits_reviewed=total,
        last_commit_hash=last.hash if last else None,
        since_ref=since_ref,
        gathered_at=_now_iso(),
    )
    # Anchors the next window even if save is never called
    write_state(store, state)

    lines = [
        "🔍 REFLECTION INPUT",
        f"Window: {window_start} → {window_end} ({total} commits)",
        "Last reflection: "
        + (f"{previous.date} ({previous.file})" if previous else "none (first reflection)"),
        "",
        f"{_RULE} RECENT ACTIVITY {_RULE}",
        "",
        f"COMMITS ({total}):",
    ]
    for i, c in enumerate(commits, start=1):
        lines.append(f"  {i}. {c.hash} | {c.message} | {c.date[:16]}")
    if total > MAX_COMMITS:
        lines.append(f"  ... and {total - MAX_COMMITS} earlier commits")
    lines.append("")

    if stats:
        lines.append("FILES CHANGED:")
        lines.extend(f"  {s.file}  +{s.added} -{s.removed} lines" for s in stats)
        lines.append("")

    if deep and since_ref:
        memory_diff = vcs.diff_files(store.root, since_ref, "memory/")
        if memory_diff:
            lines.extend(["MEMORY DIFFS (--deep):", memory_diff, ""])

    lines.extend(_branch_status(store))
    lines.extend([f"{_RULE} CURRENT MEMORY STATE {_RULE}", ""])
    lines.extend(_memory_state(store))

    lines.extend([f"{_RULE} LAST REFLECTION {_RULE}", ""])
    if previous:
        lines.append(f"(from {previous.file})")
        lines.append(previous.summary or "(no summary)")
    else:
        lines.extend(FIRST_REFLECTION_GUIDANCE)
    lines.append("")

    if compaction:
        lines.extend(COMPACTION_GUIDANCE)
    lines.extend(REFLECTION_QUESTIONS)
    lines.extend(
        [
            f"{_RULE} INSTRUCTIONS {_RULE}",
            "",
            "After reasoning, call:",
            '  amem reflect save --content "YOUR_REFLECTION"',
            "",
            "Use this format:",
            "",
            SAVE_FORMAT,
        ]
    )
    return GatherResult(empty=False, since_ref=since_ref, prompt="\n".join(lines), state=state)


# ── Save ──────────────────────────────────────────────────────


@dataclass
class AddedEntry:
    gap: Gap
    path: str


@dataclass
class SaveResult:
    path: str
    added: list[AddedEntry] = field(default_factory=list)
    stale_flagged: int = 0
    summary: str | None = None
    recognized: bool = True
    commit: str | None = None


def _locate_stale(store: MemoryStore, ref: StaleRef) -> StaleFinding | None:
    """Find the entry a stale reference points at, by line or by text."""
    memory_file = store.load(ref.file)
    if memory_file is None:
        logger.warning("Stale reference to missing file %s", ref.file)
        return None
    needle = _ENTRY_PREFIX_RE.sub("", ref.text.strip().lower())
    for entry in memory_file.live_entries:
        text = entry.text.lower()
        by_line = ref.line is not None and entry.line == ref.line
        by_text = bool(needle) and bool(text) and (needle in text or text in needle)
        if by_line or by_text:
            return StaleFinding(
                file=memory_file.path,
                line=marker_anchor(entry),
                date=entry.date.isoformat() if entry.date else "",
                text=entry.text[:80],
            )
    logger.info("No entry in %s matches stale reference %r", ref.file, ref.text)
    return None


def save(store: MemoryStore, text: str, today: date | None = None) -> SaveResult:
    """Persist a reflection and apply the entries and flags it proposes."""
    if not text.strip():
        raise AgentMemError("No reflection content provided.")

    day = (today or date.today()).isoformat()
    parsed = parse_reflection(text)
    if not parsed.recognized:
        logger.info("Reflection has no recognized sections; saving as free text")

    gaps = extract_gaps(parsed.get("gaps")) + extract_gaps(
        parsed.get("lessons"), default_type="lesson"
    )
    added = []
    for gap in gaps:
        if gap.type == "lesson":
            target = store.lesson(gap.text, gap.problem or "", gap.resolution or "", gap.tags)
        else:
            target = store.remember(gap.text, gap.type)
        added.append(AddedEntry(gap=gap, path=target))

    findings = [
        f for f in (_locate_stale(store, ref) for ref in extract_stale_entries(parsed.get("stale"))) if f
    ]
    flagged = apply_stale_markers(store, findings, day) if findings else 0

    state = read_state(store)
    if state is None:
        last = vcs.last_commit(store.root)
        state = ReflectionState(
            window_start=day,
            window_end=day,
            commits_reviewed=0,
            last_commit_hash=last.hash if last else None,
            since_ref=None,
            gathered_at=_now_iso(),
        )

    rel = next_reflection_path(store, day)
    post = frontmatter.Post(
        text.strip() + "\n",
        date=day,
        window_start=state.window_start,
        window_end=state.window_end,
        commits_reviewed=state.commits_reviewed,
        last_commit_hash=state.last_commit_hash,
        entries_added=len(added),
        stale_flagged=flagged,
    )
    store.write(rel, frontmatter.dumps(post, sort_keys=False) + "\n")

    state.saved_at = _now_iso()
    state.reflection_file = rel
    write_state(store, state)

    summary = extract_summary(parsed)
    result = SaveResult(
        path=rel,
        added=added,
        stale_flagged=flagged,
        summary=summary,
        recognized=parsed.recognized,
    )
    message = (
        f"reflect: {summary[:72]}"
        if summary
        else f"reflect: {day} ({len(added)} entries added, {flagged} flagged)"
    )
    result.commit = store.commit(message)
    logger.info("Saved reflection %s (%d added, %d flagged)", rel, len(added), flagged)
    return result


# ── History ───────────────────────────────────────────────────


@dataclass
class HistoryItem:
    file: str
    date: str
    commits_reviewed: int = 0
    entries_added: int = 0
    stale_flagged: int = 0
    summary: str | None = None


@dataclass
class History:
    items: list[HistoryItem] = field(default_factory=list)
    total: int = 0
    recurring_themes: list[tuple[str, int]] = field(default_factory=list)


def _theme_words(lines: list[str]) -> set[str]:
    words = re.sub(r"[^\w\s]", " ", " ".join(lines).lower()).split()
    return {w for w in words if len(w) > 3}


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def history(store: MemoryStore, limit: int = HISTORY_DEFAULT) -> History:
    """The last ``limit`` reflections, newest first, with recurring themes."""
    files = store.reflection_files()
    shown = list(reversed(files))[:limit]
    result = History(total=len(files))
    counts: Counter[str] = Counter()

    for rel in shown:
        content = store.read(rel) or ""
        meta = header_metadata(content)
        parsed = parse_reflection(strip_frontmatter(content))
        summary = extract_summary(parsed)
        result.items.append(
            HistoryItem(
                file=rel,
                date=str(meta.get("date") or rel.rsplit("/", 1)[-1].removesuffix(".md")),
                commits_reviewed=_as_int(meta.get("commits_reviewed")),
                entries_added=_as_int(meta.get("entries_added")),
                stale_flagged=_as_int(meta.get("stale_flagged")),
                summary=summary[:200] if summary else None,
            )
        )
        counts.update(_theme_words(parsed.get("themes")))

    result.recurring_themes = sorted(
        ((w, n) for w, n in counts.items() if n >= THEME_MIN_REFLECTIONS),
        key=lambda item: (-item[1], item[0]),
    )
    return result
