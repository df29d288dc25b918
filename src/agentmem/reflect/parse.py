"""Parse the agent's structured reflection back into sections and entries.

Section headers are matched by keyword substring through an ordered table,
so "## Decisions Validated" and "## decisions I'd keep" both land under
``decisions``. Unknown headers are kept under a slug rather than dropped.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

# (canonical key, substrings); first match wins
SECTION_MAP: list[tuple[str, tuple[str, ...]]] = [
    ("patterns", ("pattern",)),
    ("decisions", ("decision", "validated")),
    ("lessons", ("lesson",)),
    ("contradictions", ("contradict",)),
    ("stale", ("stale",)),
    ("gaps", ("gap", "new entr")),
    ("themes", ("theme",)),
    ("summary", ("summar",)),
]
KNOWN_SECTIONS = {key for key, _ in SECTION_MAP}

GAP_TYPES = ("decision", "pattern", "mistake", "note", "lesson")

_HEADER_RE = re.compile(r"^##\s+(.+)$")
_FIELD_NAMES = "type|text|title|problem|resolution|tags"
_FIELD_RE = re.compile(rf"^({_FIELD_NAMES})\s*:\s*(.*)$", re.IGNORECASE)
_INLINE_SPLIT_RE = re.compile(rf"\s*[,;]\s*(?=(?:{_FIELD_NAMES})\s*:)", re.IGNORECASE)
_TYPE_RE = re.compile(rf"^({'|'.join(GAP_TYPES)})\b", re.IGNORECASE)
_STALE_REF_RE = re.compile(
    r"^((?:branches/[\w.-]+/)?memory/[\w./-]+\.md)(?:\s*line\s*(\d+))?\s*[:—-]\s*(.+)$",
    re.IGNORECASE,
)


def normalize_section(header: str) -> str:
    lower = header.lower()
    for key, needles in SECTION_MAP:
        if any(n in lower for n in needles):
            return key
    return re.sub(r"[^a-z0-9]+", "_", lower).strip("_")


@dataclass
class ParsedReflection:
    sections: dict[str, list[str]] = field(default_factory=dict)
    raw: str = ""

    @property
    def recognized(self) -> bool:
        return any(key in KNOWN_SECTIONS for key in self.sections)

    def get(self, key: str) -> list[str]:
        return self.sections.get(key, [])


def parse_reflection(text: str) -> ParsedReflection:
    """Bucket non-blank lines under their normalized ``##`` header."""
    parsed = ParsedReflection(raw=text)
    current: str | None = None
    for line in text.split("\n"):
        m = _HEADER_RE.match(line)
        if m:
            current = normalize_section(m.group(1).strip())
            parsed.sections.setdefault(current, [])
            continue
        if current is not None and line.strip():
            parsed.sections[current].append(line)
    return parsed


@dataclass
class Gap:
    """A new memory entry proposed by the reflection."""

    type: str
    text: str
    problem: str | None = None
    resolution: str | None = None
    tags: str | None = None


def _to_gap(record: dict[str, str]) -> Gap | None:
    m = _TYPE_RE.match(record.get("type", ""))
    text = record.get("text") or record.get("title")
    if not m or not text:
        logger.debug("Skipping incomplete gap record: %s", record)
        return None
    kind = m.group(1).lower()
    problem, resolution = record.get("problem"), record.get("resolution")
    if kind == "lesson" and not (problem and resolution):
        # A lesson without both halves is kept as a plain note
        return Gap(type="note", text=text)
    return Gap(type=kind, text=text, problem=problem, resolution=resolution, tags=record.get("tags"))


def extract_gaps(lines: list[str], default_type: str | None = None) -> list[Gap]:
    """Read ``type:``/``text:`` (plus ``problem:``/``resolution:`` for lessons).

    Accepts the multi-line form::

        - type: pattern
          text: Always do X

    and the inline form ``- type: pattern, text: Always do X``. A new bullet,
    a new ``type:`` or a repeated field starts the next record.
    """
    gaps: list[Gap] = []
    record: dict[str, str] = {}

    def flush() -> None:
        if record:
            gap = _to_gap(record)
            if gap is not None:
                gaps.append(gap)
            record.clear()

    def start() -> None:
        flush()
        if default_type:
            record["type"] = default_type

    for line in lines:
        stripped = line.strip()
        is_bullet = stripped.startswith("-")
        body = re.sub(r"^-\s*", "", stripped)
        matches = [_FIELD_RE.match(part) for part in _INLINE_SPLIT_RE.split(body)]
        if not matches or not all(matches):
            continue
        if is_bullet:
            start()
        for m in matches:
            key, value = m.group(1).lower(), m.group(2).strip()
            if key == "title":
                key = "text"
            if not record or key in record and not (key == "type" and record[key] == default_type):
                start()
            record[key] = value
    flush()
    return gaps


@dataclass
class StaleRef:
    file: str
    text: str
    line: int | None = None


def extract_stale_entries(lines: list[str]) -> list[StaleRef]:
    """Read ``memory/<file>.md: <entry text>`` (optionally ``line N``) references."""
    refs = []
    for line in lines:
        body = re.sub(r"^-\s*", "", line.strip())
        m = _STALE_REF_RE.match(body)
        if m:
            refs.append(
                StaleRef(
                    file=m.group(1),
                    text=m.group(3).strip().strip('"'),
                    line=int(m.group(2)) if m.group(2) else None,
                )
            )
    return refs


def extract_summary(parsed: ParsedReflection) -> str | None:
    lines = parsed.get("summary")
    if not lines:
        return None
    return " ".join(line.strip() for line in lines).strip() or None
