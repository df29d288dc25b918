"""Tests for the entry model: parsing, serialization, appends."""

from __future__ import annotations

from datetime import date

from agentmem.memory.entries import (
    Entry,
    MemoryFile,
    category_for_path,
    default_header,
    parse,
    serialize,
)

DECISIONS = """\
---
description: "Architectural decisions and rationale"
---

# Decisions

- [2026-02-21 14:30] Chose SQLite over Postgres for the local index
- [2026-02-22 09:00] Keep the CLI single-process
"""

LESSONS = """\
---
description: "Lessons learned"
---

# Lessons Learned

### [2026-02-21 15:00] Hit 429 rate limit
**Problem:** Rapid calls to the embeddings API
**Resolution:** Exponential backoff
**Tags:** api, retry

### [2026-02-23 10:00] Flaky fixture
**Problem:** Shared tmp dir between tests
**Resolution:** Use tmp_path
"""


class TestParse:
    def test_bullets(self):
        mf = parse(DECISIONS, path="memory/decisions.md")
        assert len(mf.entries) == 2
        first = mf.entries[0]
        assert first.kind == "bullet"
        assert first.date == date(2026, 2, 21)
        assert first.time == "14:30"
        assert first.text == "Chose SQLite over Postgres for the local index"
        assert first.line == 7
        assert first.category == "decision"

    def test_header_precedes_entries(self):
        mf = parse(DECISIONS)
        assert mf.header.startswith("---\n")
        assert "# Decisions" in mf.header
        assert "- [" not in mf.header
        assert mf.metadata["description"] == "Architectural decisions and rationale"

    def test_lesson_blocks_absorb_following_lines(self):
        mf = parse(LESSONS, path="memory/lessons.md")
        assert [e.kind for e in mf.entries] == ["block", "block"]
        first = mf.entries[0]
        assert first.text == "Hit 429 rate limit"
        assert first.problem == "Rapid calls to the embeddings API"
        assert first.resolution == "Exponential backoff"
        assert first.tags == ["api", "retry"]
        assert first.is_lesson

    def test_stale_marker_recognized(self):
        content = DECISIONS + "- [2026-03-01 STALE] ^^^ flagged by reflection — may be outdated\n"
        mf = parse(content)
        assert mf.entries[-1].is_marker
        assert len(mf.live_entries) == 2

    def test_date_without_time(self):
        mf = parse("# Notes\n\n- [2026-01-01] Same entry\n")
        assert mf.entries[0].date == date(2026, 1, 1)
        assert mf.entries[0].time is None

    def test_non_entry_lines_travel_with_previous_entry(self):
        content = "# Notes\n\n- [2026-01-01 10:00] First\n  continued detail\n- [2026-01-02 10:00] Second\n"
        mf = parse(content)
        assert mf.entries[0].lines == ["- [2026-01-01 10:00] First", "  continued detail"]

    def test_dated_bullet_ends_a_lesson_block(self):
        content = (
            "# Lessons\n\n"
            "### [2026-01-01 10:00] Slow CI\n"
            "**Problem:** Cold caches\n"
            "- undated detail stays in the block\n"
            "- [2026-01-02 09:00] Separate bullet\n"
            "**Resolution:** orphaned field\n"
        )
        block, bullet = parse(content, path="memory/lessons.md").entries
        assert block.kind == "block"
        assert block.lines[-1] == "- undated detail stays in the block"
        assert block.resolution is None
        assert bullet.kind == "bullet"
        assert bullet.text == "Separate bullet"
        assert bullet.lines[-1] == "**Resolution:** orphaned field"

    def test_empty_content(self):
        mf = parse("")
        assert mf.header == ""
        assert mf.entries == []


class TestRoundTrip:
    def test_bullets_round_trip(self):
        assert parse(DECISIONS).serialize() == DECISIONS

    def test_lessons_round_trip(self):
        assert parse(LESSONS).serialize() == LESSONS

    def test_header_only_round_trip(self):
        content = default_header("note")
        assert parse(content).serialize() == content

    def test_markers_round_trip(self):
        content = DECISIONS + "- [2026-03-01 STALE] ^^^ flagged by reflection — may be outdated\n"
        assert parse(content).serialize() == content


class TestSerialize:
    def test_header_blank_line_entries_trailing_newline(self):
        entry = Entry.bullet("Only entry", when=("2026-01-01", "09:00"))
        assert serialize("# Notes", [entry]) == "# Notes\n- [2026-01-01 09:00] Only entry\n"

    def test_header_only(self):
        assert serialize("# Notes\n", []) == "# Notes\n\n"


class TestAppend:
    def test_append_to_fresh_file(self):
        mf = MemoryFile(header=default_header("decision"), path="memory/decisions.md")
        mf.append(Entry.bullet("Use uv", when=("2026-02-01", "08:00")))
        content = mf.serialize()
        assert content.endswith("# Decisions\n\n- [2026-02-01 08:00] Use uv\n")
        assert 'description: "Architectural decisions and rationale"' in content

    def test_append_adds_blank_after_bare_title(self):
        mf = parse("# Notes\n")
        mf.append(Entry.bullet("x", when=("2026-02-01", "08:00")))
        assert mf.serialize() == "# Notes\n\n- [2026-02-01 08:00] x\n"

    def test_append_keeps_existing_order(self):
        mf = parse(DECISIONS)
        mf.append(Entry.bullet("Third", when=("2026-02-23", "10:00")))
        texts = [e.text for e in parse(mf.serialize()).entries]
        assert texts[-1] == "Third"
        assert texts[:2] == [e.text for e in parse(DECISIONS).entries]

    def test_lesson_gets_leading_blank_line(self):
        mf = parse(LESSONS)
        mf.append(Entry.lesson("New", "p", "r", when=("2026-02-24", "11:00")))
        assert mf.serialize().endswith(
            "**Resolution:** Use tmp_path\n\n### [2026-02-24 11:00] New\n**Problem:** p\n**Resolution:** r\n"
        )

    def test_bullet_collapses_whitespace(self):
        entry = Entry.bullet("  spread \n over  lines ", when=("2026-01-01", "00:00"))
        assert entry.raw == "- [2026-01-01 00:00] spread over lines"


class TestCategories:
    def test_category_for_path(self):
        assert category_for_path("memory/decisions.md") == "decision"
        assert category_for_path("branches/try-redis/memory/lessons.md") == "lesson"
        assert category_for_path("memory/custom.md") is None

    def test_default_header_for_unknown_file(self):
        header = default_header(None, "memory/api-notes.md")
        assert "# Api Notes" in header
