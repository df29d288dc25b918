"""Compactor — retention-driven archival of old memory entries.

Default mode keeps entries dated within ``compact.retain_days``; hard mode
keeps none. Pinned files, branch metadata and config are always kept.
Dropped entries are copied verbatim to ``archive/compact-<date>/`` before the
live file is rewritten; live files are emptied down to their header but
never deleted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import TYPE_CHECKING

from agentmem import vcs
from agentmem.memory.entries import Entry, MemoryFile, serialize

if TYPE_CHECKING:
    from agentmem.memory.store import MemoryStore

logger = logging.getLogger(__name__)


@dataclass
class KeptItem:
    path: str
    reason: str
    entries: int | None = None
    count: int | None = None


@dataclass
class ArchivedItem:
    path: str
    reason: str
    dropped: int | None = None
    kept: int | None = None


@dataclass
class _FilePlan:
    memory_file: MemoryFile
    keep: list[Entry]
    drop: list[Entry]


@dataclass
class CompactReport:
    mode: str
    dry_run: bool
    archive_dir: str
    kept: list[KeptItem] = field(default_factory=list)
    archived: list[ArchivedItem] = field(default_factory=list)
    before_bytes: int = 0
    after_bytes: int = 0
    checkpoint: str | None = None
    commit: str | None = None

    @property
    def delta(self) -> int:
        return self.before_bytes - self.after_bytes

    @property
    def reduction_pct(self) -> float:
        return (self.delta / self.before_bytes * 100) if self.before_bytes else 0.0


def format_bytes(n: int) -> str:
    if n < 1024:
        return f"{n}B"
    if n < 1024 * 1024:
        return f"{n / 1024:.1f}KB"
    return f"{n / (1024 * 1024):.1f}MB"


class Compactor:
    """Plan and apply one compaction pass over a memory root."""

    def __init__(
        self,
        store: MemoryStore,
        hard: bool = False,
        retain_days: int | None = None,
        today: date | None = None,
    ) -> None:
        self.store = store
        self.hard = hard
        self.retain_days = retain_days if retain_days is not None else store.config.compact.retain_days
        self.today = today or date.today()

    @property
    def mode(self) -> str:
        return "hard" if self.hard else "default"

    @property
    def cutoff(self) -> date:
        return self.today - timedelta(days=self.retain_days)

    @property
    def archive_dir(self) -> str:
        return f"archive/compact-{self.today.isoformat()}"

    def partition(self, entries: list[Entry]) -> tuple[list[Entry], list[Entry]]:
        """Split live entries into (keep, drop). Stale markers are discarded."""
        live = [e for e in entries if not e.is_marker]
        if self.hard:
            return [], live
        cutoff = self.cutoff
        keep = [e for e in live if e.date is not None and e.date >= cutoff]
        drop = [e for e in live if e.date is None or e.date < cutoff]
        return keep, drop

    def _plan_files(self) -> list[_FilePlan]:
        plans = []
        for rel in self.store.walk("memory"):
            if not rel.endswith(".md"):
                continue
            memory_file = self.store.load(rel)
            if memory_file is None:
                continue
            keep, drop = self.partition(memory_file.entries)
            plans.append(_FilePlan(memory_file=memory_file, keep=keep, drop=drop))
        return plans

    def _reflections(self) -> tuple[list[str], list[str]]:
        names = self.store.reflection_files()
        keep_count = 0 if self.hard else 1
        split = max(len(names) - keep_count, 0)
        return names[split:], names[:split]

    def run(self, dry_run: bool = False) -> CompactReport:
        store = self.store
        report = CompactReport(mode=self.mode, dry_run=dry_run, archive_dir=self.archive_dir)
        report.before_bytes = store.context_bytes()

        if not dry_run and vcs.has_changes(store.root):
            report.checkpoint = store.commit("compact: pre-compact checkpoint")

        for rel in store.walk("system"):
            report.kept.append(KeptItem(path=rel, reason="pinned"))

        projected = report.before_bytes
        for plan in self._plan_files():
            mf = plan.memory_file
            if plan.drop:
                report.archived.append(
                    ArchivedItem(
                        path=mf.path,
                        reason="hard mode" if self.hard else "older than retain window",
                        dropped=len(plan.drop),
                        kept=len(plan.keep),
                    )
                )
            if plan.keep:
                report.kept.append(KeptItem(path=mf.path, reason="recent", entries=len(plan.keep)))

            if len(plan.keep) != len(mf.entries):
                new_content = serialize(mf.header, plan.keep)
                projected += len(new_content.encode("utf-8")) - len(mf.serialize().encode("utf-8"))
                if not dry_run:
                    if plan.drop:
                        # Same-day bundles accumulate rather than overwrite
                        bundle_path = f"{self.archive_dir}/{mf.path}"
                        bundle = store.load(bundle_path) or MemoryFile(
                            header=mf.header, path=bundle_path
                        )
                        bundle.entries.extend(plan.drop)
                        store.save(bundle)
                    store.write(mf.path, new_content)
                    logger.info(
                        "Compacted %s: kept %d, archived %d", mf.path, len(plan.keep), len(plan.drop)
                    )

        keep_refs, drop_refs = self._reflections()
        for rel in keep_refs:
            report.kept.append(KeptItem(path=rel, reason="latest reflection"))
        for rel in drop_refs:
            report.archived.append(ArchivedItem(path=rel, reason="older reflection"))
            projected -= store.full_path(rel).stat().st_size
            if not dry_run:
                store.move(rel, f"{self.archive_dir}/{rel}")

        branches = [n for n in store.list_dir("branches") if (store.root / "branches" / n).is_dir()]
        if branches:
            report.kept.append(KeptItem(path="branches/", reason="branch metadata", count=len(branches)))
        if store.exists("config.yaml"):
            report.kept.append(KeptItem(path="config.yaml", reason="configuration"))

        if dry_run:
            report.after_bytes = projected
            return report

        report.after_bytes = store.context_bytes()
        if report.archived:
            message = (
                f"compact --hard: archived {len(report.archived)} items, kept pins only"
                if self.hard
                else f"compact: archived {len(report.archived)} items, kept recent + pins"
            )
            report.commit = store.commit(message)
        return report
