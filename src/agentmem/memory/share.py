"""Portable snapshots: export the context tree to one JSON file and import it back."""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from agentmem import vcs
from agentmem.config import context_dir
from agentmem.errors import AgentMemError, NotFoundError
from agentmem.memory.store import MemoryStore

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1
SNAPSHOT_TOOL = "agent-mem"


@dataclass
class ShareResult:
    path: Path
    filename: str
    files: int
    size: int
    commits: int


@dataclass
class ImportResult:
    project: str
    written: int
    skipped: int
    commits: Any
    created_at: str
    commit: str | None = None


def build_snapshot(store: MemoryStore) -> dict[str, Any]:
    files = {}
    for node in store.tree():
        if node.is_dir:
            continue
        content = store.read(node.path)
        if content is not None:
            files[node.path] = content
    last = vcs.last_commit(store.root)
    return {
        "version": SNAPSHOT_VERSION,
        "tool": SNAPSHOT_TOOL,
        "project": store.project_name,
        "branch": store.branch,
        "commits": vcs.commit_count(store.root),
        "lastCommit": asdict(last) if last else None,
        "createdAt": datetime.now(timezone.utc).isoformat(),
        "files": files,
    }


def export_snapshot(store: MemoryStore, output: Path | None = None) -> ShareResult:
    """Write ``context-<project>-<hash8>.json`` (or ``output``)."""
    snapshot = build_snapshot(store)
    payload = json.dumps(snapshot, indent=2, ensure_ascii=False)
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()[:8]
    filename = f"context-{store.project_name}-{digest}.json"
    path = output or store.project_root / filename
    path.write_text(payload, encoding="utf-8")
    logger.info("Wrote snapshot %s (%d files)", path, len(snapshot["files"]))
    return ShareResult(
        path=path,
        filename=filename,
        files=len(snapshot["files"]),
        size=len(payload.encode("utf-8")),
        commits=snapshot["commits"],
    )


def load_snapshot(path: Path) -> dict[str, Any]:
    if not path.is_file():
        raise NotFoundError(f"File not found: {path}")
    try:
        snapshot = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise AgentMemError(f"Invalid snapshot file: {e}") from e
    if (
        not isinstance(snapshot, dict)
        or snapshot.get("version") != SNAPSHOT_VERSION
        or not isinstance(snapshot.get("files"), dict)
    ):
        raise AgentMemError("Unrecognized snapshot format.")
    return snapshot


def import_snapshot(project_root: Path, path: Path, merge: bool = False) -> ImportResult:
    """Write snapshot files into ``<project_root>/.context`` and commit.

    Overwrites by default; with ``merge`` only paths absent locally are written.
    Every path is validated before anything is written.
    """
    snapshot = load_snapshot(path)
    ctx_dir = context_dir(project_root)
    ctx_dir.mkdir(parents=True, exist_ok=True)
    store = MemoryStore(ctx_dir)

    files = {store.safe_path(rel): content for rel, content in snapshot["files"].items()}

    written = skipped = 0
    for rel, content in files.items():
        if merge and store.exists(rel):
            skipped += 1
            continue
        store.write(rel, str(content))
        written += 1

    vcs.init_repo(ctx_dir)
    project = snapshot.get("project") or "unknown"
    created = str(snapshot.get("createdAt") or "?")[:10]
    commit = store.commit(f"import: from {project} ({created})")
    return ImportResult(
        project=project,
        written=written,
        skipped=skipped,
        commits=snapshot.get("commits", "?"),
        created_at=created,
        commit=commit,
    )
