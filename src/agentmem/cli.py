"""Command-line interface: ``amem <command>``.

Every command locates the nearest ``.context/`` above the working directory.
Mutating commands run under the advisory lock; user-facing errors print a
single ``❌`` line and exit 1 (``--verbose`` adds the traceback).
"""

from __future__ import annotations

import functools
import logging
import os
import traceback
from datetime import datetime
from collections.abc import Callable
from pathlib import Path
from typing import Any

import typer
import yaml

from agentmem import __version__, vcs
from agentmem.config import (
    DEFAULT_BRANCH,
    config_to_dict,
    context_dir,
    find_context_root,
    require_context_dir,
    set_value,
)
from agentmem.errors import AgentMemError, ConflictError, NotFoundError, VcsError
from agentmem.lock import ContextLock
from agentmem.memory.branches import BranchNamespace
from agentmem.memory.compact import Compactor, format_bytes
from agentmem.memory.defrag import analyze, apply_stale_markers, format_report
from agentmem.memory.entries import strip_frontmatter
from agentmem.memory.resolve import find_conflicted, resolve_all
from agentmem.memory.share import export_snapshot, import_snapshot
from agentmem.memory.store import MemoryStore, init_context, parse_lesson_shorthand
from agentmem.reflect import cycle

logger = logging.getLogger(__name__)

app = typer.Typer(no_args_is_help=True, help="Durable, git-versioned memory for coding agents.")
reflect_app = typer.Typer(no_args_is_help=True, help="Reflection cycle: gather, save, history, defrag.")
config_app = typer.Typer(no_args_is_help=True, help="Show or change config.yaml.")
app.add_typer(reflect_app, name="reflect")
app.add_typer(config_app, name="config")

_state = {"verbose": False}

SEARCH_LIMIT = 20


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def handle_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """Turn AgentMemError into a one-line diagnostic and exit status 1."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except AgentMemError as e:
            typer.echo(f"❌ {e}", err=True)
            if _state["verbose"]:
                typer.echo(traceback.format_exc(), err=True)
            raise typer.Exit(code=1) from e

    return wrapper


def _store() -> MemoryStore:
    root = require_context_dir(Path.cwd())
    logger.debug("Using memory root %s", root)
    return MemoryStore(root)


def _read_stdin() -> str:
    stream = typer.get_text_stream("stdin")
    if stream.isatty():
        return ""
    return stream.read()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging and tracebacks."),
) -> None:
    """Durable, git-versioned memory for coding agents."""
    _state["verbose"] = verbose
    _setup_logging("DEBUG" if verbose else os.getenv("AMEM_LOG_LEVEL", "WARNING"))


@app.command()
def version() -> None:
    """Print the installed version."""
    typer.echo(f"agent-mem {__version__}")


# ── Setup and views ───────────────────────────────────────────


@app.command()
@handle_errors
def init(force: bool = typer.Option(False, "--force", help="Reinitialize an existing .context/.")) -> None:
    """Create .context/ in the current directory."""
    project_root = Path.cwd()
    store, commit = init_context(project_root, force=force)
    typer.echo("✅ INITIALIZED: .context/")
    typer.echo(f"Project: {store.project_name}")
    typer.echo("")
    typer.echo("Files created:")
    typer.echo("  main.md — project roadmap")
    typer.echo("  system/project.md — project overview")
    typer.echo("  system/conventions.md — coding conventions")
    typer.echo("  config.yaml — settings")
    typer.echo("  memory/ — learned context (empty)")
    typer.echo("  branches/ — exploration branches (empty)")
    if commit:
        typer.echo(f"\nGit commit: {commit}")
    typer.echo("\nNext steps:")
    typer.echo("  amem snapshot    — view your context")
    typer.echo('  amem remember "..."  — record a decision or note')


@app.command()
@handle_errors
def status() -> None:
    """One-screen summary of the memory root."""
    store = _store()
    commits = vcs.commit_count(store.root)
    dirty = vcs.has_changes(store.root)
    last = vcs.last_commit(store.root)
    branches = BranchNamespace(store).names()
    typer.echo(f"📊 STATUS: {store.project_name}")
    typer.echo(
        f"Branch: {store.branch} | Commits: {commits}{' ⚠️ uncommitted changes' if dirty else ''}"
    )
    if last:
        typer.echo(f'Last: "{last.message}" ({last.date})')
    typer.echo(
        f"Files: {len(store.walk('system'))} pinned, {len(store.walk('memory'))} memory, "
        f"{len(store.reflection_files())} reflections"
    )
    typer.echo(f"Branches: {len(branches)}")
    typer.echo(
        f"Config: auto_commit={str(store.config.auto_commit).lower()} | "
        f"reflection={store.config.reflection.trigger}"
    )
    remote = vcs.remote_url(store.root)
    if remote:
        typer.echo(f"Remote: {remote}")


@app.command()
@handle_errors
def snapshot() -> None:
    """Pinned content, memory listing, branches and reflections."""
    store = _store()
    tree = store.tree()
    branch = store.branch
    dirty = vcs.has_changes(store.root)
    last = vcs.last_commit(store.root)

    typer.echo("📋 CONTEXT SNAPSHOT")
    typer.echo(
        f"Project: {store.project_name} | Branch: {branch} | "
        f"Commits: {vcs.commit_count(store.root)}{' (uncommitted changes)' if dirty else ''}"
    )
    if last:
        typer.echo(f'Last commit: "{last.message}" ({last.date})')
    typer.echo("")

    pinned = [n for n in tree if n.path.startswith("system/") and not n.is_dir]
    if pinned:
        typer.echo("PINNED (system/) — always in agent context:")
        for node in pinned:
            body = strip_frontmatter(store.read(node.path) or "").strip()
            preview = body if len(body) <= 500 else body[:497] + "..."
            typer.echo(f"  --- {node.path} ---")
            typer.echo("  " + preview.replace("\n", "\n  "))
            typer.echo("")

    def listing(title: str, prefix: str) -> None:
        nodes = [n for n in tree if n.path.startswith(prefix) and not n.is_dir]
        if not nodes:
            return
        typer.echo(f"{title} ({len(nodes)} files):")
        for node in nodes:
            typer.echo(f"  {node.name} — {node.description or '(no description)'}")
        typer.echo("")

    if branch != DEFAULT_BRANCH:
        listing(f"MEMORY [branch: {branch}]", f"branches/{branch}/memory/")
        listing("MEMORY [main]", "memory/")
    else:
        listing("MEMORY", "memory/")

    namespace = BranchNamespace(store)
    infos = namespace.list()
    if infos:
        typer.echo(f"BRANCHES ({len(infos)}):")
        for b in infos:
            typer.echo(f"  {b.name} — {b.purpose or '(no purpose set)'}")
        typer.echo("")

    reflections = store.reflection_files()
    if reflections:
        latest = reflections[-1].rsplit("/", 1)[-1]
        typer.echo(f"REFLECTIONS: {len(reflections)} total, latest: {latest}")
        typer.echo("")

    typer.echo(
        f"CONFIG: auto_commit={str(store.config.auto_commit).lower()} | "
        f"reflection={store.config.reflection.trigger}"
    )


@app.command()
@handle_errors
def read(path: str = typer.Argument(..., help="Path relative to .context/")) -> None:
    """Print a file; on a branch, the branch copy wins over main."""
    store = _store()
    content = store.read(store.resolve(path))
    if content is None:
        content = store.read(path)
    if content is None:
        raise NotFoundError(f"File not found: .context/{store.safe_path(path)}")
    typer.echo(content, nl=False)


@app.command()
@handle_errors
def write(
    path: str = typer.Argument(..., help="Path relative to .context/"),
    content: str | None = typer.Argument(None, help="New content (default: stdin)."),
) -> None:
    """Overwrite a file (branch-scoped for memory/)."""
    store = _store()
    body = content if content is not None else _read_stdin()
    if not body:
        raise AgentMemError("No content provided.")
    with store.locked():
        target = store.resolve(path)
        store.write(target, body if body.endswith("\n") else body + "\n")
        commit = store.maybe_auto_commit(f"write {target}")
    typer.echo(f"✅ WROTE: .context/{target}")
    if commit:
        typer.echo(f"Committed: {commit}")


@app.command()
@handle_errors
def search(query: str = typer.Argument(...)) -> None:
    """Case-insensitive search across the context tree."""
    hits = _store().search(query)
    if not hits:
        typer.echo(f'No matches for "{query}".')
        return
    typer.echo(f'🔎 {len(hits)} match(es) for "{query}":')
    for hit in hits[:SEARCH_LIMIT]:
        typer.echo(f"  {hit.path}:{hit.line}  {hit.text}")
    if len(hits) > SEARCH_LIMIT:
        typer.echo(f"  ... and {len(hits) - SEARCH_LIMIT} more")


@app.command()
@handle_errors
def commit(message: str | None = typer.Argument(None)) -> None:
    """Commit everything in .context/."""
    store = _store()
    with store.locked():
        short = store.commit(message or "checkpoint")
    if short is None:
        typer.echo("Nothing to commit.")
    else:
        typer.echo(f"✅ COMMITTED: {short} — {message or 'checkpoint'}")


# ── Entries ───────────────────────────────────────────────────


@app.command()
@handle_errors
def remember(
    text: list[str] = typer.Argument(..., help="What to remember."),
    decision: bool = typer.Option(False, "--decision", help="Record as a decision."),
    pattern: bool = typer.Option(False, "--pattern", help="Record as a pattern."),
    mistake: bool = typer.Option(False, "--mistake", help="Record as a mistake."),
    note: bool = typer.Option(False, "--note", help="Record as a note (default)."),
    file: str | None = typer.Option(None, "--file", help="Target memory file."),
) -> None:
    """Append a timestamped entry to a memory file."""
    category = "decision" if decision else "pattern" if pattern else "mistake" if mistake else "note"
    store = _store()
    with store.locked():
        target = store.remember(" ".join(text), category, file=file)
        short = store.maybe_auto_commit(f"remember {category}")
    typer.echo(f"✅ REMEMBERED ({category}) → .context/{target}")
    if short:
        typer.echo(f"Committed: {short}")


@app.command()
@handle_errors
def lesson(
    title: list[str] = typer.Argument(..., help='Title, or "problem -> resolution".'),
    problem: str | None = typer.Option(None, "--problem"),
    resolution: str | None = typer.Option(None, "--resolution"),
    tags: str | None = typer.Option(None, "--tags", help="Comma-separated tags."),
) -> None:
    """Record a problem/resolution lesson."""
    text = " ".join(title)
    if problem and resolution:
        heading = text
    elif problem or resolution:
        raise AgentMemError("Lessons need both --problem and --resolution.")
    else:
        heading, problem, resolution = parse_lesson_shorthand(text)
    store = _store()
    with store.locked():
        target = store.lesson(heading, problem, resolution, tags)
        short = store.maybe_auto_commit("lesson")
    typer.echo(f"✅ LESSON → .context/{target}")
    if short:
        typer.echo(f"Committed: {short}")


@app.command()
@handle_errors
def forget(path: str = typer.Argument(...)) -> None:
    """Archive a file and remove it from live context."""
    store = _store()
    with store.locked():
        archived = store.forget(path)
        short = store.commit(f"forget: {store.safe_path(path)}")
    typer.echo(f"🗑️  FORGOT: .context/{store.safe_path(path)}")
    typer.echo(f"Archived to: .context/{archived}")
    if short:
        typer.echo(f"Committed: {short}")


@app.command()
@handle_errors
def pin(path: str = typer.Argument(...)) -> None:
    """Move a file into system/ (always loaded)."""
    store = _store()
    with store.locked():
        dest = store.pin(path)
        if dest is None:
            typer.echo(f"Already pinned: .context/{store.safe_path(path)}")
            return
        store.maybe_auto_commit(f"pin {dest}")
    typer.echo(f"📌 PINNED: .context/{dest}")


@app.command()
@handle_errors
def unpin(path: str = typer.Argument(...)) -> None:
    """Move a file from system/ back to memory/."""
    store = _store()
    with store.locked():
        dest = store.unpin(path)
        store.maybe_auto_commit(f"unpin {dest}")
    typer.echo(f"📎 UNPINNED: .context/{dest}")


# ── Branches ──────────────────────────────────────────────────


@app.command()
@handle_errors
def branch(
    name: str = typer.Argument(...),
    purpose: list[str] | None = typer.Argument(None, help="Why this branch exists."),
) -> None:
    """Create a branch and switch to it."""
    store = _store()
    with store.locked():
        BranchNamespace(store).create(name, " ".join(purpose or []))
        store.maybe_auto_commit(f"branch {name}")
    typer.echo(f"🌿 BRANCH: {name} (now active)")
    typer.echo(f"Memory writes go to .context/branches/{name}/memory/")
    typer.echo(f"Merge back with: amem merge {name} \"<summary>\"")


@app.command()
@handle_errors
def switch(name: str = typer.Argument(...)) -> None:
    """Switch the active branch."""
    store = _store()
    with store.locked():
        previous = BranchNamespace(store).switch_to(name)
        store.maybe_auto_commit(f"switch {previous} → {name}")
    typer.echo(f"🔀 SWITCHED: {previous} → {name}")


@app.command()
@handle_errors
def merge(
    name: str = typer.Argument(...),
    summary: list[str] | None = typer.Argument(None, help="What the branch concluded."),
) -> None:
    """Merge a branch's new entries into main and switch to main."""
    store = _store()
    with store.locked():
        result = BranchNamespace(store).merge_back(name, " ".join(summary or []))
        short = store.commit(f"merge: {name} → {DEFAULT_BRANCH}")
    typer.echo(f"🔀 MERGED: {name} → {DEFAULT_BRANCH}")
    typer.echo(f"Recorded in .context/{result.record_file}")
    for path, count in result.appended.items():
        typer.echo(f"  + {count} entr{'y' if count == 1 else 'ies'} → {path}")
    if short:
        typer.echo(f"Committed: {short}")


@app.command()
@handle_errors
def branches() -> None:
    """List branches."""
    store = _store()
    infos = BranchNamespace(store).list()
    typer.echo(f"{'* ' if store.branch == DEFAULT_BRANCH else '  '}{DEFAULT_BRANCH}")
    for b in infos:
        mark = "* " if b.current else "  "
        merged = " [merged]" if b.merged else ""
        typer.echo(f"{mark}{b.name}{merged} — {b.purpose or '(no purpose set)'}")


@app.command()
@handle_errors
def diff(
    name: str | None = typer.Argument(None, help="Branch (default: active)."),
    verbose: bool = typer.Option(False, "--verbose", help="Show changed lines."),
) -> None:
    """Compare a branch with main (only files written on the branch)."""
    store = _store()
    target = name or store.branch
    if target == DEFAULT_BRANCH:
        raise AgentMemError("On main — name a branch to diff: amem diff <branch>")
    diffs = BranchNamespace(store).diff(target)
    if not diffs:
        typer.echo(f"No differences between {target} and {DEFAULT_BRANCH}.")
        return
    typer.echo(f"📊 DIFF: {target} vs {DEFAULT_BRANCH}")
    for d in diffs:
        if d.status == "added":
            typer.echo(f"  + {d.path} (new, {d.lines} lines)")
            continue
        typer.echo(f"  ~ {d.path} (+{len(d.added)} -{len(d.removed)})")
        if verbose:
            for line in d.added:
                typer.echo(f"      + {line}")
            for line in d.removed:
                typer.echo(f"      - {line}")


# ── Lifecycle ─────────────────────────────────────────────────


@app.command()
@handle_errors
def compact(
    hard: bool = typer.Option(False, "--hard", help="Archive all entries, keep pins only."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Report without changing anything."),
) -> None:
    """Archive old entries and reflections."""
    store = _store()
    with store.locked():
        report = Compactor(store, hard=hard).run(dry_run=dry_run)

    typer.echo(f"🗜️  COMPACT{' --hard' if hard else ''}{' (dry run)' if dry_run else ''}")
    typer.echo("")
    if report.checkpoint:
        typer.echo(f"💾 Pre-compact checkpoint: {report.checkpoint}")
    if report.kept:
        typer.echo("KEPT:")
        for k in report.kept:
            extra = f" ({k.entries} entries)" if k.entries else f" ({k.count})" if k.count else ""
            typer.echo(f"  ✅ {k.path}{extra} — {k.reason}")
        typer.echo("")
    if report.archived:
        typer.echo("ARCHIVED:")
        for a in report.archived:
            extra = f" ({a.dropped} entries dropped, {a.kept} kept)" if a.dropped else ""
            typer.echo(f"  📦 {a.path}{extra} — {a.reason}")
        typer.echo("")
    else:
        typer.echo("Nothing to compact — context is already lean.")
        typer.echo("")

    sign = "-" if report.delta > 0 else "+"
    typer.echo(
        f"SIZE: {format_bytes(report.before_bytes)} → {format_bytes(report.after_bytes)} "
        f"({sign}{format_bytes(abs(report.delta))}, {report.reduction_pct:.1f}% reduction)"
    )
    if not dry_run and report.archived:
        typer.echo(f"ARCHIVE: .context/{report.archive_dir}/")
    if report.commit:
        typer.echo(f"COMMIT: {report.commit}")
    if dry_run and report.archived:
        typer.echo("\nRun without --dry-run to apply.")


@app.command()
@handle_errors
def resolve(dry_run: bool = typer.Option(False, "--dry-run")) -> None:
    """Auto-resolve git conflict markers in .context/."""
    store = _store()
    with store.locked():
        report = resolve_all(store, dry_run=dry_run)
    if not report.files:
        typer.echo("✅ No conflicts found.")
        return
    typer.echo(f"🔧 RESOLVE{' (dry run)' if dry_run else ''}")
    for f in report.files:
        typer.echo(f"  {f.path} — {f.blocks} block(s), {f.strategy}")
    if report.commit:
        typer.echo(f"Committed: {report.commit}")


# ── Reflection ────────────────────────────────────────────────


@reflect_app.command("gather")
@handle_errors
def reflect_gather(
    since: str | None = typer.Option(None, "--since", help="Commit to start the window from."),
    deep: bool = typer.Option(False, "--deep", help="Include full memory diffs."),
    compaction: bool = typer.Option(False, "--compaction", help="Add compaction guidance."),
) -> None:
    """Print the reflection prompt for recent activity."""
    store = _store()
    with store.locked():
        result = cycle.gather(store, since=since, deep=deep, compaction=compaction)
    if result.empty:
        typer.echo(f"Nothing to reflect on — no commits since {result.since_ref or 'the start'}.")
        return
    typer.echo(result.prompt)


@reflect_app.command("save")
@handle_errors
def reflect_save(
    content: str | None = typer.Option(None, "--content", help="Reflection text (default: stdin)."),
    file: Path | None = typer.Option(None, "--file", help="Read the reflection from a file."),
) -> None:
    """Save a reflection and apply the entries it proposes."""
    if file is not None:
        if not file.is_file():
            raise NotFoundError(f"File not found: {file}")
        content = file.read_text(encoding="utf-8")
    text = content if content is not None else _read_stdin()
    store = _store()
    with store.locked():
        result = cycle.save(store, text)
    typer.echo(f"✅ REFLECTION SAVED → .context/{result.path}")
    if not result.recognized:
        typer.echo("  (no recognized sections; stored as free text)")
    for added in result.added:
        typer.echo(f"  + {added.gap.type}: {added.gap.text} → {added.path}")
    if result.stale_flagged:
        typer.echo(f"  ⚠️  {result.stale_flagged} entr{'y' if result.stale_flagged == 1 else 'ies'} flagged stale")
    if result.commit:
        typer.echo(f"Committed: {result.commit}")


@reflect_app.command("history")
@handle_errors
def reflect_history(
    n: int = typer.Option(cycle.HISTORY_DEFAULT, "-n", help="How many reflections to show."),
) -> None:
    """List recent reflections and recurring themes."""
    hist = cycle.history(_store(), limit=n)
    if not hist.items:
        typer.echo("No reflections yet. Run: amem reflect gather")
        return
    typer.echo(f"📜 REFLECTION HISTORY (showing {len(hist.items)} of {hist.total})")
    typer.echo("")
    for item in hist.items:
        typer.echo(
            f"{item.date} — {item.commits_reviewed} commits, "
            f"{item.entries_added} added, {item.stale_flagged} flagged ({item.file})"
        )
        if item.summary:
            typer.echo(f"  {item.summary}")
    if hist.recurring_themes:
        typer.echo("")
        typer.echo("RECURRING THEMES:")
        for word, count in hist.recurring_themes:
            typer.echo(f"  {word} ({count} reflections)")


@reflect_app.command("defrag")
@handle_errors
def reflect_defrag(
    apply: bool = typer.Option(False, "--apply", help="Insert stale markers and commit."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Report only (default)."),
) -> None:
    """Report oversized, duplicate, stale and malformed memory."""
    store = _store()
    analysis = analyze(store)
    applying = apply and not dry_run
    typer.echo(format_report(analysis, dry_run=not applying))
    if applying and analysis.stale:
        with store.locked():
            marked = apply_stale_markers(store, analysis.stale)
            short = store.commit(f"defrag: flagged {marked} stale entries")
        typer.echo("")
        typer.echo(f"⚠️  Flagged {marked} stale entr{'y' if marked == 1 else 'ies'}")
        if short:
            typer.echo(f"Committed: {short}")


# ── Config ────────────────────────────────────────────────────


@config_app.command("show")
@handle_errors
def config_show() -> None:
    """Print the effective configuration."""
    data = config_to_dict(_store().config)
    typer.echo(yaml.safe_dump(data, sort_keys=False, default_flow_style=False), nl=False)


@config_app.command("set")
@handle_errors
def config_set(key: str = typer.Argument(...), value: str = typer.Argument(...)) -> None:
    """Set a key, e.g. ``reflection.stale_days 45``."""
    store = _store()
    with store.locked():
        set_value(store.config, key, value)
        store.save_config()
        store.maybe_auto_commit(f"config {key}")
    typer.echo(f"✅ {key} = {value}")


# ── Share ─────────────────────────────────────────────────────


@app.command()
@handle_errors
def share(output: Path | None = typer.Option(None, "--output", "-o")) -> None:
    """Export the context tree as one portable JSON file."""
    store = _store()
    result = export_snapshot(store, output)
    typer.echo(f"✅ SHARED: {result.filename}")
    typer.echo(f"  Project: {store.project_name}")
    typer.echo(f"  Files: {result.files} | Size: {result.size / 1024:.1f} KB | Commits: {result.commits}")
    typer.echo(f"  Path: {result.path}")
    typer.echo("")
    typer.echo("To import on another machine:")
    typer.echo(f"  amem import {result.filename}")


@app.command("import")
@handle_errors
def import_cmd(
    snapshot_file: Path = typer.Argument(..., help="Snapshot produced by 'amem share'."),
    merge_mode: bool = typer.Option(False, "--merge", help="Only write files missing locally."),
) -> None:
    """Import a shared snapshot into ./.context/."""
    project_root = Path.cwd()
    with ContextLock(project_root):
        result = import_snapshot(project_root, snapshot_file, merge=merge_mode)
    typer.echo(f"✅ IMPORTED: {result.project}")
    skipped = f" | Skipped (existing): {result.skipped}" if result.skipped else ""
    typer.echo(f"  Files written: {result.written}{skipped}")
    typer.echo(f"  Source: {result.commits} commits, created {result.created_at}")


# ── Sync ──────────────────────────────────────────────────────


@app.command()
@handle_errors
def push(
    remote: str | None = typer.Option(None, "--remote", help="Set origin to this git URL first."),
) -> None:
    """Commit pending changes and push .context/ to its remote."""
    store = _store()
    with store.locked():
        if remote:
            vcs.set_remote(store.root, remote)
        url = vcs.remote_url(store.root)
        if url is None:
            raise NotFoundError("No remote configured. Run: amem push --remote <git-url>")
        short = store.commit(f"sync: {datetime.now().isoformat()[:16]}")
        if not vcs.has_head(store.root):
            raise AgentMemError("Nothing to push — no commits yet.")
        branch = vcs.push(store.root)
    if short:
        typer.echo(f"Committed: {short}")
    typer.echo(f"✅ PUSHED: .context/ → {url} ({branch})")


@app.command()
@handle_errors
def pull(
    remote: str | None = typer.Option(
        None, "--remote", help="Set origin to this git URL (clones when .context/ is missing)."
    ),
) -> None:
    """Pull .context/ from its remote, or clone it into the current directory."""
    root = find_context_root(Path.cwd())
    if root is None:
        if not remote:
            raise NotFoundError("No .context/ here. Clone one with: amem pull --remote <git-url>")
        project_root = Path.cwd()
        with ContextLock(project_root):
            vcs.clone(remote, context_dir(project_root))
        typer.echo(f"✅ CLONED: {remote} → .context/")
        return

    store = MemoryStore(context_dir(root))
    if not vcs.is_repo(store.root):
        raise AgentMemError(".context/ is not a git repository. Run 'amem init --force' first.")
    with store.locked():
        if remote:
            vcs.set_remote(store.root, remote)
        url = vcs.remote_url(store.root)
        if url is None:
            raise NotFoundError("No remote configured. Run: amem pull --remote <git-url>")
        store.commit(f"sync: {datetime.now().isoformat()[:16]}")
        try:
            rebased = vcs.pull(store.root)
        except VcsError as e:
            conflicted = find_conflicted(store)
            if not conflicted:
                raise
            raise ConflictError(
                f"Pull left conflicts in {len(conflicted)} file(s). Run 'amem resolve' to merge them."
            ) from e
    typer.echo(f"✅ PULLED: {url} → .context/{'' if rebased else ' (merged)'}")


if __name__ == "__main__":
    app()
