"""Thin git wrapper scoped to the memory root.

Every call runs with ``cwd`` set to the ``.context/`` directory, which always
carries its own ``.git`` so nothing here touches the enclosing project repo.
Mutating calls raise :class:`VcsError`; read helpers that only feed status
output degrade to an empty/default value.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from agentmem.errors import VcsError

logger = logging.getLogger(__name__)

_FIELD_SEP = "\x1f"


@dataclass
class CommitInfo:
    """One line of ``git log``."""

    hash: str
    message: str
    date: str = ""


@dataclass
class FileStat:
    """One line of ``git diff --numstat``."""

    file: str
    added: int
    removed: int


def git(args: list[str], cwd: Path) -> str:
    """Run a git command in ``cwd`` and return stripped stdout."""
    cmd = ["git", *args]
    logger.debug("Running: %s (cwd=%s)", " ".join(cmd), cwd)
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, cwd=cwd)
    except FileNotFoundError as e:
        raise VcsError(cmd, "git executable not found") from e
    if result.returncode != 0:
        raise VcsError(cmd, result.stderr or result.stdout)
    return result.stdout.strip()


def is_repo(ctx_dir: Path) -> bool:
    """True when ``ctx_dir`` is itself a git repository root."""
    return (ctx_dir / ".git").exists()


def init_repo(ctx_dir: Path) -> None:
    """Create a dedicated repository inside the memory root if missing."""
    if not is_repo(ctx_dir):
        git(["init", "--quiet"], ctx_dir)
        logger.info("Initialized git repository in %s", ctx_dir)


def stage_all(ctx_dir: Path) -> None:
    git(["add", "-A"], ctx_dir)


def commit(ctx_dir: Path, message: str) -> str | None:
    """Stage everything and commit. Returns the short hash, or None if clean."""
    stage_all(ctx_dir)
    result = subprocess.run(
        ["git", "diff", "--cached", "--quiet"],
        capture_output=True,
        text=True,
        cwd=ctx_dir,
    )
    if result.returncode == 0:
        return None
    git(["commit", "--quiet", "-m", message], ctx_dir)
    short = git(["rev-parse", "--short", "HEAD"], ctx_dir)
    logger.info("Committed %s: %s", short, message)
    return short


def has_changes(ctx_dir: Path) -> bool:
    try:
        return bool(git(["status", "--porcelain"], ctx_dir))
    except VcsError:
        return False


def commit_count(ctx_dir: Path) -> int:
    try:
        return int(git(["rev-list", "--count", "HEAD"], ctx_dir))
    except (VcsError, ValueError):
        return 0


def commit_count_since(ctx_dir: Path, since: str | None) -> int:
    """Commits reachable from HEAD but not from ``since``."""
    if not since:
        return commit_count(ctx_dir)
    return int(git(["rev-list", "--count", f"{since}..HEAD"], ctx_dir))


def first_commit(ctx_dir: Path) -> str | None:
    try:
        roots = git(["rev-list", "--max-parents=0", "--abbrev-commit", "HEAD"], ctx_dir)
    except VcsError:
        return None
    lines = roots.splitlines()
    return lines[-1] if lines else None


def last_commit(ctx_dir: Path) -> CommitInfo | None:
    try:
        out = git(["log", "-1", f"--format=%h{_FIELD_SEP}%s{_FIELD_SEP}%cr"], ctx_dir)
    except VcsError:
        return None
    if not out:
        return None
    hash_, message, when = (out.split(_FIELD_SEP) + ["", ""])[:3]
    return CommitInfo(hash=hash_, message=message, date=when)


def log(ctx_dir: Path, since: str | None, max_count: int = 50) -> list[CommitInfo]:
    """Newest-first commits since ``since`` (exclusive), at most ``max_count``."""
    args = ["log", f"--format=%h{_FIELD_SEP}%s{_FIELD_SEP}%cI", f"-n{max_count}"]
    if since:
        args.append(f"{since}..HEAD")
    out = git(args, ctx_dir)
    commits = []
    for line in out.splitlines():
        parts = line.split(_FIELD_SEP)
        if len(parts) < 3:
            continue
        commits.append(CommitInfo(hash=parts[0], message=parts[1], date=parts[2]))
    return commits


def diff_stat(ctx_dir: Path, since: str | None) -> list[FileStat]:
    """Per-file added/removed line counts between ``since`` and HEAD."""
    if not since:
        return []
    out = git(["diff", "--numstat", since, "HEAD"], ctx_dir)
    stats = []
    for line in out.splitlines():
        parts = line.split("\t")
        if len(parts) != 3:
            continue
        added, removed, name = parts
        # Binary files report "-" for both counts
        stats.append(
            FileStat(
                file=name,
                added=int(added) if added.isdigit() else 0,
                removed=int(removed) if removed.isdigit() else 0,
            )
        )
    return stats


def diff_files(ctx_dir: Path, since: str | None, path: str) -> str:
    """Full unified diff for ``path`` since ``since``."""
    if not since:
        return ""
    return git(["diff", since, "HEAD", "--", path], ctx_dir)


def remote_url(ctx_dir: Path, remote: str = "origin") -> str | None:
    """Best-effort remote lookup; missing remotes are not an error."""
    try:
        return git(["remote", "get-url", remote], ctx_dir) or None
    except VcsError:
        return None


# ── Remote sync ───────────────────────────────────────────────


def set_remote(ctx_dir: Path, url: str, remote: str = "origin") -> None:
    """Point ``remote`` at ``url``, replacing any existing definition."""
    if remote_url(ctx_dir, remote) is not None:
        git(["remote", "remove", remote], ctx_dir)
    git(["remote", "add", remote, url], ctx_dir)
    logger.info("Remote %s set to %s", remote, url)


def current_branch(ctx_dir: Path) -> str:
    try:
        return git(["branch", "--show-current"], ctx_dir) or "main"
    except VcsError:
        return "main"


def has_head(ctx_dir: Path) -> bool:
    try:
        git(["rev-parse", "--verify", "HEAD"], ctx_dir)
    except VcsError:
        return False
    return True


def push(ctx_dir: Path, remote: str = "origin") -> str:
    """Push the checked-out branch and set its upstream. Returns the branch."""
    branch = current_branch(ctx_dir)
    git(["push", "--quiet", "-u", remote, branch], ctx_dir)
    logger.info("Pushed %s to %s", branch, remote)
    return branch


def pull(ctx_dir: Path, remote: str = "origin") -> bool:
    """Pull the checked-out branch, rebasing local commits when possible.

    A failed rebase is aborted and retried as a merge. Returns True when the
    rebase succeeded; raises :class:`VcsError` when the merge fails too, which
    leaves conflict markers in the working tree for ``amem resolve``.
    """
    branch = current_branch(ctx_dir)
    try:
        git(["pull", "--quiet", "--rebase", remote, branch], ctx_dir)
        return True
    except VcsError as e:
        logger.warning("Rebase pull failed, retrying as merge: %s", e.stderr.strip())
    if (ctx_dir / ".git" / "rebase-merge").exists() or (ctx_dir / ".git" / "rebase-apply").exists():
        git(["rebase", "--abort"], ctx_dir)
    git(["pull", "--quiet", "--no-rebase", "--no-edit", remote, branch], ctx_dir)
    return False


def clone(url: str, dest: Path) -> None:
    """Clone ``url`` into ``dest``, which must not exist yet."""
    git(["clone", "--quiet", url, dest.name], dest.parent)
    logger.info("Cloned %s into %s", url, dest)
