"""Advisory lock around mutating commands.

Written next to ``.context/`` (not inside it, so it is never committed).
A live lock held by someone else only produces a warning: memory files are
append-only and tolerate last-writer-wins concurrent appends.
"""

from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path

logger = logging.getLogger(__name__)

LOCK_FILE = ".context.lock"
LOCK_TIMEOUT = 30  # seconds


class ContextLock:
    """Guard object; use as ``with ContextLock(project_root): ...``."""

    def __init__(self, project_root: Path, holder: str | None = None) -> None:
        self.path = project_root / LOCK_FILE
        self.holder = holder or f"pid-{os.getpid()}"
        self.acquired = False

    def _read_existing(self) -> dict | None:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, OSError, UnicodeDecodeError):
            logger.warning("Discarding corrupted lock file %s", self.path)
            self.path.unlink(missing_ok=True)
            return None
        if not isinstance(data, dict) or not isinstance(data.get("timestamp"), (int, float)):
            logger.warning("Discarding malformed lock record %s", self.path)
            self.path.unlink(missing_ok=True)
            return None
        return data

    def acquire(self) -> None:
        existing = self._read_existing()
        if existing is not None:
            age = time.time() - existing["timestamp"]
            if age > LOCK_TIMEOUT:
                logger.debug("Reclaiming stale lock (%.0fs old)", age)
                self.path.unlink(missing_ok=True)
            elif existing.get("holder") != self.holder:
                logger.warning(
                    "Context locked by %s (%ds ago). Proceeding anyway.",
                    existing.get("holder", existing.get("pid", "unknown")),
                    round(age),
                )

        self.path.write_text(
            json.dumps({"pid": os.getpid(), "holder": self.holder, "timestamp": time.time()}),
            encoding="utf-8",
        )
        self.acquired = True

    def release(self) -> None:
        if self.acquired:
            self.path.unlink(missing_ok=True)
            self.acquired = False

    def __enter__(self) -> ContextLock:
        self.acquire()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()
