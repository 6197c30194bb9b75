"""Accessor for the replicated shared store.

The store is a plain directory inside SYSVOL, replicated between
domain controllers asynchronously. Guarantees are local only:

- ``create_if_absent`` is O_CREAT|O_EXCL on *this* node's copy. Another
  node may create the same file before replication makes ours visible.
- ``write_atomic`` is temp-file + rename on this node's copy.
- There is no compare-and-swap and no cross-node ordering.

Callers build their protocols (own-record-only writes, read-after-write
verification) on top of these primitives.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import tempfile
from pathlib import Path

from fsmo_orchestrator.errors import StoreError

logger = logging.getLogger(__name__)

PRIORITIES_FILE = "domain-dc-priorities.conf"
HISTORY_FILE = "seizure-history.log"
LOCK_PREFIX = "seizure-coordination.conf."
LOCK_SUFFIX = ".lock"

PRIORITIES_HEADER = (
    "# Domain-wide FSMO priority registry (shared via SYSVOL)\n"
    "# Format: dc:general:pdc:rid:infrastructure:schema:naming:last_seen\n"
    "# Lower values = higher priority. Each DC updates only its own line.\n"
)


def lock_file_name(role_id: str) -> str:
    return f"{LOCK_PREFIX}{role_id}{LOCK_SUFFIX}"


class SharedStore:
    """File operations on the shared store directory.

    Every OS-level failure is raised as ``StoreError``; a missing file is
    not a failure for ``read`` (None) or ``remove`` (False).
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def path(self, name: str) -> Path:
        return self._root / name

    def ensure_layout(self) -> None:
        """Create the store directory and an empty priority registry."""
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError("mkdir", str(self._root), str(e)) from e
        if self.create_if_absent(PRIORITIES_FILE, PRIORITIES_HEADER):
            logger.info(
                "Created priority registry", extra={"path": str(self.path(PRIORITIES_FILE))}
            )

    def read(self, name: str) -> str | None:
        """Return file content, or None if the file does not exist."""
        path = self.path(name)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise StoreError("read", str(path), str(e)) from e

    def write_atomic(self, name: str, text: str) -> None:
        """Replace a file's content via temp file + rename."""
        path = self.path(name)
        tmp_name: str | None = None
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{name}.", suffix=".tmp", dir=self._root)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise StoreError("write", str(path), str(e)) from e
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)

    def create_if_absent(self, name: str, text: str) -> bool:
        """Create a file only if it does not exist locally.

        Returns:
            True if this call created the file, False if it already existed.
        """
        path = self.path(name)
        try:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            return False
        except OSError as e:
            raise StoreError("create", str(path), str(e)) from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise StoreError("create", str(path), str(e)) from e
        return True

    def remove(self, name: str) -> bool:
        """Delete a file. Returns False if it was already gone."""
        path = self.path(name)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StoreError("remove", str(path), str(e)) from e
        return True

    def append_line(self, name: str, line: str) -> None:
        path = self.path(name)
        try:
            with path.open("a", encoding="utf-8") as f:
                f.write(line.rstrip("\n") + "\n")
        except OSError as e:
            raise StoreError("append", str(path), str(e)) from e

    def list_names(self, pattern: str = "*") -> list[str]:
        """File names in the store matching a glob pattern, sorted."""
        try:
            names = os.listdir(self._root)
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StoreError("list", str(self._root), str(e)) from e
        return sorted(
            n for n in names if fnmatch.fnmatchcase(n, pattern) and not n.startswith(".")
        )
