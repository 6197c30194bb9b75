"""Priority registry in the shared store.

Every node keeps one line in ``domain-dc-priorities.conf``. Write
discipline:

- ``publish`` rewrites only the caller's own line; every other line
  (other nodes, comments, unparseable entries) is carried over verbatim.
- ``gc`` drops lines of *other* nodes whose ``last_seen`` is older than
  the staleness threshold. A line already gone is simply not there to
  drop, so concurrent gc runs on several nodes converge.

Both rewrite the file with temp-file + rename, so local readers never
see a half-written registry.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from fsmo_orchestrator.core import ALL_ROLES, FsmoRole, normalize_node_name
from fsmo_orchestrator.store.records import PriorityRecord, record_line_node
from fsmo_orchestrator.store.shared import PRIORITIES_FILE, PRIORITIES_HEADER

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from fsmo_orchestrator.store.shared import SharedStore

logger = logging.getLogger(__name__)


class PriorityRegistry:
    """Reads and maintains the shared priority records."""

    def __init__(
        self,
        store: SharedStore,
        node_name: str,
        *,
        default_priority: int = 50,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._node = normalize_node_name(node_name)
        self._default = default_priority
        self._clock = clock

    @property
    def default_priority(self) -> int:
        return self._default

    def _lines(self) -> list[str]:
        text = self._store.read(PRIORITIES_FILE)
        if text is None:
            return PRIORITIES_HEADER.splitlines(keepends=True)
        return text.splitlines(keepends=True)

    def read_all(self) -> list[PriorityRecord]:
        """All parseable records; on duplicate node lines the first wins."""
        records: dict[str, PriorityRecord] = {}
        for line in self._lines():
            record = PriorityRecord.from_line(line, self._default)
            if record is not None and record.node not in records:
                records[record.node] = record
        return list(records.values())

    def get(self, node: str) -> PriorityRecord | None:
        name = normalize_node_name(node)
        for record in self.read_all():
            if record.node == name:
                return record
        return None

    def publish(
        self,
        general: int | None = None,
        roles: Mapping[FsmoRole, int] | None = None,
    ) -> PriorityRecord:
        """Write (or refresh) this node's own record.

        A value not given here keeps what the node's existing record
        says; a value in neither place gets the default priority.
        ``last_seen`` is always set to now.
        """
        roles = roles or {}
        lines = self._lines()
        existing: PriorityRecord | None = None
        for line in lines:
            if record_line_node(line) == self._node:
                existing = PriorityRecord.from_line(line, self._default)
                break

        def pick(configured: int | None, previous: int | None) -> int:
            if configured is not None:
                return configured
            if previous is not None:
                return previous
            return self._default

        record = PriorityRecord(
            node=self._node,
            general=pick(general, existing.general if existing else None),
            roles={
                role: pick(roles.get(role), existing.roles.get(role) if existing else None)
                for role in ALL_ROLES
            },
            last_seen=float(int(self._clock())),
        )

        new_line = record.to_line() + "\n"
        out: list[str] = []
        replaced = False
        for line in lines:
            if record_line_node(line) == self._node:
                if not replaced:
                    out.append(new_line)
                    replaced = True
                continue
            out.append(line)
        if not replaced:
            if out and not out[-1].endswith("\n"):
                out[-1] += "\n"
            out.append(new_line)

        self._store.write_atomic(PRIORITIES_FILE, "".join(out))
        logger.info(
            "Published priority record",
            extra={
                "node": self._node,
                "general": record.general,
                "roles": {r.value: p for r, p in record.roles.items()},
            },
        )
        return record

    def gc(self, max_age_s: float) -> list[str]:
        """Remove other nodes' records older than ``max_age_s``.

        Records with an unparseable ``last_seen`` are kept. Never removes
        the caller's own record.

        Returns:
            Names of nodes whose records were removed (empty = no-op).
        """
        now = self._clock()
        text = self._store.read(PRIORITIES_FILE)
        if text is None:
            return []
        kept: list[str] = []
        removed: list[str] = []
        for line in text.splitlines(keepends=True):
            node = record_line_node(line)
            if node is not None and node != self._node:
                record = PriorityRecord.from_line(line, self._default)
                if (
                    record is not None
                    and record.last_seen is not None
                    and now - record.last_seen > max_age_s
                ):
                    removed.append(node)
                    continue
            kept.append(line)

        if removed:
            self._store.write_atomic(PRIORITIES_FILE, "".join(kept))
            logger.info(
                "Removed stale priority records",
                extra={"nodes": removed, "max_age_s": max_age_s},
            )
        return removed
