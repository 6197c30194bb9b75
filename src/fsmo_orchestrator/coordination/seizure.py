"""Lease-style seizure locks in the shared store.

One lock file per role, ``seizure-coordination.conf.<ROLE>.lock``,
containing ``holder:unix_ts``. Per role, each pass sees one of:

- Free: no lock, or the lock is older than ``lock_timeout_s`` (or
  unreadable). Anyone may take it, overwriting an abandoned one.
- Held: a fresh lock naming another node -> ``Denied(HELD)``.
- Self-held: a fresh lock naming this node -> proceed with that lease.

Safety limits:
- The store replicates asynchronously and offers no cross-node
  create-if-absent. After writing, the coordinator waits a short settle
  delay and re-reads the lock; only if it still names this node is the
  lease granted. That read-back, not the write, is the race protection.
- Two nodes writing within the same replication window can both pass
  the read-back. The orchestrator tolerates this: the directory service
  ends up with one holder and the next pass reconciles from it.
- Expiry is time-based only. Release is best-effort and only removes a
  lock that still names the caller.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from fsmo_orchestrator.coordination.state import LocalStateStore
from fsmo_orchestrator.core import ALL_ROLES, FsmoRole, normalize_node_name
from fsmo_orchestrator.errors import StoreError
from fsmo_orchestrator.store.records import SeizureLock
from fsmo_orchestrator.store.shared import lock_file_name

if TYPE_CHECKING:
    from collections.abc import Callable

    from fsmo_orchestrator.store.shared import SharedStore

logger = logging.getLogger(__name__)


class DenyReason(Enum):
    """Why a lease was not granted. Values are STABLE (metric labels)."""

    HELD = "held"  # Fresh lease held by another node
    CONFLICT = "conflict"  # Lost a concurrent write race
    BACKOFF = "backoff"  # Still backing off from an earlier conflict
    STORE_ERROR = "store_error"  # Shared store unreadable/unwritable


@dataclass(frozen=True)
class Lease:
    """A seizure lease held by this node."""

    role: FsmoRole
    holder: str
    acquired_at: int


@dataclass(frozen=True)
class Denied:
    """Lease acquisition refused.

    Attributes:
        role: Role requested
        reason: Why it was refused
        holder: Node named in the lock file, when known
        detail: Free-form diagnostic
    """

    role: FsmoRole
    reason: DenyReason
    holder: str | None = None
    detail: str = ""


class SeizureCoordinator:
    """Acquires and releases per-role seizure leases.

    Thread-safety: No (one pass per process)
    """

    def __init__(
        self,
        store: SharedStore,
        node_name: str,
        *,
        lock_timeout_s: float = 300.0,
        verify_delay_s: float = 0.5,
        verify_jitter_s: float = 0.5,
        backoff_max_s: float = 120.0,
        state: LocalStateStore | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._store = store
        self._node = normalize_node_name(node_name)
        self._lock_timeout_s = lock_timeout_s
        self._verify_delay_s = verify_delay_s
        self._verify_jitter_s = verify_jitter_s
        self._backoff_max_s = backoff_max_s
        self._state = state if state is not None else LocalStateStore(None)
        self._clock = clock
        self._sleep = sleep
        self._rng = rng or random.Random()

    @property
    def lock_timeout_s(self) -> float:
        return self._lock_timeout_s

    def read_lock(self, role: FsmoRole) -> SeizureLock | None:
        """Current lock for ``role``; None if absent or unparseable."""
        text = self._store.read(lock_file_name(role.value))
        if text is None:
            return None
        return SeizureLock.from_text(role, text)

    def active_locks(self) -> list[SeizureLock]:
        """Unexpired locks across all roles, for status reports."""
        now = self._clock()
        locks: list[SeizureLock] = []
        for role in ALL_ROLES:
            lock = self.read_lock(role)
            if lock is not None and not lock.is_expired(now, self._lock_timeout_s):
                locks.append(lock)
        return locks

    def try_acquire(self, role: FsmoRole) -> Lease | Denied:
        """Try to take the seizure lease for ``role``.

        Never raises for store failures: they come back as
        ``Denied(STORE_ERROR)`` so the caller treats the role as
        "no action this cycle".
        """
        now = self._clock()
        backoff = self._state.backoff_remaining(role, now)
        if backoff > 0:
            logger.info(
                "Lease backoff active for %s (%.0fs left)",
                role.value,
                backoff,
                extra={"role": role.value},
            )
            return Denied(role, DenyReason.BACKOFF, detail=f"{backoff:.0f}s remaining")

        name = lock_file_name(role.value)
        mine = SeizureLock(role=role, holder=self._node, acquired_at=int(now))
        try:
            text = self._store.read(name)
            if text is None:
                if not self._store.create_if_absent(name, mine.to_text()):
                    current = self.read_lock(role)
                    return self._conflict(role, now, current.holder if current else None)
            else:
                current = SeizureLock.from_text(role, text)
                if current is None:
                    logger.warning(
                        "Overwriting unreadable %s lock",
                        role.value,
                        extra={"role": role.value, "content": text.strip()[:80]},
                    )
                elif not current.is_expired(now, self._lock_timeout_s):
                    if current.holder == self._node:
                        logger.info("Reusing own %s lease", role.value, extra={"role": role.value})
                        return Lease(role, self._node, current.acquired_at)
                    logger.info(
                        "%s lease held by %s (age %.0fs)",
                        role.value,
                        current.holder,
                        current.age(now),
                        extra={"role": role.value, "holder": current.holder},
                    )
                    return Denied(role, DenyReason.HELD, holder=current.holder)
                elif current.is_future_dated(now, self._lock_timeout_s):
                    logger.warning(
                        "Overwriting future-dated %s lock from %s (%.0fs ahead)",
                        role.value,
                        current.holder,
                        -current.age(now),
                        extra={"role": role.value, "holder": current.holder},
                    )
                else:
                    logger.warning(
                        "Overwriting expired %s lock from %s (age %.0fs)",
                        role.value,
                        current.holder,
                        current.age(now),
                        extra={"role": role.value, "holder": current.holder},
                    )
                self._store.write_atomic(name, mine.to_text())

            self._sleep(self._verify_delay_s + self._rng.uniform(0.0, self._verify_jitter_s))

            seen = self.read_lock(role)
        except StoreError as e:
            logger.error(
                "Store error acquiring %s lease: %s", role.value, e, extra={"role": role.value}
            )
            return Denied(role, DenyReason.STORE_ERROR, detail=str(e))

        if seen is None or seen.holder != self._node:
            return self._conflict(role, now, seen.holder if seen else None)

        self._state.clear_backoff(role)
        logger.info("Acquired %s lease", role.value, extra={"role": role.value})
        return Lease(role, self._node, seen.acquired_at)

    def _conflict(self, role: FsmoRole, now: float, holder: str | None) -> Denied:
        until = now + self._rng.uniform(0.0, self._backoff_max_s)
        self._state.set_backoff(role, until)
        logger.info(
            "Lost %s lease race to %s, backing off %.0fs",
            role.value,
            holder or "unknown",
            until - now,
            extra={"role": role.value, "holder": holder},
        )
        return Denied(role, DenyReason.CONFLICT, holder=holder)

    def release(self, lease: Lease) -> bool:
        """Remove the lock if it still names this node.

        Returns:
            True if a lock file was removed.
        """
        try:
            current = self.read_lock(lease.role)
            if current is None or current.holder != self._node:
                logger.info(
                    "Not releasing %s lease: now held by %s",
                    lease.role.value,
                    current.holder if current else "nobody",
                    extra={"role": lease.role.value},
                )
                return False
            removed = self._store.remove(lock_file_name(lease.role.value))
        except StoreError as e:
            logger.warning(
                "Could not release %s lease: %s",
                lease.role.value,
                e,
                extra={"role": lease.role.value},
            )
            return False
        if removed:
            logger.info("Released %s lease", lease.role.value, extra={"role": lease.role.value})
        return removed
