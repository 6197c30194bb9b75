"""Line codecs for the shared store files.

Formats are shared with every node in the domain, including older
shell-based ones, and must stay byte-compatible:

- Priority record line (``domain-dc-priorities.conf``)::

    dc1:10:10:20:30:40:50:2024-01-15_10:30:00

  ``node:general:pdc:rid:infrastructure:schema:naming:last_seen``,
  ``last_seen`` in local time.

- Seizure lock file (``seizure-coordination.conf.<ROLE>.lock``)::

    dc1:1705314600
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime

from fsmo_orchestrator.core import ALL_ROLES, FsmoRole, normalize_node_name

LAST_SEEN_FORMAT = "%Y-%m-%d_%H:%M:%S"
HISTORY_TS_FORMAT = "%Y-%m-%d %H:%M:%S"

# Hostname label (RFC 1123), after normalization
_NODE_RE = re.compile(r"^[a-z0-9][a-z0-9-]*$")

# node + general + five roles + last_seen
_RECORD_FIELDS = 2 + len(ALL_ROLES) + 1


def format_last_seen(ts: float) -> str:
    """Render a unix timestamp as a ``last_seen`` field (local time)."""
    return datetime.fromtimestamp(ts).strftime(LAST_SEEN_FORMAT)


def parse_last_seen(value: str) -> float | None:
    """Parse a ``last_seen`` field; None if malformed."""
    try:
        return datetime.strptime(value.strip(), LAST_SEEN_FORMAT).timestamp()
    except ValueError:
        return None


def _parse_priority(value: str, default: int) -> int:
    try:
        return int(value.strip())
    except ValueError:
        return default


@dataclass(frozen=True)
class PriorityRecord:
    """One node's published priorities.

    Lower value = preferred. ``last_seen`` is None when the stored
    timestamp could not be parsed; such records are never considered
    stale.

    Attributes:
        node: Node name (lower-case short hostname)
        general: General priority (tie-breaker across roles)
        roles: Role -> role-specific priority
        last_seen: Unix time of the node's last refresh
    """

    node: str
    general: int
    roles: dict[FsmoRole, int] = field(default_factory=dict)
    last_seen: float | None = None

    def role_priority(self, role: FsmoRole, default: int) -> int:
        return self.roles.get(role, default)

    def to_line(self) -> str:
        """Serialize to a priority file line (no trailing newline)."""
        if self.last_seen is None:
            msg = f"cannot serialize record for {self.node} without last_seen"
            raise ValueError(msg)
        fields = [self.node, str(self.general)]
        fields.extend(str(self.roles[role]) for role in ALL_ROLES)
        fields.append(format_last_seen(self.last_seen))
        return ":".join(fields)

    @classmethod
    def from_line(cls, line: str, default_priority: int) -> PriorityRecord | None:
        """Parse a priority file line.

        Returns None for comments, blank lines and lines whose first
        field is not a host name. Missing or non-integer priority fields
        fall back to ``default_priority``. The timestamp itself contains
        colons, so everything after the seventh field is rejoined.
        """
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            return None
        parts = stripped.split(":")
        node = normalize_node_name(parts[0])
        if not _NODE_RE.match(node):
            return None
        head = parts[1 : _RECORD_FIELDS - 1]
        head += [""] * (_RECORD_FIELDS - 2 - len(head))
        general = _parse_priority(head[0], default_priority)
        roles = {
            role: _parse_priority(head[i + 1], default_priority) for i, role in enumerate(ALL_ROLES)
        }
        tail = ":".join(parts[_RECORD_FIELDS - 1 :])
        last_seen = parse_last_seen(tail) if tail else None
        return cls(node=node, general=general, roles=roles, last_seen=last_seen)


def record_line_node(line: str) -> str | None:
    """Node name a raw priority line belongs to, or None for comments/blanks."""
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None
    return normalize_node_name(stripped.split(":", 1)[0]) or None


@dataclass(frozen=True)
class SeizureLock:
    """Advisory seizure lease as read from the shared store.

    Attributes:
        role: Role the lease gates
        holder: Node that wrote the lease
        acquired_at: Unix time of acquisition
    """

    role: FsmoRole
    holder: str
    acquired_at: int

    def age(self, now: float) -> float:
        return now - self.acquired_at

    def is_future_dated(self, now: float, timeout_s: float) -> bool:
        """True if stamped more than ``timeout_s`` ahead of ``now`` (writer clock skew)."""
        return self.age(now) < -timeout_s

    def is_expired(self, now: float, timeout_s: float) -> bool:
        """True once the lease is at least ``timeout_s`` old, or is future-dated."""
        return self.age(now) >= timeout_s or self.is_future_dated(now, timeout_s)

    def to_text(self) -> str:
        return f"{self.holder}:{self.acquired_at}\n"

    @classmethod
    def from_text(cls, role: FsmoRole, text: str) -> SeizureLock | None:
        """Parse lock file content; None if unparseable."""
        holder, sep, ts = text.strip().partition(":")
        holder = normalize_node_name(holder)
        if not sep or not holder:
            return None
        try:
            acquired_at = int(ts.strip())
        except ValueError:
            return None
        return cls(role=role, holder=holder, acquired_at=acquired_at)


def format_history_line(node: str, role: FsmoRole, success: bool, ts: float) -> str:
    """Audit line appended to ``seizure-history.log``."""
    stamp = datetime.fromtimestamp(ts).strftime(HISTORY_TS_FORMAT)
    result = "SUCCESS" if success else "FAILED"
    return f"{stamp} [{node}] SEIZURE_ATTEMPT role={role.value} result={result}"
