"""Node-local orchestrator state, persisted between timer runs.

This file is NOT in the shared store: it holds decisions only this node
cares about.

Persistence format (JSON):
{
    "last_seizure_ts": 1705320000.0,
    "backoff_until": {"PDC": 1705320090.5},
    "last_updated_ts": 1705320000.0
}
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from fsmo_orchestrator.core import FsmoRole

logger = logging.getLogger(__name__)


@dataclass
class LocalState:
    """Cooldown and lease-backoff bookkeeping.

    Attributes:
        last_seizure_ts: Unix time of this node's last seizure attempt (0 = never)
        backoff_until: Role -> unix time before which lease acquisition is skipped
    """

    last_seizure_ts: float = 0.0
    backoff_until: dict[FsmoRole, float] = field(default_factory=dict)

    def to_dict(self, now: float) -> dict[str, Any]:
        return {
            "last_seizure_ts": self.last_seizure_ts,
            "backoff_until": {role.value: ts for role, ts in self.backoff_until.items()},
            "last_updated_ts": now,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LocalState:
        backoffs = {
            FsmoRole.parse(role): float(ts) for role, ts in data.get("backoff_until", {}).items()
        }
        return cls(
            last_seizure_ts=float(data.get("last_seizure_ts", 0.0)),
            backoff_until=backoffs,
        )


class LocalStateStore:
    """Loads and saves ``LocalState``; in-memory when ``path`` is None.

    Thread-safety: No (one orchestrator pass per process)
    """

    def __init__(self, path: str | None) -> None:
        self._path = path
        self.state = self._load()

    @property
    def path(self) -> str | None:
        return self._path

    def _load(self) -> LocalState:
        if not self._path:
            return LocalState()
        path = Path(self._path)
        if not path.exists():
            return LocalState()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                msg = "state root is not an object"
                raise ValueError(msg)
            return LocalState.from_dict(data)
        except (OSError, json.JSONDecodeError, TypeError, ValueError, AttributeError) as e:
            logger.warning(
                "Discarding corrupt local state",
                extra={"path": self._path, "error": str(e)},
            )
            return LocalState()

    def save(self, now: float) -> None:
        """Write state to disk. Errors are logged, not raised."""
        if not self._path:
            return
        path = Path(self._path)
        tmp = path.with_name(path.name + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(self.state.to_dict(now), indent=2), encoding="utf-8")
            os.replace(tmp, path)
        except OSError as e:
            logger.error(
                "Failed to save local state",
                extra={"path": self._path, "error": str(e)},
            )

    # Cooldown

    def cooldown_remaining(self, now: float, cooldown_s: float) -> float:
        if cooldown_s <= 0 or self.state.last_seizure_ts <= 0:
            return 0.0
        return max(0.0, self.state.last_seizure_ts + cooldown_s - now)

    def record_seizure_attempt(self, now: float) -> None:
        self.state.last_seizure_ts = now

    # Lease backoff

    def backoff_remaining(self, role: FsmoRole, now: float) -> float:
        until = self.state.backoff_until.get(role, 0.0)
        return max(0.0, until - now)

    def set_backoff(self, role: FsmoRole, until: float) -> None:
        self.state.backoff_until[role] = until

    def clear_backoff(self, role: FsmoRole) -> None:
        self.state.backoff_until.pop(role, None)
