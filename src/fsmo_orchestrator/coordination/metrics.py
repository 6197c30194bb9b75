"""Coordination metrics in Prometheus text format.

The orchestrator is a short-lived timer job, so metrics are not served;
they are written to a node-exporter textfile collector file at the end
of each pass.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from fsmo_orchestrator.core import ALL_ROLES, RoleOutcome

# Metric names (stable contract)
METRIC_PASSES = "fsmo_orchestrator_passes_total"
METRIC_ROLE_OUTCOME = "fsmo_orchestrator_role_outcome_total"
METRIC_LEASE_RESULT = "fsmo_orchestrator_lease_result_total"
METRIC_SEIZURE_ATTEMPTS = "fsmo_orchestrator_seizure_attempts_total"
METRIC_LAST_PASS_TS = "fsmo_orchestrator_last_pass_timestamp_seconds"
METRIC_DISCOVERED_NODES = "fsmo_orchestrator_discovered_nodes"

# Label keys
LABEL_ROLE = "role"
LABEL_OUTCOME = "outcome"
LABEL_RESULT = "result"

_LEASE_RESULTS = ("acquired", "held", "conflict", "backoff", "store_error")
_SEIZURE_RESULTS = ("success", "failed")


@dataclass
class CoordinationMetrics:
    """Counters and gauges for one orchestrator process.

    Attributes:
        passes: Completed orchestration passes
        role_outcomes: {(role, outcome): count}
        lease_results: {result: count}
        seizure_attempts: {(role, result): count}
        last_pass_ts: Unix time the last pass finished
        discovered_nodes: Nodes known in the last pass
    """

    passes: int = 0
    role_outcomes: dict[tuple[str, str], int] = field(default_factory=dict)
    lease_results: dict[str, int] = field(default_factory=dict)
    seizure_attempts: dict[tuple[str, str], int] = field(default_factory=dict)
    last_pass_ts: float = 0.0
    discovered_nodes: int = 0

    def record_pass(self, ts: float, discovered_nodes: int) -> None:
        self.passes += 1
        self.last_pass_ts = ts
        self.discovered_nodes = discovered_nodes

    def record_role_outcome(self, role: str, outcome: RoleOutcome) -> None:
        key = (role, outcome.value)
        self.role_outcomes[key] = self.role_outcomes.get(key, 0) + 1

    def record_lease_result(self, result: str) -> None:
        self.lease_results[result] = self.lease_results.get(result, 0) + 1

    def record_seizure(self, role: str, success: bool) -> None:
        key = (role, "success" if success else "failed")
        self.seizure_attempts[key] = self.seizure_attempts.get(key, 0) + 1

    def to_prometheus_lines(self) -> list[str]:
        """Generate Prometheus text format lines."""
        lines: list[str] = [
            f"# HELP {METRIC_PASSES} Total orchestration passes",
            f"# TYPE {METRIC_PASSES} counter",
            f"{METRIC_PASSES} {self.passes}",
            f"# HELP {METRIC_ROLE_OUTCOME} Role evaluations by outcome",
            f"# TYPE {METRIC_ROLE_OUTCOME} counter",
        ]
        # Initialize all role/outcome pairs to 0 for visibility
        for role in ALL_ROLES:
            for outcome in RoleOutcome:
                count = self.role_outcomes.get((role.value, outcome.value), 0)
                lines.append(
                    f'{METRIC_ROLE_OUTCOME}{{{LABEL_ROLE}="{role.value}",'
                    f'{LABEL_OUTCOME}="{outcome.value}"}} {count}'
                )

        lines.extend(
            [
                f"# HELP {METRIC_LEASE_RESULT} Seizure lease acquisition results",
                f"# TYPE {METRIC_LEASE_RESULT} counter",
            ]
        )
        for result in _LEASE_RESULTS:
            count = self.lease_results.get(result, 0)
            lines.append(f'{METRIC_LEASE_RESULT}{{{LABEL_RESULT}="{result}"}} {count}')

        lines.extend(
            [
                f"# HELP {METRIC_SEIZURE_ATTEMPTS} Role seizure attempts by result",
                f"# TYPE {METRIC_SEIZURE_ATTEMPTS} counter",
            ]
        )
        for role in ALL_ROLES:
            for result in _SEIZURE_RESULTS:
                count = self.seizure_attempts.get((role.value, result), 0)
                lines.append(
                    f'{METRIC_SEIZURE_ATTEMPTS}{{{LABEL_ROLE}="{role.value}",'
                    f'{LABEL_RESULT}="{result}"}} {count}'
                )

        lines.extend(
            [
                f"# HELP {METRIC_LAST_PASS_TS} Unix time of the last completed pass",
                f"# TYPE {METRIC_LAST_PASS_TS} gauge",
                f"{METRIC_LAST_PASS_TS} {self.last_pass_ts:.0f}",
                f"# HELP {METRIC_DISCOVERED_NODES} Nodes known in the last pass",
                f"# TYPE {METRIC_DISCOVERED_NODES} gauge",
                f"{METRIC_DISCOVERED_NODES} {self.discovered_nodes}",
            ]
        )
        return lines

    def write_textfile(self, path: str) -> None:
        """Atomically write metrics for the node-exporter textfile collector.

        Raises:
            OSError: the file could not be written.
        """
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=target.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write("\n".join(self.to_prometheus_lines()) + "\n")
            os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, target)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def reset(self) -> None:
        """Reset all metrics."""
        self.passes = 0
        self.role_outcomes.clear()
        self.lease_results.clear()
        self.seizure_attempts.clear()
        self.last_pass_ts = 0.0
        self.discovered_nodes = 0


# Global singleton
_metrics: CoordinationMetrics | None = None


def get_coordination_metrics() -> CoordinationMetrics:
    """Get or create global coordination metrics."""
    global _metrics  # noqa: PLW0603
    if _metrics is None:
        _metrics = CoordinationMetrics()
    return _metrics


def reset_coordination_metrics() -> None:
    """Reset coordination metrics (for testing)."""
    global _metrics  # noqa: PLW0603
    _metrics = None
