"""Integration tests for multi-DC failover over one shared store.

Three orchestrators (dc1/dc2/dc3, priorities 10/20/30) share a store
directory and a directory service, the way SYSVOL and the AD database
are shared in a real domain. Only reachability and time are faked.

Scenarios:
- dc1 (holder) dies: dc2 takes the lease and seizes; dc3 defers, and
  any attempt by dc3 while dc2 holds the lease is denied
- dc3 cut off from dc2 still sees the lease and is denied
- both better candidates down: dc3 seizes
- second pass with nothing changed is a no-op on every node
"""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

from fsmo_orchestrator.config import CoordinatorConfig
from fsmo_orchestrator.coordination.seizure import Denied, DenyReason, SeizureCoordinator
from fsmo_orchestrator.core import ALL_ROLES, FsmoRole, RoleOutcome
from fsmo_orchestrator.net.dns import SrvTarget
from fsmo_orchestrator.orchestrator import Orchestrator
from fsmo_orchestrator.store.shared import HISTORY_FILE, SharedStore

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from fsmo_orchestrator.orchestrator import PassReport

NOW = 1_705_314_600.0
PRIORITIES = {"dc1": 10, "dc2": 20, "dc3": 30}


class FakeClock:
    def __init__(self) -> None:
        self._time = NOW

    def time(self) -> float:
        return self._time

    def sleep(self, seconds: float) -> None:
        self._time += seconds


class SharedDirectory:
    """One directory database seen by every DC; ``on_seize`` runs mid-seizure."""

    def __init__(self) -> None:
        self.holders: dict[FsmoRole, str] = dict.fromkeys(ALL_ROLES, "dc1")
        self.seize_calls: list[tuple[FsmoRole, str]] = []
        self.on_seize: Callable[[FsmoRole, str], None] | None = None

    def query(self) -> dict[FsmoRole, str]:
        return dict(self.holders)

    def seize(self, role: FsmoRole, node: str) -> None:
        self.seize_calls.append((role, node))
        if self.on_seize is not None:
            self.on_seize(role, node)
        self.holders[role] = node

    def transfer(self, role: FsmoRole) -> None:
        pass

    def list_domain_controllers(self) -> list[str]:
        return [f"{name.upper()}$" for name in PRIORITIES]


class Network:
    """Reachability as seen from one node."""

    def __init__(self, down: set[str]) -> None:
        self.down = down

    def probe(self, node: str) -> bool:
        return node not in self.down


class StaticSrv:
    def resolve(self, domain: str) -> list[SrvTarget]:
        return [SrvTarget(f"{name}.{domain}", 389, 0, 100) for name in PRIORITIES]


class RecordingNotifier:
    def __init__(self) -> None:
        self.calls = 0

    def notify(self, reason: str = "") -> bool:
        self.calls += 1
        return True


class Cluster:
    """Three orchestrators over a shared store and directory."""

    def __init__(self, store_dir: Path, roles: tuple[FsmoRole, ...] = ALL_ROLES) -> None:
        self.store_dir = store_dir
        self.clock = FakeClock()
        self.directory = SharedDirectory()
        self.networks = {name: Network({"dc1"}) for name in PRIORITIES}
        self.notifiers = {name: RecordingNotifier() for name in PRIORITIES}
        self.nodes = {name: self._build(name, roles) for name in PRIORITIES}

    def _build(self, name: str, roles: tuple[FsmoRole, ...]) -> Orchestrator:
        priority = PRIORITIES[name]
        config = CoordinatorConfig(
            domain="example.local",
            node_name=name,
            store_dir=str(self.store_dir),
            general_priority=priority,
            role_priorities=dict.fromkeys(ALL_ROLES, priority),
            auto_seize_roles=roles,
            verify_delay_ms=0,
            notify_command=(),
        )
        return Orchestrator.from_config(
            config,
            directory=self.directory,
            prober=self.networks[name],
            resolver=StaticSrv(),
            notifier=self.notifiers[name],  # type: ignore[arg-type]
            clock=self.clock.time,
            sleep=self.clock.sleep,
            rng=random.Random(PRIORITIES[name]),
        )

    def init_all(self) -> None:
        for orch in self.nodes.values():
            orch.init()

    def coordinator(self, name: str) -> SeizureCoordinator:
        return SeizureCoordinator(
            SharedStore(self.store_dir),
            name,
            verify_delay_s=0.0,
            verify_jitter_s=0.0,
            clock=self.clock.time,
            sleep=self.clock.sleep,
        )


def test_priority_20_seizes_and_priority_30_is_denied(store_dir: Path) -> None:
    cluster = Cluster(store_dir)
    cluster.init_all()

    denials: list[Denied] = []

    def dc3_attempts_while_dc2_holds_lease(role: FsmoRole, node: str) -> None:
        result = cluster.coordinator("dc3").try_acquire(role)
        assert isinstance(result, Denied)
        denials.append(result)

    cluster.directory.on_seize = dc3_attempts_while_dc2_holds_lease

    dc3_report = cluster.nodes["dc3"].run_pass()
    assert {r.outcome for r in dc3_report.roles} == {RoleOutcome.DEFERRED}
    assert {r.target for r in dc3_report.roles} == {"dc2"}

    dc2_report = cluster.nodes["dc2"].run_pass()
    assert dc2_report.seized == list(ALL_ROLES)
    assert cluster.directory.seize_calls == [(role, "dc2") for role in ALL_ROLES]
    assert cluster.directory.holders == dict.fromkeys(ALL_ROLES, "dc2")
    assert cluster.notifiers["dc2"].calls == 1
    assert cluster.notifiers["dc3"].calls == 0

    assert [d.reason for d in denials] == [DenyReason.HELD] * len(ALL_ROLES)
    assert {d.holder for d in denials} == {"dc2"}
    assert SharedStore(store_dir).list_names("*.lock") == []


def test_partitioned_lower_priority_node_sees_lease(store_dir: Path) -> None:
    cluster = Cluster(store_dir, roles=(FsmoRole.PDC,))
    cluster.init_all()
    # dc3 cannot reach dc2 either, so it believes it is the winner
    cluster.networks["dc3"].down = {"dc1", "dc2"}

    dc3_reports: list[PassReport] = []

    def dc3_runs_during_seizure(role: FsmoRole, node: str) -> None:
        cluster.directory.on_seize = None
        dc3_reports.append(cluster.nodes["dc3"].run_pass())

    cluster.directory.on_seize = dc3_runs_during_seizure
    dc2_report = cluster.nodes["dc2"].run_pass()

    assert dc2_report.outcome(FsmoRole.PDC) is RoleOutcome.SEIZED
    pdc = next(r for r in dc3_reports[0].roles if r.role is FsmoRole.PDC)
    assert pdc.outcome is RoleOutcome.DENIED
    assert pdc.reason == "held"
    assert cluster.directory.seize_calls == [(FsmoRole.PDC, "dc2")]
    assert cluster.directory.holders[FsmoRole.PDC] == "dc2"


def test_lowest_priority_node_seizes_when_others_down(store_dir: Path) -> None:
    cluster = Cluster(store_dir)
    cluster.init_all()
    for network in cluster.networks.values():
        network.down = {"dc1", "dc2"}

    report = cluster.nodes["dc3"].run_pass()
    assert report.seized == list(ALL_ROLES)
    history = SharedStore(store_dir).read(HISTORY_FILE) or ""
    assert history.count("[dc3] SEIZURE_ATTEMPT") == len(ALL_ROLES)


def test_second_pass_is_idempotent(store_dir: Path) -> None:
    cluster = Cluster(store_dir)
    cluster.init_all()
    for name in ("dc2", "dc3"):
        cluster.nodes[name].run_pass()
    seize_calls = list(cluster.directory.seize_calls)

    for name in ("dc2", "dc3"):
        report = cluster.nodes[name].run_pass()
        assert {r.outcome for r in report.roles} == {RoleOutcome.NO_ACTION}
        assert report.seized == []

    assert cluster.directory.seize_calls == seize_calls
    assert SharedStore(store_dir).list_names("*.lock") == []


def test_healthy_cluster_takes_no_action(store_dir: Path) -> None:
    cluster = Cluster(store_dir)
    for network in cluster.networks.values():
        network.down = set()
    for orch in cluster.nodes.values():
        report = orch.run_pass()
        assert {r.outcome for r in report.roles} == {RoleOutcome.NO_ACTION}
    assert cluster.directory.seize_calls == []
