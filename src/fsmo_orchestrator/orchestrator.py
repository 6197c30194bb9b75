"""One orchestration pass per node.

A pass is a level-triggered batch job run by a timer (every few
minutes). It holds no state between runs except the node-local state
file; everything else is re-derived from discovery, the shared store
and the directory service:

1. Ensure the store layout exists.
2. Discover nodes, publish this node's priority record, GC stale ones.
3. Query current role holders (failure aborts the pass).
4. For each role, independently: decide, and if this node is the
   winner, take the seizure lease, seize, record and release.
5. If anything was seized, trigger dependent-service reconciliation.

A failure evaluating one role never stops the other roles.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from fsmo_orchestrator.config import CoordinatorConfig
from fsmo_orchestrator.coordination.decision import ClusterView, FailoverDecisionEngine
from fsmo_orchestrator.coordination.discovery import NodeDiscovery, SrvLookup
from fsmo_orchestrator.coordination.metrics import CoordinationMetrics, get_coordination_metrics
from fsmo_orchestrator.coordination.priority import PriorityRegistry
from fsmo_orchestrator.coordination.seizure import Denied, SeizureCoordinator
from fsmo_orchestrator.coordination.state import LocalStateStore
from fsmo_orchestrator.core import ALL_ROLES, FsmoRole, Node, RoleOutcome
from fsmo_orchestrator.directory.samba import DirectoryService, SambaDirectoryClient
from fsmo_orchestrator.errors import DirectoryError, StoreError
from fsmo_orchestrator.net.dns import SrvResolver
from fsmo_orchestrator.net.probe import Prober, ReachabilityProber
from fsmo_orchestrator.services.notifier import ServiceNotifier
from fsmo_orchestrator.store.records import PriorityRecord, SeizureLock, format_history_line
from fsmo_orchestrator.store.shared import HISTORY_FILE, SharedStore

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoleReport:
    """What a pass did with one role."""

    role: FsmoRole
    outcome: RoleOutcome
    holder: str | None
    reason: str
    target: str | None = None


@dataclass
class PassReport:
    """Result of ``Orchestrator.run_pass``."""

    node: str
    started_at: float
    nodes: tuple[str, ...]
    holders: dict[FsmoRole, str]
    roles: list[RoleReport] = field(default_factory=list)
    notified: bool = False
    discovery_errors: list[str] = field(default_factory=list)

    def outcome(self, role: FsmoRole) -> RoleOutcome:
        for report in self.roles:
            if report.role is role:
                return report.outcome
        msg = f"role {role.value} not evaluated"
        raise KeyError(msg)

    @property
    def seized(self) -> list[FsmoRole]:
        return [r.role for r in self.roles if r.outcome is RoleOutcome.SEIZED]


@dataclass(frozen=True)
class NodeStatus:
    """One node's row in a status report."""

    name: str
    reachable: bool
    record: PriorityRecord | None
    held_roles: tuple[FsmoRole, ...]


@dataclass
class StatusReport:
    """Read-only view of the cluster (``--status`` / ``--multi-dc-status``)."""

    node: str
    holders: dict[FsmoRole, str]
    nodes: list[NodeStatus]
    locks: list[SeizureLock]
    default_priority: int

    @property
    def held_roles(self) -> list[FsmoRole]:
        return [role for role in ALL_ROLES if self.holders.get(role) == self.node]


class Orchestrator:
    """Runs orchestration passes for the local node."""

    def __init__(
        self,
        config: CoordinatorConfig,
        *,
        store: SharedStore,
        registry: PriorityRegistry,
        discovery: NodeDiscovery,
        directory: DirectoryService,
        coordinator: SeizureCoordinator,
        engine: FailoverDecisionEngine,
        state: LocalStateStore,
        notifier: ServiceNotifier,
        metrics: CoordinationMetrics | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._node = config.node_name
        self._store = store
        self._registry = registry
        self._discovery = discovery
        self._directory = directory
        self._coordinator = coordinator
        self._engine = engine
        self._state = state
        self._notifier = notifier
        self._metrics = metrics or get_coordination_metrics()
        self._clock = clock

    @classmethod
    def from_config(
        cls,
        config: CoordinatorConfig,
        *,
        directory: DirectoryService | None = None,
        prober: Prober | None = None,
        resolver: SrvLookup | None = None,
        notifier: ServiceNotifier | None = None,
        metrics: CoordinationMetrics | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> Orchestrator:
        """Wire the production components; any of them can be replaced."""
        store = SharedStore(config.store_dir)
        state = LocalStateStore(config.state_path)
        if directory is None:
            directory = SambaDirectoryClient(
                config.node_name,
                samba_tool=config.samba_tool,
                use_sudo=config.use_sudo,
                timeout_s=config.command_timeout_s,
            )
        if prober is None:
            prober = ReachabilityProber(
                timeout_s=config.probe_timeout_s,
                tcp_port=config.probe_tcp_port,
                udp_port=config.probe_udp_port,
            )
        if resolver is None:
            resolver = SrvResolver(timeout_s=config.dns_timeout_s)
        if notifier is None:
            notifier = ServiceNotifier(config.notify_command, timeout_s=config.command_timeout_s)
        return cls(
            config,
            store=store,
            registry=PriorityRegistry(
                store, config.node_name, default_priority=config.default_priority, clock=clock
            ),
            discovery=NodeDiscovery(
                config.domain,
                config.node_name,
                resolver=resolver,
                directory=directory,
                clock=clock,
            ),
            directory=directory,
            coordinator=SeizureCoordinator(
                store,
                config.node_name,
                lock_timeout_s=config.lock_timeout_s,
                verify_delay_s=config.verify_delay_ms / 1000.0,
                verify_jitter_s=config.verify_delay_ms / 1000.0,
                backoff_max_s=config.backoff_max_s,
                state=state,
                clock=clock,
                sleep=sleep,
                rng=rng,
            ),
            engine=FailoverDecisionEngine(
                prober, grace_period_s=config.grace_period_s, sleep=sleep
            ),
            state=state,
            notifier=notifier,
            metrics=metrics,
            clock=clock,
        )

    @property
    def node(self) -> str:
        return self._node

    # Setup

    def init(self) -> PriorityRecord:
        """Create the store layout and this node's priority record."""
        self._store.ensure_layout()
        record = self._registry.publish(
            self._config.general_priority, self._config.role_priorities
        )
        logger.info(
            "Initialized FSMO coordination store",
            extra={"store_dir": str(self._store.root), "node": self._node},
        )
        return record

    # Pass

    def refresh(self, *, publish: bool = True) -> ClusterView:
        """Discover nodes and (unless ``publish`` is False) refresh the registry.

        Store failures are logged; the pass continues with whatever
        records could be read.
        """
        discovered = self._discovery.discover()
        names = {n.name for n in discovered}

        records: dict[str, PriorityRecord] = {}
        try:
            if publish:
                self._registry.publish(
                    self._config.general_priority, self._config.role_priorities
                )
                self._registry.gc(self._config.stale_after_s)
            records = {r.node: r for r in self._registry.read_all()}
        except StoreError as e:
            logger.error("Priority registry unavailable: %s", e)

        names |= set(records)
        names.add(self._node)
        return ClusterView(
            self_node=self._node,
            nodes=frozenset(names),
            records=records,
            default_priority=self._config.default_priority,
        )

    def known_nodes(self, view: ClusterView) -> list[Node]:
        """Nodes of a view with ``last_seen`` filled from their records."""
        now = self._clock()
        nodes: list[Node] = []
        for name in sorted(view.nodes):
            record = view.records.get(name)
            last_seen = record.last_seen if record and record.last_seen else 0.0
            nodes.append(Node(name, discovered_at=now, last_seen=last_seen))
        return nodes

    def run_pass(self, *, notify: bool = True) -> PassReport:
        """Run one full orchestration pass.

        Raises:
            StoreError: the store directory could not be created.
            DirectoryError: current role holders could not be queried.
        """
        started = self._clock()
        self._engine.begin_pass()
        self._store.ensure_layout()
        view = self.refresh()
        holders = self._directory.query()

        report = PassReport(
            node=self._node,
            started_at=started,
            nodes=tuple(sorted(view.nodes)),
            holders=dict(holders),
            discovery_errors=[str(e) for e in self._discovery.errors],
        )
        logger.info(
            "Orchestration pass started",
            extra={
                "node": self._node,
                "nodes": report.nodes,
                "holders": {r.value: h for r, h in holders.items()},
            },
        )

        # Cooldown is evaluated once per pass, not per role
        cooldown = self._state.cooldown_remaining(started, self._config.seizure_cooldown_s)
        for role in ALL_ROLES:
            try:
                role_report = self._evaluate_role(role, holders.get(role), view, cooldown)
            except Exception as e:
                logger.exception("Unexpected error evaluating %s", role.value)
                role_report = RoleReport(role, RoleOutcome.ERROR, holders.get(role), str(e))
            self._metrics.record_role_outcome(role.value, role_report.outcome)
            report.roles.append(role_report)

        if report.seized and notify:
            report.notified = self._notifier.notify(
                "seized " + ",".join(r.value for r in report.seized)
            )

        now = self._clock()
        self._state.save(now)
        self._metrics.record_pass(now, len(view.nodes))
        self._write_metrics()
        logger.info(
            "Orchestration pass complete",
            extra={
                "node": self._node,
                "outcomes": {r.role.value: r.outcome.value for r in report.roles},
                "duration_s": round(now - started, 3),
            },
        )
        return report

    def _evaluate_role(
        self, role: FsmoRole, holder: str | None, view: ClusterView, cooldown: float
    ) -> RoleReport:
        if role not in self._config.auto_seize_roles:
            return RoleReport(role, RoleOutcome.SKIPPED, holder, "role_not_enabled")

        decision = self._engine.decide(role, holder, view)
        if not decision.is_seize:
            return RoleReport(role, RoleOutcome.NO_ACTION, holder, decision.reason.value)

        if decision.target != self._node:
            logger.info(
                "Deferring %s to %s",
                role.value,
                decision.target,
                extra={"role": role.value, "target": decision.target},
            )
            return RoleReport(
                role, RoleOutcome.DEFERRED, holder, "better_candidate", decision.target
            )

        if not self._config.auto_seize_enabled:
            logger.warning(
                "Would seize %s but automatic seizure is disabled",
                role.value,
                extra={"role": role.value, "holder": holder},
            )
            return RoleReport(role, RoleOutcome.SKIPPED, holder, "auto_seize_disabled", self._node)

        if cooldown > 0:
            logger.info(
                "Seizure cooldown active (%.0fs left), skipping %s",
                cooldown,
                role.value,
                extra={"role": role.value},
            )
            return RoleReport(role, RoleOutcome.SKIPPED, holder, "cooldown", self._node)

        lease = self._coordinator.try_acquire(role)
        if isinstance(lease, Denied):
            self._metrics.record_lease_result(lease.reason.value)
            return RoleReport(role, RoleOutcome.DENIED, holder, lease.reason.value, self._node)
        self._metrics.record_lease_result("acquired")

        self._state.record_seizure_attempt(self._clock())
        success = False
        try:
            self._directory.seize(role, self._node)
            success = True
        except DirectoryError as e:
            logger.error(
                "Seizure of %s failed: %s", role.value, e, extra={"role": role.value}
            )
        finally:
            self._coordinator.release(lease)

        self._metrics.record_seizure(role.value, success)
        self._record_history(role, success)
        if success:
            logger.warning(
                "Seized %s from unreachable holder %s",
                role.value,
                holder,
                extra={"role": role.value, "holder": holder},
            )
            return RoleReport(role, RoleOutcome.SEIZED, holder, "seized", self._node)
        return RoleReport(role, RoleOutcome.SEIZE_FAILED, holder, "seize_failed", self._node)

    def _record_history(self, role: FsmoRole, success: bool) -> None:
        line = format_history_line(self._node, role, success, self._clock())
        try:
            self._store.append_line(HISTORY_FILE, line)
        except StoreError as e:
            logger.error("Could not record seizure history: %s", e)

    def _write_metrics(self) -> None:
        path = self._config.metrics_textfile
        if not path:
            return
        try:
            self._metrics.write_textfile(path)
        except OSError as e:
            logger.error("Failed to write metrics textfile", extra={"path": path, "error": str(e)})

    # Notification only

    def notify_services(self) -> bool:
        return self._notifier.notify("requested")

    # Operator actions

    def transfer_role(self, role: FsmoRole) -> str:
        """Gracefully move ``role`` onto this DC; the current holder must be online.

        Returns:
            The holder reported by the directory after the transfer.

        Raises:
            DirectoryError: transfer or follow-up query failed.
        """
        logger.info(
            "Transferring %s to %s", role.value, self._node, extra={"role": role.value}
        )
        self._directory.transfer(role)
        return self._directory.query().get(role, "unknown")

    # Read-only reports

    def query_holders(self) -> dict[FsmoRole, str]:
        """Current role holders from the directory service."""
        return self._directory.query()

    def status(self, *, probe: bool = True) -> StatusReport:
        """Read-only cluster status.

        Raises:
            DirectoryError: role holders could not be queried.
        """
        self._engine.begin_pass()
        view = self.refresh(publish=False)
        holders = self._directory.query()
        nodes: list[NodeStatus] = []
        for node in self.known_nodes(view):
            reachable = self._engine.is_reachable(node.name, view) if probe else True
            nodes.append(
                NodeStatus(
                    name=node.name,
                    reachable=reachable,
                    record=view.records.get(node.name),
                    held_roles=tuple(r for r in ALL_ROLES if holders.get(r) == node.name),
                )
            )
        try:
            locks = self._coordinator.active_locks()
        except StoreError as e:
            logger.error("Could not read seizure locks: %s", e)
            locks = []
        return StatusReport(
            node=self._node,
            holders=dict(holders),
            nodes=nodes,
            locks=locks,
            default_priority=self._config.default_priority,
        )
