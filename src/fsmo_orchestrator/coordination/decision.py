"""Failover decision engine.

Pure decision logic over a frozen ``ClusterView`` snapshot plus a
prober. The engine never touches the shared store or the directory
service; the orchestrator acts on its ``Decision``.

Algorithm per role:
1. Holder unknown or self -> no action.
2. Holder reachable -> no action.
3. Wait the grace period, re-probe once; recovered -> no action.
4. Candidates = discovered nodes minus holder, filtered to reachable.
5. Winner = lowest (role priority, general priority, name).

Within one pass the engine remembers probe results, so a dead holder of
several roles costs one grace wait, not one per role. Call
``begin_pass`` at the start of every pass.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from fsmo_orchestrator.core import FsmoRole, normalize_node_name

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from fsmo_orchestrator.net.probe import Prober
    from fsmo_orchestrator.store.records import PriorityRecord

logger = logging.getLogger(__name__)


class DecisionAction(Enum):
    NO_ACTION = "no_action"
    SEIZE = "seize"


class DecisionReason(Enum):
    """Why the engine decided what it did. Values are STABLE."""

    HOLDER_IS_SELF = "holder_is_self"
    HOLDER_UNKNOWN = "holder_unknown"
    HOLDER_REACHABLE = "holder_reachable"
    HOLDER_RECOVERED = "holder_recovered"  # Came back within the grace period
    NO_CANDIDATES = "no_candidates"
    CANDIDATE_SELECTED = "candidate_selected"


@dataclass(frozen=True)
class ClusterView:
    """Snapshot of what this node knows at the start of a pass.

    Attributes:
        self_node: This node's name
        nodes: Every known node (discovery + registry + self)
        records: Node -> priority record
        default_priority: Priority for nodes/roles without a record
    """

    self_node: str
    nodes: frozenset[str]
    records: Mapping[str, PriorityRecord] = field(default_factory=dict)
    default_priority: int = 50

    def role_priority(self, node: str, role: FsmoRole) -> int:
        record = self.records.get(node)
        if record is None:
            return self.default_priority
        return record.role_priority(role, self.default_priority)

    def general_priority(self, node: str) -> int:
        record = self.records.get(node)
        return self.default_priority if record is None else record.general

    def rank_key(self, node: str, role: FsmoRole) -> tuple[int, int, str]:
        return (self.role_priority(node, role), self.general_priority(node), node)


@dataclass(frozen=True)
class Decision:
    """Outcome of ``FailoverDecisionEngine.decide``.

    ``target`` is the node that should seize, set only for SEIZE.
    ``candidates`` lists the reachable candidates in rank order.
    """

    role: FsmoRole
    action: DecisionAction
    reason: DecisionReason
    holder: str | None = None
    target: str | None = None
    candidates: tuple[str, ...] = ()

    @property
    def is_seize(self) -> bool:
        return self.action is DecisionAction.SEIZE


class FailoverDecisionEngine:
    """Decides whether, and to whom, a role should fail over."""

    def __init__(
        self,
        prober: Prober,
        *,
        grace_period_s: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._prober = prober
        self._grace_period_s = grace_period_s
        self._sleep = sleep
        self._reachable: dict[str, bool] = {}
        self._confirmed_down: set[str] = set()

    def begin_pass(self) -> None:
        """Forget probe results from the previous pass."""
        self._reachable.clear()
        self._confirmed_down.clear()

    @property
    def confirmed_down(self) -> frozenset[str]:
        return frozenset(self._confirmed_down)

    def is_reachable(self, node: str, view: ClusterView) -> bool:
        """Cached reachability; the local node is always reachable."""
        if node == view.self_node:
            return True
        if node not in self._reachable:
            self._reachable[node] = self._prober.probe(node)
        return self._reachable[node]

    def decide(self, role: FsmoRole, current_holder: str | None, view: ClusterView) -> Decision:
        if current_holder is None:
            return Decision(role, DecisionAction.NO_ACTION, DecisionReason.HOLDER_UNKNOWN)

        holder = normalize_node_name(current_holder)
        if holder == view.self_node:
            return Decision(role, DecisionAction.NO_ACTION, DecisionReason.HOLDER_IS_SELF, holder)

        if holder not in self._confirmed_down:
            if self.is_reachable(holder, view):
                return Decision(
                    role, DecisionAction.NO_ACTION, DecisionReason.HOLDER_REACHABLE, holder
                )
            logger.warning(
                "%s holder %s unreachable, re-checking in %gs",
                role.value,
                holder,
                self._grace_period_s,
                extra={"role": role.value, "holder": holder},
            )
            self._sleep(self._grace_period_s)
            if self._prober.probe(holder):
                self._reachable[holder] = True
                logger.info(
                    "%s holder %s recovered within grace period",
                    role.value,
                    holder,
                    extra={"role": role.value, "holder": holder},
                )
                return Decision(
                    role, DecisionAction.NO_ACTION, DecisionReason.HOLDER_RECOVERED, holder
                )
            self._reachable[holder] = False
            self._confirmed_down.add(holder)
            logger.warning(
                "%s holder %s confirmed unreachable",
                role.value,
                holder,
                extra={"role": role.value, "holder": holder},
            )

        candidates = sorted(
            (n for n in view.nodes if n != holder and self.is_reachable(n, view)),
            key=lambda n: view.rank_key(n, role),
        )
        if not candidates:
            logger.error(
                "No reachable candidate for %s",
                role.value,
                extra={"role": role.value, "holder": holder},
            )
            return Decision(role, DecisionAction.NO_ACTION, DecisionReason.NO_CANDIDATES, holder)

        winner = candidates[0]
        logger.info(
            "Selected %s for %s (priority %d)",
            winner,
            role.value,
            view.role_priority(winner, role),
            extra={"role": role.value, "holder": holder, "candidates": candidates},
        )
        return Decision(
            role,
            DecisionAction.SEIZE,
            DecisionReason.CANDIDATE_SELECTED,
            holder,
            target=winner,
            candidates=tuple(candidates),
        )
