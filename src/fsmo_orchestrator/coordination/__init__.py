"""Role coordination: discovery, priorities, leases and failover decisions."""

from fsmo_orchestrator.coordination.decision import (
    ClusterView,
    Decision,
    DecisionAction,
    DecisionReason,
    FailoverDecisionEngine,
)
from fsmo_orchestrator.coordination.discovery import NodeDiscovery
from fsmo_orchestrator.coordination.priority import PriorityRegistry
from fsmo_orchestrator.coordination.seizure import Denied, DenyReason, Lease, SeizureCoordinator
from fsmo_orchestrator.coordination.state import LocalState, LocalStateStore

__all__ = [
    "ClusterView",
    "Decision",
    "DecisionAction",
    "DecisionReason",
    "Denied",
    "DenyReason",
    "FailoverDecisionEngine",
    "Lease",
    "LocalState",
    "LocalStateStore",
    "NodeDiscovery",
    "PriorityRegistry",
    "SeizureCoordinator",
]
