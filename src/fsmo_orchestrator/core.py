"""Core types and enums for the FSMO orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class FsmoRole(Enum):
    """The five singleton FSMO roles.

    These values are STABLE: they appear in lock file names, the
    priority-record field order and metric labels shared with the
    rest of the fleet. DO NOT rename or reorder.
    """

    PDC = "PDC"
    RID = "RID"
    INFRASTRUCTURE = "INFRASTRUCTURE"
    SCHEMA = "SCHEMA"
    DOMAIN_NAMING = "DOMAIN_NAMING"

    @property
    def directory_label(self) -> str:
        """Label printed by ``samba-tool fsmo show`` for this role."""
        return _DIRECTORY_LABELS[self]

    @property
    def tool_arg(self) -> str:
        """Value for ``samba-tool fsmo seize|transfer --role=``."""
        return _TOOL_ARGS[self]

    @property
    def query_key(self) -> str:
        """Short key used in ``--query`` output (``INFRA_OWNER=...``)."""
        return _QUERY_KEYS[self]

    @property
    def services(self) -> tuple[str, ...]:
        """Dependent services driven by holding this role."""
        return _ROLE_SERVICES[self]

    @classmethod
    def parse(cls, value: str) -> FsmoRole:
        """Parse a role id case-insensitively (``pdc`` -> ``PDC``)."""
        key = value.strip().upper()
        try:
            return cls(key)
        except ValueError:
            valid = ", ".join(r.value for r in cls)
            msg = f"unknown FSMO role {value!r} (valid: {valid})"
            raise ValueError(msg) from None


_DIRECTORY_LABELS: dict[FsmoRole, str] = {
    FsmoRole.PDC: "PdcEmulationMasterRole",
    FsmoRole.RID: "RidAllocationMasterRole",
    FsmoRole.INFRASTRUCTURE: "InfrastructureMasterRole",
    FsmoRole.SCHEMA: "SchemaMasterRole",
    FsmoRole.DOMAIN_NAMING: "DomainNamingMasterRole",
}

_TOOL_ARGS: dict[FsmoRole, str] = {
    FsmoRole.PDC: "pdc",
    FsmoRole.RID: "rid",
    FsmoRole.INFRASTRUCTURE: "infrastructure",
    FsmoRole.SCHEMA: "schema",
    FsmoRole.DOMAIN_NAMING: "naming",
}

_QUERY_KEYS: dict[FsmoRole, str] = {
    FsmoRole.PDC: "PDC",
    FsmoRole.RID: "RID",
    FsmoRole.INFRASTRUCTURE: "INFRA",
    FsmoRole.SCHEMA: "SCHEMA",
    FsmoRole.DOMAIN_NAMING: "NAMING",
}

_ROLE_SERVICES: dict[FsmoRole, tuple[str, ...]] = {
    FsmoRole.PDC: ("chrony", "isc-dhcp-server", "samba-ad-dc"),
    FsmoRole.RID: ("samba-ad-dc",),
    FsmoRole.INFRASTRUCTURE: ("samba-ad-dc", "bind9"),
    FsmoRole.SCHEMA: ("samba-ad-dc",),
    FsmoRole.DOMAIN_NAMING: ("samba-ad-dc", "bind9"),
}

ALL_ROLES: tuple[FsmoRole, ...] = tuple(FsmoRole)


class RoleOutcome(Enum):
    """Result of evaluating one role during an orchestration pass.

    Used as metric labels; values are STABLE.
    """

    NO_ACTION = "no_action"  # Holder healthy, self-held, or unknown
    SKIPPED = "skipped"  # Auto-seizure disabled, cooling down, or role not enabled
    DEFERRED = "deferred"  # Another node is the better candidate
    DENIED = "denied"  # Seizure lease not acquired
    SEIZED = "seized"  # Role seized by this node
    SEIZE_FAILED = "seize_failed"  # Directory refused or errored on seize
    ERROR = "error"  # Unexpected failure evaluating this role only


def normalize_node_name(name: str) -> str:
    """Reduce a hostname, FQDN or computer account to its node identity.

    ``DC1.Example.Local.`` -> ``dc1``; ``DC2$`` -> ``dc2``.
    """
    short = name.strip().rstrip(".").split(".", 1)[0]
    return short.rstrip("$").lower()


@dataclass(frozen=True)
class Node:
    """A domain controller participating in coordination.

    Identity is the lower-cased short hostname; timestamps do not take
    part in equality so sets of nodes deduplicate by name.

    Attributes:
        name: Short hostname (lower-case)
        discovered_at: Unix time the node was seen by discovery this pass
        last_seen: Unix time from the node's priority record (0 = no record)
    """

    name: str
    discovered_at: float = field(default=0.0, compare=False)
    last_seen: float = field(default=0.0, compare=False)

    def __post_init__(self) -> None:
        normalized = normalize_node_name(self.name)
        if not normalized:
            msg = f"invalid node name: {self.name!r}"
            raise ValueError(msg)
        object.__setattr__(self, "name", normalized)
