"""Configuration for the FSMO orchestrator.

All settings come from ``FSMO_*`` environment variables (see
``CoordinatorConfig.from_env``); nothing in the coordination algorithm
is hardcoded. The systemd unit that runs the timer is the usual place
to set them.
"""

from __future__ import annotations

import logging
import os
import shlex
import socket
from dataclasses import dataclass, field
from pathlib import Path

from fsmo_orchestrator.core import ALL_ROLES, FsmoRole, normalize_node_name
from fsmo_orchestrator.env_parse import (
    ConfigError,
    parse_bool,
    parse_csv,
    parse_float,
    parse_int,
    parse_str,
)

logger = logging.getLogger(__name__)

DEFAULT_SYSVOL_ROOT = "/var/lib/samba/sysvol"
DEFAULT_STATE_PATH = "/var/lib/fsmo-orchestrator/state.json"
DEFAULT_NOTIFY_COMMAND = "domain-service-orchestrator.sh --orchestrate"
STORE_SUBDIR = "fsmo-configs"

# Priority scale: 0-100, lower = preferred
DEFAULT_PRIORITY = 50
MIN_PRIORITY = 0
MAX_PRIORITY = 100


def detect_domain(sysvol_root: str) -> str | None:
    """Find the AD domain: host DNS domain first, then the SYSVOL layout."""
    fqdn = socket.getfqdn()
    if "." in fqdn:
        domain = fqdn.split(".", 1)[1].strip(".").lower()
        if domain and domain != "localdomain":
            logger.debug("Domain from host FQDN", extra={"domain": domain})
            return domain
    root = Path(sysvol_root)
    if root.is_dir():
        for entry in sorted(root.iterdir()):
            if entry.is_dir() and "." in entry.name:
                logger.debug("Domain from SYSVOL layout", extra={"domain": entry.name})
                return entry.name.lower()
    return None


@dataclass
class CoordinatorConfig:
    """Settings for one node's orchestration passes.

    Attributes:
        domain: AD DNS domain (env: FSMO_DOMAIN)
        node_name: This node's short name (env: FSMO_NODE_NAME, default: hostname -s)
        store_dir: Shared store directory (env: FSMO_STORE_DIR,
            default: <sysvol_root>/<domain>/fsmo-configs)
        lock_timeout_s: Seizure lease expiry (env: FSMO_LOCK_TIMEOUT_S, default: 300)
        grace_period_s: Wait before re-probing a dead holder (env: FSMO_GRACE_PERIOD_S, default: 30)
        stale_after_s: Priority record GC age (env: FSMO_STALE_AFTER_S, default: 86400)
        probe_timeout_s: Per-signal probe timeout (env: FSMO_PROBE_TIMEOUT_S, default: 2)
        probe_tcp_port: Directory data port (env: FSMO_PROBE_TCP_PORT, default: 389)
        probe_udp_port: Time service port (env: FSMO_PROBE_UDP_PORT, default: 123)
        default_priority: Priority for unconfigured nodes/roles (env: FSMO_DEFAULT_PRIORITY)
        general_priority: This node's general priority (env: FSMO_PRIORITY_GENERAL)
        role_priorities: This node's per-role priorities (env: FSMO_PRIORITY_<ROLE>)
        auto_seize_enabled: Master switch for seizure (env: FSMO_AUTO_SEIZE_ENABLED)
        auto_seize_roles: Roles eligible for automatic seizure (env: FSMO_AUTO_SEIZE_ROLES)
        seizure_cooldown_s: Min interval between seizure attempts (env: FSMO_SEIZURE_COOLDOWN_S)
        verify_delay_ms: Settle delay before lease read-back (env: FSMO_VERIFY_DELAY_MS)
        backoff_max_s: Upper bound of lease-conflict backoff jitter (env: FSMO_BACKOFF_MAX_S)
        state_path: Node-local JSON state (env: FSMO_STATE_PATH; empty = in-memory)
        notify_command: Dependent-service reconcile command (env: FSMO_NOTIFY_COMMAND)
        samba_tool: samba-tool executable (env: FSMO_SAMBA_TOOL)
        use_sudo: Prefix samba-tool with sudo (env: FSMO_USE_SUDO)
        command_timeout_s: samba-tool/notify timeout (env: FSMO_COMMAND_TIMEOUT_S, default: 60)
        dns_timeout_s: SRV lookup timeout (env: FSMO_DNS_TIMEOUT_S, default: 5)
        metrics_textfile: Prometheus textfile output (env: FSMO_METRICS_TEXTFILE)
    """

    domain: str
    node_name: str
    store_dir: str
    lock_timeout_s: int = 300
    grace_period_s: float = 30.0
    stale_after_s: int = 86_400
    probe_timeout_s: float = 2.0
    probe_tcp_port: int = 389
    probe_udp_port: int = 123
    default_priority: int = DEFAULT_PRIORITY
    general_priority: int | None = None
    role_priorities: dict[FsmoRole, int] = field(default_factory=dict)
    auto_seize_enabled: bool = True
    auto_seize_roles: tuple[FsmoRole, ...] = ALL_ROLES
    seizure_cooldown_s: int = 0
    verify_delay_ms: int = 500
    backoff_max_s: float = 120.0
    state_path: str | None = None
    notify_command: tuple[str, ...] = tuple(DEFAULT_NOTIFY_COMMAND.split())
    samba_tool: str = "samba-tool"
    use_sudo: bool = False
    command_timeout_s: float = 60.0
    dns_timeout_s: float = 5.0
    metrics_textfile: str | None = None

    def __post_init__(self) -> None:
        """Validate configuration."""
        self.node_name = normalize_node_name(self.node_name)
        if not self.node_name:
            raise ConfigError("node_name must not be empty")
        if not self.domain:
            raise ConfigError("domain must not be empty")
        if self.lock_timeout_s <= 0:
            raise ConfigError(f"lock_timeout_s ({self.lock_timeout_s}) must be > 0")
        if self.grace_period_s < 0:
            raise ConfigError(f"grace_period_s ({self.grace_period_s}) must be >= 0")
        if self.stale_after_s <= self.lock_timeout_s:
            msg = (
                f"stale_after_s ({self.stale_after_s}) must be > "
                f"lock_timeout_s ({self.lock_timeout_s})"
            )
            raise ConfigError(msg)
        if self.probe_timeout_s <= 0:
            raise ConfigError(f"probe_timeout_s ({self.probe_timeout_s}) must be > 0")
        for name, value in self._priority_items():
            if not MIN_PRIORITY <= value <= MAX_PRIORITY:
                msg = f"{name} priority {value} outside {MIN_PRIORITY}-{MAX_PRIORITY}"
                raise ConfigError(msg)

    def _priority_items(self) -> list[tuple[str, int]]:
        items = [("default", self.default_priority)]
        if self.general_priority is not None:
            items.append(("general", self.general_priority))
        items.extend((role.value, value) for role, value in self.role_priorities.items())
        return items

    @classmethod
    def from_env(cls) -> CoordinatorConfig:
        """Build configuration from ``FSMO_*`` environment variables.

        Raises:
            ConfigError: invalid value, or the domain cannot be determined.
        """
        sysvol_root = parse_str("FSMO_SYSVOL_ROOT", DEFAULT_SYSVOL_ROOT) or DEFAULT_SYSVOL_ROOT
        domain = parse_str("FSMO_DOMAIN") or detect_domain(sysvol_root)
        if not domain:
            raise ConfigError("cannot determine AD domain; set FSMO_DOMAIN")
        domain = domain.lower()

        node_name = parse_str("FSMO_NODE_NAME") or socket.gethostname()
        store_dir = parse_str("FSMO_STORE_DIR") or os.path.join(sysvol_root, domain, STORE_SUBDIR)

        role_priorities: dict[FsmoRole, int] = {}
        for role in FsmoRole:
            value = parse_int(
                f"FSMO_PRIORITY_{role.value}", min_value=MIN_PRIORITY, max_value=MAX_PRIORITY
            )
            if value is not None:
                role_priorities[role] = value

        roles_raw = parse_csv("FSMO_AUTO_SEIZE_ROLES")
        try:
            auto_seize_roles = (
                tuple(FsmoRole.parse(r) for r in roles_raw) if roles_raw else ALL_ROLES
            )
        except ValueError as e:
            raise ConfigError(f"FSMO_AUTO_SEIZE_ROLES: {e}") from None

        notify_raw = os.environ.get("FSMO_NOTIFY_COMMAND")
        try:
            notify_command = tuple(
                shlex.split(DEFAULT_NOTIFY_COMMAND if notify_raw is None else notify_raw)
            )
        except ValueError as e:
            raise ConfigError(f"FSMO_NOTIFY_COMMAND: {e}") from None

        state_raw = os.environ.get("FSMO_STATE_PATH")
        state_path = DEFAULT_STATE_PATH if state_raw is None else (state_raw.strip() or None)

        return cls(
            domain=domain,
            node_name=node_name,
            store_dir=store_dir,
            lock_timeout_s=_req_int("FSMO_LOCK_TIMEOUT_S", 300, min_value=1),
            grace_period_s=_req_float("FSMO_GRACE_PERIOD_S", 30.0, min_value=0.0),
            stale_after_s=_req_int("FSMO_STALE_AFTER_S", 86_400, min_value=1),
            probe_timeout_s=_req_float("FSMO_PROBE_TIMEOUT_S", 2.0, min_value=0.1),
            probe_tcp_port=_req_int("FSMO_PROBE_TCP_PORT", 389, min_value=1, max_value=65535),
            probe_udp_port=_req_int("FSMO_PROBE_UDP_PORT", 123, min_value=1, max_value=65535),
            default_priority=_req_int(
                "FSMO_DEFAULT_PRIORITY",
                DEFAULT_PRIORITY,
                min_value=MIN_PRIORITY,
                max_value=MAX_PRIORITY,
            ),
            general_priority=parse_int(
                "FSMO_PRIORITY_GENERAL", min_value=MIN_PRIORITY, max_value=MAX_PRIORITY
            ),
            role_priorities=role_priorities,
            auto_seize_enabled=parse_bool("FSMO_AUTO_SEIZE_ENABLED", default=True),
            auto_seize_roles=auto_seize_roles,
            seizure_cooldown_s=_req_int("FSMO_SEIZURE_COOLDOWN_S", 0, min_value=0),
            verify_delay_ms=_req_int("FSMO_VERIFY_DELAY_MS", 500, min_value=0),
            backoff_max_s=_req_float("FSMO_BACKOFF_MAX_S", 120.0, min_value=0.0),
            state_path=state_path,
            notify_command=notify_command,
            samba_tool=parse_str("FSMO_SAMBA_TOOL", "samba-tool") or "samba-tool",
            use_sudo=parse_bool("FSMO_USE_SUDO", default=False),
            command_timeout_s=_req_float("FSMO_COMMAND_TIMEOUT_S", 60.0, min_value=1.0),
            dns_timeout_s=_req_float("FSMO_DNS_TIMEOUT_S", 5.0, min_value=0.1),
            metrics_textfile=parse_str("FSMO_METRICS_TEXTFILE"),
        )


def _req_int(name: str, default: int, **bounds: int) -> int:
    value = parse_int(name, default, **bounds)
    return default if value is None else value


def _req_float(name: str, default: float, **bounds: float) -> float:
    value = parse_float(name, default, **bounds)
    return default if value is None else value
