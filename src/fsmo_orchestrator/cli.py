"""fsmo-orchestrator command line.

Actions (exactly one; ``--orchestrate`` when none is given):
- --init: create the shared store layout and this DC's priority record
- --orchestrate: full pass (failover evaluation + dependent-service notification)
- --auto-seize: failover evaluation only, no notification
- --orchestrate-only: dependent-service notification only
- --status: role holders and node reachability
- --query: machine-readable KEY=value role holders
- --multi-dc-status: discovered DCs, priorities and active seizure locks
- --transfer ROLE: graceful transfer of one role to this DC (operator use)

Exit codes: 0 success, 1 directory service query failed, 2 configuration error,
3 shared store unusable, 4 dependent-service notification failed.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import TYPE_CHECKING

from fsmo_orchestrator import __version__
from fsmo_orchestrator.config import CoordinatorConfig
from fsmo_orchestrator.core import ALL_ROLES, FsmoRole
from fsmo_orchestrator.env_parse import ConfigError
from fsmo_orchestrator.errors import DirectoryError, StoreError
from fsmo_orchestrator.orchestrator import Orchestrator
from fsmo_orchestrator.store.records import format_last_seen

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fsmo_orchestrator.orchestrator import PassReport, StatusReport

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_DIRECTORY = 1
EXIT_CONFIG = 2
EXIT_STORE = 3
EXIT_NOTIFY = 4

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_ACTIONS = (
    ("--init", "init", "Create store layout and this DC's priority record"),
    ("--orchestrate", "orchestrate", "Run one full orchestration pass (default)"),
    ("--auto-seize", "auto_seize", "Evaluate failover and seize without notifying services"),
    ("--orchestrate-only", "orchestrate_only", "Only trigger dependent-service reconciliation"),
    ("--status", "status", "Show role holders and DC reachability"),
    ("--query", "query", "Print role holders as KEY=value lines"),
    ("--multi-dc-status", "multi_dc_status", "Show DCs, priorities and active seizure locks"),
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fsmo-orchestrator",
        description="Priority-based FSMO role coordination for Samba AD domain controllers",
    )
    parser.add_argument(
        "--version", action="version", version=f"fsmo-orchestrator {__version__}"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    actions = parser.add_mutually_exclusive_group()
    for flag, const, help_text in _ACTIONS:
        actions.add_argument(flag, dest="action", action="store_const", const=const, help=help_text)
    actions.add_argument(
        "--transfer",
        metavar="ROLE",
        type=FsmoRole.parse,
        help="Gracefully transfer ROLE (PDC, RID, INFRASTRUCTURE, SCHEMA, DOMAIN_NAMING) here",
    )
    parser.set_defaults(action="orchestrate")
    return parser


def format_query(node: str, holders: dict[FsmoRole, str]) -> list[str]:
    """KEY=value lines consumed by the dependent-service scripts."""
    lines = [f"THIS_SERVER={node}"]
    lines.extend(f"{role.query_key}_OWNER={holders.get(role, 'unknown')}" for role in ALL_ROLES)
    held = [role.value for role in ALL_ROLES if holders.get(role) == node]
    lines.append(f"HELD_ROLES={' '.join(held)}")
    lines.append(f"PDC_ROLE={'true' if holders.get(FsmoRole.PDC) == node else 'false'}")
    return lines


def format_pass(report: PassReport) -> list[str]:
    lines = [f"Orchestration pass on {report.node} ({len(report.nodes)} DCs known)"]
    for r in report.roles:
        target = f" -> {r.target}" if r.target else ""
        lines.append(
            f"  {r.role.value:<15} holder={r.holder or 'unknown':<12} "
            f"{r.outcome.value}{target} ({r.reason})"
        )
    if report.seized:
        lines.append(f"Seized: {', '.join(r.value for r in report.seized)}")
        lines.append(f"Dependent services notified: {'yes' if report.notified else 'no'}")
    for err in report.discovery_errors:
        lines.append(f"Discovery warning: {err}")
    return lines


def format_status(report: StatusReport) -> list[str]:
    lines = [f"This server: {report.node}", "", "FSMO roles:"]
    for role in ALL_ROLES:
        holder = report.holders.get(role, "unknown")
        marker = " (this server)" if holder == report.node else ""
        lines.append(f"  {role.value:<15} {holder}{marker}")
        lines.append(f"  {'':<15} services: {', '.join(role.services)}")
    lines.extend(["", "Domain controllers:"])
    for node in report.nodes:
        state = "reachable" if node.reachable else "UNREACHABLE"
        held = ",".join(r.value for r in node.held_roles) or "-"
        lines.append(f"  {node.name:<15} {state:<12} roles={held}")
    return lines


def format_multi_dc_status(report: StatusReport) -> list[str]:
    role_cols = " ".join(f"{role.query_key:>6}" for role in ALL_ROLES)
    lines = [
        f"Multi-DC status (viewed from {report.node})",
        "",
        f"  {'DC':<15} {'GEN':>4} {role_cols}  {'REACH':<11} LAST_SEEN",
    ]
    for node in report.nodes:
        record = node.record
        if record is None:
            prios = " ".join(f"{'-':>6}" for _ in ALL_ROLES)
            general = "-"
            seen = "never"
        else:
            prios = " ".join(
                f"{record.role_priority(role, report.default_priority):>6}" for role in ALL_ROLES
            )
            general = str(record.general)
            seen = _fmt_ts(record.last_seen)
        state = "reachable" if node.reachable else "UNREACHABLE"
        lines.append(f"  {node.name:<15} {general:>4} {prios}  {state:<11} {seen}")
    lines.extend(["", "Active seizure locks:"])
    if not report.locks:
        lines.append("  none")
    for lock in report.locks:
        since = _fmt_ts(lock.acquired_at)
        lines.append(f"  {lock.role.value:<15} holder={lock.holder} since {since}")
    return lines


def _fmt_ts(ts: float | None) -> str:
    return "unknown" if ts is None else format_last_seen(ts)


def _emit(lines: list[str]) -> None:
    for line in lines:
        print(line)


def _transfer(orch: Orchestrator, role: FsmoRole) -> int:
    holder = orch.transfer_role(role)
    print(f"{role.value} holder: {holder}")
    return EXIT_OK if holder == orch.node else EXIT_DIRECTORY


def _run(action: str, orch: Orchestrator) -> int:
    if action == "init":
        record = orch.init()
        print(f"Initialized {orch.node}: general={record.general}")
        return EXIT_OK
    if action == "orchestrate_only":
        return EXIT_OK if orch.notify_services() else EXIT_NOTIFY
    if action in ("orchestrate", "auto_seize"):
        lines = format_pass(orch.run_pass(notify=action == "orchestrate"))
    elif action == "query":
        lines = format_query(orch.node, orch.query_holders())
    elif action == "status":
        lines = format_status(orch.status())
    else:
        lines = format_multi_dc_status(orch.status())
    _emit(lines)
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )

    try:
        config = CoordinatorConfig.from_env()
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG

    orch = Orchestrator.from_config(config)
    try:
        if args.transfer is not None:
            return _transfer(orch, args.transfer)
        return _run(args.action, orch)
    except DirectoryError as e:
        logger.error("%s", e)
        return EXIT_DIRECTORY
    except StoreError as e:
        logger.error("%s", e)
        return EXIT_STORE


if __name__ == "__main__":
    sys.exit(main())
