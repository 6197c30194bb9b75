"""samba-tool adapter for FSMO role query, seizure and DC enumeration.

All parsing of samba-tool text output lives here; the rest of the
package only sees ``dict[FsmoRole, str]`` holder maps and node lists.

``samba-tool fsmo show`` prints one line per role::

    PdcEmulationMasterRole owner: CN=NTDS Settings,CN=DC1,CN=Servers,...

The holder is the CN right after ``CN=NTDS Settings``.
"""

from __future__ import annotations

import logging
import re
import subprocess
from typing import TYPE_CHECKING, Protocol

from fsmo_orchestrator.core import ALL_ROLES, FsmoRole, normalize_node_name
from fsmo_orchestrator.errors import DirectoryError, DirectoryTimeoutError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

logger = logging.getLogger(__name__)

# userAccountControl SERVER_TRUST_ACCOUNT (0x2000) = domain controller
DC_COMPUTER_FILTER = "(userAccountControl:1.2.840.113556.1.4.803:=8192)"

_OWNER_RE = re.compile(r"^\s*(?P<label>\w+)\s+owner:\s*(?P<dn>.+?)\s*$")
_NTDS_CN_RE = re.compile(r"CN=NTDS Settings,CN=(?P<cn>[^,]+)", re.IGNORECASE)

_LABEL_TO_ROLE: dict[str, FsmoRole] = {role.directory_label: role for role in ALL_ROLES}


class DirectoryService(Protocol):
    """Operations the coordinator needs from the directory service."""

    def query(self) -> dict[FsmoRole, str]:
        """Current holder (node name) of every role."""
        ...

    def seize(self, role: FsmoRole, node: str) -> None:
        """Forcibly take ``role`` onto ``node`` (the local DC)."""
        ...

    def transfer(self, role: FsmoRole) -> None:
        """Gracefully move ``role`` to the local DC."""
        ...

    def list_domain_controllers(self) -> list[str]:
        """Node names of every DC computer account."""
        ...


def holder_from_dn(dn: str) -> str | None:
    """Extract the DC name from an NTDS Settings DN."""
    match = _NTDS_CN_RE.search(dn)
    if match is None:
        return None
    return normalize_node_name(match.group("cn")) or None


def parse_fsmo_show(output: str) -> dict[FsmoRole, str]:
    """Parse ``samba-tool fsmo show`` into a holder map.

    DNS-zone roles and unrecognized lines are ignored. Roles whose DN
    has no NTDS Settings component are left out.
    """
    holders: dict[FsmoRole, str] = {}
    for line in output.splitlines():
        match = _OWNER_RE.match(line)
        if match is None:
            continue
        role = _LABEL_TO_ROLE.get(match.group("label"))
        if role is None:
            continue
        holder = holder_from_dn(match.group("dn"))
        if holder is None:
            logger.warning("Unparseable %s owner DN: %s", role.value, match.group("dn"))
            continue
        holders[role] = holder
    return holders


def parse_computer_list(output: str) -> list[str]:
    """Parse ``samba-tool computer list`` output into node names."""
    names: list[str] = []
    for line in output.splitlines():
        name = normalize_node_name(line)
        if name and name not in names:
            names.append(name)
    return names


class SambaDirectoryClient:
    """DirectoryService backed by the local ``samba-tool``.

    Every call has a hard timeout; failures surface as ``DirectoryError``.
    """

    def __init__(
        self,
        local_node: str,
        *,
        samba_tool: str = "samba-tool",
        use_sudo: bool = False,
        timeout_s: float = 60.0,
        runner: Callable[..., subprocess.CompletedProcess[str]] | None = None,
    ) -> None:
        self._local_node = normalize_node_name(local_node)
        self._base = ["sudo", "-n", samba_tool] if use_sudo else [samba_tool]
        self._timeout_s = timeout_s
        self._runner = runner or subprocess.run

    def query(self) -> dict[FsmoRole, str]:
        output = self._run("query", ["fsmo", "show"])
        holders = parse_fsmo_show(output)
        missing = [role.value for role in ALL_ROLES if role not in holders]
        if missing:
            raise DirectoryError("query", f"no holder reported for {', '.join(missing)}")
        return holders

    def seize(self, role: FsmoRole, node: str) -> None:
        target = normalize_node_name(node)
        if target != self._local_node:
            msg = f"can only seize onto the local DC {self._local_node!r}, not {target!r}"
            raise DirectoryError("seize", msg)
        self._run("seize", ["fsmo", "seize", f"--role={role.tool_arg}", "--force"])
        logger.info("Seized %s onto %s", role.value, target, extra={"role": role.value})

    def transfer(self, role: FsmoRole) -> None:
        self._run("transfer", ["fsmo", "transfer", f"--role={role.tool_arg}"])
        logger.info(
            "Transferred %s to %s", role.value, self._local_node, extra={"role": role.value}
        )

    def list_domain_controllers(self) -> list[str]:
        output = self._run("list_dcs", ["computer", "list", f"--filter={DC_COMPUTER_FILTER}"])
        return parse_computer_list(output)

    def _run(self, op: str, args: Sequence[str]) -> str:
        cmd = [*self._base, *args]
        logger.debug("Running %s", " ".join(cmd))
        try:
            result = self._runner(
                cmd,
                capture_output=True,
                text=True,
                timeout=self._timeout_s,
                check=False,
            )
        except subprocess.TimeoutExpired:
            raise DirectoryTimeoutError(op, self._timeout_s) from None
        except OSError as e:
            raise DirectoryError(op, str(e)) from e
        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip().splitlines()
            msg = f"exit {result.returncode}: {detail[-1] if detail else 'no output'}"
            raise DirectoryError(op, msg)
        return result.stdout or ""
