"""FSMO Orchestrator - priority-based FSMO role coordination for Samba AD.

Keeps the five singleton FSMO roles on a reachable domain controller by
seizing a role when its holder stops answering, coordinating the seizure
between controllers through lease files in replicated SYSVOL.

Note: version is sourced from package metadata (pyproject.toml).
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from fsmo_orchestrator.core import FsmoRole, Node, RoleOutcome


def _pkg_version() -> str:
    try:
        return version("fsmo-orchestrator")
    except PackageNotFoundError:
        return "0.0.0"


__version__ = _pkg_version()

__all__ = ["FsmoRole", "Node", "RoleOutcome", "__version__"]
