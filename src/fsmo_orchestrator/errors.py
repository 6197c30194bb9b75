"""Orchestrator exception hierarchy.

Exception hierarchy:
- FsmoError (base)
  - StoreError (shared SYSVOL store unreadable/unwritable)
  - DirectoryError (samba-tool query/seize/transfer failed)
    - DirectoryTimeoutError (samba-tool did not finish within its deadline)
  - DiscoveryError (a single discovery method failed)

ConfigError lives in env_parse so configuration parsing has no
dependency on the rest of the package.
"""

from __future__ import annotations


class FsmoError(Exception):
    """Base exception for orchestrator errors."""

    pass


class StoreError(FsmoError):
    """Shared store operation failed.

    Attributes:
        op: Operation that failed (read, write, create, remove, append)
        path: File the operation targeted
    """

    def __init__(self, op: str, path: str, message: str | None = None) -> None:
        self.op = op
        self.path = path
        msg = f"store {op} failed for {path}"
        if message:
            msg = f"{msg}: {message}"
        super().__init__(msg)


class DirectoryError(FsmoError):
    """Directory service command failed.

    Attributes:
        op: Operation (query, seize, transfer, list_dcs)
    """

    def __init__(self, op: str, message: str) -> None:
        self.op = op
        super().__init__(f"directory {op} failed: {message}")


class DirectoryTimeoutError(DirectoryError):
    """Directory service command exceeded its timeout."""

    def __init__(self, op: str, timeout_s: float) -> None:
        self.timeout_s = timeout_s
        super().__init__(op, f"timed out after {timeout_s:g}s")


class DiscoveryError(FsmoError):
    """One discovery method failed (non-fatal for the pass)."""

    def __init__(self, method: str, message: str) -> None:
        self.method = method
        super().__init__(f"discovery via {method} failed: {message}")
