"""Dependent-service notification.

After a role moves, the time service hierarchy and DHCP failover state
must follow the new holder. That reconciliation is owned by a separate
command; this module only triggers it.
"""

from __future__ import annotations

import logging
import subprocess
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

logger = logging.getLogger(__name__)


class ServiceNotifier:
    """Runs the dependent-service reconcile command.

    An empty command disables notification. Failures are logged and
    reported through the return value, never raised.
    """

    def __init__(
        self,
        command: Sequence[str],
        *,
        timeout_s: float = 60.0,
        runner: Callable[..., subprocess.CompletedProcess[str]] | None = None,
    ) -> None:
        self._command = list(command)
        self._timeout_s = timeout_s
        self._runner = runner or subprocess.run

    @property
    def enabled(self) -> bool:
        return bool(self._command)

    def notify(self, reason: str = "") -> bool:
        """Trigger reconciliation. Returns True on success (or when disabled)."""
        if not self._command:
            logger.debug("Service notification disabled")
            return True
        logger.info(
            "Notifying dependent services",
            extra={"command": self._command, "reason": reason},
        )
        try:
            result = self._runner(
                self._command,
                capture_output=True,
                text=True,
                timeout=self._timeout_s,
                check=False,
            )
        except subprocess.TimeoutExpired:
            logger.error(
                "Service notification timed out after %gs",
                self._timeout_s,
                extra={"command": self._command},
            )
            return False
        except OSError as e:
            logger.error(
                "Service notification failed: %s", e, extra={"command": self._command}
            )
            return False
        if result.returncode != 0:
            logger.error(
                "Service notification exited %d",
                result.returncode,
                extra={"command": self._command, "stderr": (result.stderr or "").strip()[-500:]},
            )
            return False
        return True
