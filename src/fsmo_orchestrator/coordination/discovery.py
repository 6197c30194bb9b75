"""Domain controller discovery.

Two independent methods, merged and deduplicated by short name:

- DNS: ``_ldap._tcp.<domain>`` SRV records
- Directory: DC computer accounts from the directory service

A failing method is logged and skipped. The local node is always part
of the result, so ``discover`` never returns an empty set.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Protocol

from fsmo_orchestrator.core import Node, normalize_node_name
from fsmo_orchestrator.errors import DirectoryError, DiscoveryError

if TYPE_CHECKING:
    from collections.abc import Callable

    from fsmo_orchestrator.directory.samba import DirectoryService
    from fsmo_orchestrator.net.dns import SrvTarget

logger = logging.getLogger(__name__)


class SrvLookup(Protocol):
    def resolve(self, domain: str) -> list[SrvTarget]: ...


class NodeDiscovery:
    """Enumerates candidate nodes for one pass."""

    def __init__(
        self,
        domain: str,
        self_node: str,
        *,
        resolver: SrvLookup | None = None,
        directory: DirectoryService | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._domain = domain
        self._self_node = normalize_node_name(self_node)
        self._resolver = resolver
        self._directory = directory
        self._clock = clock
        self.errors: list[DiscoveryError] = []

    def discover(self) -> set[Node]:
        """Discovered nodes, always including self.

        Per-method failures are collected in ``self.errors``.
        """
        self.errors = []
        names: set[str] = set()

        if self._resolver is not None:
            try:
                dns_names = {t.node_name for t in self._resolver.resolve(self._domain)}
                names |= {n for n in dns_names if n}
                logger.debug("DNS discovery found %d nodes", len(dns_names))
            except DiscoveryError as e:
                self._record_error(e)

        if self._directory is not None:
            try:
                dc_names = {
                    normalize_node_name(n) for n in self._directory.list_domain_controllers()
                }
                names |= {n for n in dc_names if n}
                logger.debug("Directory discovery found %d nodes", len(dc_names))
            except DirectoryError as e:
                self._record_error(DiscoveryError("directory", str(e)))

        if not names:
            logger.warning(
                "Discovery found no nodes, continuing with self only",
                extra={"domain": self._domain, "node": self._self_node},
            )
        names.add(self._self_node)

        now = self._clock()
        nodes = {Node(name, discovered_at=now) for name in names}
        logger.info(
            "Discovered %d nodes",
            len(nodes),
            extra={"nodes": sorted(names), "domain": self._domain},
        )
        return nodes

    def _record_error(self, error: DiscoveryError) -> None:
        self.errors.append(error)
        logger.warning("%s", error, extra={"method": error.method})
