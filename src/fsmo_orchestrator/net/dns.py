"""DNS SRV lookup of domain controllers.

Every AD DC registers ``_ldap._tcp.<domain>``; the SRV targets are the
DC host names. The lookup is async (aiodns) but the orchestrator is a
synchronous batch job, so ``SrvResolver.resolve`` drives one event loop
per call.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import aiodns

from fsmo_orchestrator.core import normalize_node_name
from fsmo_orchestrator.errors import DiscoveryError

logger = logging.getLogger(__name__)

LDAP_SRV_PREFIX = "_ldap._tcp."


@dataclass(frozen=True)
class SrvTarget:
    """One SRV answer.

    Attributes:
        host: Target host name, trailing dot removed
        port: Service port
        priority: SRV priority (lower preferred)
        weight: SRV weight (higher preferred at equal priority)
    """

    host: str
    port: int
    priority: int
    weight: int

    @property
    def node_name(self) -> str:
        return normalize_node_name(self.host)


class SrvResolver:
    """Resolves the LDAP SRV records of an AD domain."""

    def __init__(self, timeout_s: float = 5.0) -> None:
        self._timeout_s = timeout_s

    def resolve(self, domain: str) -> list[SrvTarget]:
        """Query ``_ldap._tcp.<domain>`` SRV records.

        Raises:
            DiscoveryError: lookup failed, timed out, or returned nothing.
        """
        return asyncio.run(self._query(LDAP_SRV_PREFIX + domain))

    async def _query(self, service_name: str) -> list[SrvTarget]:
        resolver = aiodns.DNSResolver()
        try:
            answers = await asyncio.wait_for(
                resolver.query(service_name, "SRV"),
                timeout=self._timeout_s,
            )
        except TimeoutError:
            raise DiscoveryError(
                "dns", f"SRV query for {service_name} timed out after {self._timeout_s:g}s"
            ) from None
        except aiodns.error.DNSError as e:
            raise DiscoveryError("dns", f"SRV query for {service_name} failed: {e}") from e

        if not answers:
            raise DiscoveryError("dns", f"no SRV records for {service_name}")

        targets = [
            SrvTarget(
                host=srv.host.rstrip("."),
                port=srv.port,
                priority=srv.priority,
                weight=srv.weight,
            )
            for srv in answers
        ]
        targets.sort(key=lambda t: (t.priority, -t.weight, t.host))
        logger.debug(
            "SRV lookup complete",
            extra={"service": service_name, "targets": [t.host for t in targets]},
        )
        return targets
