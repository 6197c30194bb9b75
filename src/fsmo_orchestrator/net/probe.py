"""Multi-signal reachability probing.

A node is reachable when at least 2 of 3 independent signals answer:

- ICMP echo (system ``ping``)
- TCP connect to the directory data port (LDAP, 389)
- UDP request to the time service (NTP, 123) that gets a reply

A single blocked signal (firewalled ICMP, say) therefore never marks a
live DC dead. Individual checks never raise: any exception counts as a
failed signal.
"""

from __future__ import annotations

import logging
import shutil
import socket
import subprocess
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

REACHABLE_QUORUM = 2

# NTPv3 client request: LI=0, VN=3, Mode=3
_NTP_REQUEST = b"\x1b" + 47 * b"\x00"


class Prober(Protocol):
    """Anything that can answer "is this node reachable?"."""

    def probe(self, node: str) -> bool: ...


def icmp_echo(host: str, timeout_s: float) -> bool:
    """One ICMP echo via the system ``ping``."""
    ping = shutil.which("ping")
    if ping is None:
        logger.debug("ping not found on PATH")
        return False
    wait = str(max(1, round(timeout_s)))
    try:
        result = subprocess.run(
            [ping, "-c", "1", "-W", wait, host],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=timeout_s + 1.0,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("ping %s failed: %s", host, e)
        return False
    return result.returncode == 0


def tcp_connect(host: str, port: int, timeout_s: float) -> bool:
    try:
        with socket.create_connection((host, port), timeout=timeout_s):
            return True
    except OSError as e:
        logger.debug("tcp %s:%d failed: %s", host, port, e)
        return False


def ntp_request(host: str, port: int, timeout_s: float) -> bool:
    """Send an NTP client request and wait for any reply."""
    try:
        infos = socket.getaddrinfo(host, port, type=socket.SOCK_DGRAM)
        family, socktype, proto, _, addr = infos[0]
        with socket.socket(family, socktype, proto) as sock:
            sock.settimeout(timeout_s)
            sock.sendto(_NTP_REQUEST, addr)
            data, _ = sock.recvfrom(512)
            return len(data) > 0
    except (OSError, IndexError) as e:
        logger.debug("udp %s:%d failed: %s", host, port, e)
        return False


@dataclass(frozen=True)
class ProbeResult:
    """Per-signal outcome of probing one node."""

    node: str
    icmp: bool
    tcp: bool
    udp: bool

    @property
    def signals_up(self) -> int:
        return int(self.icmp) + int(self.tcp) + int(self.udp)

    @property
    def reachable(self) -> bool:
        return self.signals_up >= REACHABLE_QUORUM


class ReachabilityProber:
    """Quorum prober over three network signals.

    Checks are injectable for tests; the defaults hit the network.
    """

    def __init__(
        self,
        *,
        timeout_s: float = 2.0,
        tcp_port: int = 389,
        udp_port: int = 123,
        icmp_check: Callable[[str, float], bool] | None = None,
        tcp_check: Callable[[str, int, float], bool] | None = None,
        udp_check: Callable[[str, int, float], bool] | None = None,
    ) -> None:
        self._timeout_s = timeout_s
        self._tcp_port = tcp_port
        self._udp_port = udp_port
        self._icmp_check = icmp_check or icmp_echo
        self._tcp_check = tcp_check or tcp_connect
        self._udp_check = udp_check or ntp_request

    def check(self, node: str) -> ProbeResult:
        """Run all three signals against ``node``."""
        result = ProbeResult(
            node=node,
            icmp=self._safe("icmp", node, lambda: self._icmp_check(node, self._timeout_s)),
            tcp=self._safe(
                "tcp", node, lambda: self._tcp_check(node, self._tcp_port, self._timeout_s)
            ),
            udp=self._safe(
                "udp", node, lambda: self._udp_check(node, self._udp_port, self._timeout_s)
            ),
        )
        logger.debug(
            "Probed %s: %d/3 signals up",
            node,
            result.signals_up,
            extra={"node": node, "icmp": result.icmp, "tcp": result.tcp, "udp": result.udp},
        )
        return result

    def probe(self, node: str) -> bool:
        return self.check(node).reachable

    @staticmethod
    def _safe(signal: str, node: str, fn: Callable[[], bool]) -> bool:
        try:
            return bool(fn())
        except Exception as e:
            logger.debug("%s probe of %s raised: %s", signal, node, e)
            return False
