"""Network access: DNS SRV lookup and reachability probing."""

from fsmo_orchestrator.net.dns import SrvResolver, SrvTarget
from fsmo_orchestrator.net.probe import Prober, ProbeResult, ReachabilityProber

__all__ = ["ProbeResult", "Prober", "ReachabilityProber", "SrvResolver", "SrvTarget"]
