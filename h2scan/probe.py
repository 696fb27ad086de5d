from __future__ import annotations

import ipaddress
import logging
from typing import Optional, Union

from .latency import LatencyProbeError, Pinger
from .models import EXCLUDED, FAILED, QUALIFIES, ProbeOutcome, ScanConfig
from .tls import TLSClient

logger = logging.getLogger(__name__)

ALPN_PLACEHOLDER = "  "

# Placeholder subjects seen on appliances and parked hosts.
DENIED_NAMES = {"localhost", "invalid2.invalid", "OPNsense.localdomain"}

Address = Union[str, ipaddress.IPv4Address, ipaddress.IPv6Address]


def passes_gate(version: str, alpn: str, show_fail: bool) -> bool:
    return show_fail or (version == "1.3" and alpn == "h2")


def is_excluded_name(common_name: str) -> bool:
    """
    True for subjects that do not look like a bare second-level domain:
    wildcards, placeholders, and anything without exactly one period
    (so www.example.com is rejected along with bare hostnames).
    """
    return (
        common_name.startswith("*")
        or common_name in DENIED_NAMES
        or common_name.count(".") != 1
    )


def truncate_to_microseconds(seconds: float) -> int:
    ns = int(seconds * 1_000_000_000)
    return ns - ns % 1_000


class Prober:
    def __init__(
        self,
        config: ScanConfig,
        client: Optional[TLSClient] = None,
        pinger: Optional[Pinger] = None,
    ):
        self.config = config
        self.client = client or TLSClient(timeout=config.timeout, verify=False)
        self.pinger = pinger

    def should_record(self, outcome: ProbeOutcome) -> bool:
        if outcome.verdict == QUALIFIES:
            return True
        return outcome.verdict == FAILED and self.config.show_fail

    def probe(self, address: Address) -> ProbeOutcome:
        host = str(address)
        port = self.config.port

        try:
            sock = self.client.dial(host, port)
        except OSError as e:
            logger.debug("Dial %s:%d failed: %s", host, port, e)
            return ProbeOutcome(host=host, port=port, verdict=FAILED, stage="dial", error=str(e))

        with sock:
            try:
                peer = sock.getpeername()
            except OSError as e:
                logger.debug("Lost %s:%d right after connect: %s", host, port, e)
                return ProbeOutcome(host=host, port=port, verdict=FAILED, stage="dial", error=str(e))
            host, port = peer[0], peer[1]
            try:
                info = self.client.handshake(sock)
            except (OSError, ValueError) as e:
                logger.debug("TLS handshake with %s:%d failed: %s", host, port, e)
                return ProbeOutcome(host=host, port=port, verdict=FAILED, stage="handshake", error=str(e))

        alpn = info.alpn or ALPN_PLACEHOLDER
        if not passes_gate(info.version, alpn, self.config.show_fail):
            return ProbeOutcome(
                host=host, port=port, verdict=EXCLUDED, tls_version=info.version,
                alpn=alpn, common_name=info.common_name, stage="gate",
            )

        common_name = info.common_name
        if is_excluded_name(common_name):
            logger.debug("%s:%d excluded by subject %r", host, port, common_name)
            return ProbeOutcome(
                host=host, port=port, verdict=EXCLUDED, tls_version=info.version,
                alpn=alpn, common_name=common_name, stage="subject",
            )

        latency_ns = None
        error = None
        if self.pinger is not None:
            try:
                latency_ns = truncate_to_microseconds(
                    self.pinger.measure(common_name, self.config.ping_count)
                )
            except LatencyProbeError as e:
                logger.debug("Latency probe to %s failed: %s", common_name, e)
                error = str(e)

        return ProbeOutcome(
            host=host,
            port=port,
            verdict=QUALIFIES,
            tls_version=info.version,
            alpn=alpn,
            common_name=common_name,
            latency_ns=latency_ns,
            stage="ping" if error else None,
            error=error,
        )
