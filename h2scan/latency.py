from __future__ import annotations

import socket
import threading
import time
from typing import List, Optional, Union

from scapy.error import Scapy_Exception
from scapy.layers.inet import ICMP, IP
from scapy.sendrecv import sr1

from .models import ScanConfig
from .tls import TLSClient


class LatencyProbeError(Exception):
    pass


def _average(samples: List[float]) -> float:
    return sum(samples) / len(samples)


class TLSPinger:
    """
    Round-trip estimate from repeated TCP connect + TLS handshake to a host.

    The name is resolved once up front so DNS time is not counted.
    """

    def __init__(self, port: int = 443, timeout: float = 4.0):
        self.port = port
        self.client = TLSClient(timeout=timeout, verify=False)

    def measure(self, host: str, count: int = 3) -> float:
        if count < 1:
            raise LatencyProbeError(f"invalid ping count {count}")
        try:
            infos = socket.getaddrinfo(host, self.port, type=socket.SOCK_STREAM)
        except OSError as e:
            raise LatencyProbeError(f"resolve {host}: {e}") from e
        ip = infos[0][4][0]

        samples: List[float] = []
        for _ in range(count):
            start = time.perf_counter()
            try:
                with self.client.dial(ip, self.port) as sock:
                    self.client.handshake(sock, server_name=host)
            except (OSError, ValueError) as e:
                raise LatencyProbeError(f"{host}:{self.port}: {e}") from e
            samples.append(time.perf_counter() - start)
        return _average(samples)


class ICMPPinger:
    """ICMP echo round trips through scapy. Needs raw socket privileges."""

    def __init__(self, timeout: float = 4.0):
        self.timeout = timeout

    def measure(self, host: str, count: int = 3) -> float:
        if count < 1:
            raise LatencyProbeError(f"invalid ping count {count}")

        # Replies are matched on id, so concurrent pingers must not share one.
        ident = threading.get_ident() & 0xFFFF
        samples: List[float] = []
        for seq in range(count):
            packet = IP(dst=host) / ICMP(id=ident, seq=seq)
            start = time.perf_counter()
            try:
                reply = sr1(packet, timeout=self.timeout, verbose=0)
            except (OSError, Scapy_Exception) as e:
                raise LatencyProbeError(f"{host}: {e}") from e
            if reply is None:
                raise LatencyProbeError(f"{host}: no echo reply within {self.timeout}s")
            samples.append(time.perf_counter() - start)
        return _average(samples)


Pinger = Union[TLSPinger, ICMPPinger]


def build_pinger(config: ScanConfig) -> Optional[Pinger]:
    if config.ping_method == "tls":
        return TLSPinger(port=config.ping_port, timeout=config.timeout)
    if config.ping_method == "icmp":
        return ICMPPinger(timeout=config.timeout)
    if config.ping_method == "none":
        return None
    raise ValueError(f"Unsupported ping method: {config.ping_method}")
