from __future__ import annotations

from typing import Dict, Optional, Tuple

import pytest

from h2scan.latency import LatencyProbeError
from h2scan.models import ScanConfig
from h2scan.tls import HandshakeInfo


class FakeSocket:
    def __init__(self, peer: Tuple[str, int]):
        self.peer = peer
        self.closed = False

    def getpeername(self):
        return self.peer

    def close(self) -> None:
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class FakeClient:
    """
    Stands in for TLSClient. Hosts missing from `endpoints` refuse the
    connection; an endpoint mapped to an exception fails the handshake.
    """

    def __init__(self, endpoints: Optional[Dict[str, object]] = None):
        self.endpoints = endpoints or {}
        self.dialed = []

    def dial(self, host: str, port: int) -> FakeSocket:
        self.dialed.append(host)
        if host not in self.endpoints:
            raise ConnectionRefusedError(111, "Connection refused")
        return FakeSocket((host, port))

    def handshake(self, sock, server_name=None) -> HandshakeInfo:
        info = self.endpoints[sock.peer[0]]
        if isinstance(info, Exception):
            raise info
        return info


class FakePinger:
    def __init__(self, latencies: Optional[Dict[str, float]] = None, default: Optional[float] = None):
        self.latencies = latencies or {}
        self.default = default
        self.calls = []

    def measure(self, host: str, count: int = 3) -> float:
        self.calls.append((host, count))
        if host in self.latencies:
            return self.latencies[host]
        if self.default is None:
            raise LatencyProbeError(f"{host}:443: timed out")
        return self.default


def h2(common_name: str) -> HandshakeInfo:
    return HandshakeInfo(version="1.3", alpn="h2", common_name=common_name)


@pytest.fixture
def make_config(tmp_path):
    def _make(**overrides) -> ScanConfig:
        values = dict(
            address="203.0.113.0",
            port=443,
            threads=4,
            timeout=1,
            persist=True,
            show_fail=False,
            budget=10,
            results_path=str(tmp_path / "results.txt"),
            domains_path=str(tmp_path / "domains.txt"),
            ping_method="none",
        )
        values.update(overrides)
        return ScanConfig(**values)

    return _make
