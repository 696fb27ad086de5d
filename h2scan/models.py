from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

QUALIFIES = "qualifies"
EXCLUDED = "excluded"
FAILED = "failed"


@dataclass(frozen=True)
class ScanConfig:
    address: str
    port: int
    threads: int
    timeout: float
    persist: bool = True
    show_fail: bool = False
    budget: int = 10000
    results_path: str = "results.txt"
    domains_path: str = "domains.txt"
    ping_method: str = "tls"
    ping_count: int = 3
    ping_port: int = 443
    top_n: int = 10


@dataclass(frozen=True)
class ProbeOutcome:
    host: str
    port: int
    verdict: str
    tls_version: str = ""
    alpn: str = ""
    common_name: str = ""
    latency_ns: Optional[int] = None
    stage: Optional[str] = None
    error: Optional[str] = None

    @property
    def endpoint(self) -> str:
        # Non-IPv4 hosts are bracketed so the port separator stays unambiguous.
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class ResultLine:
    text: str
    domain: Optional[str] = None


@dataclass(frozen=True)
class RankedEntry:
    line: str
    latency_ns: int


@dataclass(frozen=True)
class ScanStats:
    dispatched: int
    emitted: int
    elapsed_s: float
