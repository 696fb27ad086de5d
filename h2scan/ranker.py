from __future__ import annotations

import logging
import re
from typing import Iterable, List

from .models import RankedEntry
from .output import parse_duration

logger = logging.getLogger(__name__)

ALPN_H2_PATTERN = re.compile(r"ALPN:\s*h2\s+(\S+)")
PING_PATTERN = re.compile(r"Ping:\s*([0-9]\S*)")


def collect_entries(lines: Iterable[str]) -> List[RankedEntry]:
    """
    Pull (line, latency) pairs from h2 result lines that carry a Ping token.
    Lines without one are skipped; unparseable tokens are logged and skipped.
    """
    entries: List[RankedEntry] = []
    for raw in lines:
        line = raw.rstrip("\r\n")
        if not ALPN_H2_PATTERN.search(line):
            continue
        m = PING_PATTERN.search(line)
        if not m:
            continue
        try:
            latency_ns = parse_duration(m.group(1))
        except ValueError as e:
            logger.error("Failed to parse ping duration from %r: %s", m.group(1), e)
            continue
        entries.append(RankedEntry(line=line, latency_ns=latency_ns))
    return entries


def rank_lines(lines: Iterable[str], top_n: int = 10) -> List[RankedEntry]:
    entries = collect_entries(lines)
    entries.sort(key=lambda e: e.latency_ns)
    return entries[:max(top_n, 0)]


def rank_file(path: str, top_n: int = 10) -> List[RankedEntry]:
    with open(path, "r", encoding="utf-8") as f:
        return rank_lines(f, top_n=top_n)


def print_ranking(entries: List[RankedEntry]) -> None:
    print("Top servers by TLS Ping:")
    for i, entry in enumerate(entries, start=1):
        print(f"{i}: {entry.line}")
