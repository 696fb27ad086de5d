from __future__ import annotations

import logging
import queue
import re
import threading
from typing import IO, Optional

from .models import FAILED, ProbeOutcome, ResultLine, ScanConfig

logger = logging.getLogger(__name__)

COLUMN_WIDTH = 22
PING_WIDTH = 30

_NS_PER_UNIT = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,  # micro sign
    "μs": 1_000,  # greek mu
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def _frac(value: int, digits: int) -> str:
    whole, rem = divmod(value, 10 ** digits)
    tail = f"{rem:0{digits}d}".rstrip("0")
    return f"{whole}.{tail}" if tail else str(whole)


def format_duration(ns: int) -> str:
    """
    Render nanoseconds the way Go prints a time.Duration:
    "0s", "850ns", "340µs", "12.345ms", "1.5s", "1m2.5s", "1h0m0s".
    """
    if ns == 0:
        return "0s"
    sign = "-" if ns < 0 else ""
    u = abs(ns)

    if u < 1_000:
        return f"{sign}{u}ns"
    if u < 1_000_000:
        return f"{sign}{_frac(u, 3)}µs"
    if u < 1_000_000_000:
        return f"{sign}{_frac(u, 6)}ms"

    minute = 60 * 1_000_000_000
    seconds = _frac(u % minute, 9)
    minutes = u // minute
    if not minutes:
        return f"{sign}{seconds}s"
    hours, minutes = divmod(minutes, 60)
    if not hours:
        return f"{sign}{minutes}m{seconds}s"
    return f"{sign}{hours}h{minutes}m{seconds}s"


def parse_duration(text: str) -> int:
    """Inverse of format_duration; accepts any Go duration string. Returns ns."""
    s = text.strip()
    sign = 1
    if s[:1] in ("-", "+"):
        sign = -1 if s[0] == "-" else 1
        s = s[1:]
    if s == "0":
        return 0
    if not s:
        raise ValueError(f"invalid duration {text!r}")

    total = 0.0
    pos = 0
    while pos < len(s):
        m = _DURATION_PART.match(s, pos)
        if not m:
            raise ValueError(f"invalid duration {text!r}")
        total += float(m.group(1)) * _NS_PER_UNIT[m.group(2)]
        pos = m.end()
    return sign * round(total)


def format_line(outcome: ProbeOutcome) -> ResultLine:
    endpoint = outcome.endpoint
    if outcome.verdict == FAILED:
        return ResultLine(f"{endpoint:<{COLUMN_WIDTH}}{outcome.stage} failed: {outcome.error}")

    tls = f"TLS v{outcome.tls_version}    ALPN: {outcome.alpn}"
    domain = outcome.common_name if outcome.common_name != outcome.host else ""
    text = f"{endpoint:<{COLUMN_WIDTH}}{tls:<{COLUMN_WIDTH}}{domain:<{COLUMN_WIDTH}}"

    if outcome.latency_ns:
        text += f"Ping: {format_duration(outcome.latency_ns):<{PING_WIDTH}}"
    elif outcome.error:
        text += f"Ping failed: {outcome.error}"

    return ResultLine(text, domain or None)


class ResultSink:
    """
    Single writer for result lines.

    Producers call put(); one background thread logs each line and appends it
    to the results file (when persisting) and its domain to the domain list.
    close() queues a sentinel and waits, so everything queued before it is
    written before the files are closed.
    """

    def __init__(self, config: ScanConfig, maxsize: Optional[int] = None):
        self.config = config
        self.emitted = 0
        self._queue: "queue.Queue[Optional[ResultLine]]" = queue.Queue(
            maxsize=config.budget if maxsize is None else maxsize
        )
        self._results_file: Optional[IO[str]] = None
        self._domains_file: Optional[IO[str]] = None
        self._thread = threading.Thread(target=self._run, name="result-sink", daemon=True)

    def open(self) -> "ResultSink":
        if self.config.persist:
            self._results_file = open(self.config.results_path, "w", encoding="utf-8")
        try:
            self._domains_file = open(self.config.domains_path, "w", encoding="utf-8")
        except OSError:
            self._close_files()
            raise
        self._thread.start()
        return self

    def put(self, line: ResultLine) -> None:
        self._queue.put(line)

    def close(self) -> None:
        if self._thread.is_alive():
            self._queue.put(None)
            self._thread.join()
        self._close_files()

    def __enter__(self) -> "ResultSink":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _run(self) -> None:
        while True:
            line = self._queue.get()
            if line is None:
                return
            self._write(line)

    def _write(self, line: ResultLine) -> None:
        logger.info(line.text)
        self.emitted += 1

        if self._results_file is not None:
            try:
                self._results_file.write(line.text + "\n")
                self._results_file.flush()
            except OSError as e:
                logger.error("Error writing into %s: %s", self.config.results_path, e)

        if line.domain and self._domains_file is not None:
            try:
                self._domains_file.write(line.domain + "\n")
                self._domains_file.flush()
            except OSError as e:
                logger.error("Error writing domain into %s: %s", self.config.domains_path, e)

    def _close_files(self) -> None:
        for f in (self._results_file, self._domains_file):
            if f is not None:
                f.close()
        self._results_file = None
        self._domains_file = None
