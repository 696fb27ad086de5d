from __future__ import annotations

import argparse
import ipaddress
import logging

from .latency import build_pinger
from .logger import setup_logging
from .models import ScanConfig
from .output import ResultSink
from .probe import Prober
from .ranker import print_ranking, rank_file
from .scanner import Scanner

logger = logging.getLogger(__name__)

DEFAULT_ADDRESS = "0.0.0.0"
DEFAULT_PORT = 443
DEFAULT_THREADS = 128
DEFAULT_TIMEOUT = 4
DEFAULT_BUDGET = 10000
DEFAULT_PING_COUNT = 3
DEFAULT_TOP = 10
RESULTS_FILE = "results.txt"
DOMAINS_FILE = "domains.txt"


def ipv4_address(value: str) -> str:
    try:
        return str(ipaddress.IPv4Address(value.strip()))
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an IPv4 address: {value!r}")


def port_number(value: str) -> int:
    try:
        p = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}")
    if p < 1 or p > 65535:
        raise argparse.ArgumentTypeError(f"invalid port: {p}")
    return p


def positive_int(value: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}")
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1: {n}")
    return n


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Sweep IPv4 space for TLS 1.3 + HTTP/2 endpoints and rank them by latency",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    p.add_argument("--addr", type=ipv4_address, default=DEFAULT_ADDRESS, help="Address to start the scan after")
    p.add_argument("--port", type=port_number, default=DEFAULT_PORT, help="Port to scan")
    p.add_argument("--thread", type=positive_int, default=DEFAULT_THREADS, help="Number of threads to scan in parallel")
    p.add_argument("--timeout", "--timeOut", dest="timeout", type=positive_int, default=DEFAULT_TIMEOUT,
                   help="Per-connection timeout in seconds")
    p.add_argument("-o", "--output", action=argparse.BooleanOptionalAction, default=True,
                   help="Write result lines to the results file")
    p.add_argument("--showFail", "--show-fail", dest="show_fail", action="store_true",
                   help="Also record failed and non-h2 probes")
    p.add_argument("--budget", type=positive_int, default=DEFAULT_BUDGET, help="Number of addresses to probe")
    p.add_argument("--ping", choices=["tls", "icmp", "none"], default="tls",
                   help="Latency probe used on matching domains (icmp needs root)")
    p.add_argument("--ping-count", type=positive_int, default=DEFAULT_PING_COUNT, help="Latency samples per domain")
    p.add_argument("--ping-port", type=port_number, default=DEFAULT_PORT, help="Port used by the tls latency probe")
    p.add_argument("--top", type=positive_int, default=DEFAULT_TOP, help="How many servers to rank")
    p.add_argument("--results", default=RESULTS_FILE, help="Results file")
    p.add_argument("--domains", default=DOMAINS_FILE, help="Domain list file")
    p.add_argument("--debug", action="store_true", help="Log per-probe failures")
    return p


def config_from_args(args: argparse.Namespace) -> ScanConfig:
    return ScanConfig(
        address=args.addr,
        port=args.port,
        threads=args.thread,
        timeout=args.timeout,
        persist=args.output,
        show_fail=args.show_fail,
        budget=args.budget,
        results_path=args.results,
        domains_path=args.domains,
        ping_method=args.ping,
        ping_count=args.ping_count,
        ping_port=args.ping_port,
        top_n=args.top,
    )


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(logging.DEBUG if args.debug else logging.INFO)
    config = config_from_args(args)

    logger.info(
        "Scanning %d addresses after %s on port %d with %d threads",
        config.budget, config.address, config.port, config.threads,
    )
    prober = Prober(config, pinger=build_pinger(config))
    try:
        sink = ResultSink(config).open()
    except OSError as e:
        logger.error("Failed to open output files: %s", e)
        return 1

    try:
        stats = Scanner(config, prober=prober).scan(sink)
    except OSError as e:
        logger.error("Failed to write output files: %s", e)
        return 1

    logger.info(
        "Scan completed. Probed %d addresses, recorded %d results in %.1fs",
        stats.dispatched, stats.emitted, stats.elapsed_s,
    )

    if not config.persist:
        logger.info("Results file disabled; skipping ranking")
        return 0

    try:
        entries = rank_file(config.results_path, top_n=config.top_n)
    except OSError as e:
        logger.error("Failed to read %s: %s", config.results_path, e)
        return 1
    print_ranking(entries)
    return 0
