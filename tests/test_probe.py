import ipaddress
import ssl

import pytest

from conftest import FakeClient, FakePinger, FakeSocket, h2
from h2scan.models import EXCLUDED, FAILED, QUALIFIES
from h2scan.output import format_line
from h2scan.probe import Prober, is_excluded_name, passes_gate, truncate_to_microseconds
from h2scan.tls import HandshakeInfo

ADDR = ipaddress.IPv4Address("203.0.113.5")


def test_gate_requires_tls13_and_h2_unless_show_fail():
    assert passes_gate("1.3", "h2", show_fail=False)
    assert not passes_gate("1.2", "h2", show_fail=False)
    assert not passes_gate("1.3", "http/1.1", show_fail=False)
    assert not passes_gate("1.3", "  ", show_fail=False)
    assert passes_gate("1.2", "http/1.1", show_fail=True)


@pytest.mark.parametrize(
    "name",
    ["*.example.com", "localhost", "a.b.example.com", "www.example.com", "invalid2.invalid",
     "OPNsense.localdomain", "router", ""],
)
def test_excluded_names(name):
    assert is_excluded_name(name)


@pytest.mark.parametrize("name", ["example.com", "cloudflare.net", "x.io"])
def test_two_label_names_pass(name):
    assert not is_excluded_name(name)


@pytest.mark.parametrize("info", [
    HandshakeInfo("1.2", "h2", "example.com"),
    HandshakeInfo("1.3", "http/1.1", "example.com"),
    HandshakeInfo("1.3", "", "example.com"),
])
def test_non_h2_tls13_outcomes_are_dropped(make_config, info):
    prober = Prober(make_config(), client=FakeClient({str(ADDR): info}))
    outcome = prober.probe(ADDR)

    assert outcome.verdict == EXCLUDED
    assert not prober.should_record(outcome)


@pytest.mark.parametrize("name", ["*.example.com", "localhost", "a.b.example.com", "invalid2.invalid"])
@pytest.mark.parametrize("show_fail", [False, True])
def test_excluded_subjects_never_recorded(make_config, name, show_fail):
    prober = Prober(make_config(show_fail=show_fail), client=FakeClient({str(ADDR): h2(name)}))
    outcome = prober.probe(ADDR)

    assert outcome.verdict == EXCLUDED
    assert not prober.should_record(outcome)


def test_example_com_qualifies_with_latency(make_config):
    pinger = FakePinger({"example.com": 0.012})
    prober = Prober(make_config(ping_count=5), client=FakeClient({str(ADDR): h2("example.com")}), pinger=pinger)
    outcome = prober.probe(ADDR)

    assert outcome.verdict == QUALIFIES
    assert outcome.common_name == "example.com"
    assert outcome.latency_ns == 12_000_000
    assert outcome.endpoint == "203.0.113.5:443"
    # latency is measured against the certificate name, not the address
    assert pinger.calls == [("example.com", 5)]

    line = format_line(outcome)
    assert line.domain == "example.com"
    assert "Ping: 12ms" in line.text


def test_latency_is_truncated_to_microseconds():
    assert truncate_to_microseconds(0.0123456789) == 12_345_000
    assert truncate_to_microseconds(0.0000009) == 0


def test_latency_failure_still_records_line(make_config):
    prober = Prober(make_config(), client=FakeClient({str(ADDR): h2("example.com")}), pinger=FakePinger())
    outcome = prober.probe(ADDR)

    assert outcome.verdict == QUALIFIES
    assert outcome.latency_ns is None
    assert "timed out" in outcome.error
    assert prober.should_record(outcome)
    assert "Ping failed: example.com:443: timed out" in format_line(outcome).text


def test_no_pinger_means_no_latency(make_config):
    prober = Prober(make_config(), client=FakeClient({str(ADDR): h2("example.com")}))
    outcome = prober.probe(ADDR)

    assert outcome.verdict == QUALIFIES
    assert outcome.latency_ns is None
    assert outcome.error is None
    assert "Ping" not in format_line(outcome).text


@pytest.mark.parametrize("show_fail", [False, True])
def test_dial_failure_visibility(make_config, show_fail):
    prober = Prober(make_config(show_fail=show_fail), client=FakeClient())
    outcome = prober.probe(ADDR)

    assert outcome.verdict == FAILED
    assert outcome.stage == "dial"
    assert prober.should_record(outcome) is show_fail


def test_handshake_failure_reported_with_show_fail(make_config):
    client = FakeClient({str(ADDR): ssl.SSLError("wrong version number")})
    prober = Prober(make_config(show_fail=True), client=client)
    outcome = prober.probe(ADDR)

    assert outcome.verdict == FAILED
    assert outcome.stage == "handshake"
    assert prober.should_record(outcome)
    assert format_line(outcome).text.startswith("203.0.113.5:443       handshake failed:")


def test_show_fail_records_non_h2_endpoint_with_placeholder_alpn(make_config):
    client = FakeClient({str(ADDR): HandshakeInfo("1.2", "", "example.com")})
    prober = Prober(make_config(show_fail=True), client=client)
    outcome = prober.probe(ADDR)

    assert outcome.verdict == QUALIFIES
    assert outcome.alpn == "  "
    assert "TLS v1.2    ALPN:   " in format_line(outcome).text


def test_socket_closed_after_probe(make_config):
    client = FakeClient({str(ADDR): h2("example.com")})
    sockets = []
    dial = client.dial

    def tracking_dial(host, port):
        sock = dial(host, port)
        sockets.append(sock)
        return sock

    client.dial = tracking_dial
    Prober(make_config(), client=client).probe(ADDR)

    assert sockets and all(s.closed for s in sockets)


def test_connection_lost_before_peer_lookup_is_a_dial_failure(make_config):
    class ResetSocket(FakeSocket):
        def getpeername(self):
            raise OSError(107, "Transport endpoint is not connected")

    client = FakeClient({str(ADDR): h2("example.com")})
    client.dial = lambda host, port: ResetSocket((host, port))
    prober = Prober(make_config(show_fail=True), client=client)
    outcome = prober.probe(ADDR)

    assert outcome.verdict == FAILED
    assert outcome.stage == "dial"
    assert outcome.host == str(ADDR)
    assert "not connected" in outcome.error
    assert prober.should_record(outcome)
