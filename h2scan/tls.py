from __future__ import annotations

import socket
import ssl
from dataclasses import dataclass
from typing import List, Optional, Sequence

from cryptography import x509
from cryptography.x509.oid import NameOID

ALPN_PROTOCOLS = ("h2", "http/1.1")

TLS_VERSIONS = {
    "TLSv1": "1.0",
    "TLSv1.1": "1.1",
    "TLSv1.2": "1.2",
    "TLSv1.3": "1.3",
}


@dataclass(frozen=True)
class HandshakeInfo:
    version: str
    alpn: str
    common_name: str


def common_name_from_der(der: Optional[bytes]) -> str:
    """
    Subject CN of a DER leaf certificate, "" when there is no certificate
    or no CN attribute.
    """
    if not der:
        return ""
    cert = x509.load_der_x509_certificate(der)
    attrs = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attrs:
        return ""
    value = attrs[0].value
    if isinstance(value, bytes):
        return value.decode(errors="ignore")
    return value


class TLSClient:
    """
    Dials TCP endpoints and runs TLS client handshakes.

    verify=False turns off chain and hostname checks entirely; the leaf
    certificate is still read so its subject can be inspected.
    """

    def __init__(
        self,
        timeout: float,
        verify: bool = False,
        alpn_protocols: Sequence[str] = ALPN_PROTOCOLS,
    ):
        self.timeout = timeout
        self.verify = verify
        self.alpn_protocols: List[str] = list(alpn_protocols)
        self.context = self._build_context()

    def _build_context(self) -> ssl.SSLContext:
        ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        if self.verify:
            ctx.load_default_certs()
        else:
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
        if self.alpn_protocols:
            ctx.set_alpn_protocols(self.alpn_protocols)
        return ctx

    def dial(self, host: str, port: int) -> socket.socket:
        return socket.create_connection((host, port), timeout=self.timeout)

    def handshake(self, sock: socket.socket, server_name: Optional[str] = None) -> HandshakeInfo:
        # Fresh budget for the handshake, independent of how long connect took.
        sock.settimeout(self.timeout)
        tls_sock = self.context.wrap_socket(sock, server_hostname=server_name)
        try:
            raw_version = tls_sock.version() or ""
            return HandshakeInfo(
                version=TLS_VERSIONS.get(raw_version, raw_version),
                alpn=tls_sock.selected_alpn_protocol() or "",
                common_name=common_name_from_der(tls_sock.getpeercert(binary_form=True)),
            )
        finally:
            tls_sock.close()
