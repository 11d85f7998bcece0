from __future__ import annotations

import contextlib
import enum
import logging
import selectors
import socket
import time

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from OpenSSL import SSL

from .errors import ConnectionFailed, ConnectionTimeout, InvalidInput, NoCertificatePresented
from .models import PeerCertificateNode, is_ip_literal


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10


class ConnectMode(enum.Enum):
    # Handshake accepts any certificate; nothing is verified, only collected.
    INSPECT_ONLY = "inspect-only"


def _make_context(mode: ConnectMode) -> SSL.Context:
    if mode is not ConnectMode.INSPECT_ONLY:
        raise ValueError(f"unsupported connect mode: {mode!r}")
    ctx = SSL.Context(SSL.TLS_CLIENT_METHOD)
    ctx.set_verify(SSL.VERIFY_NONE, lambda *args: True)
    # Old servers must still hand over their chain.
    ctx.set_min_proto_version(0)
    ctx.set_cipher_list(b"ALL:@SECLEVEL=0")
    return ctx


def _remaining(deadline: float) -> float:
    left = deadline - time.monotonic()
    if left <= 0:
        raise ConnectionTimeout("connect and handshake timed out")
    return left


def _wait(sock: socket.socket, events: int, timeout: float) -> None:
    with selectors.DefaultSelector() as sel:
        sel.register(sock, events)
        sel.select(timeout)


def _handshake(conn: SSL.Connection, sock: socket.socket, deadline: float) -> None:
    while True:
        left = _remaining(deadline)
        try:
            conn.do_handshake()
            return
        except SSL.WantReadError:
            _wait(sock, selectors.EVENT_READ, left)
        except SSL.WantWriteError:
            _wait(sock, selectors.EVENT_WRITE, left)


def _connect(host: str, port: int, deadline: float) -> socket.socket:
    """
    Try each resolved address in turn; every attempt only gets what is
    left of the shared deadline.
    """
    try:
        infos = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    except socket.gaierror as e:
        logger.info("name resolution failed for %s: %s", host, e)
        raise ConnectionFailed(f"could not resolve {host}: {e.strerror or e}") from e

    last_error: OSError | None = None
    for family, socktype, proto, _, addr in infos:
        left = _remaining(deadline)
        sock = socket.socket(family, socktype, proto)
        sock.settimeout(left)
        try:
            sock.connect(addr)
            return sock
        except OSError as e:
            sock.close()
            last_error = e
            logger.debug("connect to %s failed: %s", addr, e)

    if isinstance(last_error, socket.timeout):
        raise ConnectionTimeout("connect and handshake timed out") from last_error
    if last_error is None:
        raise ConnectionFailed(f"could not resolve {host}: no addresses")
    logger.info("tcp connect to %s:%s failed: %s", host, port, last_error)
    raise ConnectionFailed(
        f"could not connect to {host}:{port}: {last_error.strerror or last_error}"
    ) from last_error


def link_issuers(certs: list[x509.Certificate]) -> list[PeerCertificateNode]:
    """
    Turn the presented certificates into an arena of nodes whose `issuer`
    points at the presented certificate whose subject matches the issuer name.
    A self-issued certificate points at itself.
    """
    nodes: list[PeerCertificateNode] = []
    for i, cert in enumerate(certs):
        issuer: int | None = None
        if cert.issuer == cert.subject:
            issuer = i
        else:
            for j, other in enumerate(certs):
                if j != i and other.subject == cert.issuer:
                    issuer = j
                    break
        nodes.append(PeerCertificateNode(der=cert.public_bytes(serialization.Encoding.DER), issuer=issuer))
    return nodes


def fetch_presented_chain(
    *,
    host: str,
    port: int,
    sni: str | None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    mode: ConnectMode = ConnectMode.INSPECT_ONLY,
) -> list[PeerCertificateNode]:
    """
    Handshake with host:port and return the certificates the peer presented,
    leaf at index 0. One deadline covers TCP connect plus TLS handshake.
    The socket is closed before returning; no application data is sent.

    Pass sni=None (or an IP literal) to omit the server name extension.
    """
    ctx = _make_context(mode)
    deadline = time.monotonic() + timeout_seconds
    logger.debug("connecting to %s:%s (sni=%s, timeout=%ss)", host, port, sni, timeout_seconds)

    sock = _connect(host, port, deadline)
    with contextlib.closing(sock):
        sock.setblocking(False)
        conn = SSL.Connection(ctx, sock)
        if sni and not is_ip_literal(sni):
            try:
                conn.set_tlsext_host_name(sni.encode("ascii"))
            except UnicodeError as e:
                raise InvalidInput(f"sni is not a valid host name: {sni}") from e
        conn.set_connect_state()
        try:
            _handshake(conn, sock, deadline)
        except SSL.Error as e:
            logger.info("tls handshake with %s:%s failed: %s", host, port, e)
            raise ConnectionFailed(f"TLS handshake with {host}:{port} failed") from e
        except OSError as e:
            raise ConnectionFailed(f"connection to {host}:{port} failed: {e.strerror or e}") from e

        certs = conn.get_peer_cert_chain(as_cryptography=True)

    if not certs:
        raise NoCertificatePresented(f"{host}:{port} did not present a certificate")
    logger.debug("%s:%s presented %d certificate(s)", host, port, len(certs))
    return link_issuers(certs)
