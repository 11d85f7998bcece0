from __future__ import annotations

import ipaddress
import socket
import ssl
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from cryptography.x509.oid import NameOID


@dataclass
class Issued:
    cert: x509.Certificate
    key: Any

    @property
    def der(self) -> bytes:
        return self.cert.public_bytes(serialization.Encoding.DER)

    @property
    def pem(self) -> bytes:
        return self.cert.public_bytes(serialization.Encoding.PEM)


def _name(cn: str) -> x509.Name:
    return x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Test Org"),
        x509.NameAttribute(NameOID.COMMON_NAME, cn),
    ])


def issue(
    cn: str,
    *,
    issuer: Issued | None = None,
    key: Any = None,
    not_before: datetime | None = None,
    days: int = 365,
    san: list[x509.GeneralName] | None = None,
    ca: bool = False,
    serial: int | None = None,
) -> Issued:
    """
    Build a certificate for `cn`, signed by `issuer` (self-signed when None).
    """
    if key is None:
        key = ec.generate_private_key(ec.SECP256R1())
    if not_before is None:
        not_before = datetime.now(timezone.utc)
    signer_key = issuer.key if issuer else key
    issuer_name = issuer.cert.subject if issuer else _name(cn)

    builder = (
        x509.CertificateBuilder()
        .subject_name(_name(cn))
        .issuer_name(issuer_name)
        .public_key(key.public_key())
        .serial_number(serial if serial is not None else x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_before + timedelta(days=days))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
    )
    if san:
        builder = builder.add_extension(x509.SubjectAlternativeName(san), critical=False)

    algorithm = None if isinstance(signer_key, ed25519.Ed25519PrivateKey) else hashes.SHA256()
    return Issued(builder.sign(signer_key, algorithm), key)


def rsa_key(bits: int = 2048):
    return rsa.generate_private_key(public_exponent=65537, key_size=bits)


@pytest.fixture(scope="session")
def three_chain() -> list[Issued]:
    root = issue("Test Root CA", ca=True, days=3650)
    intermediate = issue("Test Intermediate CA", issuer=root, ca=True, days=1825)
    leaf = issue(
        "chain.example",
        issuer=intermediate,
        key=rsa_key(),
        days=90,
        san=[x509.DNSName("chain.example"), x509.DNSName("www.chain.example")],
    )
    return [leaf, intermediate, root]


@pytest.fixture(scope="session")
def self_signed() -> Issued:
    return issue(
        "self-signed.example",
        san=[x509.DNSName("self-signed.example"), x509.IPAddress(ipaddress.ip_address("127.0.0.1"))],
    )


@pytest.fixture
def tls_server(tmp_path):
    """
    start(chain) -> port of a loopback TLS server presenting `chain`
    (leaf first, leaf key used). Serves until the test ends.
    """
    stops: list[tuple[threading.Event, socket.socket, threading.Thread]] = []

    def start(chain: list[Issued]) -> int:
        n = len(stops)
        certfile = tmp_path / f"chain{n}.pem"
        keyfile = tmp_path / f"key{n}.pem"
        certfile.write_bytes(b"".join(i.pem for i in chain))
        keyfile.write_bytes(
            chain[0].key.private_bytes(
                serialization.Encoding.PEM,
                serialization.PrivateFormat.PKCS8,
                serialization.NoEncryption(),
            )
        )
        ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        ctx.load_cert_chain(str(certfile), str(keyfile))

        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        listener.bind(("127.0.0.1", 0))
        listener.listen(5)
        listener.settimeout(0.1)
        stop = threading.Event()

        def serve() -> None:
            while not stop.is_set():
                try:
                    conn, _ = listener.accept()
                except socket.timeout:
                    continue
                except OSError:
                    break
                conn.settimeout(5)
                try:
                    with ctx.wrap_socket(conn, server_side=True):
                        pass
                except OSError:
                    pass
                finally:
                    conn.close()

        thread = threading.Thread(target=serve, daemon=True)
        thread.start()
        stops.append((stop, listener, thread))
        return listener.getsockname()[1]

    yield start

    for stop, listener, thread in stops:
        stop.set()
        thread.join(timeout=2)
        listener.close()


@pytest.fixture
def silent_port():
    """A port that accepts TCP connections but never speaks TLS."""
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(5)
    yield listener.getsockname()[1]
    listener.close()


@pytest.fixture
def closed_port() -> int:
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port
