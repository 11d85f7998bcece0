from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Union

from .errors import InvalidInput
from .utils import dt_to_utc_iso


DEFAULT_PORT = 443
MAX_HOST_LENGTH = 253
MAX_LABEL_LENGTH = 63

_DNS_CHARSET = re.compile(r"^[A-Za-z0-9.-]+$")


def is_ip_literal(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def _check_host(value: Any, what: str) -> str:
    if not isinstance(value, str):
        raise InvalidInput(f"{what} must be a string")
    value = value.strip()
    if not value or len(value) > MAX_HOST_LENGTH:
        raise InvalidInput(f"{what} must be 1-{MAX_HOST_LENGTH} characters")
    if value.startswith("[") and value.endswith("]"):
        value = value[1:-1]
    if ":" in value:
        if not is_ip_literal(value):
            raise InvalidInput(f"{what} must be a DNS name or IP address")
    elif not _DNS_CHARSET.match(value):
        raise InvalidInput(f"{what} must be a DNS name or IP address")
    else:
        # one trailing dot (fully qualified) is allowed
        labels = value[:-1].split(".") if value.endswith(".") else value.split(".")
        if any(not label or len(label) > MAX_LABEL_LENGTH for label in labels):
            raise InvalidInput(f"{what} labels must be 1-{MAX_LABEL_LENGTH} characters")
    return value


def _check_port(value: Any) -> int:
    if value is None or value == "":
        return DEFAULT_PORT
    if isinstance(value, bool):
        raise InvalidInput("port must be an integer")
    if isinstance(value, str):
        value = value.strip()
        if not (value.isascii() and value.isdecimal() and len(value) <= 5):
            raise InvalidInput("port must be an integer")
        value = int(value)
    if not isinstance(value, int):
        raise InvalidInput("port must be an integer")
    if not (1 <= value <= 65535):
        raise InvalidInput("port must be 1-65535")
    return value


@dataclass(frozen=True)
class ChainRequest:
    host: str
    port: int = DEFAULT_PORT
    sni: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "host", _check_host(self.host, "host"))
        object.__setattr__(self, "port", _check_port(self.port))
        sni = self.sni.strip() if isinstance(self.sni, str) else self.sni
        object.__setattr__(self, "sni", _check_host(sni, "sni") if sni else self.host)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | None) -> "ChainRequest":
        """
        Build a request from a decoded JSON body: {"host", "port"?, "sni"?}.
        """
        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise InvalidInput("request body must be a JSON object")
        return cls(
            host=payload.get("host", ""),
            port=payload.get("port"),
            sni=payload.get("sni"),
        )


@dataclass(frozen=True)
class PeerCertificateNode:
    """
    One certificate as presented by the peer.
    `issuer` indexes the issuing node in the same presented chain (None when unknown).
    """
    der: bytes
    issuer: int | None = None


@dataclass(frozen=True)
class KeyBits:
    bits: int


@dataclass(frozen=True)
class KeyCurve:
    name: str


PublicKeySize = Union[KeyBits, KeyCurve, None]


def public_key_size_value(size: PublicKeySize) -> int | str | None:
    if isinstance(size, KeyBits):
        return size.bits
    if isinstance(size, KeyCurve):
        return size.name
    return None


@dataclass(frozen=True)
class ParsedCertificate:
    """
    Parsed fields from an X.509 certificate (DER).
    """
    subject: str
    issuer: str
    valid_from: datetime
    valid_to: datetime
    serial_number: str
    fingerprint_sha256: str
    san: list[str] = field(default_factory=list)
    signature_algorithm: str | None = None
    public_key_type: str | None = None
    public_key_size: PublicKeySize = None

    @property
    def self_issued(self) -> bool:
        return self.subject == self.issuer

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject": self.subject,
            "issuer": self.issuer,
            "valid_from": dt_to_utc_iso(self.valid_from),
            "valid_to": dt_to_utc_iso(self.valid_to),
            "serial_number": self.serial_number,
            "fingerprint_sha256": self.fingerprint_sha256,
            "san": list(self.san),
            "signature_algorithm": self.signature_algorithm,
            "public_key_type": self.public_key_type,
            "public_key_size": public_key_size_value(self.public_key_size),
        }


@dataclass(frozen=True)
class InspectionResult:
    """
    Chain as presented by the peer: leaf first, root (if sent) last.
    """
    host: str
    port: int
    sni: str
    days_remaining: int
    chain: list[ParsedCertificate]

    @property
    def leaf(self) -> ParsedCertificate:
        return self.chain[0]

    def to_dict(self) -> dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
            "sni": self.sni,
            "days_remaining": self.days_remaining,
            "chain": [c.to_dict() for c in self.chain],
        }
