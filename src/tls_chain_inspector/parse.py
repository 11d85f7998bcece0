from __future__ import annotations

import logging

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import dh, dsa, ec, ed448, ed25519, rsa, x448, x25519
from cryptography.x509.oid import PublicKeyAlgorithmOID, SignatureAlgorithmOID

from .errors import CertificateParseError
from .models import KeyBits, KeyCurve, ParsedCertificate, PublicKeySize
from .utils import sha256_fingerprint


logger = logging.getLogger(__name__)

# OpenSSL short names
_SIG_ALG_NAMES = {
    SignatureAlgorithmOID.RSA_WITH_MD5: "md5WithRSAEncryption",
    SignatureAlgorithmOID.RSA_WITH_SHA1: "sha1WithRSAEncryption",
    SignatureAlgorithmOID.RSA_WITH_SHA224: "sha224WithRSAEncryption",
    SignatureAlgorithmOID.RSA_WITH_SHA256: "sha256WithRSAEncryption",
    SignatureAlgorithmOID.RSA_WITH_SHA384: "sha384WithRSAEncryption",
    SignatureAlgorithmOID.RSA_WITH_SHA512: "sha512WithRSAEncryption",
    SignatureAlgorithmOID.RSASSA_PSS: "rsassaPss",
    SignatureAlgorithmOID.ECDSA_WITH_SHA1: "ecdsa-with-SHA1",
    SignatureAlgorithmOID.ECDSA_WITH_SHA224: "ecdsa-with-SHA224",
    SignatureAlgorithmOID.ECDSA_WITH_SHA256: "ecdsa-with-SHA256",
    SignatureAlgorithmOID.ECDSA_WITH_SHA384: "ecdsa-with-SHA384",
    SignatureAlgorithmOID.ECDSA_WITH_SHA512: "ecdsa-with-SHA512",
    SignatureAlgorithmOID.DSA_WITH_SHA1: "dsaWithSHA1",
    SignatureAlgorithmOID.DSA_WITH_SHA224: "dsa_with_SHA224",
    SignatureAlgorithmOID.DSA_WITH_SHA256: "dsa_with_SHA256",
    SignatureAlgorithmOID.ED25519: "ED25519",
    SignatureAlgorithmOID.ED448: "ED448",
}

_SAN_LABELS = {
    x509.DNSName: "DNS",
    x509.IPAddress: "IP Address",
    x509.RFC822Name: "email",
    x509.UniformResourceIdentifier: "URI",
}


def _name_to_str(name: x509.Name) -> str:
    # RFC4514
    return name.rfc4514_string()


def _serial_hex(serial: int) -> str:
    sign = "-" if serial < 0 else ""
    digits = format(abs(serial), "X")
    if len(digits) % 2:
        digits = "0" + digits
    return sign + digits


def _san_entry(gn: x509.GeneralName) -> str:
    label = _SAN_LABELS.get(type(gn))
    if label is not None:
        value = str(gn.value).strip()
        return f"{label}:{value}" if value else ""
    if isinstance(gn, x509.DirectoryName):
        return f"DirName:{_name_to_str(gn.value)}"
    if isinstance(gn, x509.RegisteredID):
        return f"Registered ID:{gn.value.dotted_string}"
    if isinstance(gn, x509.OtherName):
        return f"othername:{gn.type_id.dotted_string}"
    return ""


def _get_san(cert: x509.Certificate) -> list[str]:
    try:
        ext = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return []
    return [e for e in (_san_entry(gn) for gn in ext.value) if e]


def _sig_alg(cert: x509.Certificate) -> str:
    oid = cert.signature_algorithm_oid
    return _SIG_ALG_NAMES.get(oid, oid.dotted_string)


def _pubkey(cert: x509.Certificate) -> tuple[str | None, PublicKeySize]:
    """
    (type, size): bit length for RSA/DSA/DH, named curve for EC, nothing otherwise.
    """
    try:
        pk = cert.public_key()
    except (ValueError, UnsupportedAlgorithm) as e:
        logger.debug("unsupported public key: %s", e)
        return None, None

    if isinstance(pk, rsa.RSAPublicKey):
        kind = "rsa-pss" if cert.public_key_algorithm_oid == PublicKeyAlgorithmOID.RSASSA_PSS else "rsa"
        return kind, KeyBits(pk.key_size)
    if isinstance(pk, dsa.DSAPublicKey):
        return "dsa", KeyBits(pk.key_size)
    if isinstance(pk, ec.EllipticCurvePublicKey):
        return "ec", KeyCurve(pk.curve.name)
    if isinstance(pk, ed25519.Ed25519PublicKey):
        return "ed25519", None
    if isinstance(pk, ed448.Ed448PublicKey):
        return "ed448", None
    if isinstance(pk, x25519.X25519PublicKey):
        return "x25519", None
    if isinstance(pk, x448.X448PublicKey):
        return "x448", None
    if isinstance(pk, dh.DHPublicKey):
        return "dh", KeyBits(pk.key_size)
    return None, None


def parse_certificate(der: bytes) -> ParsedCertificate:
    try:
        c = x509.load_der_x509_certificate(der)
    except ValueError as e:
        raise CertificateParseError(f"malformed certificate: {e}") from e

    try:
        valid_from = c.not_valid_before_utc
        valid_to = c.not_valid_after_utc
        if valid_from > valid_to:
            raise CertificateParseError("certificate validity window is inverted")
        key_type, key_size = _pubkey(c)
        return ParsedCertificate(
            subject=_name_to_str(c.subject),
            issuer=_name_to_str(c.issuer),
            valid_from=valid_from,
            valid_to=valid_to,
            serial_number=_serial_hex(c.serial_number),
            fingerprint_sha256=sha256_fingerprint(der),
            san=_get_san(c),
            signature_algorithm=_sig_alg(c),
            public_key_type=key_type,
            public_key_size=key_size,
        )
    except (ValueError, x509.DuplicateExtension) as e:
        raise CertificateParseError(f"malformed certificate: {e}") from e
