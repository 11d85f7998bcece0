__version__ = "0.1.0"

from .errors import (
    CertificateParseError,
    ConnectionFailed,
    ConnectionTimeout,
    InspectionError,
    InvalidInput,
    NoCertificatePresented,
)
from .inspector import days_remaining, inspect_chain, inspect_many, inspect_payload
from .models import ChainRequest, InspectionResult, KeyBits, KeyCurve, ParsedCertificate

__all__ = [
    "CertificateParseError",
    "ChainRequest",
    "ConnectionFailed",
    "ConnectionTimeout",
    "InspectionError",
    "InspectionResult",
    "InvalidInput",
    "KeyBits",
    "KeyCurve",
    "NoCertificatePresented",
    "ParsedCertificate",
    "days_remaining",
    "inspect_chain",
    "inspect_many",
    "inspect_payload",
]
