from __future__ import annotations

from typing import Any


class InspectionError(Exception):
    """
    Base class for every failure of a single inspection.
    None of these are retried; each one ends the inspection.
    """

    kind = "InspectionError"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class InvalidInput(InspectionError):
    kind = "InvalidInput"


class ConnectionTimeout(InspectionError):
    kind = "ConnectionTimeout"


class ConnectionFailed(InspectionError):
    kind = "ConnectionFailed"


class NoCertificatePresented(InspectionError):
    kind = "NoCertificatePresented"


class CertificateParseError(InspectionError):
    kind = "CertificateParseError"


# Reported for unexpected failures; the detail goes to the log, not the caller.
INTERNAL_ERROR = {"kind": "InternalError", "message": "TLS inspection failed"}
