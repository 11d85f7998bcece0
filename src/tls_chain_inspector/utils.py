from __future__ import annotations

import hashlib
from datetime import datetime, timezone


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def format_fingerprint(hex_digest: str) -> str:
    """AABB... -> AA:BB:..."""
    hex_digest = hex_digest.upper()
    return ":".join(hex_digest[i : i + 2] for i in range(0, len(hex_digest), 2))


def sha256_fingerprint(data: bytes) -> str:
    return format_fingerprint(sha256_hex(data))


def dt_to_utc_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
