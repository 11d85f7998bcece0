from __future__ import annotations

from typing import Sequence

from .models import PeerCertificateNode
from .utils import sha256_hex


def walk_chain(nodes: Sequence[PeerCertificateNode], start: int = 0) -> list[bytes]:
    """
    Follow issuer links from nodes[start] and return the raw certificates
    leaf first. Stops at a node with no issuer link, an empty node, or the
    first certificate already seen (by SHA-256), so self-pointing or cyclic
    chains terminate.
    """
    out: list[bytes] = []
    seen: set[str] = set()

    current: int | None = start
    while current is not None and 0 <= current < len(nodes):
        node = nodes[current]
        if not node.der:
            break
        digest = sha256_hex(node.der)
        if digest in seen:
            break
        seen.add(digest)
        out.append(node.der)
        current = node.issuer
    return out
