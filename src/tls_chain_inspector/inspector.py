from __future__ import annotations

import concurrent.futures
import enum
import logging
from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping

from .chain import walk_chain
from .errors import INTERNAL_ERROR, InspectionError, NoCertificatePresented
from .fetch import DEFAULT_TIMEOUT_SECONDS, ConnectMode, fetch_presented_chain
from .models import ChainRequest, InspectionResult
from .parse import parse_certificate
from .utils import utc_now


logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 8


class Stage(enum.Enum):
    CONNECTING = "connecting"
    WALKING = "walking"
    PARSING = "parsing"
    DONE = "done"
    FAILED = "failed"


def days_remaining(valid_to: datetime, now: datetime) -> int:
    """
    Whole days until valid_to, floored: expired an hour ago -> -1.
    """
    return (valid_to - now) // timedelta(days=1)


def inspect_chain(
    request: ChainRequest,
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    now: datetime | None = None,
) -> InspectionResult:
    """
    Connect, walk the presented chain and parse every certificate in it.
    Any failure aborts the whole inspection; there are no partial results.
    """
    stage = Stage.CONNECTING
    try:
        logger.debug("%s:%s %s", request.host, request.port, stage.value)
        nodes = fetch_presented_chain(
            host=request.host,
            port=request.port,
            sni=request.sni,
            timeout_seconds=timeout_seconds,
            mode=ConnectMode.INSPECT_ONLY,
        )

        stage = Stage.WALKING
        logger.debug("%s:%s %s %d node(s)", request.host, request.port, stage.value, len(nodes))
        ders = walk_chain(nodes)
        if not ders:
            raise NoCertificatePresented(f"{request.host}:{request.port} did not present a certificate")

        stage = Stage.PARSING
        logger.debug("%s:%s %s %d certificate(s)", request.host, request.port, stage.value, len(ders))
        chain = [parse_certificate(der) for der in ders]
    except InspectionError as e:
        logger.info(
            "inspection of %s:%s %s while %s: %s",
            request.host, request.port, Stage.FAILED.value, stage.value, e,
        )
        raise

    if now is None:
        now = utc_now()
    result = InspectionResult(
        host=request.host,
        port=request.port,
        sni=request.sni or request.host,
        days_remaining=days_remaining(chain[0].valid_to, now),
        chain=chain,
    )
    logger.debug("%s:%s %s", request.host, request.port, Stage.DONE.value)
    return result


def inspect_payload(
    payload: Mapping[str, Any] | None,
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> dict[str, Any]:
    """
    Request-layer adapter: decoded JSON body in, JSON-ready document out.
    Failures come back as {"error": {"kind", "message"}}.
    """
    try:
        request = ChainRequest.from_payload(payload)
        return inspect_chain(request, timeout_seconds=timeout_seconds).to_dict()
    except InspectionError as e:
        return {"error": e.to_dict()}
    except Exception:
        logger.exception("unexpected failure inspecting %r", payload)
        return {"error": dict(INTERNAL_ERROR)}


def inspect_many(
    payloads: Iterable[Mapping[str, Any]],
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    max_workers: int = DEFAULT_WORKERS,
) -> list[dict[str, Any]]:
    """
    Run independent inspections concurrently; documents come back in input order.
    """
    payloads = list(payloads)
    if not payloads:
        return []
    workers = max(1, min(max_workers, len(payloads)))
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(lambda p: inspect_payload(p, timeout_seconds=timeout_seconds), payloads))
