from __future__ import annotations
import logging
from typing import Any, Dict

import httpx

from contextkey.core.errors import TransportError
from contextkey.core.models import RequestEnvelope
from contextkey.providers.headers import masked

logger = logging.getLogger(__name__)

EXCERPT_CHARS = 200


def body_excerpt(data: bytes, limit: int = EXCERPT_CHARS) -> str:
    text = data.decode("utf-8", errors="replace")
    return text if len(text) <= limit else text[:limit] + "..."


def request_args(envelope: RequestEnvelope) -> Dict[str, Any]:
    logger.debug("%s %s headers=%s body=%d bytes", envelope.method, envelope.url,
                 masked(envelope.headers), len(envelope.body or b""))
    args: Dict[str, Any] = {"headers": envelope.headers}
    if envelope.body is not None:
        args["content"] = envelope.body
    return args


def classify_httpx_error(exc: httpx.HTTPError, envelope: RequestEnvelope) -> TransportError:
    """
    Convert httpx failures (connect, timeout, TLS, DNS, read) into a TransportError
    that names the request it belonged to.
    """
    reason = str(exc) or type(exc).__name__
    if isinstance(exc, httpx.TimeoutException):
        reason = f"timed out ({type(exc).__name__})"
    return TransportError(
        f"{envelope.method} {envelope.url} failed: {reason}",
        url=envelope.url,
        method=envelope.method,
        error_type=type(exc).__name__,
    )
