from __future__ import annotations
import json
import logging
from typing import Dict, Optional

import httpx

from contextkey.core.errors import ConfigInvalid

logger = logging.getLogger(__name__)

GOOGLE_KEY_HEADER = "x-goog-api-key"


def mask_secret(value: Optional[str]) -> str:
    if not value:
        return ""
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}...{value[-4:]}"


def masked(headers: httpx.Headers) -> Dict[str, str]:
    """Header view safe for logs."""
    return {
        k: mask_secret(v) if ("key" in k or k == "authorization") else v
        for k, v in headers.items()
    }


def parse_declared_headers(headers_json: Optional[str]) -> Dict[str, str]:
    """
    Parse the user's raw header JSON. Anything but a flat object of strings
    degrades to no headers; a bad header block never fails the call.
    """
    if not headers_json or not headers_json.strip():
        return {}
    try:
        data = json.loads(headers_json)
    except ValueError as e:
        logger.warning("Ignoring custom headers: not valid JSON (%s)", e)
        return {}
    if not isinstance(data, dict) or not all(isinstance(v, str) for v in data.values()):
        logger.warning("Ignoring custom headers: expected a JSON object of string values")
        return {}
    if not all(k.isascii() and v.isascii() for k, v in data.items()):
        logger.warning("Ignoring custom headers: names and values must be ASCII")
        return {}
    return data


def _has_auth(headers: httpx.Headers, auth_key: Optional[str]) -> bool:
    if GOOGLE_KEY_HEADER in headers:
        return True
    auth = headers.get("authorization")
    return auth is not None and (auth_key or "") in auth


def resolve_headers(headers_json: Optional[str], auth_key: Optional[str], endpoint: str) -> httpx.Headers:
    """
    Declared headers first, then the static key if it is not already there:
    x-goog-api-key for googleapis.com endpoints, a Bearer token otherwise.
    Injection only adds; a declared header is never overwritten.
    Raises ConfigInvalid when the key cannot be sent as a header value.
    """
    if auth_key and not auth_key.isascii():
        raise ConfigInvalid("Auth key contains non-ASCII characters and cannot be sent in a header.",
                            field="auth_key")

    headers = httpx.Headers(parse_declared_headers(headers_json))

    if auth_key and not _has_auth(headers, auth_key):
        if "googleapis.com" in endpoint:
            headers[GOOGLE_KEY_HEADER] = auth_key
        else:
            headers["Authorization"] = f"Bearer {auth_key}"

    return headers
