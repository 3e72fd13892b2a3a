# src/contextkey/providers/templated.py
from __future__ import annotations
import json
import logging
from typing import AsyncIterator, Optional, Sequence

import httpx

from contextkey.core.errors import DecodeError, ProviderError
from contextkey.core.models import Answer, ProviderConfig, RequestEnvelope, TransportKind
from contextkey.providers.extract import resolve_path
from contextkey.providers.headers import resolve_headers
from contextkey.providers.registry import ProviderRegistry
from contextkey.providers.template import render_template
from contextkey.providers.wire import body_excerpt, classify_httpx_error, request_args

logger = logging.getLogger(__name__)


@ProviderRegistry.register(TransportKind.TEMPLATED)
class TemplatedTransport:
    """
    User-authored contract:
    - method, URL, headers and body all come from the config
    - body is the template with {{input}} substituted (no body for GET)
    - the reply must be one JSON object; response_path picks the answer out of it
    """

    def __init__(self, config: ProviderConfig):
        self.config = config

    @classmethod
    def create(cls, config: ProviderConfig) -> "TemplatedTransport":
        config.validate()
        return cls(config)

    def build(self, text: str, images: Optional[Sequence[str]] = None) -> RequestEnvelope:
        cfg = self.config
        if images:
            logger.debug("Templated transport ignores %d attached image(s)", len(images))

        method = cfg.method
        endpoint = cfg.endpoint.strip()
        headers = resolve_headers(cfg.headers_json, cfg.auth_key, endpoint)

        body = None
        if method != "GET":
            body = render_template(cfg.body_template or "", text).encode("utf-8")
            if "content-type" not in headers:
                headers["Content-Type"] = "application/json"

        return RequestEnvelope(method=method, url=endpoint, headers=headers, body=body)

    async def exchange(self, client: httpx.AsyncClient, envelope: RequestEnvelope) -> AsyncIterator[Answer]:
        try:
            response = await client.request(envelope.method, envelope.url, **request_args(envelope))
        except httpx.HTTPError as e:
            raise classify_httpx_error(e, envelope) from e

        data = response.content
        try:
            decoded = json.loads(data)
        except (ValueError, RecursionError) as e:
            raise DecodeError(
                f"Response is not valid JSON (HTTP {response.status_code}). Response: {body_excerpt(data)}",
                url=envelope.url,
                status_code=response.status_code,
                body=body_excerpt(data),
            ) from e

        # The status is not checked: error bodies surface through the path
        # diagnostic, which lists keys such as "error".
        try:
            text = resolve_path(decoded, self.config.response_path or "")
        except ProviderError as e:
            e.detail["status_code"] = response.status_code
            raise
        yield Answer(text.strip())
