from __future__ import annotations
import json
import logging
from typing import AsyncIterator, List, Optional, Sequence, Union

import httpx

from contextkey.core.errors import TransportError
from contextkey.core.models import Answer, ProviderConfig, RequestEnvelope, StreamRecord, TransportKind
from contextkey.providers.framing import StreamFramer
from contextkey.providers.headers import resolve_headers
from contextkey.providers.registry import ProviderRegistry
from contextkey.providers.wire import body_excerpt, classify_httpx_error, request_args

logger = logging.getLogger(__name__)

GENERATE_PATH = "/api/generate"


@ProviderRegistry.register(TransportKind.GENERATIVE_STREAM)
class GenerateStreamTransport:
    """
    Ollama-style generate endpoint:
    - POST {endpoint}/api/generate with {model, prompt, stream: true, images?}
    - NDJSON reply, one {model, created_at, response, done} object per line
    - the answer is every `response` fragment joined in order
    """

    def __init__(self, config: ProviderConfig):
        self.config = config

    @classmethod
    def create(cls, config: ProviderConfig) -> "GenerateStreamTransport":
        config.validate()
        return cls(config)

    def build(self, text: str, images: Optional[Sequence[str]] = None) -> RequestEnvelope:
        cfg = self.config
        payload = {"model": cfg.model, "prompt": text, "stream": True}
        if images:
            payload["images"] = list(images)

        headers = resolve_headers(None, cfg.auth_key, cfg.endpoint)
        headers["Content-Type"] = "application/json"

        return RequestEnvelope(
            method="POST",
            url=cfg.endpoint.strip().rstrip("/") + GENERATE_PATH,
            headers=headers,
            body=json.dumps(payload, ensure_ascii=False).encode("utf-8"),
        )

    async def exchange(self, client: httpx.AsyncClient,
                       envelope: RequestEnvelope) -> AsyncIterator[Union[StreamRecord, Answer]]:
        framer = StreamFramer()
        parts: List[str] = []
        try:
            async with client.stream(envelope.method, envelope.url, **request_args(envelope)) as response:
                if response.status_code >= 400:
                    excerpt = body_excerpt(await response.aread())
                    raise TransportError(
                        f"{envelope.url} returned HTTP {response.status_code}: {excerpt}",
                        url=envelope.url,
                        status_code=response.status_code,
                        body=excerpt,
                    )

                async for chunk in response.aiter_bytes():
                    for record in framer.feed(chunk):
                        parts.append(record.text)
                        yield record
                    if framer.done:
                        break

            for record in framer.finish():
                parts.append(record.text)
                yield record
        except httpx.HTTPError as e:
            raise classify_httpx_error(e, envelope) from e

        logger.debug("Stream from %s finished after %d records", envelope.url, framer.records_seen)
        yield Answer("".join(parts))
