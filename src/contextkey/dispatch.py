from __future__ import annotations
import logging
from contextlib import aclosing, nullcontext
from typing import Any, AsyncIterator, Callable, Dict, Optional, Sequence, Union

import httpx

from contextkey.core.errors import ProviderError
from contextkey.core.models import Failure, ProviderConfig, RequestEnvelope, Result, StreamRecord
from contextkey.core.ports import Transport
from contextkey.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)

Event = Union[StreamRecord, Result]


class RequestDispatcher:
    """
    Sends one combined input to one provider snapshot and reports the outcome.

    - stream(): async generator of StreamRecords (receive order) followed by one
      terminal Answer or Failure. Closing it early cancels the call; no
      terminal result is produced then.
    - send(): drives stream(), calling on_fragment per record, returns the terminal result.

    Failures never escape as exceptions. Nothing is retried.
    Without a shared `client` every call opens its own short-lived AsyncClient;
    `timeout=None` keeps httpx's default.
    """

    def __init__(
        self,
        *,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        ProviderRegistry.ensure_imports()
        self._shared = client
        self._client_kwargs: Dict[str, Any] = {}
        if transport is not None:
            self._client_kwargs["transport"] = transport
        if timeout is not None:
            self._client_kwargs["timeout"] = timeout

    def transport_for(self, config: ProviderConfig) -> Transport:
        return ProviderRegistry.get(config.transport).create(config)

    def build(self, config: ProviderConfig, text: str,
              images: Optional[Sequence[str]] = None) -> RequestEnvelope:
        """Validate and build the wire request without sending it. Raises ConfigInvalid."""
        return self.transport_for(config).build(text, images)

    def _client(self):
        if self._shared is not None:
            return nullcontext(self._shared)
        return httpx.AsyncClient(**self._client_kwargs)

    @staticmethod
    def _failure(exc: ProviderError, config: ProviderConfig) -> Failure:
        failure = Failure.from_error(exc)
        failure.detail.setdefault("provider_id", config.id)
        failure.detail.setdefault("provider", config.name)
        failure.detail.setdefault("transport", config.transport.value)
        logger.warning("Provider '%s' failed (%s): %s", config.name, failure.kind.value, failure.message)
        return failure

    async def stream(self, config: ProviderConfig, text: str, *,
                     images: Optional[Sequence[str]] = None) -> AsyncIterator[Event]:
        try:
            transport = self.transport_for(config)
            envelope = transport.build(text, images)
        except ProviderError as e:
            yield self._failure(e, config)
            return

        logger.info("Dispatching %d chars to '%s' (%s)", len(text), config.name, config.transport.value)
        try:
            async with self._client() as client:
                async with aclosing(transport.exchange(client, envelope)) as events:
                    async for event in events:
                        yield event
        except ProviderError as e:
            yield self._failure(e, config)

    async def send(self, config: ProviderConfig, text: str, *,
                   images: Optional[Sequence[str]] = None,
                   on_fragment: Optional[Callable[[StreamRecord], None]] = None) -> Result:
        result: Optional[Result] = None
        async with aclosing(self.stream(config, text, images=images)) as events:
            async for event in events:
                if isinstance(event, StreamRecord):
                    if on_fragment is not None:
                        on_fragment(event)
                else:
                    result = event
        if result is None:
            raise RuntimeError("stream() ended without a terminal result")
        return result
