from __future__ import annotations
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Sequence, Union

import httpx

# Decoded JSON as produced by json.loads
JsonValue = Union[None, bool, int, float, str, List[Any], Dict[str, Any]]


class Transport(Protocol):
    """
    Interface the dispatcher uses to talk to one kind of backend.
    Built per call from a ProviderConfig snapshot via `create(config)`,
    which validates the config and raises ConfigInvalid.
    """

    def build(self, text: str, images: Optional[Sequence[str]] = None) -> Any:
        """
        Return the RequestEnvelope for this input. No network.
        """
        ...

    def exchange(self, client: httpx.AsyncClient, envelope: Any) -> AsyncIterator[Any]:
        """
        Send the envelope. Yields StreamRecords in receive order, then exactly one Answer.
        Raises ProviderError subclasses on failure.
        """
        ...
