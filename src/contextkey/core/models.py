from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

import httpx

from .errors import ConfigInvalid, FailureKind, ProviderError

ALLOWED_METHODS = ("GET", "POST", "PUT")


class TransportKind(str, Enum):
    GENERATIVE_STREAM = "generative_stream"
    TEMPLATED = "templated"


@dataclass(frozen=True)
class ProviderConfig:
    """
    One configured backend. Frozen: the dispatcher works on the snapshot it was
    handed, edits go through dataclasses.replace() in the registry.
    """
    id: str
    transport: TransportKind
    endpoint: str
    name: str = "Unnamed Configuration"
    model: Optional[str] = None
    auth_key: Optional[str] = field(default=None, repr=False)
    auth_key_ref: Optional[str] = None
    context_limit: Optional[int] = None
    # templated only
    http_method: Optional[str] = None
    headers_json: Optional[str] = None
    body_template: Optional[str] = None
    response_path: Optional[str] = None

    @property
    def method(self) -> str:
        return (self.http_method or "POST").strip().upper()

    def validate(self) -> None:
        missing: List[str] = []
        problems: List[str] = []

        if not (self.endpoint or "").strip():
            missing.append("endpoint")
        else:
            try:
                url = httpx.URL(self.endpoint.strip())
            except httpx.InvalidURL:
                url = None
            if url is None or url.scheme not in ("http", "https") or not url.host:
                problems.append(f"endpoint '{self.endpoint}' is not an absolute http(s) URL")

        if self.transport is TransportKind.GENERATIVE_STREAM:
            if not (self.model or "").strip():
                missing.append("model")
        elif self.transport is TransportKind.TEMPLATED:
            if not (self.body_template or "").strip():
                missing.append("body_template")
            if not (self.response_path or "").strip():
                missing.append("response_path")
            if self.method not in ALLOWED_METHODS:
                problems.append(f"http_method '{self.http_method}' is not one of {', '.join(ALLOWED_METHODS)}")

        if missing or problems:
            parts = []
            if missing:
                parts.append("missing " + ", ".join(missing))
            parts.extend(problems)
            raise ConfigInvalid(
                f"Invalid {self.transport.value} configuration '{self.name}': " + "; ".join(parts),
                missing=missing,
                provider_id=self.id,
                problems=problems,
            )


@dataclass(frozen=True)
class RequestEnvelope:
    method: str
    url: str
    headers: httpx.Headers
    body: Optional[bytes] = None


@dataclass(frozen=True)
class StreamRecord:
    text: str
    is_final: bool
    model: Optional[str] = None
    created_at: Optional[str] = None


@dataclass(frozen=True)
class Answer:
    text: str
    ok = True


@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    message: str
    detail: Dict[str, Any] = field(default_factory=dict)
    ok = False

    @classmethod
    def from_error(cls, exc: ProviderError) -> "Failure":
        return cls(kind=exc.kind, message=exc.message, detail=dict(exc.detail))

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message, "detail": self.detail}


Result = Union[Answer, Failure]
