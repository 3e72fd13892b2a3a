from __future__ import annotations
from enum import Enum
from typing import Any, Dict, Iterable


class FailureKind(str, Enum):
    CONFIG_INVALID = "config_invalid"
    TRANSPORT_ERROR = "transport_error"
    DECODE_ERROR = "decode_error"
    PATH_MISS = "path_miss"
    TYPE_MISMATCH = "type_mismatch"
    ARRAY_ROOT = "array_root"
    STREAM_ABORTED = "stream_aborted"


class ProviderError(Exception):
    """
    Base class for adapter failures.
    Raised inside the transports; the dispatcher turns it into a Failure result.
    """
    kind: FailureKind = FailureKind.TRANSPORT_ERROR

    def __init__(self, message: str, **detail: Any):
        super().__init__(message)
        self.message = message
        self.detail: Dict[str, Any] = detail


class ConfigInvalid(ProviderError):
    """Required provider fields are missing or malformed. Raised before any network call."""
    kind = FailureKind.CONFIG_INVALID

    def __init__(self, message: str, missing: Iterable[str] = (), **detail: Any):
        fields = list(missing)
        super().__init__(message, missing=fields, **detail)
        self.missing = fields


class TransportError(ProviderError):
    """Connection, timeout, TLS, DNS, or an error status/record from the backend."""
    kind = FailureKind.TRANSPORT_ERROR


class DecodeError(ProviderError):
    """Response body is not valid JSON where JSON was expected."""
    kind = FailureKind.DECODE_ERROR


class PathMiss(ProviderError):
    kind = FailureKind.PATH_MISS

    def __init__(self, message: str, *, path: str, segment: str,
                 available_keys: Iterable[str] = (), **detail: Any):
        keys = list(available_keys)
        super().__init__(message, path=path, segment=segment, available_keys=keys, **detail)
        self.path = path
        self.segment = segment
        self.available_keys = keys


class TypeMismatch(ProviderError):
    kind = FailureKind.TYPE_MISMATCH

    def __init__(self, message: str, *, path: str, actual_type: str, **detail: Any):
        super().__init__(message, path=path, actual_type=actual_type, **detail)
        self.path = path
        self.actual_type = actual_type


class ArrayRoot(ProviderError):
    kind = FailureKind.ARRAY_ROOT


class StreamAborted(ProviderError):
    """Stream ended before a record with done=true was seen."""
    kind = FailureKind.STREAM_ABORTED
