from __future__ import annotations
import re
from typing import Any, List, Optional, Tuple

from contextkey.core.errors import ArrayRoot, PathMiss, ProviderError, TypeMismatch
from contextkey.core.models import Answer, Failure, Result
from contextkey.core.ports import JsonValue

# "choices[0]" -> ("choices", "0"); the index is validated separately so that
# "choices[x]" reports a path miss rather than being read as a plain key.
_INDEXED = re.compile(r"^(?P<key>[^\[\]]*)\[(?P<index>[^\[\]]*)\]$")


def _json_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


def _split_segment(segment: str) -> Tuple[str, Optional[str]]:
    m = _INDEXED.match(segment)
    if m:
        return m.group("key"), m.group("index")
    return segment, None


def _miss(path: str, segment: str, reason: str, keys: List[str]) -> PathMiss:
    msg = f"Failed to extract response using path '{path}': {reason}."
    if keys:
        msg += f" Available keys: {', '.join(keys)}"
    return PathMiss(msg, path=path, segment=segment, available_keys=keys)


def _format_scalar(value: JsonValue, path: str) -> str:
    # bool first: it is an int subclass
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    kind = _json_type(value)
    raise TypeMismatch(
        f"Value at '{path}' is {kind}; expected a string, number or boolean.",
        path=path,
        actual_type=kind,
    )


def resolve_path(value: JsonValue, path: str) -> str:
    """
    Walk `path` (dot-separated keys, each optionally followed by one [index])
    through a decoded JSON response and return the terminal value as text.
    Raises ArrayRoot, PathMiss or TypeMismatch.
    """
    if isinstance(value, list):
        raise ArrayRoot(
            "Response is an array. Update your response path to handle array responses.",
            path=path,
            length=len(value),
        )

    current: JsonValue = value
    # keys of the last object we stood in, for diagnostics
    keys: List[str] = []

    for segment in path.split("."):
        key, index = _split_segment(segment)

        if not isinstance(current, dict):
            raise _miss(path, segment, f"'{segment}' expects an object but found {_json_type(current)}", keys)
        keys = list(current.keys())
        if key not in current:
            raise _miss(path, segment, f"key '{key}' not found", keys)
        child = current[key]

        if index is None:
            current = child
            continue

        if not isinstance(child, list):
            raise _miss(path, segment, f"'{key}' is {_json_type(child)}, not an array", keys)
        if not (index.isascii() and index.isdigit()):
            raise _miss(path, segment, f"index '{index}' is not a non-negative integer", keys)
        i = int(index)
        if i >= len(child):
            raise _miss(path, segment, f"index {i} is out of range for '{key}' (length {len(child)})", keys)
        current = child[i]

    return _format_scalar(current, path)


def extract(value: JsonValue, path: str) -> Result:
    """Tagged-result variant of resolve_path()."""
    try:
        return Answer(resolve_path(value, path))
    except ProviderError as e:
        return Failure.from_error(e)
