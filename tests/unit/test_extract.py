# tests/unit/test_extract.py

from __future__ import annotations
import sys
from pathlib import Path
import pytest

# Make "src" importable
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from contextkey.core.errors import ArrayRoot, FailureKind, PathMiss, TypeMismatch  # type: ignore
from contextkey.core.models import Answer, Failure  # type: ignore
from contextkey.providers.extract import extract, resolve_path  # type: ignore


CHAT = {"id": "x", "choices": [{"message": {"role": "assistant", "content": "Hello"}}]}


def test_nested_path_with_index():
    assert resolve_path(CHAT, "choices[0].message.content") == "Hello"


def test_index_out_of_range_lists_keys():
    with pytest.raises(PathMiss) as ei:
        resolve_path(CHAT, "choices[1].message.content")
    assert ei.value.available_keys == ["id", "choices"]
    assert "Available keys: id, choices" in ei.value.message
    assert ei.value.segment == "choices[1]"


def test_missing_key():
    with pytest.raises(PathMiss) as ei:
        resolve_path({"error": {"message": "bad key"}}, "choices[0].text")
    assert "error" in ei.value.available_keys


def test_deep_miss_reports_keys_of_last_object():
    with pytest.raises(PathMiss) as ei:
        resolve_path(CHAT, "choices[0].message.text")
    assert ei.value.available_keys == ["role", "content"]


def test_index_on_non_array_is_miss():
    with pytest.raises(PathMiss):
        resolve_path({"a": {"b": 1}}, "a[0]")


def test_non_numeric_index_is_miss():
    with pytest.raises(PathMiss):
        resolve_path({"a": [1]}, "a[x]")
    with pytest.raises(PathMiss):
        resolve_path({"a": [1]}, "a[-1]")


def test_walking_into_scalar_is_miss():
    with pytest.raises(PathMiss):
        resolve_path({"a": "text"}, "a.b")


def test_array_root():
    with pytest.raises(ArrayRoot) as ei:
        resolve_path([1, 2, 3], "0")
    assert "Response is an array" in ei.value.message


def test_scalar_formatting():
    assert resolve_path({"n": 42}, "n") == "42"
    assert resolve_path({"n": 3.0}, "n") == "3"
    assert resolve_path({"n": 2.5}, "n") == "2.5"
    assert resolve_path({"b": True}, "b") == "true"
    assert resolve_path({"b": False}, "b") == "false"
    assert resolve_path({"s": ""}, "s") == ""


@pytest.mark.parametrize("value,kind", [({"x": 1}, "object"), ([1], "array"), (None, "null")])
def test_non_scalar_terminal_is_type_mismatch(value, kind):
    with pytest.raises(TypeMismatch) as ei:
        resolve_path({"v": value}, "v")
    assert ei.value.actual_type == kind


def test_extract_returns_tagged_result():
    assert extract(CHAT, "choices[0].message.content") == Answer("Hello")
    failure = extract([1], "a")
    assert isinstance(failure, Failure)
    assert failure.kind is FailureKind.ARRAY_ROOT
    assert not failure.ok
