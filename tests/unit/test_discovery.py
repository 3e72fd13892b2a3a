# tests/unit/test_discovery.py

from __future__ import annotations
import asyncio
import sys
from pathlib import Path

import httpx

# Make "src" importable
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

import contextkey.providers.discovery as discovery  # type: ignore
from contextkey.providers.discovery import list_models, model_names, parse_context_length  # type: ignore


def test_list_models_reads_tags():
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200, json={"models": [{"name": "llama3:latest"}, {"name": "mistral"}, {"x": 1}]})

    names = asyncio.run(list_models("http://localhost:11434/", transport=httpx.MockTransport(handler)))
    assert names == ["llama3:latest", "mistral"]
    assert seen == ["http://localhost:11434/api/tags"]


def test_list_models_degrades_to_empty():
    def refused(request):
        raise httpx.ConnectError("refused", request=request)

    assert asyncio.run(list_models("http://localhost:1", transport=httpx.MockTransport(refused))) == []

    not_json = lambda request: httpx.Response(200, text="nope")
    assert asyncio.run(list_models("http://localhost:1", transport=httpx.MockTransport(not_json))) == []


def test_model_names_ignores_unexpected_shapes():
    assert model_names([]) == []
    assert model_names({"models": "x"}) == []


def test_parse_context_length():
    out = """
  Model
    architecture        llama
    parameters          8.0B
    context length      131072
    embedding length    4096
"""
    assert parse_context_length(out) == 131072
    assert parse_context_length("nothing here") is None


def test_read_context_length_without_cli(monkeypatch):
    monkeypatch.setattr(discovery.shutil, "which", lambda _name: None)
    assert discovery.read_context_length("llama3") is None


def test_read_context_length_runs_show(monkeypatch):
    calls = []

    class Done:
        returncode = 0
        stdout = "    context length      8192\n"

    def fake_run(args, **kwargs):
        calls.append(args)
        return Done()

    monkeypatch.setattr(discovery.shutil, "which", lambda _name: "/usr/bin/ollama")
    monkeypatch.setattr(discovery.subprocess, "run", fake_run)
    assert discovery.read_context_length("llama3") == 8192
    assert calls == [["/usr/bin/ollama", "show", "llama3"]]
