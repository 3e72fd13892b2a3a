# tests/unit/conftest.py

from __future__ import annotations
from pathlib import Path
from textwrap import dedent

import pytest


PROVIDERS_YAML = """
active: custom

runtime:
  timeout: 5

logging:
  level: WARNING

secrets:
  method: env
  mapping: {}

providers:
  - id: local
    name: Local Llama
    transport: ollama
    endpoint: http://localhost:11434
    model: llama3
    context_limit: 8192

  - id: custom
    name: Custom API
    transport: custom
    endpoint: https://api.example.com/v1/chat
    auth_key: sk-inline
    context_limit: 100
    headers:
      X-Team: blue
    body_template: '{"q": "{{input}}"}'
    response_path: data.answer
"""


def write_yaml(p: Path, text: str) -> Path:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(dedent(text).lstrip("\n").rstrip() + "\n", encoding="utf-8")
    return p


@pytest.fixture
def providers_yaml(tmp_path: Path) -> Path:
    return write_yaml(tmp_path / "config" / "providers.yaml", PROVIDERS_YAML)
