# tests/unit/test_config_loader.py

from __future__ import annotations
import json
import sys
from dataclasses import replace
from pathlib import Path
from textwrap import dedent
import pytest

# Make "src" importable
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from contextkey.config_loader import ConfigError, ConfigRegistry, dump_config, load_config  # type: ignore
from contextkey.core.models import ProviderConfig, TransportKind  # type: ignore
from contextkey.secrets.sources import SecretsResolver  # type: ignore


def write_yaml(p: Path, text: str) -> Path:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(dedent(text).lstrip("\n").rstrip() + "\n", encoding="utf-8")
    return p


def _gen(pid: str) -> ProviderConfig:
    return ProviderConfig(id=pid, name=pid.title(), transport=TransportKind.GENERATIVE_STREAM,
                          endpoint="http://localhost:11434", model="m")


def test_load_config_ok(providers_yaml: Path):
    reg = load_config(providers_yaml)
    assert len(reg) == 2
    assert reg.active_id == "custom"

    local = reg.get("local")
    assert local.transport is TransportKind.GENERATIVE_STREAM    # alias normalised
    assert local.context_limit == 8192

    custom = reg.get("custom")
    assert custom.transport is TransportKind.TEMPLATED
    assert json.loads(custom.headers_json) == {"X-Team": "blue"}
    assert custom.method == "POST"
    assert reg.settings["runtime"]["timeout"] == 5


def test_missing_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_empty_yaml(tmp_path: Path):
    with pytest.raises(ConfigError):
        load_config(write_yaml(tmp_path / "c.yaml", "# nothing\n"))


@pytest.mark.parametrize("body", [
    "active: x\n",                                                      # no providers
    "providers:\n  - {transport: telnet, endpoint: 'http://h'}\n",       # unknown transport
    "providers:\n  - {transport: ollama}\n",                             # no endpoint
    "providers:\n  - {transport: ollama, endpoint: 'http://h', context_limit: -1}\n",
    "providers:\n  - {transport: ollama, endpoint: 'http://h', model: 3}\n",
    "providers:\n  - {id: a, transport: ollama, endpoint: 'http://h'}\n  - {id: a, transport: ollama, endpoint: 'http://h'}\n",
    "active: missing\nproviders:\n  - {id: a, transport: ollama, endpoint: 'http://h'}\n",
    "runtime: {timeout: soon}\nproviders:\n  - {id: a, transport: ollama, endpoint: 'http://h'}\n",
])
def test_invalid_configs(tmp_path: Path, body: str):
    with pytest.raises(ConfigError):
        load_config(write_yaml(tmp_path / "c.yaml", body))


def test_incomplete_provider_still_loads(tmp_path: Path):
    # completeness is checked when the provider is used
    reg = load_config(write_yaml(tmp_path / "c.yaml", "providers:\n  - {id: a, transport: custom, endpoint: 'http://h'}\n"))
    assert reg.get("a").body_template is None


def test_missing_id_gets_generated(tmp_path: Path):
    reg = load_config(write_yaml(tmp_path / "c.yaml", "providers:\n  - {transport: ollama, endpoint: 'http://h'}\n"))
    p = next(iter(reg))
    assert p.id and p.name == "Unnamed Configuration"


def test_auth_key_ref_resolved(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("TEAM_KEY", "sk-env")
    cfg = write_yaml(tmp_path / "c.yaml", """
        providers:
          - {id: a, transport: custom, endpoint: 'https://h', auth_key_ref: TEAM_KEY}
    """)
    assert load_config(cfg).get("a").auth_key == "sk-env"
    assert load_config(cfg, resolver=SecretsResolver(method="env", mapping={"a": {"api_key": "NONE_SET_X"}})).get("a").auth_key is None


def test_registry_add_update_remove_active():
    reg = ConfigRegistry()
    assert reg.active is None

    reg.add(_gen("one"))
    reg.add(_gen("two"))
    assert reg.active_id == "one"          # first added becomes active
    with pytest.raises(ValueError):
        reg.add(_gen("one"))

    reg.set_active("two")
    reg.update("two", replace(reg.get("two"), model="bigger"))
    assert reg.active.model == "bigger"
    assert reg.active_id == "two"

    with pytest.raises(ValueError):
        reg.update("two", replace(reg.get("two"), id="one"))
    assert [p.id for p in reg] == ["one", "two"]
    reg.update("two", replace(reg.get("two"), id="three"))
    assert reg.active_id == "three"
    reg.update("three", replace(reg.get("three"), id="two"))

    reg.remove("two")
    assert reg.active_id == "one"          # falls back to the first entry
    with pytest.raises(KeyError):
        reg.set_active("two")


def test_dump_round_trip_keeps_refs_not_keys(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("TEAM_KEY", "sk-env")
    src = write_yaml(tmp_path / "c.yaml", """
        active: b
        providers:
          - {id: a, transport: ollama, endpoint: 'http://h', model: m}
          - {id: b, transport: custom, endpoint: 'https://h', auth_key_ref: TEAM_KEY,
             body_template: '{"q": "{{input}}"}', response_path: r}
    """)
    out = tmp_path / "out" / "providers.yaml"
    dump_config(load_config(src), out)

    text = out.read_text(encoding="utf-8")
    assert "sk-env" not in text
    again = load_config(out)
    assert again.active_id == "b"
    assert again.get("b").auth_key == "sk-env"
    assert again.get("b").body_template == '{"q": "{{input}}"}'
