# src/contextkey/config_loader.py

from __future__ import annotations
import dataclasses
import json
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import yaml

from .core.models import ProviderConfig, TransportKind
from .secrets.sources import SecretsResolver

logger = logging.getLogger(__name__)

_TRANSPORT_ALIASES = {
    "generative_stream": TransportKind.GENERATIVE_STREAM,
    "ollama": TransportKind.GENERATIVE_STREAM,
    "templated": TransportKind.TEMPLATED,
    "custom": TransportKind.TEMPLATED,
}

_STR_FIELDS = ("id", "name", "endpoint", "model", "auth_key", "auth_key_ref",
               "http_method", "body_template", "response_path")


class ConfigError(ValueError):
    pass


def _require(d: Dict[str, Any], dotted: str, typ: type) -> Any:
    cur: Any = d
    for k in dotted.split("."):
        if not isinstance(cur, dict) or k not in cur:
            raise ConfigError(f"Missing config key: {dotted}")
        cur = cur[k]
    if not isinstance(cur, typ):
        raise ConfigError(f"'{dotted}' must be a {typ.__name__}")
    return cur


class ConfigRegistry:
    """
    The configured providers plus the active pointer. Owned by the composition
    root and passed around explicitly. Entries are frozen ProviderConfigs, so
    an edit swaps in a new object and in-flight calls keep their snapshot.
    """

    def __init__(self, providers: Optional[List[ProviderConfig]] = None, active_id: Optional[str] = None,
                 settings: Optional[Dict[str, Any]] = None):
        self._providers: List[ProviderConfig] = list(providers or [])
        self._active_id = active_id
        self.settings: Dict[str, Any] = settings or {}

    def __iter__(self) -> Iterator[ProviderConfig]:
        return iter(list(self._providers))

    def __len__(self) -> int:
        return len(self._providers)

    def _index(self, provider_id: str) -> int:
        for i, p in enumerate(self._providers):
            if p.id == provider_id:
                return i
        raise KeyError(f"Provider '{provider_id}' not configured")

    def get(self, provider_id: str) -> ProviderConfig:
        return self._providers[self._index(provider_id)]

    @property
    def active_id(self) -> Optional[str]:
        return self.active.id if self.active else None

    @property
    def active(self) -> Optional[ProviderConfig]:
        if self._active_id is not None:
            for p in self._providers:
                if p.id == self._active_id:
                    return p
        return self._providers[0] if self._providers else None

    def add(self, config: ProviderConfig) -> None:
        if any(p.id == config.id for p in self._providers):
            raise ValueError(f"Provider id '{config.id}' already exists")
        self._providers.append(config)
        if len(self._providers) == 1:
            self._active_id = config.id

    def update(self, provider_id: str, config: ProviderConfig) -> None:
        idx = self._index(provider_id)
        if config.id != provider_id and any(p.id == config.id for p in self._providers):
            raise ValueError(f"Provider id '{config.id}' already exists")
        was_active = self._active_id == provider_id
        self._providers[idx] = config
        if was_active:
            self._active_id = config.id

    def remove(self, provider_id: str) -> None:
        del self._providers[self._index(provider_id)]
        if self._active_id == provider_id:
            self._active_id = self._providers[0].id if self._providers else None

    def set_active(self, provider_id: str) -> None:
        self._index(provider_id)
        self._active_id = provider_id


def _parse_provider(raw: Any, pos: int, resolver: Optional[SecretsResolver]) -> ProviderConfig:
    where = f"providers[{pos}]"
    if not isinstance(raw, dict):
        raise ConfigError(f"'{where}' must be a mapping")

    transport_raw = _require(raw, "transport", str).strip().lower()
    if transport_raw not in _TRANSPORT_ALIASES:
        raise ConfigError(
            f"Unknown {where}.transport '{transport_raw}' (expected one of {sorted(_TRANSPORT_ALIASES)})."
        )
    _require(raw, "endpoint", str)

    for key in _STR_FIELDS:
        if raw.get(key) is not None and not isinstance(raw[key], str):
            raise ConfigError(f"'{where}.{key}' must be a string")

    limit = raw.get("context_limit")
    if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit < 0):
        raise ConfigError(f"'{where}.context_limit' must be a non-negative integer")

    # headers may be written as a mapping or as the raw JSON string the UI stores
    headers = raw.get("headers")
    if isinstance(headers, dict):
        headers = json.dumps(headers)
    elif headers is not None and not isinstance(headers, str):
        raise ConfigError(f"'{where}.headers' must be a mapping or a JSON string")

    provider_id = raw.get("id") or str(uuid.uuid4())
    auth_key = raw.get("auth_key")
    auth_key_ref = raw.get("auth_key_ref")
    if not auth_key and auth_key_ref and resolver is not None:
        auth_key = resolver.secret(provider_id, ref=auth_key_ref)

    return ProviderConfig(
        id=provider_id,
        name=raw.get("name") or "Unnamed Configuration",
        transport=_TRANSPORT_ALIASES[transport_raw],
        endpoint=raw["endpoint"],
        model=raw.get("model"),
        auth_key=auth_key,
        auth_key_ref=auth_key_ref,
        context_limit=limit,
        http_method=raw.get("http_method"),
        headers_json=headers,
        body_template=raw.get("body_template"),
        response_path=raw.get("response_path"),
    )


def load_config(path: Path, resolver: Optional[SecretsResolver] = None) -> ConfigRegistry:
    """
    Read the provider registry YAML. Structure and types are checked here;
    whether a provider has every field its transport needs is checked at
    dispatch time, so one half-edited entry does not block the others.
    """
    if not path or not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict) or not raw:
        raise ConfigError(f"Config is empty or invalid YAML: {path}")

    providers_raw = _require(raw, "providers", list)
    if resolver is None:
        secrets_cfg = raw.get("secrets") or {}
        resolver = SecretsResolver(method=secrets_cfg.get("method", "env"),
                                   mapping=secrets_cfg.get("mapping") or {})

    providers = [_parse_provider(p, i, resolver) for i, p in enumerate(providers_raw)]
    ids = [p.id for p in providers]
    if len(set(ids)) != len(ids):
        raise ConfigError("Provider ids must be unique")

    active = raw.get("active")
    if active is not None and active not in ids:
        raise ConfigError(f"Active provider '{active}' is not configured")

    timeout = (raw.get("runtime") or {}).get("timeout")
    if timeout is not None and (isinstance(timeout, bool) or not isinstance(timeout, (int, float))):
        raise ConfigError("'runtime.timeout' must be a number")

    settings = {k: raw[k] for k in ("runtime", "logging", "secrets") if isinstance(raw.get(k), dict)}
    logger.debug("Loaded %d provider(s) from %s", len(providers), path)
    return ConfigRegistry(providers, active_id=active, settings=settings)


def _dump_provider(p: ProviderConfig) -> Dict[str, Any]:
    out = {f.name: getattr(p, f.name) for f in dataclasses.fields(p)}
    out["transport"] = p.transport.value
    out["headers"] = out.pop("headers_json")
    if p.auth_key_ref:
        # never write a key that came out of the keychain/env back to disk
        out.pop("auth_key")
    return {k: v for k, v in out.items() if v is not None}


def dump_config(registry: ConfigRegistry, path: Path) -> None:
    data: Dict[str, Any] = dict(registry.settings)
    data["active"] = registry.active_id
    data["providers"] = [_dump_provider(p) for p in registry]
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data, sort_keys=False, allow_unicode=True), encoding="utf-8")
