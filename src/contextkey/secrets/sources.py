# src/contextkey/secrets/sources.py

from __future__ import annotations
from typing import Protocol, Optional, Dict, Iterable, List, Union
import getpass
import logging
import os

import keyring
from keyring.errors import KeyringError

logger = logging.getLogger(__name__)

KEYRING_ACCOUNTS = ("API_KEY", "default")


class SecretSource(Protocol):
    def get(self, ref: str) -> Optional[str]: ...


class EnvSource:
    def get(self, ref: str) -> Optional[str]:
        # 1) exact env var name, 2) derived names for a bare provider id
        candidates = [ref, f"{ref.upper()}_API_KEY", ref.upper()]
        for key in candidates:
            val = os.getenv(key)
            if val and val.strip():
                return val.strip()
        return None


class SystemKeyringSource:
    """OS keychain via keyring; `ref` is the keyring service name."""

    def get(self, ref: str) -> Optional[str]:
        try:
            cred = keyring.get_credential(ref, None)
            if cred and cred.password:
                return cred.password.strip()
            for account in (*KEYRING_ACCOUNTS, ref, getpass.getuser()):
                val = keyring.get_password(ref, account)
                if val:
                    return val.strip()
        except KeyringError as e:
            logger.debug("Keyring lookup for '%s' failed: %s", ref, e)
        return None


_ALLOWED_METHODS = {"env", "keyring"}


def _normalise_methods(method: Union[str, Iterable[str]]) -> List[str]:
    methods = [method] if isinstance(method, str) else list(method)
    norm: List[str] = []
    for m in methods:
        key = str(m).strip().lower()
        if key not in _ALLOWED_METHODS:
            raise ValueError(f"Unknown secrets method '{m}'. Allowed: {sorted(_ALLOWED_METHODS)}")
        if key not in norm:
            norm.append(key)
    return norm


def build_secret_sources(method: Union[str, Iterable[str]]) -> List[SecretSource]:
    sources: List[SecretSource] = []
    for name in _normalise_methods(method):
        if name == "env":
            sources.append(EnvSource())
        elif name == "keyring":
            sources.append(SystemKeyringSource())
    return sources


class SecretsResolver:
    """
    Resolve a provider's static key using one or more methods in order.
    mapping: per-provider-id overrides of the reference to look up
      e.g. { "gemini": { "api_key": "GEMINI_API_KEY" } }
    Without a mapping entry the provider's own auth_key_ref (or its id) is used.
    """
    def __init__(self, method: Union[str, Iterable[str]] = "env",
                 mapping: Optional[Dict[str, Dict[str, str]]] = None):
        self._sources = build_secret_sources(method)
        self._map = mapping or {}

    def secret(self, provider_id: str, name: str = "api_key", ref: Optional[str] = None) -> Optional[str]:
        target = self._map.get(provider_id, {}).get(name) or ref or provider_id
        for src in self._sources:
            val = src.get(target)
            if val:
                return val
        logger.info("No secret found for provider '%s' (looked up '%s')", provider_id, target)
        return None
