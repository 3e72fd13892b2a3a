from __future__ import annotations
from typing import Callable, Dict, Type, Union
from importlib import import_module

from contextkey.core.models import TransportKind


class ProviderRegistry:
    """Maps a transport kind to the class that speaks it."""
    _classes: Dict[str, Type] = {}

    @staticmethod
    def _key(kind: Union[str, TransportKind]) -> str:
        return (kind.value if isinstance(kind, TransportKind) else str(kind)).lower()

    @classmethod
    def register(cls, kind: Union[str, TransportKind]) -> Callable[[Type], Type]:
        key = cls._key(kind)
        def deco(klass: Type) -> Type:
            cls._classes[key] = klass
            return klass
        return deco

    @classmethod
    def get(cls, kind: Union[str, TransportKind]) -> Type:
        key = cls._key(kind)
        if key not in cls._classes:
            raise KeyError(f"Transport '{key}' not registered")
        return cls._classes[key]

    @classmethod
    def ensure_imports(cls) -> None:
        """
        Import built-in transports so their @register decorators run.
        """
        import_module("contextkey.providers.generate")
        import_module("contextkey.providers.templated")
