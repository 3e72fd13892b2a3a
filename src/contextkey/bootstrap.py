from __future__ import annotations
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import httpx
from dotenv import load_dotenv
from rich.logging import RichHandler

from .config_loader import ConfigRegistry, load_config
from .core.models import ProviderConfig
from .dispatch import RequestDispatcher

logger = logging.getLogger(__name__)


def build_app(config_path: Path, transport: Optional[httpx.AsyncBaseTransport] = None) -> Dict[str, Any]:
    """
    Composition root: load .env and the provider registry YAML, then build the dispatcher.
    Returns: dict with registry, dispatcher, paths.
    """
    load_dotenv()
    registry = load_config(config_path)

    runtime = registry.settings.get("runtime") or {}
    dispatcher = RequestDispatcher(transport=transport, timeout=runtime.get("timeout"))
    logger.debug("Registry ready: %d provider(s), active=%s", len(registry), registry.active_id)

    return {
        "registry": registry,
        "dispatcher": dispatcher,
        "paths": {"config": config_path.resolve(), "config_dir": config_path.resolve().parent},
    }


def select_provider(registry: ConfigRegistry, provider_id: Optional[str] = None) -> ProviderConfig:
    """The requested provider, or the active one. Raises KeyError when neither exists."""
    if provider_id:
        return registry.get(provider_id)
    active = registry.active
    if active is None:
        raise KeyError("No providers configured")
    return active


def configure_logging(level: str = "WARNING") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=False, show_path=False)],
        force=True,
    )
