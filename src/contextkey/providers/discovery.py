from __future__ import annotations
import logging
import shutil
import subprocess
from typing import Any, List, Optional

import httpx

logger = logging.getLogger(__name__)

TAGS_PATH = "/api/tags"


def model_names(payload: Any) -> List[str]:
    """Pull `name` out of each entry of {models: [...]}; anything else yields []."""
    if not isinstance(payload, dict) or not isinstance(payload.get("models"), list):
        return []
    return [m["name"] for m in payload["models"] if isinstance(m, dict) and isinstance(m.get("name"), str)]


async def list_models(endpoint: str, *, client: Optional[httpx.AsyncClient] = None,
                      transport: Optional[httpx.AsyncBaseTransport] = None) -> List[str]:
    """
    GET {endpoint}/api/tags and return the model names.
    Discovery only feeds the config UI, so every failure degrades to an empty list.
    """
    url = endpoint.strip().rstrip("/") + TAGS_PATH
    try:
        if client is not None:
            response = await client.get(url)
        else:
            async with httpx.AsyncClient(transport=transport) as own:
                response = await own.get(url)
        return model_names(response.json())
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Model discovery at %s failed: %s", url, e)
        return []


def parse_context_length(show_output: str) -> Optional[int]:
    # `ollama show` prints e.g. "    context length      8192"
    for line in show_output.splitlines():
        trimmed = line.strip()
        if "context length" in trimmed.lower():
            parts = trimmed.split()
            if len(parts) >= 3 and parts[-1].isdigit():
                return int(parts[-1])
    return None


def read_context_length(model: str, executable: str = "ollama") -> Optional[int]:
    """
    Ask the local ollama CLI for a model's context window. None when the CLI
    is missing, fails, or prints no context length.
    """
    exe = shutil.which(executable)
    if exe is None:
        logger.info("'%s' not found on PATH; context length unknown", executable)
        return None
    try:
        p = subprocess.run([exe, "show", model], capture_output=True, text=True, check=False)
    except OSError as e:
        logger.warning("Running '%s show %s' failed: %s", executable, model, e)
        return None
    if p.returncode != 0:
        logger.warning("'%s show %s' exited with %d", executable, model, p.returncode)
        return None
    return parse_context_length(p.stdout)
