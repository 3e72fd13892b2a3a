from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional

import httpx
from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from contextkey.bootstrap import build_app, select_provider
from contextkey.core.budget import check_budget
from contextkey.core.models import ProviderConfig, StreamRecord
from contextkey.core.session import compose_input
from contextkey.providers.discovery import list_models

logger = logging.getLogger(__name__)


class AskRequest(BaseModel):
    question: str
    context: str = ""
    provider_id: Optional[str] = None
    images: List[str] = []


class BudgetRequest(BaseModel):
    question: str = ""
    context: str = ""
    provider_id: Optional[str] = None


def _provider_summary(p: ProviderConfig, active_id: Optional[str]) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "transport": p.transport.value,
        "model": p.model,
        "context_limit": p.context_limit,
        "active": p.id == active_id,
    }


def create_app(config_path: Path, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    built = build_app(Path(config_path), transport=transport)
    registry = built["registry"]
    dispatcher = built["dispatcher"]

    app = FastAPI()
    app.state.registry = registry
    app.state.dispatcher = dispatcher

    def _provider(provider_id: Optional[str]) -> ProviderConfig:
        try:
            return select_provider(registry, provider_id)
        except KeyError as e:
            raise HTTPException(status_code=404, detail=str(e.args[0]))

    @app.get("/api/providers")
    def api_providers():
        active_id = registry.active_id
        return JSONResponse({"active": active_id,
                             "providers": [_provider_summary(p, active_id) for p in registry]})

    @app.post("/api/budget")
    def api_budget(req: BudgetRequest):
        cfg = _provider(req.provider_id)
        report = check_budget(compose_input(req.context, req.question), cfg)
        return JSONResponse({
            "estimated_tokens": report.estimated_tokens,
            "limit": report.limit,
            "exceeds": report.exceeds,
            "warning": report.warning,
        })

    @app.post("/api/ask")
    async def api_ask(req: AskRequest):
        if not req.question.strip():
            raise HTTPException(status_code=400, detail="Empty question")
        cfg = _provider(req.provider_id)
        result = await dispatcher.send(cfg, compose_input(req.context, req.question), images=req.images or None)
        if result.ok:
            return JSONResponse({"ok": True, "text": result.text})
        return JSONResponse({"ok": False, "error": result.to_dict()})

    @app.post("/api/stream")
    async def api_stream(req: AskRequest):
        if not req.question.strip():
            raise HTTPException(status_code=400, detail="Empty question")
        cfg = _provider(req.provider_id)
        text = compose_input(req.context, req.question)

        # one JSON object per line: fragments first, then exactly one result line
        async def gen():
            async for event in dispatcher.stream(cfg, text, images=req.images or None):
                if isinstance(event, StreamRecord):
                    line = {"type": "fragment", "text": event.text, "done": event.is_final}
                elif event.ok:
                    line = {"type": "result", "ok": True, "text": event.text}
                else:
                    line = {"type": "result", "ok": False, "error": event.to_dict()}
                yield json.dumps(line) + "\n"

        return StreamingResponse(gen(), media_type="application/x-ndjson")

    @app.get("/api/models")
    async def api_models(endpoint: Optional[str] = None, provider_id: Optional[str] = None):
        if endpoint is None:
            endpoint = _provider(provider_id).endpoint
        return JSONResponse({"endpoint": endpoint, "models": await list_models(endpoint, transport=transport)})

    logger.debug("Web app ready for %s", built["paths"]["config"])
    return app


def run(
    *,
    config: Path,
    host: str = "127.0.0.1",
    port: int = 8000,
    reload: bool = False,
) -> None:
    import uvicorn

    app = create_app(config)
    uvicorn.run(app, host=host, port=port, reload=reload)
