from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from niftyai.config import active_provider_key
from niftyai.schemas import MarketIndex

router = APIRouter(tags=["system"])


@router.get("/health")
async def health(request: Request):
    settings = request.app.state.settings
    provider_ready = bool(active_provider_key(settings).strip())
    return {
        "ok": True,
        "status": "ok",
        "app": settings.app_name,
        "environment": settings.environment,
        "dependencies": {"ai_provider": "ok" if provider_ready else "degraded"},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/integrations")
async def integrations(request: Request):
    settings = request.app.state.settings
    return {
        "active_provider": settings.ai_provider,
        "gemini": bool(settings.gemini_api_key),
        "perplexity": bool(settings.perplexity_api_key),
    }


@router.get("/indices")
async def indices():
    return {"indices": [{"id": index.name, "label": index.value} for index in MarketIndex]}
