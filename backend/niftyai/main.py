from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from niftyai.config import get_settings
from niftyai.routers import alerts, scan, system, tickers
from niftyai.services.llm import get_completion_client
from niftyai.services.session import ScanSession
from niftyai.ws_manager import WSManager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    ws_manager = WSManager()
    session = ScanSession(settings, get_completion_client(settings), ws_manager)

    app.state.settings = settings
    app.state.ws_manager = ws_manager
    app.state.session = session
    logger.info("Started %s with %s completion provider", settings.app_name, settings.ai_provider)

    try:
        yield
    finally:
        try:
            await session.close()
        except Exception:
            logger.exception("Failed to close scan session")


settings = get_settings()
logging.getLogger("niftyai").setLevel(settings.log_level.upper())

app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.frontend_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type"],
)

app.include_router(system.router)
app.include_router(scan.router)
app.include_router(tickers.router)
app.include_router(alerts.router)


@app.websocket("/ws/stream")
async def websocket_stream(websocket: WebSocket):
    manager: WSManager = websocket.app.state.ws_manager
    channels = await manager.connect(websocket, websocket.query_params.get("channels"))
    await websocket.send_json(
        {
            "channel": "global",
            "type": "socket_join",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "channels": sorted(channels),
        }
    )

    try:
        while True:
            raw = await websocket.receive_text()
            if raw.lower().strip() in {"ping", "heartbeat"}:
                await websocket.send_json({"type": "pong", "timestamp": datetime.now(timezone.utc).isoformat()})
    except WebSocketDisconnect:
        await manager.disconnect(websocket)
    except Exception:
        logger.exception("Unhandled websocket stream error")
        await manager.disconnect(websocket)


@app.get("/")
async def root():
    return {"app": settings.app_name, "status": "running"}


def run() -> None:
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
