from __future__ import annotations

import asyncio
import json
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)

STREAM_CHANNELS = {"global", "scan", "ticker", "alerts"}
DEFAULT_SUBSCRIPTION = "global,scan,ticker,alerts"


def resolve_channels(requested: str | Iterable[str] | None) -> Set[str]:
    """Turn a ``?channels=`` value into known stream channels; ``global`` when nothing matches."""
    if requested is None:
        requested = DEFAULT_SUBSCRIPTION
    tokens = requested.split(",") if isinstance(requested, str) else requested
    channels = {token.strip() for token in tokens if token and token.strip() in STREAM_CHANNELS}
    return channels or {"global"}


class WSManager:
    """Fan-out of scan, ticker and alert events to subscribed dashboard sockets.

    A ``global`` subscriber receives every channel.
    """

    def __init__(self) -> None:
        self._channel_connections: Dict[str, Set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, channels: str | Iterable[str] | None = None) -> Set[str]:
        subscribed = resolve_channels(channels)
        await websocket.accept()
        async with self._lock:
            for channel in subscribed:
                self._channel_connections[channel].add(websocket)
        return subscribed

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            for subscribers in self._channel_connections.values():
                subscribers.discard(websocket)

    async def subscribers(self, channel: str) -> Set[WebSocket]:
        async with self._lock:
            return set(self._channel_connections.get(channel, set())) | set(self._channel_connections.get("global", set()))

    async def broadcast(self, event: Dict[str, Any], channel: str = "global") -> None:
        if channel not in STREAM_CHANNELS:
            raise ValueError(f"Unknown stream channel: {channel}")
        payload = json.dumps(
            {"channel": channel, "timestamp": datetime.now(timezone.utc).isoformat(), **event},
            default=str,
        )

        stale: list[WebSocket] = []
        for socket in await self.subscribers(channel):
            try:
                await socket.send_text(payload)
            except Exception:
                logger.debug("Dropping websocket after failed send on channel %s", channel)
                stale.append(socket)

        for socket in stale:
            await self.disconnect(socket)
