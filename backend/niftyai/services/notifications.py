from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from niftyai.schemas import AlertEvent, AlertKind, Toast, ToastKind
from niftyai.ws_manager import WSManager

logger = logging.getLogger(__name__)


def alert_message(event: AlertEvent) -> str:
    label = "Target Price" if event.kind == AlertKind.TARGET else "Stop Loss"
    return f"{event.symbol} hit {label} at {event.price:.2f}!"


def alert_toast_kind(event: AlertEvent) -> ToastKind:
    return ToastKind.SUCCESS if event.kind == AlertKind.TARGET else ToastKind.DANGER


class NotificationRelay:
    """Session-scoped toast list fed by every running ticker engine.

    Toast ids come from a counter so two toasts raised in the same instant
    never collide, and dismissing one can never remove another.
    """

    def __init__(self, ws_manager: WSManager | None = None, *, ttl_seconds: float = 5.0) -> None:
        self.ws_manager = ws_manager
        self.ttl_seconds = ttl_seconds
        self._ids = itertools.count(1)
        self._toasts: Dict[int, Toast] = {}
        self._expiry_tasks: Dict[int, asyncio.Task] = {}

    def list(self) -> List[Toast]:
        return list(self._toasts.values())

    async def push(self, message: str, kind: ToastKind) -> Toast:
        toast = Toast(
            id=next(self._ids),
            message=message,
            kind=kind,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        self._toasts[toast.id] = toast
        self._expiry_tasks[toast.id] = asyncio.create_task(self._expire_later(toast.id), name=f"toast-expiry-{toast.id}")
        await self._broadcast("toast_created", toast)
        return toast

    async def handle_alert(self, event: AlertEvent) -> Toast:
        logger.info("Alert fired: %s %s at %.2f", event.symbol, event.kind.value, event.price)
        return await self.push(alert_message(event), alert_toast_kind(event))

    async def dismiss(self, toast_id: int) -> bool:
        toast = self._toasts.pop(toast_id, None)
        if toast is None:
            return False
        task = self._expiry_tasks.pop(toast_id, None)
        if task is not None and not task.done():
            task.cancel()
        await self._broadcast("toast_dismissed", toast)
        return True

    async def close(self) -> None:
        tasks = list(self._expiry_tasks.values())
        self._expiry_tasks.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _expire_later(self, toast_id: int) -> None:
        await asyncio.sleep(self.ttl_seconds)
        self._expiry_tasks.pop(toast_id, None)
        toast = self._toasts.pop(toast_id, None)
        if toast is not None:
            await self._broadcast("toast_expired", toast)

    async def _broadcast(self, event_type: str, toast: Toast) -> None:
        if self.ws_manager is None:
            return
        payload: Dict[str, Any] = {
            "type": event_type,
            "toast": toast.model_dump(mode="json"),
        }
        try:
            await self.ws_manager.broadcast(payload, channel="alerts")
        except Exception:
            logger.exception("Failed to broadcast %s for toast %s", event_type, toast.id)
