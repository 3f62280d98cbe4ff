from __future__ import annotations

import logging
from datetime import datetime, timezone

from niftyai.config import Settings
from niftyai.exceptions import ParseError, ScanInProgressError, TransportError
from niftyai.schemas import MarketAnalysis, MarketIndex, ScanResponse, SessionView
from niftyai.services.llm import SCAN_SYSTEM_INSTRUCTION, CompletionClient, build_scan_prompt
from niftyai.services.normalizer import normalize
from niftyai.services.notifications import NotificationRelay
from niftyai.services.ticker import TickerBoard
from niftyai.ws_manager import WSManager

logger = logging.getLogger(__name__)


class ScanSession:
    """State behind one trading screen: selected index, last analysis, live cards, toasts.

    Each successful scan replaces the previous analysis wholesale. A failed scan
    leaves no analysis behind, only the error banner text.
    """

    def __init__(
        self,
        settings: Settings,
        client: CompletionClient,
        ws_manager: WSManager | None = None,
        *,
        relay: NotificationRelay | None = None,
        board: TickerBoard | None = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.ws_manager = ws_manager
        self.relay = relay or NotificationRelay(ws_manager, ttl_seconds=settings.toast_ttl_seconds)
        self.board = board or TickerBoard(
            ws_manager,
            interval_seconds=settings.ticker_interval_seconds,
            volatility=settings.ticker_volatility,
            on_alert=self.relay.handle_alert,
        )

        self.selected_index = MarketIndex.parse(settings.default_index)
        self.loading = False
        self.analysis: MarketAnalysis | None = None
        self.error: str | None = None
        self.raw_text = ""
        self.scanned_at: datetime | None = None

    async def scan(self, index: MarketIndex | None = None) -> ScanResponse:
        if self.loading:
            raise ScanInProgressError("A market scan is already running.")

        self.loading = True
        if index is not None:
            self.selected_index = index
        target = self.selected_index
        self.error = None
        self.analysis = None
        self.scanned_at = None
        self.raw_text = ""

        try:
            await self.board.unmount()
            await self._broadcast({"type": "scan_started", "index": target.value})

            completion = await self.client.generate(build_scan_prompt(target), system_instruction=SCAN_SYSTEM_INSTRUCTION)
            self.raw_text = completion.text
            analysis = normalize(completion.text, completion.citations)

            self.analysis = analysis
            self.scanned_at = datetime.now(timezone.utc)
            await self.board.mount(analysis.stocks)
            logger.info("Scan of %s returned %d setups", target.value, len(analysis.stocks))
            await self._broadcast(
                {
                    "type": "scan_completed",
                    "index": target.value,
                    "stocks": len(analysis.stocks),
                    "sentiment": analysis.market_sentiment.value,
                }
            )
        except (ParseError, TransportError) as exc:
            self.error = str(exc) or "Something went wrong during analysis."
            self.analysis = None
            self.scanned_at = None
            logger.warning("Scan of %s failed: %s", target.value, self.error)
            await self._broadcast({"type": "scan_failed", "index": target.value, "error": self.error})
        finally:
            self.loading = False

        return ScanResponse(index=target, analysis=self.analysis, raw_text=self.raw_text, error=self.error)

    def view(self) -> SessionView:
        return SessionView(
            selected_index=self.selected_index,
            loading=self.loading,
            analysis=self.analysis,
            error=self.error,
            scanned_at=self.scanned_at.isoformat() if self.scanned_at else None,
            tickers=self.board.states(),
        )

    async def close(self) -> None:
        await self.board.unmount()
        await self.relay.close()

    async def _broadcast(self, event: dict) -> None:
        if self.ws_manager is None:
            return
        try:
            await self.ws_manager.broadcast(event, channel="scan")
        except Exception:
            logger.exception("Failed to broadcast %s", event.get("type"))
