from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Awaitable, Callable, Dict, List, Sequence

import numpy as np

from niftyai.schemas import (
    AlertEvent,
    AlertKind,
    AlertSwitchState,
    PriceDirection,
    RecommendationType,
    StockRecommendation,
    TickerState,
)
from niftyai.services.normalizer import parse_price
from niftyai.ws_manager import WSManager

logger = logging.getLogger(__name__)

DEFAULT_VOLATILITY = 0.0015
FEED_LABEL = "Simulated Feed"

AlertHandler = Callable[[AlertEvent], Awaitable[None]]


class AlertSwitch:
    """One-shot price alert: ARMED fires at most once, then drops back to DISARMED."""

    def __init__(self) -> None:
        self.state = AlertSwitchState.DISARMED

    @property
    def armed(self) -> bool:
        return self.state is AlertSwitchState.ARMED

    def arm(self) -> None:
        self.state = AlertSwitchState.ARMED

    def disarm(self) -> None:
        self.state = AlertSwitchState.DISARMED

    def set(self, armed: bool) -> None:
        if armed:
            self.arm()
        else:
            self.disarm()

    def toggle(self) -> bool:
        self.set(not self.armed)
        return self.armed

    def fire(self, condition: bool) -> bool:
        if not (self.armed and condition):
            return False
        self.disarm()
        return True


class TickerEngine:
    """Random-walk price simulation for one stock card plus its two alert switches.

    The walk is display flavour only: each tick moves the price by at most
    ``volatility / 2`` in either direction.
    """

    def __init__(
        self,
        stock: StockRecommendation,
        *,
        volatility: float = DEFAULT_VOLATILITY,
        rng: np.random.Generator | None = None,
    ) -> None:
        self.stock = stock
        self.volatility = volatility
        self._rng = rng or np.random.default_rng()

        self.live_price = parse_price(stock.current_price)
        self.target_price = parse_price(stock.target_price)
        self.stop_loss = parse_price(stock.stop_loss)
        self.direction = PriceDirection.FLAT
        self.tick_count = 0

        self.target_alert = AlertSwitch()
        self.stop_alert = AlertSwitch()

    @property
    def is_buy(self) -> bool:
        return self.stock.recommendation == RecommendationType.BUY

    def switch(self, kind: AlertKind) -> AlertSwitch:
        return self.target_alert if kind == AlertKind.TARGET else self.stop_alert

    def next_price(self) -> float:
        draw = float(self._rng.random())
        return self.live_price * (1 + self.volatility * (draw - 0.5))

    def tick(self) -> List[AlertEvent]:
        return self.apply_price(self.next_price())

    def apply_price(self, price: float) -> List[AlertEvent]:
        previous = self.live_price
        if price > previous:
            self.direction = PriceDirection.UP
        elif price < previous:
            self.direction = PriceDirection.DOWN
        else:
            self.direction = PriceDirection.FLAT
        self.live_price = price
        self.tick_count += 1

        if self.is_buy:
            target_hit = price >= self.target_price
            stop_hit = price <= self.stop_loss
        else:
            target_hit = price <= self.target_price
            stop_hit = price >= self.stop_loss

        events: List[AlertEvent] = []
        if self.target_alert.fire(target_hit):
            events.append(AlertEvent(symbol=self.stock.symbol, kind=AlertKind.TARGET, price=price))
        if self.stop_alert.fire(stop_hit):
            events.append(AlertEvent(symbol=self.stock.symbol, kind=AlertKind.STOP_LOSS, price=price))
        return events

    def snapshot(self, card_id: int) -> TickerState:
        return TickerState(
            card_id=card_id,
            symbol=self.stock.symbol,
            recommendation=self.stock.recommendation,
            live_price=round(self.live_price, 2),
            target_price=self.target_price,
            stop_loss=self.stop_loss,
            target_armed=self.target_alert.armed,
            stop_armed=self.stop_alert.armed,
            direction=self.direction,
            tick=self.tick_count,
            feed_label=FEED_LABEL,
        )


class TickerBoard:
    """Owns the engines of the currently displayed cards and their tick tasks."""

    def __init__(
        self,
        ws_manager: WSManager | None = None,
        *,
        interval_seconds: float = 5.0,
        volatility: float = DEFAULT_VOLATILITY,
        on_alert: AlertHandler | None = None,
        rng: np.random.Generator | None = None,
    ) -> None:
        self.ws_manager = ws_manager
        self.interval_seconds = interval_seconds
        self.volatility = volatility
        self.on_alert = on_alert
        self.engines: Dict[int, TickerEngine] = {}
        self.tasks: Dict[int, asyncio.Task] = {}
        self._rng = rng or np.random.default_rng()

    async def mount(self, stocks: Sequence[StockRecommendation]) -> List[TickerState]:
        await self.unmount()
        for card_id, stock in enumerate(stocks):
            engine = TickerEngine(stock, volatility=self.volatility, rng=self._rng)
            self.engines[card_id] = engine
            self.tasks[card_id] = asyncio.create_task(self._run_loop(card_id, engine), name=f"ticker-{card_id}")
        logger.info("Mounted %d simulated tickers", len(self.engines))
        return self.states()

    async def unmount(self) -> None:
        tasks = list(self.tasks.values())
        self.tasks.clear()
        self.engines.clear()
        for task in tasks:
            if not task.done():
                task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def states(self) -> List[TickerState]:
        return [engine.snapshot(card_id) for card_id, engine in sorted(self.engines.items())]

    def state(self, card_id: int) -> TickerState | None:
        engine = self.engines.get(card_id)
        if engine is None:
            return None
        return engine.snapshot(card_id)

    def set_alert(self, card_id: int, kind: AlertKind, armed: bool | None = None) -> TickerState | None:
        engine = self.engines.get(card_id)
        if engine is None:
            return None
        switch = engine.switch(kind)
        if armed is None:
            switch.toggle()
        else:
            switch.set(armed)
        return engine.snapshot(card_id)

    async def _run_loop(self, card_id: int, engine: TickerEngine) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            events = engine.tick()
            for event in events:
                if self.on_alert is None:
                    continue
                try:
                    await self.on_alert(event)
                except Exception:
                    logger.exception("Alert handler failed for %s", event.symbol)

            if self.ws_manager is None:
                continue
            try:
                await self.ws_manager.broadcast(
                    {
                        "type": "tick",
                        "simulated": True,
                        "state": engine.snapshot(card_id).model_dump(mode="json"),
                    },
                    channel="ticker",
                )
            except Exception:
                logger.exception("Failed to broadcast tick for card %s", card_id)
