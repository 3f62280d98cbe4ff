from __future__ import annotations

from enum import Enum

from fastapi import APIRouter, HTTPException, Request

from niftyai.schemas import AlertKind, AlertToggleRequest, TickerState

router = APIRouter(prefix="/tickers", tags=["tickers"])


class AlertSlot(str, Enum):
    target = "target"
    stop_loss = "stop_loss"


_ALERT_KINDS = {AlertSlot.target: AlertKind.TARGET, AlertSlot.stop_loss: AlertKind.STOP_LOSS}


@router.get("")
async def list_tickers(request: Request):
    board = request.app.state.session.board
    return {"tickers": board.states(), "simulated": True}


@router.get("/{card_id}", response_model=TickerState)
async def ticker_state(card_id: int, request: Request):
    state = request.app.state.session.board.state(card_id)
    if not state:
        raise HTTPException(status_code=404, detail="Ticker card not found")
    return state


@router.post("/{card_id}/alerts/{slot}", response_model=TickerState)
async def set_ticker_alert(card_id: int, slot: AlertSlot, request: Request, payload: AlertToggleRequest | None = None):
    armed = payload.armed if payload else None
    state = request.app.state.session.board.set_alert(card_id, _ALERT_KINDS[slot], armed)
    if not state:
        raise HTTPException(status_code=404, detail="Ticker card not found")
    return state
