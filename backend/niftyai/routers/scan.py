from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

from niftyai.exceptions import ScanInProgressError
from niftyai.schemas import ScanRequest, ScanResponse, SessionView

router = APIRouter(prefix="/scan", tags=["scan"])


@router.post("", response_model=ScanResponse)
async def run_scan(payload: ScanRequest, request: Request):
    session = request.app.state.session
    try:
        result = await session.scan(payload.index)
    except ScanInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    if result.error:
        raise HTTPException(status_code=502, detail=f"Scan Failed: {result.error}")
    return result


@router.get("/state", response_model=SessionView)
async def scan_state(request: Request):
    return request.app.state.session.view()
