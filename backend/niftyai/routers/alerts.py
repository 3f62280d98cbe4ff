from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

router = APIRouter(prefix="/alerts", tags=["alerts"])


@router.get("/toasts")
async def list_toasts(request: Request):
    return {"toasts": request.app.state.session.relay.list()}


@router.delete("/toasts/{toast_id}")
async def dismiss_toast(toast_id: int, request: Request):
    dismissed = await request.app.state.session.relay.dismiss(toast_id)
    if not dismissed:
        raise HTTPException(status_code=404, detail="Toast not found")
    return {"ok": True, "toast_id": toast_id}
