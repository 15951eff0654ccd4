# babyguess/transport/api.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from babyguess.transport.dispatcher import dispatch_message

router = APIRouter(prefix="/api", tags=["game"])


@router.post("/commands")
async def post_command(payload: Dict[str, Any], request: Request):
    """
    One command message per request, same shape as over the websocket.
    Returns the sender's replies; branch on `type` / `code`.
    """
    return await dispatch_message(app=request.app, raw=payload)


@router.get("/state")
async def get_state(request: Request):
    """Full snapshot for reconnect / polling recovery."""
    return (await request.app.state.game.get_state()).model_dump()
