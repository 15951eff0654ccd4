# babyguess/transport/admin.py
from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/overview")
async def overview(request: Request):
    """
    Store health and key counts per prefix (debug/admin).
    """
    kv = request.app.state.kv
    keys = request.app.state.keys
    counts = {}
    for pattern in keys.prefixes():
        counts[pattern] = len(await kv.scan_keys(pattern))
    return {
        "ok": await kv.ping(),
        "keys": counts,
        "subscribers": await request.app.state.wsman.subscriber_count(request.app.state.gateway.topic),
    }


@router.post("/repair")
async def repair(request: Request):
    """
    Scan game keys and delete any whose value no longer decodes.
    Last resort; normal requests never do this.
    """
    kv = request.app.state.kv
    keys = request.app.state.keys
    return await kv.scan_and_repair(keys.prefixes())


@router.get("/history")
async def history(request: Request):
    records = await request.app.state.archive.list_records()
    return {"history": [r.model_dump() for r in records]}
