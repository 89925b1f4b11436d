from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Query, Request

from arroz_trace.api.errors import ApiError

router = APIRouter()

Json = Dict[str, Any]


@router.get("/health")
def health(request: Request) -> Json:
    cfg = getattr(request.app.state, "cfg", None)
    contract = getattr(request.app.state, "contract", None)
    return {
        "ok": contract is not None,
        "backend": getattr(cfg, "backend", None),
        "query_mode": getattr(cfg, "query_mode", None),
        "functions": len(contract.functions()) if contract is not None else 0,
    }


@router.get("/events")
def events(request: Request, limit: int = Query(default=100, ge=1, le=1000)) -> Json:
    """Most recent committed mutation events (at most `limit`), oldest first.

    Payloads are UTF-8 text: a full document for Register/Edit, the id for Delete.
    """
    contract = getattr(request.app.state, "contract", None)
    if contract is None:
        raise ApiError.internal("not_ready", "contract not attached to app.state", {})
    fn = getattr(contract.store, "events", None)
    if not callable(fn):
        raise ApiError.not_found("events_unavailable", "store does not expose committed events", {})
    return {
        "ok": True,
        "events": [
            {"name": ev.name, "payload": ev.payload.decode("utf-8", errors="replace"), "ts_ms": ev.ts_ms}
            for ev in fn(limit=limit)
        ],
    }
