# src/arroz_trace/api/routes_records.py
from __future__ import annotations

"""Record routes: one HTTP request is one store invocation.

Bodies are handed to the collections as raw bytes so that payload parsing,
and its InvalidPayload failures, stay in one place.
"""

import json
from typing import Any, Dict

from fastapi import APIRouter, Request
from starlette.concurrency import run_in_threadpool

from arroz_trace.api.errors import ApiError
from arroz_trace.runtime.collection import DocumentCollection
from arroz_trace.runtime.contract import TraceabilityContract

Json = Dict[str, Any]

router = APIRouter()
invoke_router = APIRouter()


def _contract(request: Request) -> TraceabilityContract:
    c = getattr(request.app.state, "contract", None)
    if c is None:
        raise ApiError.internal("not_ready", "contract not attached to app.state", {})
    return c


def _collection(request: Request, entity: str) -> DocumentCollection:
    coll = _contract(request).collection(entity)
    if coll is None:
        raise ApiError.not_found("unknown_entity", f"no record collection named {entity!r}", {"entity": entity})
    return coll


@invoke_router.post("/invoke/{function}")
async def invoke(function: str, request: Request) -> Json:
    """Call a contract function by name: {"args": ["...", ...]}."""
    raw = await request.body()
    try:
        body = json.loads(raw) if raw else {}
    except ValueError as e:
        raise ApiError.bad_request("bad_request", "body must be JSON", {"error": str(e)})
    args = body.get("args", []) if isinstance(body, dict) else None
    if not isinstance(args, list) or not all(isinstance(a, str) for a in args):
        raise ApiError.bad_request("bad_request", "'args' must be a list of strings", {})

    result = await run_in_threadpool(_contract(request).invoke, function, *args)
    return {"ok": True, "function": function, "result": result}


@router.post("/{entity}")
async def register_record(entity: str, request: Request) -> Json:
    coll = _collection(request, entity)
    await run_in_threadpool(coll.register, await request.body())
    return {"ok": True}


@router.put("/{entity}")
async def edit_record(entity: str, request: Request) -> Json:
    coll = _collection(request, entity)
    await run_in_threadpool(coll.edit, await request.body())
    return {"ok": True}


@router.delete("/{entity}/{record_id}")
async def delete_record(entity: str, record_id: str, request: Request) -> Json:
    coll = _collection(request, entity)
    await run_in_threadpool(coll.delete, record_id)
    return {"ok": True}


@router.get("/{entity}/{record_id}")
async def get_record(entity: str, record_id: str, request: Request) -> Json:
    coll = _collection(request, entity)
    doc = await run_in_threadpool(coll.get, record_id)
    return {"ok": True, "record": doc.to_json()}


@router.get("/{entity}/{record_id}/exists")
async def record_exists(entity: str, record_id: str, request: Request) -> Json:
    coll = _collection(request, entity)
    exists = await run_in_threadpool(coll.exists, record_id)
    return {"ok": True, "exists": bool(exists)}


@router.get("/{entity}")
async def list_records(entity: str, request: Request) -> Json:
    coll = _collection(request, entity)
    docs = await run_in_threadpool(coll.list)
    return {"ok": True, "records": [d.to_json() for d in docs]}


@router.post("/{entity}/search")
async def search_records(entity: str, request: Request) -> Json:
    coll = _collection(request, entity)
    docs = await run_in_threadpool(coll.search, await request.body())
    return {"ok": True, "records": [d.to_json() for d in docs]}
