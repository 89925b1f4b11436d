from __future__ import annotations

from typing import Optional

from fastapi import FastAPI

from arroz_trace.api.errors import ApiError, api_error_handler, record_error_handler
from arroz_trace.api.routes_health import router as health_router
from arroz_trace.api.routes_records import invoke_router, router as records_router
from arroz_trace.api.structured_logging import RequestLogMiddleware
from arroz_trace.runtime.contract import TraceabilityContract
from arroz_trace.runtime.contract_boot import build_contract as _build_contract
from arroz_trace.runtime.errors import RecordError
from arroz_trace.runtime.trace_config import TraceConfig, load_trace_config


def build_contract(cfg: TraceConfig) -> TraceabilityContract:
    """Build the contract for the gateway.

    This wrapper exists so tests can monkeypatch `arroz_trace.api.app.build_contract`
    without reaching into runtime modules.
    """
    return _build_contract(cfg)


def create_app(*, cfg: Optional[TraceConfig] = None, contract: Optional[TraceabilityContract] = None) -> FastAPI:
    """Create the local HTTP gateway.

    cfg defaults to load_trace_config(); contract defaults to one built from cfg.
    Each request runs exactly one record operation, i.e. one invocation.
    """
    c = cfg or load_trace_config()

    # Disable docs in production.
    if c.mode == "prod":
        app = FastAPI(title="Arroz Trace Gateway", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="Arroz Trace Gateway")

    app.state.cfg = c
    app.state.contract = contract if contract is not None else build_contract(c)

    app.add_middleware(RequestLogMiddleware)

    app.add_exception_handler(RecordError, record_error_handler)
    app.add_exception_handler(ApiError, api_error_handler)

    app.include_router(health_router, prefix="/v1", tags=["health"])
    app.include_router(invoke_router, prefix="/v1", tags=["invoke"])
    app.include_router(records_router, prefix="/v1", tags=["records"])

    return app
