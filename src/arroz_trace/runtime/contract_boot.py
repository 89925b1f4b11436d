# src/arroz_trace/runtime/contract_boot.py

from __future__ import annotations

from typing import Optional

from arroz_trace.runtime.contract import TraceabilityContract
from arroz_trace.runtime.sqlite_db import SqliteDB, SqliteStateStore
from arroz_trace.runtime.state_store import MemoryStateStore, StateStore
from arroz_trace.runtime.trace_config import TraceConfig, load_trace_config


def build_store(cfg: TraceConfig) -> StateStore:
    if cfg.backend == "memory":
        return MemoryStateStore()
    return SqliteStateStore(db=SqliteDB(path=cfg.db_path, mode=cfg.mode))


def build_contract(cfg: Optional[TraceConfig] = None, *, store: Optional[StateStore] = None) -> TraceabilityContract:
    """
    Build a TraceabilityContract from an explicit config or, if omitted,
    from ARROZ_CONFIG_PATH / ARROZ_* environment variables.

    Passing `store` skips backend construction (tests inject fakes this way).
    """
    c = cfg or load_trace_config()
    return TraceabilityContract(
        store if store is not None else build_store(c),
        query_mode=c.query_mode,
        strict_doc_type=c.strict_doc_type,
        search_doc_type_override=c.search_doc_type_override,
    )
