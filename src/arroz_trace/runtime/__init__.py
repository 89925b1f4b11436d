# src/arroz_trace/runtime/__init__.py
"""
Arroz Trace record runtime

  - errors: RecordError taxonomy (code:reason[:details])
  - state_store: injected StateStore capability + in-memory backend
  - sqlite_db: durable SQLite backend (world state, history, events)
  - accessor: get/put/delete/exists by (prefix, id)
  - query_engine: selector and range queries with guaranteed iterator release
  - notifier: one mutation event per successful write
  - collection: the six record operations for one entity
  - contract: both collections behind a by-name invoke() entrypoint
  - trace_config / contract_boot: operator config and wiring

Every record operation runs inside exactly one store invocation.
"""
