# src/arroz_trace/runtime/state_store.py
from __future__ import annotations

"""State store capability injected into every record collection.

The store stands in for the ledger platform's world state:
  - get/put/delete by key
  - range scans and selector queries returning closable iterators
  - one event per invocation, published only when the invocation commits
  - invocation(): the unit of atomicity; all reads and writes made inside it
    commit together or not at all, and reads observe earlier writes

MemoryStateStore is the in-process backend used by tests and the dev gateway.
SqliteStateStore (runtime/sqlite_db.py) is the durable one.
"""

import json
import logging
import threading
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Iterable, Iterator, List, Optional, Protocol

from arroz_trace.ledger.selectors import parse_selector_query, selector_matches
from arroz_trace.runtime.errors import SelectorQueryUnsupported
from arroz_trace.util.structured_logging import log_event

_log = logging.getLogger("arroz_trace.store")

# Committed events kept by MemoryStateStore.
DEFAULT_MAX_EVENTS = 10_000


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class KV:
    key: str
    value: bytes


@dataclass(frozen=True)
class ChaincodeEvent:
    name: str
    payload: bytes
    ts_ms: int = 0


class ResultsIterator:
    """Forward-only iterator over query results that must be closed.

    Backends may pass `on_close` to release cursors or connections.
    """

    def __init__(self, items: Iterable[KV], *, on_close: Optional[Callable[[], None]] = None) -> None:
        self._it = iter(items)
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __iter__(self) -> Iterator[KV]:
        return self

    def __next__(self) -> KV:
        if self._closed:
            raise StopIteration
        return next(self._it)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._on_close is not None:
            self._on_close()


class StateStore(Protocol):
    def invocation(self): ...

    def get_state(self, key: str) -> Optional[bytes]: ...

    def put_state(self, key: str, value: bytes) -> None: ...

    def del_state(self, key: str) -> None: ...

    def get_state_by_range(self, start_key: str, end_key: str) -> ResultsIterator: ...

    def get_query_result(self, query: str) -> ResultsIterator: ...

    def set_event(self, name: str, payload: bytes) -> None: ...


_DELETED = None


@dataclass
class _Invocation:
    # key -> new value, or None for a delete; insertion-ordered
    writes: Dict[str, Optional[bytes]] = field(default_factory=dict)
    event: Optional[ChaincodeEvent] = None


class MemoryStateStore:
    """In-memory world state.

    Invocations are serialized by a re-entrant lock held for their whole
    duration; a nested invocation joins the outer one. Calls made outside an
    invocation run as their own single-call invocation.
    """

    def __init__(self, *, selector_queries: bool = True, max_events: int = DEFAULT_MAX_EVENTS) -> None:
        self._lock = threading.RLock()
        self._state: Dict[str, bytes] = {}
        self._local = threading.local()
        self._selector_queries = bool(selector_queries)
        if int(max_events) <= 0:
            raise ValueError("max_events must be > 0")
        # Oldest events are dropped once the log is full.
        self._events: Deque[ChaincodeEvent] = deque(maxlen=int(max_events))

    # ------------------------------------------------------------------
    # Invocation boundary
    # ------------------------------------------------------------------

    def _current(self) -> Optional[_Invocation]:
        return getattr(self._local, "inv", None)

    @contextmanager
    def invocation(self) -> Iterator[_Invocation]:
        with self._lock:
            outer = self._current()
            if outer is not None:
                yield outer
                return

            inv = _Invocation()
            self._local.inv = inv
            try:
                yield inv
            except BaseException as e:
                log_event(_log, "invocation_rolled_back", writes=len(inv.writes), error=str(e))
                raise
            else:
                self._commit(inv)
            finally:
                self._local.inv = None

    def _commit(self, inv: _Invocation) -> None:
        for k, v in inv.writes.items():
            if v is _DELETED:
                self._state.pop(k, None)
            else:
                self._state[k] = v
        if inv.event is not None:
            self._events.append(inv.event)

    # ------------------------------------------------------------------
    # Key/value
    # ------------------------------------------------------------------

    def get_state(self, key: str) -> Optional[bytes]:
        with self.invocation() as inv:
            if key in inv.writes:
                return inv.writes[key]
            return self._state.get(key)

    def put_state(self, key: str, value: bytes) -> None:
        if not isinstance(value, (bytes, bytearray)):
            raise TypeError("put_state expects bytes")
        with self.invocation() as inv:
            inv.writes[key] = bytes(value)

    def del_state(self, key: str) -> None:
        with self.invocation() as inv:
            inv.writes[key] = _DELETED

    def set_event(self, name: str, payload: bytes) -> None:
        # One event per invocation; a later call replaces the earlier one.
        with self.invocation() as inv:
            inv.event = ChaincodeEvent(name=str(name), payload=bytes(payload), ts_ms=_now_ms())

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _view(self) -> Dict[str, bytes]:
        out = dict(self._state)
        inv = self._current()
        if inv is not None:
            for k, v in inv.writes.items():
                if v is _DELETED:
                    out.pop(k, None)
                else:
                    out[k] = v
        return out

    def get_state_by_range(self, start_key: str, end_key: str) -> ResultsIterator:
        with self._lock:
            view = self._view()
        rows = [KV(k, view[k]) for k in sorted(view) if start_key <= k < end_key]
        return ResultsIterator(rows)

    def get_query_result(self, query: str) -> ResultsIterator:
        if not self._selector_queries:
            raise SelectorQueryUnsupported("selector_queries_disabled", {"backend": "memory"})
        selector = parse_selector_query(query)
        with self._lock:
            view = self._view()
        rows: List[KV] = []
        for k, v in view.items():
            try:
                doc = json.loads(v)
            except ValueError:
                # Non-JSON values are not visible to selector queries.
                continue
            if isinstance(doc, dict) and selector_matches(selector, doc):
                rows.append(KV(k, v))
        return ResultsIterator(rows)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict[str, bytes]:
        with self._lock:
            return dict(self._state)

    def events(self, limit: Optional[int] = None) -> List[ChaincodeEvent]:
        """Events of committed invocations, oldest first.

        With `limit`, only the most recent `limit` events are returned.
        """
        with self._lock:
            out = list(self._events)
        return out[-limit:] if limit is not None and limit > 0 else out
