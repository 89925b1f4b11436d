# src/arroz_trace/runtime/query_engine.py
from __future__ import annotations

"""Rich selector and range queries over one record namespace.

Both modes drain a store iterator into an ordered list of parsed documents.
The iterator is closed on every exit path. A value that fails to parse aborts
the whole listing with CorruptRecord: traceability data must never silently
lose entries.

Modes:
  - selector: {"selector": {...}} evaluated by the store
  - range:    scan [PREFIX_, PREFIX_~) and apply the selector here
  - auto:     selector, falling back to range when the store cannot serve it
"""

import json
import logging
from contextlib import closing
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar

from pydantic import ValidationError as PydanticValidationError

from arroz_trace.ledger.schemas import RecordDocument
from arroz_trace.ledger.selectors import selector_matches, selector_query
from arroz_trace.runtime.accessor import prefix_range
from arroz_trace.runtime.errors import CorruptRecord, QueryError, RecordError, SelectorQueryUnsupported
from arroz_trace.runtime.state_store import ResultsIterator, StateStore
from arroz_trace.util.structured_logging import log_event

Json = Dict[str, Any]
D = TypeVar("D", bound=RecordDocument)

QUERY_MODES = ("auto", "selector", "range")

_log = logging.getLogger("arroz_trace.query")


def parse_record(schema: Type[D], key: str, value: bytes) -> D:
    try:
        return schema.model_validate_json(value)
    except (PydanticValidationError, ValueError) as e:
        raise CorruptRecord("record_unparseable", {"key": key, "error": str(e)}) from e


class QueryEngine:
    def __init__(self, store: StateStore, *, mode: str = "auto") -> None:
        m = str(mode or "").strip().lower()
        if m not in QUERY_MODES:
            raise ValueError(f"query mode must be one of {QUERY_MODES}; got: {mode!r}")
        self._store = store
        self._mode = m

    @property
    def mode(self) -> str:
        return self._mode

    def query(self, schema: Type[D], selector: Mapping[str, Any]) -> List[D]:
        if self._mode == "range":
            return self.range_query(schema, selector)
        if self._mode == "selector":
            return self.selector_query(schema, selector)
        try:
            return self.selector_query(schema, selector)
        except SelectorQueryUnsupported:
            return self.range_query(schema, selector)

    def selector_query(self, schema: Type[D], selector: Mapping[str, Any]) -> List[D]:
        q = selector_query(selector)
        it = self._open(lambda: self._store.get_query_result(q))
        out = self._drain(schema, it, None)
        log_event(_log, "query_executed", mode="selector", doc_type=schema.DOC_TYPE, count=len(out))
        return out

    def range_query(self, schema: Type[D], selector: Optional[Mapping[str, Any]] = None) -> List[D]:
        start, end = prefix_range(schema.KEY_PREFIX)
        it = self._open(lambda: self._store.get_state_by_range(start, end))
        out = self._drain(schema, it, selector)
        log_event(_log, "query_executed", mode="range", doc_type=schema.DOC_TYPE, count=len(out))
        return out

    @staticmethod
    def _open(fn) -> ResultsIterator:
        try:
            return fn()
        except RecordError:
            raise
        except Exception as e:
            raise QueryError("query_failed", str(e)) from e

    @staticmethod
    def _drain(schema: Type[D], it: ResultsIterator, selector: Optional[Mapping[str, Any]]) -> List[D]:
        out: List[D] = []
        with closing(it):
            while True:
                try:
                    kv = next(it)
                except StopIteration:
                    break
                except RecordError:
                    raise
                except Exception as e:
                    raise QueryError("iterator_failed", str(e)) from e

                doc = parse_record(schema, kv.key, kv.value)
                if selector is not None and not selector_matches(selector, json.loads(kv.value)):
                    continue
                out.append(doc)
        return out
