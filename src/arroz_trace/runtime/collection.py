# src/arroz_trace/runtime/collection.py
from __future__ import annotations

"""Keyed document collection: the six record operations for one entity.

A collection is parameterized by its schema class, which carries the key
prefix, the docType literal and the entity name used in event names. Tolva
and Secado are two instances of the same class.

Every operation runs inside one store invocation, so the existence check and
the write that depends on it are atomic relative to other invocations.
"""

import logging
from contextlib import contextmanager
from typing import Any, Generic, Iterator, List, Mapping, Type, TypeVar, Union

from pydantic import ValidationError as PydanticValidationError

from arroz_trace.ledger.constants import EVENT_DELETE, EVENT_EDIT, EVENT_REGISTER, RANGE_END_SENTINEL
from arroz_trace.ledger.schemas import RecordDocument
from arroz_trace.ledger.selectors import build_selector, parse_filters
from arroz_trace.runtime.accessor import KeyedStateAccessor, in_prefix_range, state_key
from arroz_trace.runtime.errors import AlreadyExists, InvalidPayload, NotFound, RecordError, ValidationError
from arroz_trace.runtime.notifier import MutationNotifier
from arroz_trace.runtime.query_engine import QueryEngine, parse_record
from arroz_trace.runtime.state_store import StateStore
from arroz_trace.util.structured_logging import log_event

D = TypeVar("D", bound=RecordDocument)
Payload = Union[str, bytes, Mapping[str, Any]]

_log = logging.getLogger("arroz_trace.records")


class DocumentCollection(Generic[D]):
    def __init__(
        self,
        schema: Type[D],
        store: StateStore,
        *,
        query_mode: str = "auto",
        strict_doc_type: bool = True,
        search_doc_type_override: bool = False,
    ) -> None:
        self.schema = schema
        self._store = store
        self.accessor = KeyedStateAccessor(store)
        self.engine = QueryEngine(store, mode=query_mode)
        self.notifier = MutationNotifier(store)
        self.strict_doc_type = bool(strict_doc_type)
        self.search_doc_type_override = bool(search_doc_type_override)

    @property
    def prefix(self) -> str:
        return self.schema.KEY_PREFIX

    @property
    def doc_type(self) -> str:
        return self.schema.DOC_TYPE

    @property
    def entity(self) -> str:
        return self.schema.ENTITY

    def event_name(self, verb: str) -> str:
        return f"{verb}{self.entity}"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _op(self, op: str, record_id: str = "") -> Iterator[None]:
        try:
            with self._store.invocation():
                yield
        except RecordError as e:
            log_event(_log, "record_rejected", op=op, entity=self.entity, id=record_id, code=e.code, reason=e.reason)
            raise

    def _parse(self, payload: Payload) -> D:
        try:
            if isinstance(payload, Mapping):
                return self.schema.model_validate(dict(payload))
            if isinstance(payload, (str, bytes, bytearray)):
                return self.schema.model_validate_json(payload)
        except PydanticValidationError as e:
            details = [{"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]} for err in e.errors()]
            raise InvalidPayload("invalid_json", details) from e
        raise InvalidPayload("invalid_json", f"unsupported payload type {type(payload).__name__}")

    def _prepare(self, payload: Payload) -> D:
        doc = self._parse(payload)
        if not doc.id:
            raise ValidationError("missing_id", "the 'id' field is required")
        if not in_prefix_range(self.prefix, doc.id):
            # Keys at or past PREFIX_~ are invisible to range listings.
            raise ValidationError("id_out_of_range", {"id": doc.id, "must_sort_before": RANGE_END_SENTINEL})
        if doc.doc_type and doc.doc_type != self.doc_type and self.strict_doc_type:
            raise ValidationError("doc_type_mismatch", {"expected": self.doc_type, "got": doc.doc_type})
        problems = doc.problems()
        if problems:
            raise ValidationError("invalid_fields", problems)
        if not doc.doc_type:
            doc = doc.model_copy(update={"doc_type": self.doc_type})
        return doc

    @staticmethod
    def _require_id(record_id: Any) -> str:
        if not isinstance(record_id, str):
            raise InvalidPayload("invalid_id", "id must be a string")
        if not record_id:
            raise ValidationError("missing_id", "the 'id' field is required")
        return record_id

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def register(self, payload: Payload) -> None:
        with self._op("register"):
            doc = self._prepare(payload)
            if self.accessor.exists(self.prefix, doc.id):
                raise AlreadyExists("record_exists", {"entity": self.entity, "id": doc.id})
            data = doc.to_json_bytes()
            self.accessor.put(self.prefix, doc.id, data)
            self.notifier.emit(self.event_name(EVENT_REGISTER), data)
        log_event(_log, "record_registered", entity=self.entity, id=doc.id)

    def edit(self, payload: Payload) -> None:
        """Replace the stored document; omitted fields are not carried over."""
        with self._op("edit"):
            doc = self._prepare(payload)
            if not self.accessor.exists(self.prefix, doc.id):
                raise NotFound("record_not_found", {"entity": self.entity, "id": doc.id})
            data = doc.to_json_bytes()
            self.accessor.put(self.prefix, doc.id, data)
            self.notifier.emit(self.event_name(EVENT_EDIT), data)
        log_event(_log, "record_edited", entity=self.entity, id=doc.id)

    def delete(self, record_id: str) -> None:
        with self._op("delete", str(record_id)):
            rid = self._require_id(record_id)
            if not self.accessor.exists(self.prefix, rid):
                raise NotFound("record_not_found", {"entity": self.entity, "id": rid})
            self.accessor.delete(self.prefix, rid)
            self.notifier.emit(self.event_name(EVENT_DELETE), rid.encode("utf-8"))
        log_event(_log, "record_deleted", entity=self.entity, id=rid)

    def get(self, record_id: str) -> D:
        with self._op("get", str(record_id)):
            if not isinstance(record_id, str):
                raise InvalidPayload("invalid_id", "id must be a string")
            raw = self.accessor.get(self.prefix, record_id)
            if raw is None:
                raise NotFound("record_not_found", {"entity": self.entity, "id": record_id})
            return parse_record(self.schema, state_key(self.prefix, record_id), raw)

    def exists(self, record_id: str) -> bool:
        with self._op("exists", str(record_id)):
            if not isinstance(record_id, str):
                raise InvalidPayload("invalid_id", "id must be a string")
            return self.accessor.exists(self.prefix, record_id)

    def list(self) -> List[D]:
        with self._op("list"):
            return self.engine.query(self.schema, build_selector(self.doc_type, {}))

    def search(self, filters: Payload) -> List[D]:
        with self._op("search"):
            parsed = parse_filters(filters, self.schema)
            selector = build_selector(
                self.doc_type,
                parsed,
                allow_doc_type_override=self.search_doc_type_override,
            )
            return self.engine.query(self.schema, selector)
