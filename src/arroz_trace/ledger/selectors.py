from __future__ import annotations

"""Selector documents for rich queries.

A selector is a flat mapping of JSON field name -> scalar; a document matches
when every field is present and equal. Only equality is supported here; the
operator language belongs to the store's query engine.
"""

import json
import math
from typing import Any, Dict, Mapping, Tuple, Type, Union

from arroz_trace.ledger.constants import DOC_TYPE_FIELD
from arroz_trace.ledger.schemas import RecordDocument
from arroz_trace.runtime.errors import InvalidPayload

Json = Dict[str, Any]
Scalar = Union[str, int, float, bool]

_SCALARS: Tuple[type, ...] = (str, int, float, bool)


def _decode_object(raw: Union[str, bytes, Mapping[str, Any]], *, what: str) -> Json:
    if isinstance(raw, Mapping):
        return dict(raw)
    try:
        obj = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise InvalidPayload(f"invalid_{what}", str(e)) from e
    if not isinstance(obj, dict):
        raise InvalidPayload(f"invalid_{what}", f"{what} must be a JSON object")
    return obj


def parse_filters(raw: Union[str, bytes, Mapping[str, Any]], schema: Type[RecordDocument]) -> Dict[str, Scalar]:
    """Decode caller filters into an ordered JSON-name -> scalar mapping."""
    obj = _decode_object(raw, what="filters")

    out: Dict[str, Scalar] = {}
    for k, v in obj.items():
        name = schema.wire_name(str(k))
        if name is None:
            raise InvalidPayload("unknown_filter_field", {"field": k, "known": schema.wire_names()})
        if v is None or not isinstance(v, _SCALARS):
            raise InvalidPayload("filter_value_not_scalar", {"field": k, "type": type(v).__name__})
        if isinstance(v, float) and not math.isfinite(v):
            raise InvalidPayload("filter_value_not_finite", {"field": k})
        out[name] = v
    return out


def build_selector(doc_type: str, filters: Mapping[str, Scalar], *, allow_doc_type_override: bool = False) -> Json:
    """Start from {docType: doc_type} and overlay the caller filters.

    docType is protected unless allow_doc_type_override is set, in which case
    the overlay is flat and the caller value wins.
    """
    selector: Json = {DOC_TYPE_FIELD: doc_type}
    for k, v in filters.items():
        if k == DOC_TYPE_FIELD and not allow_doc_type_override:
            if v != doc_type:
                raise InvalidPayload("doc_type_filter_mismatch", {"expected": doc_type, "got": v})
            continue
        selector[k] = v
    return selector


def selector_query(selector: Mapping[str, Any]) -> str:
    return json.dumps({"selector": dict(selector)}, sort_keys=False, separators=(",", ":"), ensure_ascii=False)


def parse_selector_query(query: str) -> Json:
    """Inverse of selector_query(); used by backends that evaluate selectors."""
    try:
        obj = json.loads(query)
    except (TypeError, ValueError) as e:
        raise InvalidPayload("invalid_query", str(e)) from e
    sel = obj.get("selector") if isinstance(obj, dict) else None
    if not isinstance(sel, dict):
        raise InvalidPayload("invalid_query", "query must carry a 'selector' object")
    return sel


def _equal(a: Any, b: Any) -> bool:
    # True == 1 in Python; a bool only equals a bool.
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    return a == b


def selector_matches(selector: Mapping[str, Any], doc: Mapping[str, Any]) -> bool:
    for k, v in selector.items():
        if k not in doc:
            return False
        if not _equal(doc[k], v):
            return False
    return True
