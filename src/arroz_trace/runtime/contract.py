# src/arroz_trace/runtime/contract.py
from __future__ import annotations

"""Traceability contract: both record collections behind one entrypoint.

invoke(name, *args) routes a contract function name and its string arguments
to a collection operation, the way the platform calls a deployed contract.
Both the historical Spanish names and English aliases are routed.

Results follow the contract wire convention:
  - writes return None
  - reads return JSON text (a document, or an array of documents)
  - existence checks return "true" / "false"
"""

import json
from typing import Any, Callable, Dict, List, Optional, Tuple

from arroz_trace.ledger.schemas import RecordDocument, Secado, Tolva
from arroz_trace.runtime.collection import DocumentCollection
from arroz_trace.runtime.errors import InvalidPayload, UnknownFunction
from arroz_trace.runtime.state_store import StateStore

Json = Dict[str, Any]

# (collection attr, operation, arg count)
_Route = Tuple[str, str, int]


def _routes_for(attr: str, entity: str, plural: str) -> Dict[str, _Route]:
    return {
        # historical names
        f"Registrar{entity}": (attr, "register", 1),
        f"Editar{entity}": (attr, "edit", 1),
        f"Eliminar{entity}": (attr, "delete", 1),
        f"Consultar{entity}": (attr, "get", 1),
        f"Listar{plural}": (attr, "list", 0),
        f"Buscar{plural}": (attr, "search", 1),
        f"{entity}Existe": (attr, "exists", 1),
        # aliases
        f"Register{entity}": (attr, "register", 1),
        f"Edit{entity}": (attr, "edit", 1),
        f"Delete{entity}": (attr, "delete", 1),
        f"Get{entity}": (attr, "get", 1),
        f"List{plural}": (attr, "list", 0),
        f"Search{plural}": (attr, "search", 1),
        f"{entity}Exists": (attr, "exists", 1),
    }


ROUTES: Dict[str, _Route] = {
    **_routes_for("tolva", "Tolva", "Tolvas"),
    **_routes_for("secado", "Secado", "Secados"),
}


def _docs_json(docs: List[RecordDocument]) -> str:
    return json.dumps([d.to_json() for d in docs], separators=(",", ":"), ensure_ascii=False)


class TraceabilityContract:
    def __init__(
        self,
        store: StateStore,
        *,
        query_mode: str = "auto",
        strict_doc_type: bool = True,
        search_doc_type_override: bool = False,
    ) -> None:
        self.store = store
        opts = dict(
            query_mode=query_mode,
            strict_doc_type=strict_doc_type,
            search_doc_type_override=search_doc_type_override,
        )
        self.tolva: DocumentCollection[Tolva] = DocumentCollection(Tolva, store, **opts)
        self.secado: DocumentCollection[Secado] = DocumentCollection(Secado, store, **opts)

    def collection(self, name: str) -> Optional[DocumentCollection]:
        """Look up a collection by docType literal ("tolva" / "secado")."""
        for c in (self.tolva, self.secado):
            if c.doc_type == str(name or "").strip().lower():
                return c
        return None

    @staticmethod
    def functions() -> List[str]:
        return sorted(ROUTES)

    def invoke(self, name: str, *args: Any) -> Optional[str]:
        route = ROUTES.get(str(name or ""))
        if route is None:
            raise UnknownFunction("unknown_function", {"function": name})
        attr, op, nargs = route
        if len(args) != nargs:
            raise InvalidPayload("wrong_arg_count", {"function": name, "expected": nargs, "got": len(args)})

        coll: DocumentCollection = getattr(self, attr)
        fn: Callable[..., Any] = getattr(coll, op)
        result = fn(*args)

        if op in ("register", "edit", "delete"):
            return None
        if op == "exists":
            return "true" if result else "false"
        if op == "get":
            return json.dumps(result.to_json(), separators=(",", ":"), ensure_ascii=False)
        return _docs_json(result)
