# src/arroz_trace/ledger/constants.py
from __future__ import annotations

"""Key namespaces and document-type literals for the traceability records.

Each entity owns one key prefix; keys are `<PREFIX>_<id>`.
"""

KEY_SEPARATOR: str = "_"

# "~" sorts after every character used in ids, so it closes the prefix range.
RANGE_END_SENTINEL: str = "~"

TOLVA_DOC_TYPE: str = "tolva"
TOLVA_KEY_PREFIX: str = "TOLVA"
TOLVA_ENTITY: str = "Tolva"

SECADO_DOC_TYPE: str = "secado"
SECADO_KEY_PREFIX: str = "SECADO"
SECADO_ENTITY: str = "Secado"

# Event verbs; the entity name is appended (RegisterTolva, EditSecado, ...).
EVENT_REGISTER: str = "Register"
EVENT_EDIT: str = "Edit"
EVENT_DELETE: str = "Delete"

DOC_TYPE_FIELD: str = "docType"
