from __future__ import annotations

from typing import Optional

from arroz_trace.ledger.constants import KEY_SEPARATOR, RANGE_END_SENTINEL
from arroz_trace.runtime.state_store import StateStore


def state_key(prefix: str, record_id: str) -> str:
    return f"{prefix}{KEY_SEPARATOR}{record_id}"


def prefix_range(prefix: str) -> tuple[str, str]:
    """Half-open key range [PREFIX_, PREFIX_~) covering one namespace."""
    start = f"{prefix}{KEY_SEPARATOR}"
    return start, f"{start}{RANGE_END_SENTINEL}"


def in_prefix_range(prefix: str, record_id: str) -> bool:
    """True when the key for record_id is visible to a prefix range scan."""
    start, end = prefix_range(prefix)
    return start <= state_key(prefix, record_id) < end


class KeyedStateAccessor:
    """get/put/delete/exists by (prefix, id) against the injected store.

    No concurrency control here: the caller runs every check-then-write pair
    inside one store invocation. Store errors propagate unchanged.
    """

    def __init__(self, store: StateStore) -> None:
        self._store = store

    @property
    def store(self) -> StateStore:
        return self._store

    def exists(self, prefix: str, record_id: str) -> bool:
        return self.get(prefix, record_id) is not None

    def get(self, prefix: str, record_id: str) -> Optional[bytes]:
        return self._store.get_state(state_key(prefix, record_id))

    def put(self, prefix: str, record_id: str, value: bytes) -> None:
        self._store.put_state(state_key(prefix, record_id), value)

    def delete(self, prefix: str, record_id: str) -> None:
        self._store.del_state(state_key(prefix, record_id))
