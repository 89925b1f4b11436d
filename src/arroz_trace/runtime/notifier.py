from __future__ import annotations

from arroz_trace.runtime.errors import NotifyError
from arroz_trace.runtime.state_store import StateStore


class MutationNotifier:
    """Emits one named event per successful write.

    The store holds the event until the invocation commits; a failure here
    fails the operation, and the invocation boundary discards its writes.
    """

    def __init__(self, store: StateStore) -> None:
        self._store = store

    def emit(self, event_name: str, payload: bytes) -> None:
        if not event_name:
            raise NotifyError("missing_event_name")
        try:
            self._store.set_event(event_name, payload)
        except NotifyError:
            raise
        except Exception as e:
            raise NotifyError("emit_failed", {"event": event_name, "error": str(e)}) from e
