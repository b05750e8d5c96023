"""Per-incident serialization of mutations."""
import threading
from contextlib import contextmanager
from typing import Dict

# Key under which new incidents are allocated ids
NEW_INCIDENT_KEY = "__new_incident__"


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = threading.RLock()
        self.holders = 0


class IncidentLocks:
    """
    One lock per incident id, alive only while someone holds or waits on it.

    Mutations of an incident or any of its cases run while holding its lock,
    so id generation and read-modify-write cycles within one process never
    interleave. Reads never take these locks.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: Dict[str, _Entry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    @contextmanager
    def hold(self, key: str):
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._entries[key]


# Shared by every request served from this process
incident_locks = IncidentLocks()
