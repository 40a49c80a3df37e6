"""Per-key mutual exclusion around order transitions.

Every reconciliation step that reads ledger state and then writes based on it
holds the lock for its key: ``order:<id>`` for existing orders and
``session:<id>`` for deferred materialization. Two deliveries of the same
event therefore never both observe "not yet paid". ``event:<id>`` serializes
redeliveries of one processor event.
"""

import threading
from collections import defaultdict
from contextlib import contextmanager


class OrderLocks:
    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._holders: dict[str, int] = defaultdict(int)

    @staticmethod
    def order_key(order_id: str) -> str:
        return f"order:{order_id}"

    @staticmethod
    def session_key(session_id: str) -> str:
        return f"session:{session_id}"

    @staticmethod
    def event_key(event_id: str) -> str:
        return f"event:{event_id}"

    @contextmanager
    def hold(self, key: str):
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._holders[key] += 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._holders[key] -= 1
                if self._holders[key] == 0:
                    # Nobody is waiting on this key any more
                    del self._holders[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
