"""
Per-request selection locks

Serializes donor selection per request inside one process. The at-most-once
guard itself is a workflow metadata check, so two processes can still both
select (see DESIGN.md). Entries are dropped once a request is fulfilled or
closed.
"""

import threading
from typing import Dict

_selection_locks: Dict[str, threading.Lock] = {}
_selection_locks_guard = threading.Lock()


def selection_lock(request_id: str) -> threading.Lock:
    with _selection_locks_guard:
        return _selection_locks.setdefault(request_id, threading.Lock())


def release_selection_lock(request_id: str) -> None:
    with _selection_locks_guard:
        _selection_locks.pop(request_id, None)
