from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Iterable, Iterator

from workload_ledger.errors import Busy

logger = logging.getLogger(__name__)


class EmployeeLocks:
    """One mutex per employee id, plus one per project, acquired with a bounded wait.

    Project locks serialize membership changes with activation of that
    project. All keys of one call are taken in a single sorted order, so two
    mutations touching overlapping keys cannot deadlock.
    """

    def __init__(self, timeout: float = 5.0) -> None:
        self.timeout = timeout
        self._guard = threading.Lock()
        self._locks: dict[tuple[str, str], threading.Lock] = {}

    def _lock_for(self, key: tuple[str, str]) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def hold(
        self,
        employee_ids: Iterable[str],
        timeout: float | None = None,
        project_ids: Iterable[str] = (),
    ) -> Iterator[list[str]]:
        ids = sorted({e for e in employee_ids if e is not None})
        keys = sorted(
            [("employee", e) for e in ids] + [("project", p) for p in {p for p in project_ids if p is not None}]
        )
        wait = self.timeout if timeout is None else timeout
        deadline = time.monotonic() + wait
        acquired: list[threading.Lock] = []
        try:
            for key in keys:
                lock = self._lock_for(key)
                remaining = max(0.0, deadline - time.monotonic())
                if not lock.acquire(timeout=remaining):
                    logger.warning("Timed out after %.2fs waiting for %s lock %s", wait, *key)
                    raise Busy(ids or [k[1] for k in keys], wait)
                acquired.append(lock)
            yield ids
        finally:
            for lock in reversed(acquired):
                lock.release()
