"""Coalescing work queue between the mirror and the termination worker."""

from __future__ import annotations

import heapq
import itertools
import logging
import time
from collections import deque
from dataclasses import dataclass
from threading import Condition
from typing import Deque, Dict, List, Optional, Tuple

from .events import ResourceEvent
from .model import Action, Resource
from .registry import ResourceHandler
from .store import ResourceStore

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueEntry:
    key: str
    action: Action
    resource: Resource


class ChangeQueue(ResourceHandler):
    """FIFO of pending changes holding at most one entry per key.

    Pushing a key that is already pending replaces its payload but keeps its
    position, so the consumer always sees the latest state and the queue
    never grows beyond the number of live Services.  Intended for a single
    consumer.
    """

    def __init__(self, store: ResourceStore) -> None:
        self._store = store
        self._cond = Condition()
        self._order: Deque[str] = deque()
        self._pending: Dict[str, QueueEntry] = {}
        self._delayed: List[Tuple[float, int, str]] = []
        self._sequence = itertools.count()

    def on_event(self, event: ResourceEvent) -> None:
        self.push(event.action, event.resource)

    def push(self, action: Action, resource: Resource) -> None:
        with self._cond:
            self._put(QueueEntry(resource.key, action, resource))

    def requeue(self, key: str, delay: float = 0.0) -> bool:
        """Queue the store's current state for ``key`` again.

        Nothing happens when the key left the store in the meantime or when a
        newer entry is already pending.  With a positive ``delay`` the entry
        only becomes visible to :meth:`pop` once the delay has elapsed.
        Returns whether anything was scheduled.
        """

        with self._cond:
            if key in self._pending:
                return False
            if delay > 0:
                heapq.heappush(
                    self._delayed, (time.monotonic() + delay, next(self._sequence), key)
                )
                self._cond.notify()
                return True
            return self._requeue_now(key)

    def pop(self, timeout: Optional[float] = None) -> Optional[QueueEntry]:
        """Remove and return the oldest entry, blocking until one exists.

        Returns ``None`` only if ``timeout`` seconds pass without an entry.
        """

        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                self._promote_due()
                if self._order:
                    key = self._order.popleft()
                    return self._pending.pop(key)

                wait: Optional[float] = None
                if deadline is not None:
                    wait = deadline - time.monotonic()
                    if wait <= 0:
                        return None
                if self._delayed:
                    due = self._delayed[0][0] - time.monotonic()
                    wait = due if wait is None else min(wait, due)
                self._cond.wait(None if wait is None else max(wait, 0.0))

    def __len__(self) -> int:
        with self._cond:
            return len(self._pending) + len(self._delayed)

    def pending_keys(self) -> List[str]:
        with self._cond:
            return list(self._order)

    # caller holds self._cond
    def _put(self, entry: QueueEntry) -> None:
        if entry.key not in self._pending:
            self._order.append(entry.key)
        self._pending[entry.key] = entry
        self._cond.notify()

    def _requeue_now(self, key: str) -> bool:
        if key in self._pending:
            return False
        resource = self._store.get(key)
        if resource is None:
            LOG.debug("not requeueing %s: no longer present", key)
            return False
        self._put(QueueEntry(key, Action.MODIFIED, resource))
        return True

    def _promote_due(self) -> None:
        now = time.monotonic()
        while self._delayed and self._delayed[0][0] <= now:
            _, _, key = heapq.heappop(self._delayed)
            self._requeue_now(key)
