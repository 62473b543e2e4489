"""Worker deleting Services classified as externally reachable.

The worker is the single consumer of :class:`~svcwatch.workqueue.ChangeQueue`.
Deletes are conditional on the UID observed by the mirror, which keeps a
Service recreated under the same name from being removed by a stale entry.

Caveat: the API server cannot check the classification together with the
UID.  A Service switched to an internal load balancer after it was classified
but before the delete lands is still deleted.
"""

from __future__ import annotations

import logging
from threading import Event, Thread
from typing import Dict, Optional

from .classifier import ProviderPolicy, is_internal
from .client import (
    DeleteResult,
    Deleted,
    PreconditionFailed,
    ServiceClient,
    TransientFailure,
)
from .model import Action
from .notifier import Notifier, NullNotifier
from .workqueue import ChangeQueue, QueueEntry

LOG = logging.getLogger(__name__)


class TerminationWorker(Thread):
    """Pop queued changes and delete external Services."""

    def __init__(
        self,
        client: ServiceClient,
        queue: ChangeQueue,
        policy: ProviderPolicy,
        stop_event: Event,
        *,
        notifier: Optional[Notifier] = None,
        retry_base: float = 1.0,
        retry_max: float = 60.0,
        poll_interval: float = 1.0,
    ) -> None:
        super().__init__(name="termination-worker", daemon=True)
        self._client = client
        self._queue = queue
        self._policy = policy
        self._stop_event = stop_event
        self._notifier = notifier or NullNotifier()
        self._retry_base = retry_base
        self._retry_max = retry_max
        self._poll_interval = poll_interval
        self._failures: Dict[str, int] = {}

    def run(self) -> None:
        LOG.info("Termination mode engaged (provider=%s)", self._policy.name)
        while not self._stop_event.is_set():
            entry = self._queue.pop(timeout=self._poll_interval)
            if entry is None:
                continue
            try:
                self.process(entry)
            except Exception:
                LOG.exception("failed to process %s", entry.key)
        LOG.info("Stopping termination worker")

    def process(self, entry: QueueEntry) -> Optional[DeleteResult]:
        """Handle one queue entry; return the delete outcome if one was tried."""

        svc = entry.resource
        if entry.action is Action.DELETED:
            self._failures.pop(entry.key, None)
            return None
        if is_internal(svc, self._policy):
            self._failures.pop(entry.key, None)
            return None

        result = self._client.delete(svc.namespace, svc.name, svc.uid)

        if isinstance(result, Deleted):
            self._failures.pop(entry.key, None)
            LOG.info("Deleted external service %s", entry.key)
            self._notify(entry)
        elif isinstance(result, PreconditionFailed):
            self._failures.pop(entry.key, None)
            LOG.info(
                "Skipped %s: uid %s no longer current (%s)",
                entry.key,
                svc.uid,
                result.reason or "precondition failed",
            )
        elif isinstance(result, TransientFailure):
            delay = self._retry_delay(entry.key)
            LOG.warning(
                "Error deleting %s: %s; retrying in %.1fs", entry.key, result.cause, delay
            )
            self._queue.requeue(entry.key, delay=delay)
        else:
            raise TypeError(f"Unsupported delete result: {result!r}")
        return result

    def _retry_delay(self, key: str) -> float:
        attempt = self._failures.get(key, 0)
        self._failures[key] = attempt + 1
        return min(self._retry_base * (2 ** attempt), self._retry_max)

    def _notify(self, entry: QueueEntry) -> None:
        try:
            self._notifier.notify(entry.resource)
        except Exception:
            LOG.exception("notifier failed for %s", entry.key)
