"""List-then-watch loop keeping a :class:`ResourceStore` current."""

from __future__ import annotations

import logging
import time
from threading import Event, Thread
from typing import Iterable

from .client import ResourceVersionExpired, ServiceClient
from .events import ResourceEvent
from .registry import HandlerRegistry
from .store import ResourceStore

LOG = logging.getLogger(__name__)


class ResourceMirror(Thread):
    """Mirror the remote Service collection into ``store``.

    Each cycle lists the collection, replaces the store contents and then
    watches from the listed version.  When the stream ends, for whatever
    reason, the cycle starts over with a fresh list.  Failures back off
    exponentially between ``backoff_initial`` and ``backoff_max`` seconds.  A
    watch that ends without delivering an event and before
    ``min_watch_duration`` seconds counts as a failure too.  The delay resets
    only once a watch has delivered an event or stayed open that long.  The
    loop only stops when ``stop_event`` is set.

    Parameters
    ----------
    client:
        Control plane access.
    store:
        Destination store; this thread is its only writer.
    registry:
        Receives every change the store accepted.
    stop_event:
        Shared shutdown signal.
    """

    def __init__(
        self,
        client: ServiceClient,
        store: ResourceStore,
        registry: HandlerRegistry,
        stop_event: Event,
        *,
        backoff_initial: float = 1.0,
        backoff_max: float = 30.0,
        min_watch_duration: float = 5.0,
    ) -> None:
        super().__init__(name="resource-mirror", daemon=True)
        self._client = client
        self._store = store
        self._registry = registry
        self._stop_event = stop_event
        self._backoff_initial = backoff_initial
        self._backoff_max = backoff_max
        self._min_watch_duration = min_watch_duration
        self._delay = 0.0
        self.synced = Event()

    def run(self) -> None:
        LOG.info("Starting service mirror")
        while not self._stop_event.is_set():
            try:
                healthy = self.list_and_watch()
            except ResourceVersionExpired:
                LOG.info("watch version %s expired, re-listing", self._store.resource_version)
                continue
            except Exception:
                LOG.exception("service list/watch failed")
                self._back_off()
                continue
            if healthy or self._stop_event.is_set():
                LOG.debug("watch stream closed, re-listing")
                continue
            LOG.warning("watch stream closed early without events")
            self._back_off()
        LOG.info("Stopping service mirror")

    def _back_off(self) -> None:
        self._delay = self._next_delay()
        LOG.info("retrying list/watch in %.1fs", self._delay)
        self._stop_event.wait(self._delay)

    def _next_delay(self) -> float:
        if self._delay <= 0:
            return self._backoff_initial
        return min(self._delay * 2, self._backoff_max)

    def list_and_watch(self) -> bool:
        """Run one list followed by a watch until the stream closes.

        Returns ``True`` when the watch delivered at least one event or stayed
        open for ``min_watch_duration`` seconds.
        """

        listing = self._client.list()
        events = self._store.replace(listing.items, listing.resource_version)
        if not self.synced.is_set():
            LOG.info(
                "initial service list complete: %d services at version %s",
                len(listing.items),
                listing.resource_version,
            )
            self.synced.set()
        self._dispatch(events)

        started = time.monotonic()
        delivered = False
        try:
            for event in self._client.watch(self._store.resource_version):
                delivered = True
                if self._store.apply(event.action, event.resource):
                    LOG.debug("%s %s", event.action.value, event.resource.key)
                    self._dispatch([ResourceEvent(event.action, event.resource)])
                self._store.advance(event.resource_version)
                if self._stop_event.is_set():
                    break
        finally:
            healthy = delivered or time.monotonic() - started >= self._min_watch_duration
            if healthy:
                self._delay = 0.0
        return healthy

    def _dispatch(self, events: Iterable[ResourceEvent]) -> None:
        for event in events:
            self._registry.handle(event)
