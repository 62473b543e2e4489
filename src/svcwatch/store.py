"""Thread-safe local copy of the remote Service collection."""

from __future__ import annotations

import logging
from threading import RLock
from typing import Dict, Iterable, List, Optional

from .events import ResourceEvent
from .model import Action, Resource, version_newer

LOG = logging.getLogger(__name__)


class ResourceStore:
    """Key -> latest :class:`Resource` mapping fed by list/watch.

    The mirror thread is the only writer; the metrics collector and the work
    queue read concurrently.  Every access goes through one lock and the
    stored values are immutable, so readers always see whole objects.

    An update whose resource version is not newer than the stored one is
    ignored.  Deletes leave a tombstone holding the delete's version so that a
    late, older update cannot bring the key back.  Tombstones only live until
    the next full :meth:`replace`.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: Dict[str, Resource] = {}
        self._tombstones: Dict[str, str] = {}
        self._resource_version = ""

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------
    def replace(
        self, resources: Iterable[Resource], resource_version: str
    ) -> List[ResourceEvent]:
        """Swap in a freshly listed collection.

        Returns the events needed to bring consumers from the previous
        contents to the new ones.  Keys whose version did not move produce no
        event.
        """

        listed: Dict[str, Resource] = {}
        for resource in resources:
            listed[resource.key] = resource

        with self._lock:
            events: List[ResourceEvent] = []
            items: Dict[str, Resource] = {}
            for key, resource in listed.items():
                current = self._items.get(key)
                if current is None:
                    items[key] = resource
                    events.append(ResourceEvent(Action.ADDED, resource))
                elif resource.newer_than(current):
                    items[key] = resource
                    events.append(ResourceEvent(Action.MODIFIED, resource))
                else:
                    items[key] = current

            for key, current in self._items.items():
                if key not in listed:
                    events.append(ResourceEvent(Action.DELETED, current))

            self._items = items
            self._tombstones = {}
            self._resource_version = resource_version

        LOG.debug(
            "store replaced with %d services at version %s (%d changes)",
            len(items),
            resource_version,
            len(events),
        )
        return events

    def apply(self, action: Action, resource: Resource) -> bool:
        """Apply one watch event; return ``True`` if the store changed."""

        key = resource.key
        version = resource.resource_version
        with self._lock:
            current = self._items.get(key)
            if action is Action.DELETED:
                if current is not None:
                    if not resource.newer_than(current):
                        return False
                    del self._items[key]
                tomb = self._tombstones.get(key)
                if tomb is None or version_newer(version, tomb):
                    self._tombstones[key] = version
                return current is not None

            tomb = self._tombstones.get(key)
            if tomb is not None and not version_newer(version, tomb):
                return False
            if current is not None and not resource.newer_than(current):
                return False
            self._items[key] = resource
            self._tombstones.pop(key, None)
            return True

    def advance(self, resource_version: str) -> None:
        """Record the collection version to resume watching from."""

        if not resource_version:
            return
        with self._lock:
            self._resource_version = resource_version

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------
    @property
    def resource_version(self) -> str:
        with self._lock:
            return self._resource_version

    def get(self, key: str) -> Optional[Resource]:
        with self._lock:
            return self._items.get(key)

    def list(self) -> List[Resource]:
        """Point-in-time snapshot of every stored Service."""

        with self._lock:
            return list(self._items.values())

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._items
