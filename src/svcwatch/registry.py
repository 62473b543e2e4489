"""Dispatch mirror change events to registered handlers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict

from .events import ResourceEvent

LOG = logging.getLogger(__name__)


class ResourceHandler(ABC):
    """Base class for consumers of the mirror change stream."""

    @abstractmethod
    def on_event(self, event: ResourceEvent) -> None:
        """React to a change accepted by the mirror store."""


class HandlerRegistry:
    """Fan change events out to named handlers.

    Handler failures are logged and do not prevent delivery to the remaining
    handlers, so a misbehaving consumer cannot stall the watch stream.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, ResourceHandler] = {}

    def register(self, name: str, handler: ResourceHandler) -> None:
        if name in self._handlers:
            raise ValueError(f"handler '{name}' already registered")
        self._handlers[name] = handler

    def unregister(self, name: str) -> None:
        self._handlers.pop(name, None)

    def __len__(self) -> int:
        return len(self._handlers)

    def handle(self, event: ResourceEvent) -> None:
        if not isinstance(event, ResourceEvent):
            raise TypeError(f"Unsupported event type: {type(event)!r}")
        for name, handler in self._handlers.items():
            try:
                handler.on_event(event)
            except Exception:
                LOG.exception("handler %s failed on %s %s", name, event.action.value, event.key)
