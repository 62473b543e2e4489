"""Event primitives published by the resource mirror."""

from __future__ import annotations

from dataclasses import dataclass

from .model import Action, Resource


@dataclass(frozen=True)
class ResourceEvent:
    """A change observed for one Service.

    ``resource`` is the state carried by the event; for ``DELETED`` it is the
    last known state of the removed object.
    """

    action: Action
    resource: Resource

    @property
    def key(self) -> str:
        return self.resource.key
