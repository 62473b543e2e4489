"""Abstract interface to the control plane plus delete outcome types."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterator, Sequence, Union

from .model import Action, Resource


class ResourceVersionExpired(Exception):
    """The watch resume token is too old; the caller has to re-list."""


@dataclass(frozen=True)
class ResourceList:
    items: Sequence[Resource]
    resource_version: str


@dataclass(frozen=True)
class WatchEvent:
    action: Action
    resource: Resource
    resource_version: str


@dataclass(frozen=True)
class Deleted:
    """The Service was removed by our request."""


@dataclass(frozen=True)
class PreconditionFailed:
    """The UID no longer matches: the observed incarnation is gone."""

    reason: str = ""


@dataclass(frozen=True)
class TransientFailure:
    """The delete may succeed if retried later."""

    cause: BaseException = field(compare=False)


DeleteResult = Union[Deleted, PreconditionFailed, TransientFailure]


class ServiceClient(ABC):
    """Operations the mirror and the termination worker need."""

    @abstractmethod
    def list(self) -> ResourceList:
        """Return every Service plus the collection resource version."""

    @abstractmethod
    def watch(self, resource_version: str) -> Iterator[WatchEvent]:
        """Stream changes after ``resource_version``.

        The iterator ends when the server closes the stream and raises
        :class:`ResourceVersionExpired` when the version can no longer be
        resumed from.  Other errors propagate unchanged.
        """

    @abstractmethod
    def delete(self, namespace: str, name: str, uid: str) -> DeleteResult:
        """Delete ``namespace/name`` only if its UID is still ``uid``."""
