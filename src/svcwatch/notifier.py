"""Notification hooks invoked after a Service has been deleted."""

from __future__ import annotations

from abc import ABC, abstractmethod

from .model import Resource

MESSAGE_TEMPLATE = "kube-svc-watch just deleted a public Service ({namespace}/{name})"


def format_message(resource: Resource, template: str = MESSAGE_TEMPLATE) -> str:
    return template.format(namespace=resource.namespace, name=resource.name)


class Notifier(ABC):
    @abstractmethod
    def notify(self, resource: Resource) -> None:
        """Report that ``resource`` was deleted.

        Implementations log delivery problems instead of raising: the delete
        already happened and is not retried or rolled back.
        """


class NullNotifier(Notifier):
    """Used when no notification channel is configured."""

    def notify(self, resource: Resource) -> None:
        return None
