"""Service exposure watcher core.

This package keeps a local mirror of the cluster's Services current through
list-then-watch, classifies each Service as internally or externally
reachable according to the cloud provider's internal load balancer
annotation, and optionally deletes the external ones.  The pieces are:

* :class:`~svcwatch.store.ResourceStore` holding the mirrored objects;
* :class:`~svcwatch.mirror.ResourceMirror`, the supervised list/watch loop;
* :class:`~svcwatch.workqueue.ChangeQueue`, a coalescing queue fed by the
  mirror's change stream;
* :class:`~svcwatch.terminator.TerminationWorker`, which performs UID-guarded
  deletes; and
* :class:`~svcwatch.metrics.ServiceInfoCollector`, the Prometheus view.

Nothing here talks to Kubernetes or Slack directly; the runtime in
``svcwatch_agent`` supplies those collaborators.
"""

from .classifier import ProviderPolicy, classify, get_policy, is_internal  # noqa: F401
from .model import Action, Resource, ServiceType  # noqa: F401
from .store import ResourceStore  # noqa: F401

__all__ = [
    "Action",
    "ProviderPolicy",
    "Resource",
    "ResourceStore",
    "ServiceType",
    "classify",
    "get_policy",
    "is_internal",
]
