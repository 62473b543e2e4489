"""Data structures describing the Services tracked by the mirror.

These light-weight dataclasses are shared by the store, the work queue, the
termination worker and the metrics collector.  Instances are frozen and their
annotations are exposed through a read-only mapping so that a reference handed
out by the store can never be used to mutate shared state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional


class ServiceType(str, Enum):
    """Exposure type of a Service.

    Only ``LoadBalancer`` Services can carry a public endpoint; the other
    types are reachable from inside the cluster (or via node ports / DNS).
    """

    CLUSTER_IP = "ClusterIP"
    NODE_PORT = "NodePort"
    LOAD_BALANCER = "LoadBalancer"
    EXTERNAL_NAME = "ExternalName"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ServiceType":
        if not value:
            return cls.CLUSTER_IP
        return cls(value)


class Action(str, Enum):
    """Change kinds produced by list/watch."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


def make_key(namespace: str, name: str) -> str:
    return f"{namespace}/{name}"


def _as_int(version: str) -> Optional[int]:
    if version.isdigit():
        return int(version)
    return None


def version_newer(candidate: str, current: str) -> bool:
    """Return ``True`` when ``candidate`` supersedes ``current``.

    The API server issues decimal resource versions, which we compare
    numerically.  Anything else is opaque: equal tokens are not newer and a
    differing token is assumed to be.
    """

    if candidate == current:
        return False
    cand_int, cur_int = _as_int(candidate), _as_int(current)
    if cand_int is not None and cur_int is not None:
        return cand_int > cur_int
    return True


@dataclass(frozen=True)
class Resource:
    """One Service as last observed from the control plane.

    Attributes
    ----------
    namespace, name:
        Mutable-resource key; rendered as ``<namespace>/<name>``.
    uid:
        Identity of this incarnation.  A Service deleted and recreated under
        the same name gets a new UID.
    type:
        The Service exposure type.
    annotations:
        Provider-specific metadata carrying the internal load balancer hint.
    resource_version:
        Opaque per-object version used for ordering updates.
    """

    namespace: str
    name: str
    uid: str
    type: ServiceType = ServiceType.CLUSTER_IP
    annotations: Mapping[str, str] = field(default_factory=dict)
    resource_version: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "annotations", MappingProxyType(dict(self.annotations or {}))
        )
        if not isinstance(self.type, ServiceType):
            object.__setattr__(self, "type", ServiceType.parse(self.type))

    @property
    def key(self) -> str:
        return make_key(self.namespace, self.name)

    def newer_than(self, other: "Resource") -> bool:
        return version_newer(self.resource_version, other.resource_version)

    @classmethod
    def from_manifest(cls, manifest: Mapping[str, Any]) -> "Resource":
        """Build a resource from a raw API object (``kubectl -o json``)."""

        metadata = manifest.get("metadata") or {}
        spec = manifest.get("spec") or {}
        if "name" not in metadata:
            raise ValueError("manifest missing 'metadata.name'")
        return cls(
            namespace=str(metadata.get("namespace", "default")),
            name=str(metadata["name"]),
            uid=str(metadata.get("uid", "")),
            type=ServiceType.parse(spec.get("type")),
            annotations={
                str(k): str(v) for k, v in (metadata.get("annotations") or {}).items()
            },
            resource_version=str(metadata.get("resourceVersion", "")),
        )
