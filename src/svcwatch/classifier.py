"""Internal/external exposure classification per cloud provider."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional

from .model import Resource, ServiceType


class ConfigurationError(ValueError):
    """Raised for configuration problems that must abort startup."""


class UnknownProviderError(ConfigurationError):
    pass


class Exposure(Enum):
    INTERNAL = "internal"
    EXTERNAL = "external"


@dataclass(frozen=True)
class ProviderPolicy:
    """Annotation a provider uses to request an internal load balancer."""

    name: str
    annotation: str
    value: str


PROVIDERS: Dict[str, ProviderPolicy] = {
    "aws": ProviderPolicy(
        name="aws",
        annotation="service.beta.kubernetes.io/aws-load-balancer-internal",
        value="0.0.0.0/0",
    ),
    "gcp": ProviderPolicy(
        name="gcp",
        annotation="cloud.google.com/load-balancer-type",
        value="internal",
    ),
}


def get_policy(
    name: str, extra: Optional[Mapping[str, ProviderPolicy]] = None
) -> ProviderPolicy:
    """Resolve ``name`` against the built-in table and any ``extra`` entries."""

    table = dict(PROVIDERS)
    if extra:
        table.update(extra)
    try:
        return table[name]
    except KeyError:
        known = ", ".join(sorted(table))
        raise UnknownProviderError(
            f"unknown provider '{name}' (expected one of: {known})"
        ) from None


def classify(resource: Resource, policy: ProviderPolicy) -> Exposure:
    if resource.type is not ServiceType.LOAD_BALANCER:
        return Exposure.INTERNAL
    if resource.annotations.get(policy.annotation) == policy.value:
        return Exposure.INTERNAL
    return Exposure.EXTERNAL


def is_internal(resource: Resource, policy: ProviderPolicy) -> bool:
    return classify(resource, policy) is Exposure.INTERNAL
