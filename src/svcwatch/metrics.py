"""Prometheus collector exposing the classification of mirrored Services."""

from __future__ import annotations

from typing import Iterator

from prometheus_client import REGISTRY, CollectorRegistry
from prometheus_client.core import GaugeMetricFamily

from .classifier import ProviderPolicy, is_internal
from .store import ResourceStore

METRIC_NAME = "kube_service_info"
METRIC_HELP = "Information about cluster services."
LABELS = ["kubernetes_namespace", "kubernetes_name", "type", "internal"]


class ServiceInfoCollector:
    """Emit one gauge sample per Service on every scrape.

    Nothing is cached between scrapes: each ``collect`` reads the store
    snapshot and classifies it again with the configured provider policy.
    """

    def __init__(self, store: ResourceStore, policy: ProviderPolicy) -> None:
        self._store = store
        self._policy = policy

    def describe(self) -> Iterator[GaugeMetricFamily]:
        yield GaugeMetricFamily(METRIC_NAME, METRIC_HELP, labels=LABELS)

    def collect(self) -> Iterator[GaugeMetricFamily]:
        family = GaugeMetricFamily(METRIC_NAME, METRIC_HELP, labels=LABELS)
        for svc in self._store.list():
            family.add_metric(
                [
                    svc.namespace,
                    svc.name,
                    svc.type.value,
                    "true" if is_internal(svc, self._policy) else "false",
                ],
                1,
            )
        yield family


def register_collector(
    store: ResourceStore,
    policy: ProviderPolicy,
    registry: CollectorRegistry = REGISTRY,
) -> ServiceInfoCollector:
    collector = ServiceInfoCollector(store, policy)
    registry.register(collector)
    return collector
