"""Mirror -> queue -> worker scenarios against the in-memory control plane."""

from threading import Event

from fakes import FakeServiceClient, RecordingNotifier, event
from prometheus_client import CollectorRegistry

from svcwatch.classifier import PROVIDERS
from svcwatch.client import Deleted, PreconditionFailed, TransientFailure
from svcwatch.metrics import METRIC_NAME, register_collector
from svcwatch.mirror import ResourceMirror
from svcwatch.model import Action
from svcwatch.registry import HandlerRegistry
from svcwatch.store import ResourceStore
from svcwatch.terminator import TerminationWorker
from svcwatch.workqueue import ChangeQueue

AWS = PROVIDERS["aws"]


class Harness:
    def __init__(self, client: FakeServiceClient, terminate: bool = True) -> None:
        self.client = client
        self.store = ResourceStore()
        self.registry = HandlerRegistry()
        self.stop_event = Event()
        self.notifier = RecordingNotifier()
        self.queue = ChangeQueue(self.store)
        if terminate:
            self.registry.register("terminator", self.queue)
        self.mirror = ResourceMirror(client, self.store, self.registry, self.stop_event)
        self.worker = TerminationWorker(
            client,
            self.queue,
            AWS,
            self.stop_event,
            notifier=self.notifier,
            retry_base=0.01,
            retry_max=0.01,
        )
        self.metrics = CollectorRegistry()
        register_collector(self.store, AWS, registry=self.metrics)

    def drain(self, timeout: float = 0.5):
        results = []
        while True:
            entry = self.queue.pop(timeout=timeout)
            if entry is None:
                return results
            results.append(self.worker.process(entry))

    def samples(self):
        return sorted(
            (
                sample.labels["kubernetes_namespace"],
                sample.labels["kubernetes_name"],
                sample.labels["internal"],
            )
            for family in self.metrics.collect()
            for sample in family.samples
            if family.name == METRIC_NAME
        )


def test_public_load_balancer_is_deleted_and_reported_once():
    client = FakeServiceClient()
    svc = client.create("shop", "frontend")
    harness = Harness(client)

    harness.mirror.list_and_watch()
    assert harness.samples() == [("shop", "frontend", "false")]

    results = harness.drain()

    assert [type(r) for r in results] == [Deleted]
    assert client.deletes == [("shop", "frontend", svc.uid)]
    assert harness.notifier.notified == ["shop/frontend"]
    assert client.services == {}


def test_internal_load_balancer_is_kept():
    client = FakeServiceClient()
    client.create("shop", "backend", annotations={AWS.annotation: AWS.value})
    harness = Harness(client)

    harness.mirror.list_and_watch()
    results = harness.drain()

    assert results == [None]
    assert client.deletes == []
    assert harness.notifier.notified == []
    assert harness.samples() == [("shop", "backend", "true")]


def test_transient_delete_failure_is_retried_and_notified_once():
    client = FakeServiceClient()
    svc = client.create("shop", "frontend")
    client.delete_failures = [TransientFailure(ConnectionError("connection refused"))]
    harness = Harness(client)

    harness.mirror.list_and_watch()
    results = harness.drain()

    assert [type(r) for r in results] == [TransientFailure, Deleted]
    assert client.deletes == [("shop", "frontend", svc.uid)] * 2
    assert harness.notifier.notified == ["shop/frontend"]


def test_reconnect_keeps_metrics_consistent_with_remote_state():
    client = FakeServiceClient()
    a = client.create("default", "a", annotations={AWS.annotation: AWS.value})
    b = client.create("default", "b", annotations={AWS.annotation: AWS.value})
    harness = Harness(client, terminate=False)

    a2 = client.update(a.key, annotations={})
    client.watch_scripts = [[event(Action.MODIFIED, a2)]]
    # listing happens before the update becomes visible to the watch
    client.services[a.key] = a
    harness.mirror.list_and_watch()
    client.services[a.key] = a2

    before = harness.samples()
    assert before == [("default", "a", "false"), ("default", "b", "true")]

    # changes made while the stream is down are only visible to the re-list
    client.remove(b.key)
    client.create("default", "c", annotations={AWS.annotation: AWS.value})
    harness.mirror.list_and_watch()

    after = harness.samples()
    assert after == [("default", "a", "false"), ("default", "c", "true")]
    assert len(after) == len(client.services)
    assert client.list_calls == 2
    assert len(harness.queue) == 0


def test_recreated_service_between_observation_and_delete_is_spared():
    client = FakeServiceClient()
    old = client.create("shop", "frontend")
    harness = Harness(client)
    harness.mirror.list_and_watch()

    client.remove(old.key)
    new = client.create("shop", "frontend")
    results = harness.drain()

    assert [type(r) for r in results] == [PreconditionFailed]
    assert client.services["shop/frontend"].uid == new.uid
    assert harness.notifier.notified == []
