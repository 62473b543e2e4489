from types import SimpleNamespace
from unittest import mock

import pytest
import urllib3
from kubernetes import client
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from svcwatch.classifier import ConfigurationError
from svcwatch.client import (
    Deleted,
    PreconditionFailed,
    ResourceVersionExpired,
    TransientFailure,
)
from svcwatch.model import Action, ServiceType
from svcwatch_agent import kube
from svcwatch_agent.kube import KubeServiceClient, resource_from_service


def build_service(name="web", version="5", svc_type="LoadBalancer", annotations=None):
    return client.V1Service(
        metadata=client.V1ObjectMeta(
            namespace="default",
            name=name,
            uid=f"uid-{name}",
            resource_version=version,
            annotations=annotations,
        ),
        spec=client.V1ServiceSpec(type=svc_type),
    )


def test_resource_from_service():
    resource = resource_from_service(
        build_service(annotations={"cloud.google.com/load-balancer-type": "internal"})
    )

    assert resource.key == "default/web"
    assert resource.uid == "uid-web"
    assert resource.resource_version == "5"
    assert resource.type is ServiceType.LOAD_BALANCER
    assert resource.annotations == {"cloud.google.com/load-balancer-type": "internal"}


def test_resource_from_service_defaults():
    resource = resource_from_service(build_service(svc_type=None))

    assert resource.type is ServiceType.CLUSTER_IP
    assert dict(resource.annotations) == {}


def test_list_returns_items_and_collection_version():
    api = mock.Mock()
    api.list_service_for_all_namespaces.return_value = SimpleNamespace(
        items=[build_service("a"), build_service("b")],
        metadata=SimpleNamespace(resource_version="42"),
    )

    listing = KubeServiceClient(api).list()

    assert [r.name for r in listing.items] == ["a", "b"]
    assert listing.resource_version == "42"


def test_watch_translates_events():
    api = mock.Mock()
    stream = mock.Mock()
    stream.stream.return_value = iter(
        [
            {"type": "ADDED", "object": build_service("a", "6")},
            {"type": "BOOKMARK", "object": None},
            {"type": "DELETED", "object": build_service("a", "7")},
        ]
    )

    with mock.patch.object(kube.watch, "Watch", return_value=stream):
        events = list(KubeServiceClient(api, watch_timeout=30).watch("5"))

    assert [(e.action, e.resource_version) for e in events] == [
        (Action.ADDED, "6"),
        (Action.DELETED, "7"),
    ]
    stream.stream.assert_called_once_with(
        api.list_service_for_all_namespaces, resource_version="5", timeout_seconds=30
    )
    stream.stop.assert_called_once()


def test_watch_error_status_propagates():
    def failing_stream():
        yield {"type": "ADDED", "object": build_service()}
        raise ApiException(status=500, reason="Internal Server Error")

    stream = mock.Mock()
    stream.stream.return_value = failing_stream()

    with mock.patch.object(kube.watch, "Watch", return_value=stream):
        events = KubeServiceClient(mock.Mock()).watch("1")
        assert next(events).action is Action.ADDED
        with pytest.raises(ApiException):
            next(events)
    stream.stop.assert_called_once()


def test_watch_api_exception_gone_means_expired():
    stream = mock.Mock()
    stream.stream.side_effect = ApiException(status=410, reason="Expired")

    with mock.patch.object(kube.watch, "Watch", return_value=stream):
        with pytest.raises(ResourceVersionExpired):
            list(KubeServiceClient(mock.Mock()).watch("1"))


def test_delete_sends_uid_precondition():
    api = mock.Mock()

    result = KubeServiceClient(api).delete("default", "web", "uid-web")

    assert isinstance(result, Deleted)
    args, kwargs = api.delete_namespaced_service.call_args
    assert args == ("web", "default")
    assert kwargs["body"].preconditions.uid == "uid-web"


@pytest.mark.parametrize("status", [404, 409])
def test_delete_conflicts_are_precondition_failures(status):
    api = mock.Mock()
    api.delete_namespaced_service.side_effect = ApiException(status=status, reason="Conflict")

    result = KubeServiceClient(api).delete("default", "web", "uid-web")

    assert isinstance(result, PreconditionFailed)


@pytest.mark.parametrize(
    "error",
    [
        ApiException(status=500, reason="Internal Server Error"),
        ApiException(status=403, reason="Forbidden"),
        urllib3.exceptions.MaxRetryError(None, "/api/v1", "connection refused"),
        ConnectionResetError("reset"),
    ],
)
def test_delete_other_errors_are_transient(error):
    api = mock.Mock()
    api.delete_namespaced_service.side_effect = error

    result = KubeServiceClient(api).delete("default", "web", "uid-web")

    assert isinstance(result, TransientFailure)
    assert result.cause is error


def test_load_kube_api_wraps_config_errors():
    with mock.patch.object(
        kube.config, "load_incluster_config", side_effect=ConfigException("no service account")
    ):
        with pytest.raises(ConfigurationError):
            kube.load_kube_api(None)


def test_load_kube_api_uses_explicit_kubeconfig(tmp_path):
    with mock.patch.object(kube.config, "new_client_from_config") as factory:
        api = kube.load_kube_api(tmp_path / "config")

    factory.assert_called_once_with(config_file=str(tmp_path / "config"))
    assert isinstance(api, client.CoreV1Api)
