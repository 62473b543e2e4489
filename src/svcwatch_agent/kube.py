"""Control plane access through the official Kubernetes client."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Optional

import urllib3
from kubernetes import client, config, watch
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from svcwatch.classifier import ConfigurationError
from svcwatch.client import (
    DeleteResult,
    Deleted,
    PreconditionFailed,
    ResourceList,
    ResourceVersionExpired,
    ServiceClient,
    TransientFailure,
    WatchEvent,
)
from svcwatch.model import Action, Resource, ServiceType

LOG = logging.getLogger(__name__)

HTTP_GONE = 410
WATCH_ACTIONS = {action.value: action for action in Action}


def load_kube_api(kubeconfig: Optional[Path] = None) -> client.CoreV1Api:
    """Build a CoreV1 client from ``kubeconfig`` or the in-cluster account."""

    try:
        if kubeconfig:
            api_client = config.new_client_from_config(config_file=str(kubeconfig))
            LOG.info("Loaded kubeconfig %s", kubeconfig)
        else:
            config.load_incluster_config()
            api_client = client.ApiClient()
            LOG.info("Loaded in-cluster Kubernetes config")
    except (ConfigException, OSError) as exc:
        raise ConfigurationError(f"unable to load Kubernetes config: {exc}") from exc
    return client.CoreV1Api(api_client)


def resource_from_service(svc: client.V1Service) -> Resource:
    metadata = svc.metadata
    spec = svc.spec
    return Resource(
        namespace=metadata.namespace or "",
        name=metadata.name or "",
        uid=metadata.uid or "",
        type=ServiceType.parse(spec.type if spec is not None else None),
        annotations=metadata.annotations or {},
        resource_version=metadata.resource_version or "",
    )


class KubeServiceClient(ServiceClient):
    """:class:`ServiceClient` over ``CoreV1Api`` for all namespaces."""

    def __init__(self, api: client.CoreV1Api, *, watch_timeout: int = 300) -> None:
        self._api = api
        self._watch_timeout = watch_timeout

    def list(self) -> ResourceList:
        ret = self._api.list_service_for_all_namespaces()
        items = [resource_from_service(svc) for svc in ret.items or []]
        return ResourceList(items=items, resource_version=ret.metadata.resource_version or "")

    def watch(self, resource_version: str) -> Iterator[WatchEvent]:
        stream = watch.Watch()
        try:
            for raw in stream.stream(
                self._api.list_service_for_all_namespaces,
                resource_version=resource_version,
                timeout_seconds=self._watch_timeout,
            ):
                kind = raw.get("type")
                action = WATCH_ACTIONS.get(kind)
                if action is None:
                    LOG.debug("ignoring watch event of type %s", kind)
                    continue
                resource = resource_from_service(raw["object"])
                yield WatchEvent(action, resource, resource.resource_version)
        except ApiException as exc:
            # Watch.stream turns ERROR events into ApiException
            if exc.status == HTTP_GONE:
                raise ResourceVersionExpired(str(exc.reason)) from exc
            raise
        finally:
            stream.stop()

    def delete(self, namespace: str, name: str, uid: str) -> DeleteResult:
        body = client.V1DeleteOptions(preconditions=client.V1Preconditions(uid=uid))
        try:
            self._api.delete_namespaced_service(name, namespace, body=body)
        except ApiException as exc:
            if exc.status == 404:
                return PreconditionFailed(reason="not found")
            if exc.status == 409:
                return PreconditionFailed(reason=str(exc.reason))
            return TransientFailure(exc)
        except (urllib3.exceptions.HTTPError, OSError) as exc:
            return TransientFailure(exc)
        return Deleted()
