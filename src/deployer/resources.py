"""Per-kind access to the Kubernetes API.

Each supported resource kind has one handler exposing the same three
operations: an existence probe, a create and a full-replace update. The
reconciler only talks to handlers, so adding a kind means adding one
handler and one entry in HANDLERS.

All calls are blocking; callers run them in an executor.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, ClassVar

from kubernetes.client import (
    ApiClient,
    AppsV1Api,
    BatchV1Api,
    CoreV1Api,
    CustomObjectsApi,
)
from kubernetes.client.exceptions import ApiException

from .models import ResourceKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExistenceResult:
    """Outcome of an existence probe.

    Attributes:
        found: Whether the object exists in the cluster.
        live: The object as currently stored, when found.
    """

    found: bool
    live: Any | None = None


class KindHandler(ABC):
    """Create, update and probe objects of one resource kind."""

    kind: ClassVar[ResourceKind]

    # Whether the kind has a rollout the dispatcher should wait on
    settles: ClassVar[bool] = False

    # Whether updates must carry the server-assigned metadata of the live
    # object instead of the desired body
    update_from_live: ClassVar[bool] = False

    def __init__(self, api_client: ApiClient, api_version: str) -> None:
        self._api_client = api_client
        self._api_version = api_version

    def exists(self, namespace: str, name: str) -> ExistenceResult:
        """Look up an object by namespace and name.

        A 404 from the API server means the object is absent and is not an
        error. Every other failure propagates unchanged.

        Raises:
            ApiException: For any API failure other than not found.
        """
        try:
            live = self.read(namespace, name)
        except ApiException as e:
            if e.status == HTTPStatus.NOT_FOUND:
                return ExistenceResult(found=False)
            raise
        return ExistenceResult(found=True, live=live)

    @abstractmethod
    def read(self, namespace: str, name: str) -> Any:
        """Fetch the live object."""

    @abstractmethod
    def create(self, namespace: str, body: Any) -> Any:
        """Create the object."""

    @abstractmethod
    def update(self, namespace: str, name: str, body: Any) -> Any:
        """Replace the object."""


class WorkloadRolloutHandler(KindHandler):
    """apps/v1 Deployment."""

    kind = ResourceKind.WORKLOAD_ROLLOUT
    settles = True

    def __init__(self, api_client: ApiClient, api_version: str) -> None:
        super().__init__(api_client, api_version)
        self._api = AppsV1Api(api_client)

    def read(self, namespace: str, name: str) -> Any:
        return self._api.read_namespaced_deployment(name, namespace)

    def create(self, namespace: str, body: Any) -> Any:
        return self._api.create_namespaced_deployment(namespace, body)

    def update(self, namespace: str, name: str, body: Any) -> Any:
        return self._api.replace_namespaced_deployment(name, namespace, body)


class ConfigSetHandler(KindHandler):
    """v1 ConfigMap."""

    kind = ResourceKind.CONFIG_SET

    def __init__(self, api_client: ApiClient, api_version: str) -> None:
        super().__init__(api_client, api_version)
        self._api = CoreV1Api(api_client)

    def read(self, namespace: str, name: str) -> Any:
        return self._api.read_namespaced_config_map(name, namespace)

    def create(self, namespace: str, body: Any) -> Any:
        return self._api.create_namespaced_config_map(namespace, body)

    def update(self, namespace: str, name: str, body: Any) -> Any:
        return self._api.replace_namespaced_config_map(name, namespace, body)


class NetworkServiceHandler(KindHandler):
    """v1 Service.

    A Service replace without the live resourceVersion and clusterIP is
    rejected by the API server, so updates send the live object.
    """

    kind = ResourceKind.NETWORK_SERVICE
    update_from_live = True

    def __init__(self, api_client: ApiClient, api_version: str) -> None:
        super().__init__(api_client, api_version)
        self._api = CoreV1Api(api_client)

    def read(self, namespace: str, name: str) -> Any:
        return self._api.read_namespaced_service(name, namespace)

    def create(self, namespace: str, body: Any) -> Any:
        return self._api.create_namespaced_service(namespace, body)

    def update(self, namespace: str, name: str, body: Any) -> Any:
        return self._api.replace_namespaced_service(name, namespace, body)


class TrafficRouteHandler(KindHandler):
    """Ingress in whichever API group the document declares.

    Goes through the generic object endpoints so the legacy
    extensions/v1beta1 group keeps working with current clients.
    """

    kind = ResourceKind.TRAFFIC_ROUTE
    plural = "ingresses"

    def __init__(self, api_client: ApiClient, api_version: str) -> None:
        super().__init__(api_client, api_version)
        self._api = CustomObjectsApi(api_client)
        self._group, _, self._version = api_version.rpartition("/")

    def read(self, namespace: str, name: str) -> Any:
        return self._api.get_namespaced_custom_object(
            self._group, self._version, namespace, self.plural, name
        )

    def create(self, namespace: str, body: Any) -> Any:
        return self._api.create_namespaced_custom_object(
            self._group, self._version, namespace, self.plural, body
        )

    def update(self, namespace: str, name: str, body: Any) -> Any:
        return self._api.replace_namespaced_custom_object(
            self._group, self._version, namespace, self.plural, name, body
        )


class ScheduledTaskHandler(KindHandler):
    """batch/v1 CronJob."""

    kind = ResourceKind.SCHEDULED_TASK

    def __init__(self, api_client: ApiClient, api_version: str) -> None:
        super().__init__(api_client, api_version)
        self._api = BatchV1Api(api_client)

    def read(self, namespace: str, name: str) -> Any:
        return self._api.read_namespaced_cron_job(name, namespace)

    def create(self, namespace: str, body: Any) -> Any:
        return self._api.create_namespaced_cron_job(namespace, body)

    def update(self, namespace: str, name: str, body: Any) -> Any:
        return self._api.replace_namespaced_cron_job(name, namespace, body)


HANDLERS: dict[ResourceKind, type[KindHandler]] = {
    handler.kind: handler
    for handler in (
        WorkloadRolloutHandler,
        ConfigSetHandler,
        NetworkServiceHandler,
        TrafficRouteHandler,
        ScheduledTaskHandler,
    )
}


def handler_for(kind: ResourceKind, api_client: ApiClient, api_version: str) -> KindHandler:
    """Build the handler for a resource kind.

    Raises:
        ValueError: If no handler is registered for the kind.
    """
    handler_class = HANDLERS.get(kind)
    if handler_class is None:
        raise ValueError(f"No handler registered for kind {kind.value}")
    return handler_class(api_client, api_version)
