"""Pydantic models for decoded resource documents.

These models provide:
1. Type-safe YAML parsing of each manifest document
2. Validation at the boundary (fail fast, fail loudly)
3. The closed set of resource kinds the deployer knows how to apply
"""

from __future__ import annotations

import copy
from enum import Enum
from typing import Annotated, Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError


class DecodeError(Exception):
    """Raised when a document cannot be decoded into a resource."""

    pass


class UnsupportedKindError(DecodeError):
    """Raised when a document decodes but is not a supported kind."""

    pass


DEFAULT_NAMESPACE = "default"


class ResourceKind(str, Enum):
    """Resource kinds the deployer reconciles."""

    WORKLOAD_ROLLOUT = "Deployment"
    CONFIG_SET = "ConfigMap"
    NETWORK_SERVICE = "Service"
    TRAFFIC_ROUTE = "Ingress"
    SCHEDULED_TASK = "CronJob"


# (apiVersion, kind) pairs accepted for each resource kind.
# Ingress is accepted in its legacy groups as well as networking.k8s.io/v1.
SUPPORTED_API_VERSIONS: dict[tuple[str, str], ResourceKind] = {
    ("apps/v1", "Deployment"): ResourceKind.WORKLOAD_ROLLOUT,
    ("v1", "ConfigMap"): ResourceKind.CONFIG_SET,
    ("v1", "Service"): ResourceKind.NETWORK_SERVICE,
    ("extensions/v1beta1", "Ingress"): ResourceKind.TRAFFIC_ROUTE,
    ("networking.k8s.io/v1beta1", "Ingress"): ResourceKind.TRAFFIC_ROUTE,
    ("networking.k8s.io/v1", "Ingress"): ResourceKind.TRAFFIC_ROUTE,
    ("batch/v1", "CronJob"): ResourceKind.SCHEDULED_TASK,
}


class ObjectMeta(BaseModel):
    """The subset of object metadata the deployer relies on."""

    model_config = ConfigDict(extra="ignore")

    name: Annotated[str, Field(min_length=1, max_length=253)]
    namespace: str | None = None


class ResourceManifest(BaseModel):
    """Envelope every Kubernetes document shares."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    api_version: Annotated[str, Field(min_length=1, alias="apiVersion")]
    kind: Annotated[str, Field(min_length=1)]
    metadata: ObjectMeta


class ResourceDescriptor(BaseModel):
    """A decoded document of one of the supported kinds.

    The body is kept verbatim and is opaque to the reconciler; only the
    name and declared namespace are read from it.
    """

    model_config = ConfigDict(frozen=True)

    kind: ResourceKind
    api_version: str
    name: str
    namespace: str | None = None
    body: dict[str, Any]

    def body_for_namespace(self, namespace: str) -> dict[str, Any]:
        """Return a copy of the body with ``metadata.namespace`` set.

        The API server rejects bodies whose namespace disagrees with the
        request path, so the resolved namespace is written into the copy.
        """
        body = copy.deepcopy(self.body)
        body.setdefault("metadata", {})["namespace"] = namespace
        return body


def resolve_namespace(override: str | None, descriptor: ResourceDescriptor) -> str:
    """Resolve the namespace a single document is applied to.

    The override wins, then the document's own namespace, then
    ``default``. Resolution is per document and never carries over.
    """
    return override or descriptor.namespace or DEFAULT_NAMESPACE


def decode_document(text: str) -> ResourceDescriptor:
    """Decode one manifest document into a resource descriptor.

    Args:
        text: A single, already rendered YAML document.

    Returns:
        The decoded descriptor.

    Raises:
        DecodeError: If the document is not a valid Kubernetes object.
        UnsupportedKindError: If the object is not one of the supported kinds.
    """
    try:
        raw_data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise DecodeError(f"Invalid YAML in manifest document: {e}") from e

    if not isinstance(raw_data, dict):
        raise DecodeError("Manifest document must contain a YAML mapping")

    try:
        manifest = ResourceManifest.model_validate(raw_data)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            errors.append(f"  - {loc}: {error['msg']}")
        error_list = "\n".join(errors)
        raise DecodeError(f"Invalid Kubernetes object:\n{error_list}") from e

    kind = SUPPORTED_API_VERSIONS.get((manifest.api_version, manifest.kind))
    if kind is None:
        raise UnsupportedKindError(
            f"Resource type {manifest.api_version}/{manifest.kind} is not supported"
        )

    return ResourceDescriptor(
        kind=kind,
        api_version=manifest.api_version,
        name=manifest.metadata.name,
        namespace=manifest.metadata.namespace or None,
        body=raw_data,
    )
