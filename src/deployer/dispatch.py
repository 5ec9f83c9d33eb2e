"""Route rendered manifest documents to their reconcilers.

Documents are applied strictly in order. Each one is decoded, given its
own namespace, created or replaced, and for Deployments followed by a wait
for the rollout to settle. The first error aborts the run; resources
already applied stay applied.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from kubernetes.client import ApiClient

from .config import DEFAULT_SETTLE_TIMEOUT_SECONDS, PluginConfig, TemplateVariables
from .models import ResourceKind, decode_document, resolve_namespace
from .reconciler import ReconcileAction, create_or_update
from .resources import handler_for
from .security import kube_api_client
from .settlement import SettlementOutcome, SettlementWatcher
from .template_loader import load_template, render_template, split_documents

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppliedResource:
    """Result of applying one manifest document."""

    kind: ResourceKind
    namespace: str
    name: str
    action: ReconcileAction
    settlement: SettlementOutcome | None = None


class Dispatcher:
    """Apply decoded documents against one cluster connection."""

    def __init__(
        self,
        api_client: ApiClient,
        namespace_override: str | None = None,
        settle_timeout_seconds: int = DEFAULT_SETTLE_TIMEOUT_SECONDS,
        watcher: SettlementWatcher | None = None,
    ) -> None:
        self._api_client = api_client
        self._namespace_override = namespace_override
        self._settle_timeout_seconds = settle_timeout_seconds
        self._watcher = watcher or SettlementWatcher(api_client)

    async def apply_document(self, text: str) -> AppliedResource:
        """Decode and apply a single document.

        Raises:
            DecodeError: If the document is not a Kubernetes object.
            UnsupportedKindError: If the kind is not supported.
            ApiException: If any API call fails.
            SettlementError: If a Deployment does not settle.
        """
        descriptor = decode_document(text)
        namespace = resolve_namespace(self._namespace_override, descriptor)
        handler = handler_for(descriptor.kind, self._api_client, descriptor.api_version)

        logger.info(
            f"Resource type: {descriptor.kind.value}",
            extra={
                "kind": descriptor.kind.value,
                "api_version": descriptor.api_version,
                "namespace": namespace,
                "resource": descriptor.name,
            },
        )

        action = await create_or_update(handler, namespace, descriptor)

        settlement = None
        if handler.settles:
            settlement = await self._watcher.await_settlement(
                namespace, descriptor.name, self._settle_timeout_seconds
            )

        return AppliedResource(
            kind=descriptor.kind,
            namespace=namespace,
            name=descriptor.name,
            action=action,
            settlement=settlement,
        )

    async def apply_manifest(self, documents: Sequence[str]) -> list[AppliedResource]:
        """Apply documents in order, stopping at the first error."""
        applied: list[AppliedResource] = []
        for index, document in enumerate(documents):
            logger.debug("Applying document", extra={"document_index": index})
            applied.append(await self.apply_document(document))
        return applied


async def deploy(config: PluginConfig, variables: TemplateVariables) -> list[AppliedResource]:
    """Render the configured template and apply every document in it.

    The template is read and rendered before the cluster is contacted.

    Returns:
        One AppliedResource per document, in document order.
    """
    raw = load_template(config.template)
    rendered = render_template(raw, variables.as_context())
    documents = split_documents(rendered)

    logger.info(
        "Rendered manifest",
        extra={"template": config.template, "document_count": len(documents)},
    )

    with kube_api_client(config) as api_client:
        dispatcher = Dispatcher(
            api_client,
            namespace_override=config.namespace,
            settle_timeout_seconds=config.settle_timeout_seconds,
        )
        return await dispatcher.apply_manifest(documents)
