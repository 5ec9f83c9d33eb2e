"""Create-or-update reconciliation of a single resource.

The reconciler issues one existence probe and then exactly one write:
a create when the object is absent, a full replace when it exists. There
is no diffing, patching or retrying. Errors from the API server propagate
to the caller unchanged.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from enum import Enum

from .models import ResourceDescriptor
from .resources import KindHandler

logger = logging.getLogger(__name__)


class ReconcileAction(str, Enum):
    """The single write issued by a reconciliation."""

    CREATED = "created"
    UPDATED = "updated"


async def create_or_update(
    handler: KindHandler,
    namespace: str,
    descriptor: ResourceDescriptor,
) -> ReconcileAction:
    """Create the resource if it is absent, replace it if it exists.

    Args:
        handler: Handler for the descriptor's kind.
        namespace: Resolved, non-empty namespace.
        descriptor: The desired resource.

    Returns:
        The action taken.

    Raises:
        ValueError: If the namespace is empty.
        ApiException: If the probe, create or update call fails.
    """
    if not namespace:
        raise ValueError(f"Namespace must be resolved before reconciling {descriptor.name}")

    loop = asyncio.get_event_loop()
    context = {
        "kind": descriptor.kind.value,
        "namespace": namespace,
        "resource": descriptor.name,
    }

    existence = await loop.run_in_executor(
        None, functools.partial(handler.exists, namespace, descriptor.name)
    )

    if not existence.found:
        logger.info("Creating new resource", extra=context)
        await loop.run_in_executor(
            None,
            functools.partial(handler.create, namespace, descriptor.body_for_namespace(namespace)),
        )
        return ReconcileAction.CREATED

    # Kinds that need server-assigned metadata on replace get the live object
    if handler.update_from_live:
        body = existence.live
    else:
        body = descriptor.body_for_namespace(namespace)

    logger.info("Found existing resource, updating", extra=context)
    await loop.run_in_executor(
        None, functools.partial(handler.update, namespace, descriptor.name, body)
    )
    return ReconcileAction.UPDATED
