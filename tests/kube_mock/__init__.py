"""Kubernetes API Mock for Integration Testing.

This module provides a mock implementation of the Kubernetes API surface
the deployer uses, so the full apply flow runs without a cluster.

Key Features:
- In-memory object storage with resourceVersion and clusterIP assignment
- Ordered call log for asserting create/update sequences
- Error injection per verb and kind
- Scripted Deployment rollouts streamed to the real watch client

Usage:
    from kube_mock import MockKubeContext

    with MockKubeContext() as ctx:
        ctx.state.set_rollout("default", "web", initial_unavailable=2, events=[1, 0])
        ...
        assert ctx.state.events_emitted == 2
"""

from .apis import MockAppsV1Api, MockBatchV1Api, MockCoreV1Api, MockCustomObjectsApi
from .cluster import MockCall, MockClusterState, conflict, not_found
from .context import MockKubeContext, mock_kube_context
from .credential import MOCK_CA_PEM, MOCK_SERVER, MOCK_TOKEN, create_mock_config
from .watch import MockWatchResponse

__all__ = [
    "MOCK_CA_PEM",
    "MOCK_SERVER",
    "MOCK_TOKEN",
    "MockAppsV1Api",
    "MockBatchV1Api",
    "MockCall",
    "MockClusterState",
    "MockCoreV1Api",
    "MockCustomObjectsApi",
    "MockKubeContext",
    "MockWatchResponse",
    "conflict",
    "create_mock_config",
    "mock_kube_context",
    "not_found",
]
