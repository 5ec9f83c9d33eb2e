"""Kubernetes Mock Context for integration testing.

Provides a context manager that patches the Kubernetes client classes the
deployer uses with in-memory implementations. ``kubernetes.watch.Watch``
is left in place and reads the mock's streaming watch responses.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from contextlib import contextmanager
from typing import Any
from unittest import mock

from .apis import MockAppsV1Api, MockBatchV1Api, MockCoreV1Api, MockCustomObjectsApi
from .cluster import MockClusterState


class MockKubeContext:
    """Context manager for Kubernetes API mocking in tests.

    Patches:
    - deployer.resources.{AppsV1Api,CoreV1Api,BatchV1Api,CustomObjectsApi}
    - deployer.settlement.AppsV1Api

    Usage:
        with MockKubeContext() as ctx:
            ctx.state.set_rollout("default", "web", initial_unavailable=1, events=[0])
            await Dispatcher(api_client).apply_manifest(documents)

            assert len(ctx.state.writes()) == 1
            assert ctx.state.watches_stopped == ctx.state.watches_opened
    """

    def __init__(
        self,
        *,
        initial_objects: list[tuple[str, str, str, Any]] | None = None,
    ) -> None:
        """Initialize mock context.

        Args:
            initial_objects: (kind, namespace, name, body) tuples to store
                before the test runs.
        """
        self._initial_objects = initial_objects or []
        self._state: MockClusterState | None = None
        self._patches: list[Any] = []

    @property
    def state(self) -> MockClusterState:
        """Get the mock cluster state.

        Raises:
            RuntimeError: If accessed outside of context.
        """
        if self._state is None:
            raise RuntimeError("MockKubeContext must be used as a context manager")
        return self._state

    def __enter__(self) -> MockKubeContext:
        """Enter the mock context, applying patches."""
        self._state = MockClusterState()
        state = self._state

        for kind, namespace, name, body in self._initial_objects:
            state.put_object(kind, namespace, name, body)

        def factory(api_class: type) -> Callable[..., Any]:
            return lambda api_client=None: api_class(state, api_client)

        targets = {
            "deployer.resources.AppsV1Api": factory(MockAppsV1Api),
            "deployer.resources.CoreV1Api": factory(MockCoreV1Api),
            "deployer.resources.BatchV1Api": factory(MockBatchV1Api),
            "deployer.resources.CustomObjectsApi": factory(MockCustomObjectsApi),
            "deployer.settlement.AppsV1Api": factory(MockAppsV1Api),
        }
        for target, side_effect in targets.items():
            self._patches.append(mock.patch(target, side_effect=side_effect))

        for patch in self._patches:
            patch.start()

        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit the mock context, removing patches."""
        # Unblock any stream a test left open
        for response in self.state.watch_responses:
            if not response.released:
                response.close()
        for patch in reversed(self._patches):
            patch.stop()
        self._patches.clear()


@contextmanager
def mock_kube_context(
    *,
    initial_objects: list[tuple[str, str, str, Any]] | None = None,
) -> Generator[MockKubeContext, None, None]:
    """Convenience function for creating a mock Kubernetes context.

    Yields:
        MockKubeContext for test assertions.
    """
    ctx = MockKubeContext(initial_objects=initial_objects)
    with ctx:
        yield ctx
