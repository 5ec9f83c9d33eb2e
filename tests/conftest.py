"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for kube_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from kube_mock import MockKubeContext  # noqa: E402


@pytest.fixture
def kube():
    """Patched Kubernetes client classes backed by in-memory state."""
    with MockKubeContext() as ctx:
        yield ctx


@pytest.fixture
def api_client():
    """A real ApiClient; mocked API classes never use it for requests."""
    from kubernetes.client import ApiClient, Configuration

    configuration = Configuration()
    configuration.host = "https://kubernetes.test:6443"
    client = ApiClient(configuration)
    yield client
    client.close()
