"""Shared fixtures for poller tests."""
from unittest.mock import AsyncMock, MagicMock

import pytest
from kubernetes.client.rest import ApiException

from kube_secret_poller.poller.domains.models import OwnerReference, SecretDescriptor, SecretProperty

FAKE_NOW = 1700000000000


@pytest.fixture
def owner_reference():
    return OwnerReference(
        api_version="owner-api/v1",
        kind="MyKind",
        name="fake-secret-name",
        uid="4c10d879-2646-40dc-8595-d0b06b60a9ed",
    )


@pytest.fixture
def descriptor():
    return SecretDescriptor(
        backend_type="fake",
        name="fake-secret-name",
        properties=(
            SecretProperty(key="fake-key-1", name="fakePropertyName1"),
            SecretProperty(key="fake-key-2", name="fakePropertyName2"),
        ),
    )


@pytest.fixture
def backend():
    mock = MagicMock()
    mock.get_secret_manifest_data = AsyncMock(return_value={
        "fakePropertyName1": "ZmFrZVByb3BlcnR5VmFsdWUx",
        "fakePropertyName2": "ZmFrZVByb3BlcnR5VmFsdWUy",
    })
    return mock


@pytest.fixture
def backends(backend):
    return {"fake": backend}


@pytest.fixture
def store():
    """Stand-in for KubeSecretStore with every call awaitable."""
    mock = MagicMock()
    mock.create_secret = AsyncMock(return_value={"kind": "Secret"})
    mock.replace_secret = AsyncMock(return_value={"kind": "Secret"})
    mock.read_secret = AsyncMock(side_effect=ApiException(status=404, reason="Not Found"))
    mock.read_namespace_annotations = AsyncMock(return_value={})
    return mock


@pytest.fixture
def clock():
    return lambda: FAKE_NOW


@pytest.fixture
def fake_now():
    return FAKE_NOW
