"""Tests for Secret manifest construction."""
import asyncio
from itertools import count

import pytest

from kube_secret_poller.poller.domains.manifest import build_secret_manifest
from kube_secret_poller.poller.domains.models import LAST_POLL_ANNOTATION, SecretDescriptor
from kube_secret_poller.poller.domains.errors import UnknownBackendError


class TestBuildSecretManifest:
    """Test suite for build_secret_manifest."""

    def test_creates_secret_manifest(self, descriptor, owner_reference, backends, backend, clock, fake_now):
        manifest = asyncio.run(build_secret_manifest(descriptor, owner_reference, backends, clock=clock))

        backend.get_secret_manifest_data.assert_awaited_once_with(descriptor)
        assert manifest == {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": {
                "name": "fake-secret-name",
                "ownerReferences": [{
                    "apiVersion": "owner-api/v1",
                    "kind": "MyKind",
                    "name": "fake-secret-name",
                    "uid": "4c10d879-2646-40dc-8595-d0b06b60a9ed",
                    "controller": True,
                }],
                "annotations": {LAST_POLL_ANNOTATION: str(fake_now)},
            },
            "type": "Opaque",
            "data": {
                "fakePropertyName1": "ZmFrZVByb3BlcnR5VmFsdWUx",
                "fakePropertyName2": "ZmFrZVByb3BlcnR5VmFsdWUy",
            },
        }

    def test_uses_descriptor_type(self, owner_reference, backends, clock):
        descriptor = SecretDescriptor(backend_type="fake", name="tls", type="kubernetes.io/tls")

        manifest = asyncio.run(build_secret_manifest(descriptor, owner_reference, backends, clock=clock))

        assert manifest["type"] == "kubernetes.io/tls"

    def test_timestamp_taken_when_build_is_invoked(self, descriptor, owner_reference, backends):
        """The clock is read once, before the backend call."""
        ticks = count(1000)

        manifest = asyncio.run(build_secret_manifest(descriptor, owner_reference, backends, clock=lambda: next(ticks)))

        assert manifest["metadata"]["annotations"][LAST_POLL_ANNOTATION] == "1000"

    def test_backend_errors_propagate(self, descriptor, owner_reference, backends, backend, clock):
        backend.get_secret_manifest_data.side_effect = TimeoutError("backend timed out")

        with pytest.raises(TimeoutError):
            asyncio.run(build_secret_manifest(descriptor, owner_reference, backends, clock=clock))

        assert backend.get_secret_manifest_data.await_count == 1

    def test_unknown_backend_type(self, owner_reference, backends, clock):
        descriptor = SecretDescriptor(backend_type="vault", name="db")

        with pytest.raises(UnknownBackendError):
            asyncio.run(build_secret_manifest(descriptor, owner_reference, backends, clock=clock))
