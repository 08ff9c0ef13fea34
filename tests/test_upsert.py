"""Tests for the create-or-replace workflow."""
import asyncio
from dataclasses import replace

import pytest
from kubernetes.client.rest import ApiException

from kube_secret_poller.poller.workflows.upsert import upsert_secret
from kube_secret_poller.poller.domains.models import LAST_POLL_ANNOTATION, PERMITTED_ROLE_ANNOTATION
from kube_secret_poller.poller.domains.errors import (
    BackendError,
    InvalidPermissionPattern,
    PermissionDenied,
    RemoteReadError,
    RemoteWriteError,
)


def _upsert(descriptor, store, backends, owner_reference, clock, namespace="fake-namespace"):
    return asyncio.run(upsert_secret(
        descriptor,
        namespace,
        store=store,
        backends=backends,
        owner_reference=owner_reference,
        clock=clock,
    ))


class TestUpsertSecret:
    """Test suite for upsert_secret."""

    def test_creates_secret_when_absent(self, descriptor, store, backends, owner_reference, clock, fake_now):
        _upsert(descriptor, store, backends, owner_reference, clock)

        assert store.create_secret.await_count == 1
        assert store.replace_secret.await_count == 0
        namespace, manifest = store.create_secret.await_args.args
        assert namespace == "fake-namespace"
        assert manifest["metadata"]["name"] == "fake-secret-name"
        assert manifest["metadata"]["annotations"][LAST_POLL_ANNOTATION] == str(fake_now)

    def test_replaces_secret_on_conflict(self, descriptor, store, backends, owner_reference, clock):
        store.create_secret.side_effect = ApiException(status=409, reason="Conflict")

        _upsert(descriptor, store, backends, owner_reference, clock)

        assert store.create_secret.await_count == 1
        assert store.replace_secret.await_count == 1
        namespace, name, manifest = store.replace_secret.await_args.args
        assert namespace == "fake-namespace"
        assert name == "fake-secret-name"
        assert manifest == store.create_secret.await_args.args[1]

    def test_non_conflict_create_failure(self, descriptor, store, backends, owner_reference, clock):
        store.create_secret.side_effect = ApiException(status=500, reason="Internal Server Error")

        with pytest.raises(RemoteWriteError) as exc_info:
            _upsert(descriptor, store, backends, owner_reference, clock)

        assert exc_info.value.status == 500
        assert store.replace_secret.await_count == 0

    def test_replace_failure(self, descriptor, store, backends, owner_reference, clock):
        store.create_secret.side_effect = ApiException(status=409, reason="Conflict")
        store.replace_secret.side_effect = ApiException(status=422, reason="Unprocessable Entity")

        with pytest.raises(RemoteWriteError) as exc_info:
            _upsert(descriptor, store, backends, owner_reference, clock)

        assert exc_info.value.status == 422

    def test_transport_failure_on_create(self, descriptor, store, backends, owner_reference, clock):
        cause = ConnectionRefusedError("connection refused")
        store.create_secret.side_effect = cause

        with pytest.raises(RemoteWriteError) as exc_info:
            _upsert(descriptor, store, backends, owner_reference, clock)

        assert exc_info.value.status is None
        assert exc_info.value.__cause__ is cause
        assert store.replace_secret.await_count == 0

    def test_transport_failure_on_replace(self, descriptor, store, backends, owner_reference, clock):
        cause = TimeoutError("read timed out")
        store.create_secret.side_effect = ApiException(status=409, reason="Conflict")
        store.replace_secret.side_effect = cause

        with pytest.raises(RemoteWriteError) as exc_info:
            _upsert(descriptor, store, backends, owner_reference, clock)

        assert exc_info.value.status is None
        assert exc_info.value.__cause__ is cause

    def test_backend_failure_is_wrapped(self, descriptor, store, backends, backend, owner_reference, clock):
        cause = KeyError("fake-key-1")
        backend.get_secret_manifest_data.side_effect = cause

        with pytest.raises(BackendError) as exc_info:
            _upsert(descriptor, store, backends, owner_reference, clock)

        assert exc_info.value.__cause__ is cause
        assert store.create_secret.await_count == 0

    def test_no_role_skips_namespace_lookup(self, descriptor, store, backends, owner_reference, clock):
        _upsert(descriptor, store, backends, owner_reference, clock)

        assert store.read_namespace_annotations.await_count == 0


class TestUpsertPermissions:
    """Role permission enforcement before fetching."""

    def test_denied_role_never_contacts_backend(self, descriptor, store, backends, backend, owner_reference, clock):
        store.read_namespace_annotations.return_value = {PERMITTED_ROLE_ANNOTATION: "^$"}
        descriptor = replace(descriptor, role_arn="whatever")

        with pytest.raises(PermissionDenied):
            _upsert(descriptor, store, backends, owner_reference, clock)

        store.read_namespace_annotations.assert_awaited_once_with("fake-namespace")
        assert backend.get_secret_manifest_data.await_count == 0
        assert store.create_secret.await_count == 0

    def test_allowed_role_proceeds(self, descriptor, store, backends, backend, owner_reference, clock):
        store.read_namespace_annotations.return_value = {PERMITTED_ROLE_ANNOTATION: "arn:aws:iam::123:role/.*"}
        descriptor = replace(descriptor, role_arn="arn:aws:iam::123:role/reader")

        _upsert(descriptor, store, backends, owner_reference, clock)

        assert backend.get_secret_manifest_data.await_count == 1
        assert store.create_secret.await_count == 1

    def test_namespace_lookup_failure(self, descriptor, store, backends, backend, owner_reference, clock):
        store.read_namespace_annotations.side_effect = ApiException(status=403, reason="Forbidden")
        descriptor = replace(descriptor, role_arn="arn:aws:iam::123:role/reader")

        with pytest.raises(RemoteReadError) as exc_info:
            _upsert(descriptor, store, backends, owner_reference, clock)

        assert exc_info.value.status == 403
        assert backend.get_secret_manifest_data.await_count == 0

    def test_namespace_transport_failure(self, descriptor, store, backends, backend, owner_reference, clock):
        cause = ConnectionRefusedError("connection refused")
        store.read_namespace_annotations.side_effect = cause
        descriptor = replace(descriptor, role_arn="arn:aws:iam::123:role/reader")

        with pytest.raises(RemoteReadError) as exc_info:
            _upsert(descriptor, store, backends, owner_reference, clock)

        assert exc_info.value.status is None
        assert exc_info.value.__cause__ is cause
        assert backend.get_secret_manifest_data.await_count == 0

    def test_invalid_annotation_is_not_a_denial(self, descriptor, store, backends, backend, owner_reference, clock):
        store.read_namespace_annotations.return_value = {PERMITTED_ROLE_ANNOTATION: "(["}
        descriptor = replace(descriptor, role_arn="arn:aws:iam::123:role/reader")

        with pytest.raises(InvalidPermissionPattern):
            _upsert(descriptor, store, backends, owner_reference, clock)

        assert backend.get_secret_manifest_data.await_count == 0
