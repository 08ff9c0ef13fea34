"""Create-or-replace workflow for one managed Secret."""
import logging
from typing import Any, Callable, Mapping
from kubernetes.client.rest import ApiException

from ..domains.models import OwnerReference, SecretDescriptor, now_ms
from ..domains.manifest import build_secret_manifest
from ..domains.permissions import evaluate_permission
from ..domains.errors import (
    BackendError,
    PermissionDenied,
    RemoteReadError,
    RemoteWriteError,
)

logger = logging.getLogger(__name__)

CONFLICT = 409


async def check_permission(descriptor: SecretDescriptor, namespace: str, store: Any) -> None:
    """
    Ensure the descriptor's role may be assumed in the namespace.

    Raises:
        RemoteReadError: If namespace annotations cannot be read
        PermissionDenied: If the role does not match the namespace annotation
        InvalidPermissionPattern: If the namespace annotation is not a valid regex
    """
    if not descriptor.role_arn:
        return

    try:
        annotations = await store.read_namespace_annotations(namespace)
    except ApiException as e:
        raise RemoteReadError(
            f"Failed to read namespace {namespace}: {e.reason}", status=e.status
        ) from e
    except Exception as e:
        raise RemoteReadError(f"Failed to read namespace {namespace}: {e}") from e

    result = evaluate_permission(
        annotations,
        descriptor.role_arn,
        secret_name=descriptor.name,
        namespace=namespace,
    )
    if not result.allowed:
        raise PermissionDenied(result.reason)


async def upsert_secret(
    descriptor: SecretDescriptor,
    namespace: str,
    store: Any,
    backends: Mapping[str, Any],
    owner_reference: OwnerReference,
    clock: Callable[[], int] = now_ms,
) -> Any:
    """
    Create the Secret, or replace it if it already exists.

    Args:
        descriptor: Secret to synchronize
        namespace: Namespace the Secret lives in
        store: KubeSecretStore (or compatible) used for reads and writes
        backends: Mapping of backend type to backend
        owner_reference: Owner embedded into the manifest
        clock: Epoch-ms clock for the last-poll annotation

    Returns:
        The API response of the create or replace call

    Raises:
        PermissionDenied: Role not allowed; the backend is never contacted
        BackendError: Backend fetch failed
        RemoteReadError: Namespace lookup failed
        RemoteWriteError: Create failed with a non-conflict status, or replace failed
    """
    await check_permission(descriptor, namespace, store)

    try:
        manifest = await build_secret_manifest(descriptor, owner_reference, backends, clock=clock)
    except BackendError:
        raise
    except Exception as e:
        raise BackendError(
            f"Backend '{descriptor.backend_type}' failed for secret {descriptor.name}: {e}"
        ) from e

    logger.info(f"upserting secret {descriptor.name} in {namespace}")
    try:
        return await store.create_secret(namespace, manifest)
    except ApiException as e:
        if e.status != CONFLICT:
            raise RemoteWriteError(
                f"Failed to create secret {descriptor.name} in {namespace}: {e.reason}",
                status=e.status,
            ) from e
    except Exception as e:
        raise RemoteWriteError(f"Failed to create secret {descriptor.name} in {namespace}: {e}") from e

    logger.debug(f"Secret {descriptor.name} already exists in {namespace}, replacing")
    try:
        return await store.replace_secret(namespace, descriptor.name, manifest)
    except ApiException as e:
        raise RemoteWriteError(
            f"Failed to replace secret {descriptor.name} in {namespace}: {e.reason}",
            status=e.status,
        ) from e
    except Exception as e:
        raise RemoteWriteError(f"Failed to replace secret {descriptor.name} in {namespace}: {e}") from e
