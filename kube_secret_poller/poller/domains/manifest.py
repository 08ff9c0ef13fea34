"""Kubernetes Secret manifest construction."""
from typing import Any, Callable, Dict, Mapping

from .models import (
    DEFAULT_SECRET_TYPE,
    LAST_POLL_ANNOTATION,
    OwnerReference,
    SecretDescriptor,
    now_ms,
)
from .errors import UnknownBackendError


async def build_secret_manifest(
    descriptor: SecretDescriptor,
    owner_reference: OwnerReference,
    backends: Mapping[str, Any],
    clock: Callable[[], int] = now_ms,
) -> Dict[str, Any]:
    """
    Fetch secret data from the descriptor's backend and wrap it in a manifest.

    The last-poll annotation records the time this build was invoked.
    Backend exceptions are not caught here.

    Raises:
        UnknownBackendError: If descriptor.backend_type is not in backends
    """
    polled_at = clock()

    backend = backends.get(descriptor.backend_type)
    if backend is None:
        raise UnknownBackendError(
            f"No backend configured for type '{descriptor.backend_type}' "
            f"(secret {descriptor.name})"
        )

    data = await backend.get_secret_manifest_data(descriptor)

    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {
            "name": descriptor.name,
            "ownerReferences": [owner_reference.to_dict()],
            "annotations": {
                LAST_POLL_ANNOTATION: str(polled_at),
            },
        },
        "type": descriptor.type or DEFAULT_SECRET_TYPE,
        "data": data,
    }
