"""Namespace-scoped role permission check."""
import re
import logging
from typing import Optional, Dict

from .models import PERMITTED_ROLE_ANNOTATION, PermissionResult
from .errors import InvalidPermissionPattern

logger = logging.getLogger(__name__)


def evaluate_permission(
    namespace_annotations: Optional[Dict[str, str]],
    role_arn: Optional[str],
    secret_name: str = "",
    namespace: str = "",
) -> PermissionResult:
    """
    Decide whether a role may be assumed for a secret in a namespace.

    Args:
        namespace_annotations: Annotations of the namespace housing the secret
        role_arn: Role requested by the secret descriptor, if any
        secret_name: Secret name, used in the denial reason
        namespace: Namespace name, used in the denial reason

    Returns:
        PermissionResult with allowed flag and a human-readable reason

    Raises:
        InvalidPermissionPattern: If the annotation is not a valid regex

    Behavior:
        - No role requested: always allowed
        - The annotation must match the whole role string
        - Missing annotation is treated as "" which only matches ""
    """
    if not role_arn:
        return PermissionResult(allowed=True, reason="no role requested")

    pattern = (namespace_annotations or {}).get(PERMITTED_ROLE_ANNOTATION) or ""

    try:
        compiled = re.compile(pattern)
    except re.error as e:
        raise InvalidPermissionPattern(
            f"Invalid {PERMITTED_ROLE_ANNOTATION} annotation on namespace {namespace}: "
            f"{pattern!r} ({e})"
        ) from e

    if compiled.fullmatch(role_arn):
        return PermissionResult(allowed=True, reason=f"role {role_arn} matches {pattern!r}")

    reason = (
        f"namespace {namespace} does not allow secret {secret_name} "
        f"to assume role {role_arn} (permitted: {pattern!r})"
    )
    logger.debug(reason)
    return PermissionResult(allowed=False, reason=reason)
