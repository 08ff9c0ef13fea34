"""Domain models for secret polling."""
import time
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Tuple

# Annotation on the managed Secret holding the last poll time (epoch ms)
LAST_POLL_ANNOTATION = "externalsecret.kubernetes-client.io/last-poll"

# Annotation on the Namespace holding the permitted role regex
PERMITTED_ROLE_ANNOTATION = "iam.amazonaws.com/permitted"

DEFAULT_SECRET_TYPE = "Opaque"


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class SecretProperty:
    """Maps one backend key onto one key of the Kubernetes Secret."""
    key: str
    name: str
    property: Optional[str] = None  # field of a JSON object stored under key

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SecretProperty":
        return cls(key=data["key"], name=data["name"], property=data.get("property"))


@dataclass(frozen=True)
class SecretDescriptor:
    """Describes one Kubernetes Secret and where its data comes from."""
    backend_type: str
    name: str
    properties: Tuple[SecretProperty, ...] = ()
    type: Optional[str] = None
    role_arn: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SecretDescriptor":
        """
        Build a descriptor from a config mapping.

        Accepts both the camelCase keys used in Kubernetes manifests
        (backendType, roleArn) and their snake_case spelling.

        Raises:
            KeyError: If name or backend type is missing
        """
        backend_type = data.get("backendType", data.get("backend_type"))
        if not backend_type:
            raise KeyError("backendType")
        return cls(
            backend_type=backend_type,
            name=data["name"],
            properties=tuple(SecretProperty.from_dict(p) for p in data.get("properties") or []),
            type=data.get("type"),
            role_arn=data.get("roleArn", data.get("role_arn")),
        )


@dataclass(frozen=True)
class OwnerReference:
    """Controlling parent resource, embedded into every manifest."""
    api_version: str
    kind: str
    name: str
    uid: str
    controller: bool = True
    block_owner_deletion: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OwnerReference":
        return cls(
            api_version=data["apiVersion"],
            kind=data["kind"],
            name=data["name"],
            uid=data["uid"],
            controller=data.get("controller", True),
            block_owner_deletion=data.get("blockOwnerDeletion"),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "name": self.name,
            "uid": self.uid,
            "controller": self.controller,
        }
        if self.block_owner_deletion is not None:
            result["blockOwnerDeletion"] = self.block_owner_deletion
        return result


@dataclass
class PermissionResult:
    """Outcome of a role permission check."""
    allowed: bool
    reason: str = field(default="")
