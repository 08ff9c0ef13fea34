"""Secret backends resolving descriptor properties into Secret data."""
import os
import json
import base64
import asyncio
import logging
from typing import Optional, Dict, Any
from google.cloud import secretmanager

from .models import SecretDescriptor, SecretProperty

logger = logging.getLogger(__name__)


def _encode(value: str) -> str:
    return base64.b64encode(value.encode("UTF-8")).decode("ascii")


def _select_property(raw: str, prop: SecretProperty) -> str:
    """
    Pick the value for one property out of a raw backend payload.

    If prop.property is set the payload must be a JSON object and the
    named field is returned, otherwise the payload is returned as-is.

    Raises:
        KeyError: If the payload is not a JSON object or lacks the field
    """
    if not prop.property:
        return raw

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise KeyError(f"Value of '{prop.key}' is not JSON, cannot read property '{prop.property}'") from e

    if not isinstance(payload, dict) or prop.property not in payload:
        raise KeyError(f"Property '{prop.property}' not found in '{prop.key}'")

    value = payload[prop.property]
    if isinstance(value, str):
        return value
    return json.dumps(value)


class GCPSecretManagerBackend:
    """Backend reading secrets from GCP Secret Manager."""

    backend_type = "gcp"

    def __init__(self, project_id: Optional[str] = None, version: str = "latest"):
        self.project_id = project_id
        self.version = version
        self._client = None

    @property
    def client(self) -> secretmanager.SecretManagerServiceClient:
        """Lazy-initialize client."""
        if self._client is None:
            self._client = secretmanager.SecretManagerServiceClient()
        return self._client

    def _resource_name(self, key: str) -> str:
        # Full resource names pass through untouched
        if key.startswith("projects/"):
            return key
        if not self.project_id:
            raise KeyError(f"No project_id configured to resolve secret '{key}'")
        return f"projects/{self.project_id}/secrets/{key}/versions/{self.version}"

    def fetch_secret(self, key: str) -> str:
        """
        Fetch the payload of one secret version.

        Raises:
            google.api_core.exceptions.GoogleAPICallError: On API failure
        """
        name = self._resource_name(key)
        response = self.client.access_secret_version(request={"name": name})
        return response.payload.data.decode("UTF-8")

    def _fetch_all(self, descriptor: SecretDescriptor) -> Dict[str, str]:
        data = {}
        payloads: Dict[str, str] = {}
        for prop in descriptor.properties:
            if prop.key not in payloads:
                payloads[prop.key] = self.fetch_secret(prop.key)
            data[prop.name] = _encode(_select_property(payloads[prop.key], prop))
        logger.debug(f"Fetched {len(data)} properties for {descriptor.name} from GCP project {self.project_id}")
        return data

    async def get_secret_manifest_data(self, descriptor: SecretDescriptor) -> Dict[str, str]:
        """Return base64-encoded Secret data for the descriptor."""
        return await asyncio.to_thread(self._fetch_all, descriptor)


class EnvironmentBackend:
    """Backend reading secrets from environment variables (for development)."""

    backend_type = "env"

    def __init__(self, environ: Optional[Dict[str, str]] = None):
        self._environ = environ

    async def get_secret_manifest_data(self, descriptor: SecretDescriptor) -> Dict[str, str]:
        """
        Return base64-encoded Secret data for the descriptor.

        Raises:
            KeyError: If an environment variable or JSON property is missing
        """
        environ = os.environ if self._environ is None else self._environ
        data = {}
        for prop in descriptor.properties:
            if prop.key not in environ:
                raise KeyError(f"Environment variable '{prop.key}' not set")
            data[prop.name] = _encode(_select_property(environ[prop.key], prop))
        return data


BACKEND_TYPES = {
    "gcp": GCPSecretManagerBackend,
    "env": EnvironmentBackend,
}


def build_backends(backends_config: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Instantiate the backends named in the config's backends section.

    Args:
        backends_config: Mapping of backend type to its settings

    Returns:
        Mapping of backend type to backend instance

    Raises:
        ValueError: If a backend type is not supported
    """
    backends = {}
    for backend_type, settings in (backends_config or {}).items():
        settings = settings or {}
        if backend_type == "gcp":
            # GCP_PROJECT env var overrides the config file
            project_id = os.getenv("GCP_PROJECT") or settings.get("project_id")
            backends[backend_type] = GCPSecretManagerBackend(
                project_id=project_id,
                version=str(settings.get("version", "latest")),
            )
        elif backend_type == "env":
            backends[backend_type] = EnvironmentBackend()
        else:
            raise ValueError(
                f"Unsupported backend type: {backend_type}\n"
                f"Supported types: {', '.join(sorted(BACKEND_TYPES))}"
            )
        logger.info(f"Configured backend: {backend_type}")
    return backends
