"""Kubernetes API wrapper for Secrets and Namespaces."""
import asyncio
import logging
from typing import Optional, Dict, Any
from kubernetes import client, config

logger = logging.getLogger(__name__)


def load_kube_api(kubeconfig: Optional[str] = None) -> client.CoreV1Api:
    """
    Build a CoreV1Api client.

    In-cluster configuration is tried first, then the local kubeconfig
    (optionally at an explicit path).
    """
    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
    except config.ConfigException:
        logger.info("In-cluster config unavailable, falling back to kubeconfig")
        config.load_kube_config(config_file=kubeconfig)
    return client.CoreV1Api()


class KubeSecretStore:
    """
    Async facade over CoreV1Api.

    Every method raises kubernetes.client.rest.ApiException on failure;
    callers inspect .status (404 not found, 409 conflict).
    """

    def __init__(self, api: Optional[client.CoreV1Api] = None, kubeconfig: Optional[str] = None):
        self._api = api
        self._kubeconfig = kubeconfig

    @property
    def api(self) -> client.CoreV1Api:
        """Lazy-initialize client."""
        if self._api is None:
            self._api = load_kube_api(self._kubeconfig)
        return self._api

    async def create_secret(self, namespace: str, manifest: Dict[str, Any]) -> Any:
        return await asyncio.to_thread(self.api.create_namespaced_secret, namespace, manifest)

    async def replace_secret(self, namespace: str, name: str, manifest: Dict[str, Any]) -> Any:
        return await asyncio.to_thread(self.api.replace_namespaced_secret, name, namespace, manifest)

    async def read_secret(self, namespace: str, name: str) -> Dict[str, Any]:
        """Read a Secret and return it as a plain camelCase dict."""
        secret = await asyncio.to_thread(self.api.read_namespaced_secret, name, namespace)
        return self.api.api_client.sanitize_for_serialization(secret)

    async def read_namespace_annotations(self, namespace: str) -> Dict[str, str]:
        ns = await asyncio.to_thread(self.api.read_namespace, namespace)
        return (ns.metadata.annotations if ns.metadata else None) or {}
