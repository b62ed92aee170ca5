"""Access to the declarative object store backing the replication core."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import kubernetes
from kubernetes import client, config

from ..errors import BackendRejectedError, ResourceClientError, TransientBackendError
from .kinds import REPLICATION_CLASS, ResourceKind

logger = logging.getLogger(__name__)

TRANSIENT_STATUSES = (409, 429, 500, 502, 503, 504)


def label_selector(labels: Optional[Dict[str, str]]) -> str:
    return ",".join(f"{k}={v}" for k, v in sorted((labels or {}).items()))


class ResourceClient(ABC):
    """Interface for reading and writing cluster objects."""

    @property
    @abstractmethod
    def fingerprint(self) -> str:
        """Identify the environment this client talks to."""
        pass

    @abstractmethod
    async def get_crd(self, name: str) -> Optional[Dict[str, Any]]:
        """Return a CustomResourceDefinition, or None if it is not registered."""
        pass

    @abstractmethod
    async def get(self, kind: ResourceKind, name: str, namespace: Optional[str]) -> Optional[Dict[str, Any]]:
        """Return an object, or None if it does not exist."""
        pass

    @abstractmethod
    async def apply(self, kind: ResourceKind, body: Dict[str, Any]) -> Dict[str, Any]:
        """Create or replace an object keyed by name and namespace."""
        pass

    @abstractmethod
    async def delete(self, kind: ResourceKind, name: str, namespace: Optional[str]) -> bool:
        """Delete an object. Returns False if it was already gone."""
        pass

    @abstractmethod
    async def list(self, kind: ResourceKind, namespace: Optional[str],
                   labels: Optional[Dict[str, str]] = None) -> List[Dict[str, Any]]:
        """List objects matching every given label."""
        pass

    @abstractmethod
    async def get_pvc(self, name: str, namespace: str) -> Optional[Dict[str, Any]]:
        """Return a PersistentVolumeClaim, or None if it does not exist."""
        pass

    @abstractmethod
    async def list_pvcs(self, namespace: str, labels: Dict[str, str]) -> List[Dict[str, Any]]:
        """List PersistentVolumeClaims matching every given label."""
        pass

    @abstractmethod
    async def patch_pvc_labels(self, name: str, namespace: str,
                               labels: Dict[str, Optional[str]]) -> Dict[str, Any]:
        """Set labels on a PersistentVolumeClaim. A None value removes the label."""
        pass

    async def exists(self, crd_name: str) -> bool:
        return await self.get_crd(crd_name) is not None

    async def get_replication_class(self, name: str) -> Optional[Dict[str, Any]]:
        return await self.get(REPLICATION_CLASS, name, None)


class KubernetesResourceClient(ResourceClient):
    """ResourceClient backed by the Kubernetes API.

    The kubernetes client is blocking, so every call runs in a worker thread.
    """

    def __init__(self, kubeconfig: Optional[str] = None, context: Optional[str] = None):
        try:
            config.load_incluster_config()
        except config.ConfigException:
            config.load_kube_config(config_file=kubeconfig, context=context)

        self._api_client = client.ApiClient()
        self._custom_api = client.CustomObjectsApi(self._api_client)
        self._ext_api = client.ApiextensionsV1Api(self._api_client)
        self._core_api = client.CoreV1Api(self._api_client)
        self._context = context or ""

    @property
    def fingerprint(self) -> str:
        return f"{self._api_client.configuration.host}#{self._context}"

    def _to_dict(self, obj) -> Dict[str, Any]:
        if isinstance(obj, dict):
            return obj
        return self._api_client.sanitize_for_serialization(obj)

    async def _call(self, action: str, fn, *args, **kwargs):
        """Run a blocking API call; NotFound comes back as None."""
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except kubernetes.client.rest.ApiException as e:
            if e.status == 404:
                return None
            if e.status in TRANSIENT_STATUSES:
                raise TransientBackendError(f"{action} failed with status {e.status}: {e.reason}")
            if e.status in (401, 403):
                raise ResourceClientError(f"{action} forbidden: {e.reason}", status=e.status)
            raise BackendRejectedError(f"{action} rejected with status {e.status}: {e.reason}")
        except (ConnectionError, TimeoutError) as e:
            raise TransientBackendError(f"{action} failed: {e}")

    async def get_crd(self, name: str) -> Optional[Dict[str, Any]]:
        crd = await self._call(f"read CRD {name}", self._ext_api.read_custom_resource_definition, name)
        return self._to_dict(crd) if crd is not None else None

    async def get(self, kind: ResourceKind, name: str, namespace: Optional[str]) -> Optional[Dict[str, Any]]:
        if kind.namespaced:
            return await self._call(
                f"get {kind.kind} {namespace}/{name}",
                self._custom_api.get_namespaced_custom_object,
                kind.group, kind.version, namespace, kind.plural, name
            )
        return await self._call(
            f"get {kind.kind} {name}",
            self._custom_api.get_cluster_custom_object,
            kind.group, kind.version, kind.plural, name
        )

    async def apply(self, kind: ResourceKind, body: Dict[str, Any]) -> Dict[str, Any]:
        metadata = body["metadata"]
        name = metadata["name"]
        namespace = metadata.get("namespace")
        existing = await self.get(kind, name, namespace)

        if existing is None:
            action = f"create {kind.kind} {name}"
            if kind.namespaced:
                result = await self._call(action, self._custom_api.create_namespaced_custom_object,
                                          kind.group, kind.version, namespace, kind.plural, body)
            else:
                result = await self._call(action, self._custom_api.create_cluster_custom_object,
                                          kind.group, kind.version, kind.plural, body)
        else:
            metadata["resourceVersion"] = existing.get("metadata", {}).get("resourceVersion")
            action = f"replace {kind.kind} {name}"
            if kind.namespaced:
                result = await self._call(action, self._custom_api.replace_namespaced_custom_object,
                                          kind.group, kind.version, namespace, kind.plural, name, body)
            else:
                result = await self._call(action, self._custom_api.replace_cluster_custom_object,
                                          kind.group, kind.version, kind.plural, name, body)
        if result is None:
            raise TransientBackendError(f"{action} raced with a deletion")
        return result

    async def delete(self, kind: ResourceKind, name: str, namespace: Optional[str]) -> bool:
        if kind.namespaced:
            result = await self._call(f"delete {kind.kind} {namespace}/{name}",
                                      self._custom_api.delete_namespaced_custom_object,
                                      kind.group, kind.version, namespace, kind.plural, name)
        else:
            result = await self._call(f"delete {kind.kind} {name}",
                                      self._custom_api.delete_cluster_custom_object,
                                      kind.group, kind.version, kind.plural, name)
        return result is not None

    async def list(self, kind: ResourceKind, namespace: Optional[str],
                   labels: Optional[Dict[str, str]] = None) -> List[Dict[str, Any]]:
        selector = label_selector(labels)
        if kind.namespaced:
            result = await self._call(f"list {kind.kind}", self._custom_api.list_namespaced_custom_object,
                                      kind.group, kind.version, namespace, kind.plural,
                                      label_selector=selector)
        else:
            result = await self._call(f"list {kind.kind}", self._custom_api.list_cluster_custom_object,
                                      kind.group, kind.version, kind.plural, label_selector=selector)
        return list((result or {}).get("items", []))

    async def get_pvc(self, name: str, namespace: str) -> Optional[Dict[str, Any]]:
        pvc = await self._call(f"read PVC {namespace}/{name}",
                               self._core_api.read_namespaced_persistent_volume_claim, name, namespace)
        return self._to_dict(pvc) if pvc is not None else None

    async def list_pvcs(self, namespace: str, labels: Dict[str, str]) -> List[Dict[str, Any]]:
        result = await self._call(f"list PVCs in {namespace}",
                                  self._core_api.list_namespaced_persistent_volume_claim,
                                  namespace, label_selector=label_selector(labels))
        if result is None:
            return []
        return [self._to_dict(item) for item in result.items]

    async def patch_pvc_labels(self, name: str, namespace: str,
                               labels: Dict[str, Optional[str]]) -> Dict[str, Any]:
        body = {"metadata": {"labels": labels}}
        result = await self._call(f"label PVC {namespace}/{name}",
                                  self._core_api.patch_namespaced_persistent_volume_claim,
                                  name, namespace, body)
        if result is None:
            raise BackendRejectedError(f"PVC {namespace}/{name} not found")
        return self._to_dict(result)
