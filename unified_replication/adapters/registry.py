"""Adapter registry.

Each execution context builds its own registry and hands it to the engine;
there is no process-wide registration state.
"""

import logging
import threading
from typing import Dict, List, Optional

from ..errors import AdapterNotFoundError, DuplicateRegistrationError
from ..kube.client import ResourceClient
from ..models import BackendIdentity
from ..translation import TranslationEngine
from .base import GroupReplicationAdapter, ReplicationAdapter
from .ceph import CephAdapter, CephGroupAdapter
from .powerstore import PowerStoreAdapter, PowerStoreGroupAdapter
from .trident import TridentAdapter, TridentGroupAdapter

logger = logging.getLogger(__name__)

# The backend set is closed: one adapter pair per backend.
ADAPTER_TYPES = {
    BackendIdentity.CEPH: (CephAdapter, CephGroupAdapter),
    BackendIdentity.TRIDENT: (TridentAdapter, TridentGroupAdapter),
    BackendIdentity.POWERSTORE: (PowerStoreAdapter, PowerStoreGroupAdapter),
}


class AdapterRegistry:
    def __init__(self):
        self._adapters: Dict[BackendIdentity, ReplicationAdapter] = {}
        self._group_adapters: Dict[BackendIdentity, GroupReplicationAdapter] = {}
        self._lock = threading.Lock()

    def register(self, backend: BackendIdentity, adapter: ReplicationAdapter):
        """Register the single-volume adapter for a backend.

        Raises:
            DuplicateRegistrationError: If the backend already has one
        """
        backend = BackendIdentity.parse(backend)
        with self._lock:
            if backend in self._adapters:
                raise DuplicateRegistrationError(f"adapter for backend {backend.value} already registered")
            self._adapters[backend] = adapter
        logger.debug(f"Registered adapter for {backend.value}")

    def register_group(self, backend: BackendIdentity, adapter: GroupReplicationAdapter):
        backend = BackendIdentity.parse(backend)
        with self._lock:
            if backend in self._group_adapters:
                raise DuplicateRegistrationError(
                    f"group adapter for backend {backend.value} already registered")
            self._group_adapters[backend] = adapter
        logger.debug(f"Registered group adapter for {backend.value}")

    def get_adapter(self, backend: BackendIdentity) -> ReplicationAdapter:
        backend = BackendIdentity.parse(backend)
        adapter = self._adapters.get(backend)
        if adapter is None:
            raise AdapterNotFoundError(f"no adapter registered for backend {backend.value}")
        return adapter

    def get_group_adapter(self, backend: BackendIdentity) -> GroupReplicationAdapter:
        backend = BackendIdentity.parse(backend)
        adapter = self._group_adapters.get(backend)
        if adapter is None:
            raise AdapterNotFoundError(f"no group adapter registered for backend {backend.value}")
        return adapter

    def unregister(self, backend: BackendIdentity):
        backend = BackendIdentity.parse(backend)
        with self._lock:
            self._adapters.pop(backend, None)
            self._group_adapters.pop(backend, None)

    def registered_backends(self) -> List[BackendIdentity]:
        return [b for b in BackendIdentity if b in self._adapters]


def build_default_registry(client: ResourceClient,
                           translator: Optional[TranslationEngine] = None) -> AdapterRegistry:
    """Create a registry holding every built-in adapter."""
    translator = translator or TranslationEngine()
    registry = AdapterRegistry()
    for backend, (adapter_type, group_adapter_type) in ADAPTER_TYPES.items():
        registry.register(backend, adapter_type(client, translator))
        registry.register_group(backend, group_adapter_type(client, translator))
    return registry
