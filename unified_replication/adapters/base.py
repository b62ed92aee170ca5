"""Adapter contracts and shared backend resource handling."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..errors import ReplicationError, TranslationError
from ..kube.client import ResourceClient
from ..kube.kinds import ResourceKind
from ..models import (
    MANAGED_BY_LABEL,
    MANAGER_NAME,
    BackendIdentity,
    BackendResourceDescriptor,
    ReconcileResult,
    ReplicationGroup,
    ReplicationIntent,
    ReplicationState,
    UnifiedStatus,
)
from ..translation import TranslationEngine

logger = logging.getLogger(__name__)

GROUP_LABEL = "replication.unified.io/group"


class ReplicationAdapter(ABC):
    """Interface for single-volume backend adapters."""

    backend: BackendIdentity

    @abstractmethod
    async def reconcile(self, intent: ReplicationIntent, parameters: Dict[str, str]) -> ReconcileResult:
        """Drive the backend resource to the intent's desired state."""
        pass

    @abstractmethod
    async def delete(self, intent: ReplicationIntent) -> None:
        """Remove the backend resource. Absent resources count as deleted."""
        pass

    @abstractmethod
    async def get_status(self, intent: ReplicationIntent) -> UnifiedStatus:
        """Read the backend status in unified terms."""
        pass


class GroupReplicationAdapter(ABC):
    """Interface for volume-group backend adapters."""

    backend: BackendIdentity

    @abstractmethod
    async def reconcile_group(self, group: ReplicationGroup, members: List[str],
                              parameters: Dict[str, str]) -> ReconcileResult:
        """Drive the backend resources for the current group members."""
        pass

    @abstractmethod
    async def delete_group(self, group: ReplicationGroup, members: List[str]) -> None:
        """Remove the group's backend resources."""
        pass

    @abstractmethod
    async def get_group_status(self, group: ReplicationGroup) -> UnifiedStatus:
        """Read the group's backend status in unified terms."""
        pass


class BackendAdapterBase:
    """Shared plumbing for adapters: idempotent apply, delete and status reads."""

    backend: BackendIdentity
    kind: ResourceKind
    state_field: str

    def __init__(self, client: ResourceClient, translator: Optional[TranslationEngine] = None):
        self.client = client
        self.translator = translator or TranslationEngine()

    def base_labels(self) -> Dict[str, str]:
        return {MANAGED_BY_LABEL: MANAGER_NAME}

    async def apply_descriptor(self, descriptor: BackendResourceDescriptor) -> int:
        """Write the descriptor unless the stored object already matches.

        Returns:
            int: Number of writes issued (0 or 1)
        """
        existing = await self.client.get(descriptor.kind, descriptor.name, descriptor.namespace)
        if descriptor.matches(existing):
            logger.debug(f"{descriptor.kind.kind} {descriptor.namespace}/{descriptor.name} up to date")
            return 0
        await self.client.apply(descriptor.kind, descriptor.to_body())
        action = "Created" if existing is None else "Updated"
        logger.info(f"{action} {descriptor.kind.kind} {descriptor.namespace}/{descriptor.name} "
                    f"for backend {self.backend.value}")
        return 1

    async def delete_resource(self, name: str, namespace: str) -> bool:
        deleted = await self.client.delete(self.kind, name, namespace)
        if deleted:
            logger.info(f"Deleted {self.kind.kind} {namespace}/{name}")
        else:
            logger.info(f"{self.kind.kind} {namespace}/{name} already deleted")
        return deleted

    async def read_status(self, name: str, namespace: str) -> UnifiedStatus:
        obj = await self.client.get(self.kind, name, namespace)
        if obj is None:
            return UnifiedStatus(backend=self.backend, state=None, exists=False,
                                 message=f"{self.kind.kind} {namespace}/{name} not found")
        return self.status_from_object(obj)

    def unified_state(self, backend_state: str) -> Optional[ReplicationState]:
        """Translate a backend state, or None when it has no unified equivalent."""
        try:
            return self.translator.from_backend(backend_state, self.backend)
        except TranslationError as e:
            logger.warning(f"Unrecognised {self.backend.value} state '{backend_state}': {e.detail}")
            return None

    def status_from_object(self, obj: Dict[str, Any]) -> UnifiedStatus:
        """Map a stored backend object back to unified status.

        A reported state the translation tables do not know leaves ``state``
        as None with the raw value kept in ``backend_state``.
        """
        status = obj.get("status") or {}
        reported = status.get("state")
        backend_state = reported or (obj.get("spec") or {}).get(self.state_field)
        if backend_state is None:
            raise ReplicationError(f"{self.kind.kind} has no {self.state_field} value",
                                   reason="BackendStatusUnreadable")
        message = status.get("message") or (
            "" if reported else "backend has not reported status yet"
        )
        return UnifiedStatus(
            backend=self.backend,
            state=self.unified_state(backend_state),
            backend_state=backend_state,
            message=message,
            last_sync_time=status.get("lastSyncTime"),
            last_sync_duration=status.get("lastSyncDuration"),
        )
