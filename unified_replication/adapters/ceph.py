"""Ceph-CSI adapter.

The Ceph VolumeReplication schema is what the unified API is modelled on,
so the adapter is nearly a passthrough: one VolumeReplication per volume,
``replicationState`` carrying the csi-addons role name.
"""

import logging
from typing import Dict, List, Optional

from ..kube.kinds import CEPH_VOLUME_REPLICATION
from ..models import (
    BackendIdentity,
    BackendResourceDescriptor,
    ReconcileResult,
    ReplicationGroup,
    ReplicationIntent,
    ReplicationState,
    UnifiedStatus,
)
from .base import GROUP_LABEL, BackendAdapterBase, GroupReplicationAdapter, ReplicationAdapter

logger = logging.getLogger(__name__)


class CephAdapter(BackendAdapterBase, ReplicationAdapter):
    backend = BackendIdentity.CEPH
    kind = CEPH_VOLUME_REPLICATION
    state_field = "replicationState"

    # csi-addons reports status.state capitalised; "Unknown" stays unmapped.
    REPORTED_ROLES = {
        "Primary": "primary",
        "Secondary": "secondary",
        "Resyncing": "resync",
    }

    def unified_state(self, backend_state: str) -> Optional[ReplicationState]:
        return super().unified_state(self.REPORTED_ROLES.get(backend_state, backend_state))

    def build_spec(self, pvc_name: str, state, mode, class_name: str,
                   auto_resync: bool, parameters: Dict[str, str]) -> Dict:
        backend_state, _ = self.translator.to_backend(state, mode, self.backend)
        return {
            "volumeReplicationClass": parameters.get("volumeReplicationClass", class_name or ""),
            "pvcName": pvc_name,
            "replicationState": backend_state,
            "autoResync": auto_resync,
        }

    def build_descriptor(self, intent: ReplicationIntent, parameters: Dict[str, str]) -> BackendResourceDescriptor:
        spec = self.build_spec(intent.pvc_name, intent.replication_state, intent.replication_mode,
                               intent.replication_class, intent.auto_resync, parameters)
        return BackendResourceDescriptor(
            kind=self.kind,
            name=intent.name,
            namespace=intent.namespace,
            spec=spec,
            labels=self.base_labels(),
            owner_references=[intent.owner_reference()],
        )

    async def reconcile(self, intent: ReplicationIntent, parameters: Dict[str, str]) -> ReconcileResult:
        descriptor = self.build_descriptor(intent, parameters)
        writes = await self.apply_descriptor(descriptor)
        return ReconcileResult(backend=self.backend, resources=[descriptor.name], writes=writes,
                               message=f"VolumeReplication {descriptor.name} is {descriptor.spec['replicationState']}")

    async def delete(self, intent: ReplicationIntent) -> None:
        await self.delete_resource(intent.name, intent.namespace)

    async def get_status(self, intent: ReplicationIntent) -> UnifiedStatus:
        return await self.read_status(intent.name, intent.namespace)


class CephGroupAdapter(CephAdapter, GroupReplicationAdapter):
    """Ceph has no native group resource: one VolumeReplication per member,
    all sharing the group label."""

    def member_name(self, group: ReplicationGroup, pvc_name: str) -> str:
        return f"{group.name}-{pvc_name}"

    async def reconcile_group(self, group: ReplicationGroup, members: List[str],
                              parameters: Dict[str, str]) -> ReconcileResult:
        labels = {**self.base_labels(), GROUP_LABEL: group.name}
        writes = 0
        names = []
        for pvc_name in members:
            descriptor = BackendResourceDescriptor(
                kind=self.kind,
                name=self.member_name(group, pvc_name),
                namespace=group.namespace,
                spec=self.build_spec(pvc_name, group.replication_state, group.replication_mode,
                                     group.replication_class, group.auto_resync, parameters),
                labels=labels,
                owner_references=[group.owner_reference()],
            )
            writes += await self.apply_descriptor(descriptor)
            names.append(descriptor.name)

        # Members that stopped matching the selector lose their resource.
        wanted = set(names)
        for existing in await self.client.list(self.kind, group.namespace, {GROUP_LABEL: group.name}):
            name = existing.get("metadata", {}).get("name")
            if name not in wanted:
                logger.info(f"Removing VolumeReplication {name} no longer selected by group {group.key}")
                await self.delete_resource(name, group.namespace)
                writes += 1

        return ReconcileResult(backend=self.backend, resources=names, writes=writes,
                               message=f"{len(names)} VolumeReplications in group {group.name}")

    async def delete_group(self, group: ReplicationGroup, members: List[str]) -> None:
        for existing in await self.client.list(self.kind, group.namespace, {GROUP_LABEL: group.name}):
            await self.delete_resource(existing["metadata"]["name"], group.namespace)

    async def get_group_status(self, group: ReplicationGroup) -> UnifiedStatus:
        resources = await self.client.list(self.kind, group.namespace, {GROUP_LABEL: group.name})
        if not resources:
            return UnifiedStatus(backend=self.backend, state=None, exists=False,
                                 message=f"no VolumeReplications found for group {group.name}")
        statuses = [self.status_from_object(obj) for obj in resources]
        states = {s.state for s in statuses}
        first = statuses[0]
        if len(states) == 1:
            return UnifiedStatus(
                backend=self.backend,
                state=first.state,
                backend_state=first.backend_state,
                message=f"{len(statuses)} members in state {first.backend_state}",
                last_sync_time=first.last_sync_time,
                last_sync_duration=first.last_sync_duration,
            )
        return UnifiedStatus(backend=self.backend, state=None,
                             message=f"group members disagree: {sorted(s.value for s in states if s)}")
