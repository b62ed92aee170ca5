"""NetApp Trident adapter.

Trident models replication as a TridentMirrorRelationship whose ``state`` is
a noun (established, reestablished, promoted). Tuning parameters come from
the replication class: replicationPolicy, replicationSchedule and the
remote volume handle of each mapped volume.
"""

import logging
from typing import Dict, List

from ..kube.kinds import TRIDENT_MIRROR_RELATIONSHIP
from ..models import (
    BackendIdentity,
    BackendResourceDescriptor,
    ReconcileResult,
    ReplicationGroup,
    ReplicationIntent,
    Schedule,
    UnifiedStatus,
)
from .base import GROUP_LABEL, BackendAdapterBase, GroupReplicationAdapter, ReplicationAdapter

logger = logging.getLogger(__name__)

DEFAULT_SCHEDULE = "15m"


class TridentAdapter(BackendAdapterBase, ReplicationAdapter):
    backend = BackendIdentity.TRIDENT
    kind = TRIDENT_MIRROR_RELATIONSHIP
    state_field = "state"

    def _schedule(self, parameters: Dict[str, str], schedule: Schedule, *keys: str) -> str:
        for key in keys:
            if parameters.get(key):
                return parameters[key]
        return schedule.rpo or DEFAULT_SCHEDULE

    def build_descriptor(self, intent: ReplicationIntent, parameters: Dict[str, str]) -> BackendResourceDescriptor:
        state, mode = self.translator.to_backend(intent.replication_state, intent.replication_mode,
                                                 self.backend)
        pvc = intent.pvc_name
        remote = (parameters.get(f"remoteVolume-{pvc}")
                  or parameters.get("remoteVolume")
                  or intent.volume_mapping.destination_volume_handle
                  or f"remote-{pvc}")
        spec = {
            "state": state,
            "replicationPolicy": parameters.get("replicationPolicy", mode),
            "replicationSchedule": self._schedule(parameters, intent.schedule, "replicationSchedule"),
            "volumeMappings": [
                {"localPVCName": pvc, "remoteVolumeHandle": remote},
            ],
        }
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
                               message=f"TridentMirrorRelationship {descriptor.name} is {descriptor.spec['state']}")

    async def delete(self, intent: ReplicationIntent) -> None:
        await self.delete_resource(intent.name, intent.namespace)

    async def get_status(self, intent: ReplicationIntent) -> UnifiedStatus:
        return await self.read_status(intent.name, intent.namespace)


class TridentGroupAdapter(TridentAdapter, GroupReplicationAdapter):
    """One TridentMirrorRelationship listing every member volume."""

    def build_group_descriptor(self, group: ReplicationGroup, members: List[str],
                               parameters: Dict[str, str]) -> BackendResourceDescriptor:
        state, mode = self.translator.to_backend(group.replication_state, group.replication_mode,
                                                 self.backend)
        mappings = [
            {
                "localPVCName": pvc,
                "remoteVolumeHandle": parameters.get(f"remoteVolume-{pvc}", f"remote-{pvc}"),
            }
            for pvc in sorted(members)
        ]
        spec = {
            "state": state,
            "replicationPolicy": parameters.get("replicationPolicy", mode),
            "replicationSchedule": self._schedule(parameters, group.schedule,
                                                  "groupReplicationSchedule", "replicationSchedule"),
            "volumeMappings": mappings,
        }
        return BackendResourceDescriptor(
            kind=self.kind,
            name=group.name,
            namespace=group.namespace,
            spec=spec,
            labels={**self.base_labels(), GROUP_LABEL: group.name},
            owner_references=[group.owner_reference()],
        )

    async def reconcile_group(self, group: ReplicationGroup, members: List[str],
                              parameters: Dict[str, str]) -> ReconcileResult:
        descriptor = self.build_group_descriptor(group, members, parameters)
        writes = await self.apply_descriptor(descriptor)
        return ReconcileResult(backend=self.backend, resources=[descriptor.name], writes=writes,
                               message=f"TridentMirrorRelationship {descriptor.name} maps {len(members)} volumes")

    async def delete_group(self, group: ReplicationGroup, members: List[str]) -> None:
        await self.delete_resource(group.name, group.namespace)

    async def get_group_status(self, group: ReplicationGroup) -> UnifiedStatus:
        return await self.read_status(group.name, group.namespace)
