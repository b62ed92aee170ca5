"""Dell PowerStore adapter.

PowerStore is driven by action verbs (Failover, Sync, Reprotect) on a
DellCSIReplicationGroup that finds its volumes through a label selector.
Reconciling is therefore a two-step write: label the PVCs, then apply the
replication group whose selector matches those labels.
"""

import logging
from typing import Dict, List

from ..errors import ConfigurationError, PartialReconcileError, ReplicationError
from ..kube.kinds import DELL_REPLICATION_GROUP
from ..models import (
    BackendIdentity,
    BackendResourceDescriptor,
    ReconcileResult,
    ReplicationGroup,
    ReplicationIntent,
    UnifiedStatus,
)
from .base import GROUP_LABEL, BackendAdapterBase, GroupReplicationAdapter, ReplicationAdapter

logger = logging.getLogger(__name__)

DRIVER_NAME = "csi-powerstore.dellemc.com"
REPLICATED_LABEL = "replication.storage.dell.com/replicated"
DELL_GROUP_LABEL = "replication.storage.dell.com/group"
REQUIRED_PARAMETERS = ("protectionPolicy", "remoteSystem")
DEFAULT_RPO = "15m"


class PowerStoreAdapter(BackendAdapterBase, ReplicationAdapter):
    backend = BackendIdentity.POWERSTORE
    kind = DELL_REPLICATION_GROUP
    state_field = "action"

    def selector_labels(self, group_name: str) -> Dict[str, str]:
        return {REPLICATED_LABEL: "true", DELL_GROUP_LABEL: group_name}

    def _required(self, parameters: Dict[str, str]) -> Dict[str, str]:
        values = {}
        for key in REQUIRED_PARAMETERS:
            if not parameters.get(key):
                raise ConfigurationError(
                    f"missing required parameter {key} for backend {self.backend.value}",
                    reason="MissingParameter")
            values[key] = parameters[key]
        return values

    def build_descriptor_for(self, name: str, namespace: str, state, mode, rpo,
                             parameters: Dict[str, str], labels: Dict[str, str],
                             owner: Dict) -> BackendResourceDescriptor:
        action, _ = self.translator.to_backend(state, mode, self.backend)
        required = self._required(parameters)
        spec = {
            "driverName": DRIVER_NAME,
            "action": action,
            "protectionPolicy": required["protectionPolicy"],
            "remoteSystem": required["remoteSystem"],
            "remoteRPO": parameters.get("rpo") or rpo or DEFAULT_RPO,
            "pvcSelector": {
                "matchLabels": {DELL_GROUP_LABEL: name},
            },
        }
        return BackendResourceDescriptor(kind=self.kind, name=name, namespace=namespace, spec=spec,
                                         labels=labels, owner_references=[owner])

    def build_descriptor(self, intent: ReplicationIntent, parameters: Dict[str, str]) -> BackendResourceDescriptor:
        return self.build_descriptor_for(intent.name, intent.namespace, intent.replication_state,
                                         intent.replication_mode, intent.schedule.rpo, parameters,
                                         self.base_labels(), intent.owner_reference())

    async def label_pvc(self, pvc_name: str, namespace: str, group_name: str) -> int:
        """Label a PVC for the replication group selector.

        Returns:
            int: Number of writes issued (0 when the labels are already present)
        """
        pvc = await self.client.get_pvc(pvc_name, namespace)
        if pvc is None:
            raise ConfigurationError(f"PVC {namespace}/{pvc_name} not found", reason="PVCNotFound")
        current = (pvc.get("metadata") or {}).get("labels") or {}
        wanted = self.selector_labels(group_name)
        if all(current.get(k) == v for k, v in wanted.items()):
            return 0
        await self.client.patch_pvc_labels(pvc_name, namespace, wanted)
        logger.info(f"Labelled PVC {namespace}/{pvc_name} for replication group {group_name}")
        return 1

    async def unlabel_pvc(self, pvc_name: str, namespace: str):
        """Strip the selector labels; failures are logged, not raised."""
        try:
            pvc = await self.client.get_pvc(pvc_name, namespace)
            if pvc is None:
                return
            current = (pvc.get("metadata") or {}).get("labels") or {}
            if REPLICATED_LABEL not in current and DELL_GROUP_LABEL not in current:
                return
            await self.client.patch_pvc_labels(pvc_name, namespace,
                                               {REPLICATED_LABEL: None, DELL_GROUP_LABEL: None})
        except Exception as e:
            logger.warning(f"Failed to remove replication labels from PVC {namespace}/{pvc_name}: {e}")

    async def _apply_two_step(self, pvc_names: List[str], namespace: str,
                              descriptor: BackendResourceDescriptor) -> int:
        writes = 0
        labelled = []
        for pvc_name in pvc_names:
            writes += await self.label_pvc(pvc_name, namespace, descriptor.name)
            labelled.append(pvc_name)
        try:
            writes += await self.apply_descriptor(descriptor)
        except ReplicationError as e:
            logger.warning(f"PVC labels applied but DellCSIReplicationGroup {descriptor.name} "
                           f"write failed: {e}")
            raise PartialReconcileError(
                f"PVC labels applied for {', '.join(labelled)} but DellCSIReplicationGroup "
                f"{descriptor.name} write failed: {e}",
                completed_steps=[f"label:{name}" for name in labelled],
                failed_step=f"apply:{descriptor.name}",
            ) from e
        return writes

    async def reconcile(self, intent: ReplicationIntent, parameters: Dict[str, str]) -> ReconcileResult:
        descriptor = self.build_descriptor(intent, parameters)
        writes = await self._apply_two_step([intent.pvc_name], intent.pvc_namespace, descriptor)
        return ReconcileResult(backend=self.backend, resources=[descriptor.name], writes=writes,
                               message=f"DellCSIReplicationGroup {descriptor.name} action {descriptor.spec['action']}")

    async def delete(self, intent: ReplicationIntent) -> None:
        await self.delete_resource(intent.name, intent.namespace)
        await self.unlabel_pvc(intent.pvc_name, intent.pvc_namespace)

    async def get_status(self, intent: ReplicationIntent) -> UnifiedStatus:
        return await self.read_status(intent.name, intent.namespace)


class PowerStoreGroupAdapter(PowerStoreAdapter, GroupReplicationAdapter):
    """Every member PVC carries the same selector label; one replication group."""

    def build_group_descriptor(self, group: ReplicationGroup,
                               parameters: Dict[str, str]) -> BackendResourceDescriptor:
        return self.build_descriptor_for(group.name, group.namespace, group.replication_state,
                                         group.replication_mode, group.schedule.rpo, parameters,
                                         {**self.base_labels(), GROUP_LABEL: group.name},
                                         group.owner_reference())

    async def reconcile_group(self, group: ReplicationGroup, members: List[str],
                              parameters: Dict[str, str]) -> ReconcileResult:
        descriptor = self.build_group_descriptor(group, parameters)
        writes = await self._apply_two_step(sorted(members), group.namespace, descriptor)

        # PVCs that left the group must stop matching the backend selector.
        labelled = await self.client.list_pvcs(group.namespace, {DELL_GROUP_LABEL: group.name})
        for pvc in labelled:
            pvc_name = pvc["metadata"]["name"]
            if pvc_name not in members:
                logger.info(f"Removing PVC {group.namespace}/{pvc_name} from replication group {group.name}")
                await self.unlabel_pvc(pvc_name, group.namespace)
                writes += 1
        return ReconcileResult(backend=self.backend, resources=[descriptor.name], writes=writes,
                               message=f"DellCSIReplicationGroup {descriptor.name} selects {len(members)} volumes")

    async def delete_group(self, group: ReplicationGroup, members: List[str]) -> None:
        await self.delete_resource(group.name, group.namespace)
        for pvc_name in members:
            await self.unlabel_pvc(pvc_name, group.namespace)

    async def get_group_status(self, group: ReplicationGroup) -> UnifiedStatus:
        return await self.read_status(group.name, group.namespace)
