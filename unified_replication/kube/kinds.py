"""Resource kinds read and written by the replication core."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ResourceKind:
    group: str
    version: str
    kind: str
    plural: str
    namespaced: bool = True

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    @property
    def crd_name(self) -> str:
        return f"{self.plural}.{self.group}"


UNIFIED_GROUP = "replication.unified.io"

UNIFIED_VOLUME_REPLICATION = ResourceKind(
    group=UNIFIED_GROUP,
    version="v1alpha1",
    kind="UnifiedVolumeReplication",
    plural="unifiedvolumereplications",
)

UNIFIED_VOLUME_GROUP_REPLICATION = ResourceKind(
    group=UNIFIED_GROUP,
    version="v1alpha1",
    kind="UnifiedVolumeGroupReplication",
    plural="unifiedvolumegroupreplications",
)

REPLICATION_CLASS = ResourceKind(
    group=UNIFIED_GROUP,
    version="v1alpha1",
    kind="VolumeReplicationClass",
    plural="volumereplicationclasses",
    namespaced=False,
)

CEPH_VOLUME_REPLICATION = ResourceKind(
    group="replication.storage.openshift.io",
    version="v1alpha1",
    kind="VolumeReplication",
    plural="volumereplications",
)

CEPH_VOLUME_REPLICATION_CLASS = ResourceKind(
    group="replication.storage.openshift.io",
    version="v1alpha1",
    kind="VolumeReplicationClass",
    plural="volumereplicationclasses",
    namespaced=False,
)

TRIDENT_MIRROR_RELATIONSHIP = ResourceKind(
    group="trident.netapp.io",
    version="v1",
    kind="TridentMirrorRelationship",
    plural="tridentmirrorrelationships",
)

TRIDENT_ACTION_MIRROR_UPDATE = ResourceKind(
    group="trident.netapp.io",
    version="v1",
    kind="TridentActionMirrorUpdate",
    plural="tridentactionmirrorupdates",
)

TRIDENT_VOLUME = ResourceKind(
    group="trident.netapp.io",
    version="v1",
    kind="TridentVolume",
    plural="tridentvolumes",
)

DELL_REPLICATION_GROUP = ResourceKind(
    group="replication.storage.dell.com",
    version="v1",
    kind="DellCSIReplicationGroup",
    plural="dellcsireplicationgroups",
)
