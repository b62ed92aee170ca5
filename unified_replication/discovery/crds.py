"""Resource kinds each backend must have registered to be usable."""

from dataclasses import dataclass
from typing import Dict, List

from ..kube import kinds
from ..models import BackendIdentity


@dataclass(frozen=True)
class CRDRequirement:
    name: str
    required: bool = True


BACKEND_CRDS: Dict[BackendIdentity, List[CRDRequirement]] = {
    BackendIdentity.CEPH: [
        CRDRequirement(kinds.CEPH_VOLUME_REPLICATION_CLASS.crd_name),
        CRDRequirement(kinds.CEPH_VOLUME_REPLICATION.crd_name),
    ],
    BackendIdentity.TRIDENT: [
        CRDRequirement(kinds.TRIDENT_MIRROR_RELATIONSHIP.crd_name),
        CRDRequirement(kinds.TRIDENT_ACTION_MIRROR_UPDATE.crd_name, required=False),
        CRDRequirement(kinds.TRIDENT_VOLUME.crd_name),
    ],
    BackendIdentity.POWERSTORE: [
        CRDRequirement(kinds.DELL_REPLICATION_GROUP.crd_name),
    ],
}

VERSION_ANNOTATIONS = ("controller.version", "driver.version")


def required_crds(backend: BackendIdentity) -> List[str]:
    return [crd.name for crd in BACKEND_CRDS[backend] if crd.required]
