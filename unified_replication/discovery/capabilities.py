"""Backend capability matrices and configuration checks against them."""

import logging
import threading
from typing import Dict, List, Optional

from ..errors import UnsupportedCapabilityError
from ..models import BackendIdentity, ReplicationMode, ReplicationState
from .types import (
    BackendCapabilities,
    Capability,
    CapabilityInfo,
    CapabilityLevel,
    HealthLevel,
)

logger = logging.getLogger(__name__)

C = Capability
FULL = CapabilityLevel.FULL
PARTIAL = CapabilityLevel.PARTIAL
BASIC = CapabilityLevel.BASIC

CAPABILITY_MATRIX: Dict[BackendIdentity, Dict[Capability, CapabilityInfo]] = {
    BackendIdentity.CEPH: {
        C.ASYNC_REPLICATION: CapabilityInfo(FULL, "RBD mirroring replicates asynchronously"),
        C.SYNC_REPLICATION: CapabilityInfo(BASIC, "Synchronous mirroring has limited support"),
        C.SOURCE_PROMOTION: CapabilityInfo(FULL, "Images can be promoted to primary"),
        C.REPLICA_DEMOTION: CapabilityInfo(FULL, "Images can be demoted to secondary"),
        C.RESYNC: CapabilityInfo(FULL, "Images can be resynchronized"),
        C.JOURNAL_BASED: CapabilityInfo(FULL, "Journal based mirroring"),
        C.SNAPSHOT_BASED: CapabilityInfo(FULL, "Snapshot based mirroring"),
        C.AUTO_RESYNC: CapabilityInfo(PARTIAL, "Automatic resync after split brain"),
        C.SCHEDULED_SYNC: CapabilityInfo(FULL, "Snapshot schedules"),
        C.VOLUME_GROUPS: CapabilityInfo(PARTIAL, "Groups are one resource per member volume"),
        C.HIGH_THROUGHPUT: CapabilityInfo(FULL, "Distributed storage throughput"),
        C.MULTI_REGION: CapabilityInfo(FULL, "Mirroring across sites"),
    },
    BackendIdentity.TRIDENT: {
        C.ASYNC_REPLICATION: CapabilityInfo(FULL, "Asynchronous SnapMirror replication"),
        C.SYNC_REPLICATION: CapabilityInfo(FULL, "Synchronous SnapMirror replication"),
        C.SOURCE_PROMOTION: CapabilityInfo(FULL, "Mirror destinations can be promoted"),
        C.REPLICA_DEMOTION: CapabilityInfo(FULL, "Relationships can be reestablished as destination"),
        C.RESYNC: CapabilityInfo(PARTIAL, "Resync happens by reestablishing the relationship"),
        C.FAILOVER: CapabilityInfo(FULL, "Failover by promotion"),
        C.FAILBACK: CapabilityInfo(FULL, "Failback by reestablishing"),
        C.SNAPSHOT_BASED: CapabilityInfo(FULL, "NetApp snapshot technology"),
        C.SCHEDULED_SYNC: CapabilityInfo(FULL, "Scheduled SnapMirror updates"),
        C.VOLUME_GROUPS: CapabilityInfo(FULL, "One relationship can map many volumes"),
        C.CONSISTENCY_GROUPS: CapabilityInfo(FULL, "NetApp consistency groups"),
        C.LOW_LATENCY: CapabilityInfo(FULL, "Low latency storage"),
        C.MULTI_CLOUD: CapabilityInfo(FULL, "Multi-cloud deployments"),
    },
    BackendIdentity.POWERSTORE: {
        C.ASYNC_REPLICATION: CapabilityInfo(FULL, "Asynchronous replication"),
        C.SYNC_REPLICATION: CapabilityInfo(FULL, "Synchronous replication"),
        C.METRO_REPLICATION: CapabilityInfo(FULL, "Metro (active-active) replication"),
        C.SOURCE_PROMOTION: CapabilityInfo(FULL, "Role reversal by failover"),
        C.REPLICA_DEMOTION: CapabilityInfo(FULL, "Role changes"),
        C.RESYNC: CapabilityInfo(FULL, "Reprotect resynchronizes the pair"),
        C.FAILOVER: CapabilityInfo(FULL, "Automated failover"),
        C.VOLUME_GROUPS: CapabilityInfo(FULL, "Replication groups"),
        C.CONSISTENCY_GROUPS: CapabilityInfo(FULL, "Application consistency"),
        C.HIGH_THROUGHPUT: CapabilityInfo(FULL, "Optimized for high throughput"),
        C.LOW_LATENCY: CapabilityInfo(FULL, "Sub-millisecond latency"),
        C.MULTI_REGION: CapabilityInfo(FULL, "Multi-site deployments"),
    },
}

MODE_CAPABILITY = {
    ReplicationMode.SYNCHRONOUS: C.SYNC_REPLICATION,
    ReplicationMode.ASYNCHRONOUS: C.ASYNC_REPLICATION,
    ReplicationMode.CONTINUOUS: C.ASYNC_REPLICATION,
    ReplicationMode.INTERVAL: C.ASYNC_REPLICATION,
    ReplicationMode.EVENTUAL: C.ASYNC_REPLICATION,
}

STATE_CAPABILITY = {
    ReplicationState.PROMOTING: C.SOURCE_PROMOTION,
    ReplicationState.DEMOTING: C.REPLICA_DEMOTION,
    ReplicationState.SYNCING: C.RESYNC,
}

MIRRORING_MODE_CAPABILITY = {
    "journal": C.JOURNAL_BASED,
    "snapshot": C.SNAPSHOT_BASED,
}


def static_capabilities(backend: BackendIdentity, version: Optional[str] = None,
                        health: HealthLevel = HealthLevel.UNKNOWN) -> BackendCapabilities:
    """Build the capability set for a backend; unlisted capabilities are none."""
    matrix = CAPABILITY_MATRIX[backend]
    capabilities = {
        capability: matrix.get(capability, CapabilityInfo(CapabilityLevel.NONE, "Not supported"))
        for capability in Capability
    }
    return BackendCapabilities(backend=backend, capabilities=capabilities,
                               version=version, health=health)


class CapabilityRegistry:
    """Holds the last known capabilities of each backend."""

    def __init__(self):
        self._capabilities: Dict[BackendIdentity, BackendCapabilities] = {}
        self._lock = threading.RLock()

    def register(self, capabilities: BackendCapabilities):
        with self._lock:
            self._capabilities[capabilities.backend] = capabilities
        logger.debug(f"Registered capabilities for {capabilities.backend.value} "
                     f"(version={capabilities.version}, health={capabilities.health.value})")

    def get(self, backend: BackendIdentity) -> BackendCapabilities:
        with self._lock:
            found = self._capabilities.get(backend)
        return found if found is not None else static_capabilities(backend)

    def is_supported(self, backend: BackendIdentity, capability: Capability,
                     min_level: CapabilityLevel = CapabilityLevel.BASIC) -> bool:
        return self.get(backend).level(capability).at_least(min_level)

    def supported_backends(self, capability: Capability,
                           min_level: CapabilityLevel = CapabilityLevel.BASIC) -> List[BackendIdentity]:
        return [b for b in BackendIdentity if self.is_supported(b, capability, min_level)]

    def validate(self, backend: BackendIdentity, state: ReplicationState, mode: ReplicationMode,
                 extensions: Optional[Dict] = None, group: bool = False):
        """Reject combinations the backend cannot satisfy.

        Raises:
            UnsupportedCapabilityError: Naming the missing capability
        """
        capabilities = self.get(backend)

        required = MODE_CAPABILITY[mode]
        if capabilities.level(required) == CapabilityLevel.NONE:
            raise UnsupportedCapabilityError(
                f"backend {backend.value} does not support replication mode {mode.value}")

        required = STATE_CAPABILITY.get(state)
        if required is not None and capabilities.level(required) == CapabilityLevel.NONE:
            raise UnsupportedCapabilityError(
                f"backend {backend.value} does not support replication state {state.value}")

        if group and capabilities.level(C.VOLUME_GROUPS) == CapabilityLevel.NONE:
            raise UnsupportedCapabilityError(
                f"backend {backend.value} does not support volume groups")

        mirroring_mode = (extensions or {}).get("mirroringMode")
        if backend == BackendIdentity.CEPH and mirroring_mode is not None:
            required = MIRRORING_MODE_CAPABILITY.get(mirroring_mode)
            if required is None or capabilities.level(required) == CapabilityLevel.NONE:
                raise UnsupportedCapabilityError(
                    f"ceph backend does not support mirroring mode {mirroring_mode}")
