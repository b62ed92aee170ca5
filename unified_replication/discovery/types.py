"""Types produced by backend discovery."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from ..models import BackendIdentity, utcnow


class BackendStatus(str, Enum):
    AVAILABLE = "available"
    PARTIAL = "partial"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


class HealthLevel(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


class CapabilityLevel(str, Enum):
    FULL = "full"
    PARTIAL = "partial"
    BASIC = "basic"
    UNKNOWN = "unknown"
    NONE = "none"

    @property
    def rank(self) -> int:
        return LEVEL_ORDER[self]

    def at_least(self, other: "CapabilityLevel") -> bool:
        return self.rank >= other.rank


LEVEL_ORDER = {
    CapabilityLevel.NONE: 0,
    CapabilityLevel.UNKNOWN: 1,
    CapabilityLevel.BASIC: 2,
    CapabilityLevel.PARTIAL: 3,
    CapabilityLevel.FULL: 4,
}


class Capability(str, Enum):
    ASYNC_REPLICATION = "async_replication"
    SYNC_REPLICATION = "sync_replication"
    METRO_REPLICATION = "metro_replication"
    SOURCE_PROMOTION = "source_promotion"
    REPLICA_DEMOTION = "replica_demotion"
    FAILOVER = "failover"
    FAILBACK = "failback"
    RESYNC = "resync"
    SNAPSHOT_BASED = "snapshot_based"
    JOURNAL_BASED = "journal_based"
    AUTO_RESYNC = "auto_resync"
    SCHEDULED_SYNC = "scheduled_sync"
    VOLUME_GROUPS = "volume_groups"
    CONSISTENCY_GROUPS = "consistency_groups"
    HIGH_THROUGHPUT = "high_throughput"
    LOW_LATENCY = "low_latency"
    MULTI_REGION = "multi_region"
    MULTI_CLOUD = "multi_cloud"


@dataclass
class CapabilityInfo:
    level: CapabilityLevel
    description: str = ""


@dataclass
class BackendCapabilities:
    backend: BackendIdentity
    capabilities: Dict[Capability, CapabilityInfo] = field(default_factory=dict)
    version: Optional[str] = None
    health: HealthLevel = HealthLevel.UNKNOWN
    last_updated: datetime = field(default_factory=utcnow)

    def level(self, capability: Capability) -> CapabilityLevel:
        info = self.capabilities.get(capability)
        return info.level if info else CapabilityLevel.NONE

    def supported_modes(self) -> List[str]:
        modes = []
        if self.level(Capability.SYNC_REPLICATION) != CapabilityLevel.NONE:
            modes.append("synchronous")
        if self.level(Capability.ASYNC_REPLICATION) != CapabilityLevel.NONE:
            modes.append("asynchronous")
        return modes


@dataclass
class CRDInfo:
    name: str
    required: bool
    exists: bool = False
    established: bool = False
    version: Optional[str] = None
    annotations: Dict[str, str] = field(default_factory=dict)


@dataclass
class BackendDiscoveryResult:
    backend: BackendIdentity
    status: BackendStatus
    health: HealthLevel = HealthLevel.UNKNOWN
    crds: List[CRDInfo] = field(default_factory=list)
    version: Optional[str] = None
    message: str = ""
    error: Optional[str] = None
    capabilities: Optional[BackendCapabilities] = None
    last_checked: datetime = field(default_factory=utcnow)

    @property
    def available(self) -> Optional[bool]:
        """True or False when known, None when discovery itself failed."""
        if self.status == BackendStatus.UNKNOWN:
            return None
        return self.status == BackendStatus.AVAILABLE


@dataclass
class DiscoveryResult:
    backends: Dict[BackendIdentity, BackendDiscoveryResult] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    fingerprint: str = ""
    timestamp: datetime = field(default_factory=utcnow)

    def is_available(self, backend: BackendIdentity) -> bool:
        result = self.backends.get(backend)
        return bool(result and result.available)

    def is_unknown(self, backend: BackendIdentity) -> bool:
        """True when discovery failed for the backend, so availability is undecided."""
        result = self.backends.get(backend)
        return result is not None and result.status == BackendStatus.UNKNOWN

    def available_backends(self, preference: List[BackendIdentity]) -> List[BackendIdentity]:
        """Available backends in the given preference order."""
        return [b for b in preference if self.is_available(b)]

    def to_dict(self) -> Dict:
        return {
            "fingerprint": self.fingerprint,
            "timestamp": self.timestamp.isoformat(),
            "errors": list(self.errors),
            "backends": {
                backend.value: {
                    "status": result.status.value,
                    "available": result.available,
                    "health": result.health.value,
                    "version": result.version,
                    "message": result.message,
                    "lastChecked": result.last_checked.isoformat(),
                }
                for backend, result in self.backends.items()
            },
        }
