"""Data models for unified volume replication."""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import ConfigurationError
from .kube.kinds import ResourceKind, UNIFIED_VOLUME_GROUP_REPLICATION, UNIFIED_VOLUME_REPLICATION

NAME_PATTERN = re.compile(r'^[a-z0-9]([a-z0-9\-\.]*[a-z0-9])?$')
DURATION_PATTERN = re.compile(r'^[0-9]+(s|m|h|d)$')

FINALIZER = "replication.unified.io/finalizer"
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGER_NAME = "unified-replication-operator"


# Enums
class ReplicationState(str, Enum):
    SOURCE = "source"
    REPLICA = "replica"
    PROMOTING = "promoting"
    DEMOTING = "demoting"
    SYNCING = "syncing"
    FAILED = "failed"

    @classmethod
    def parse(cls, value) -> "ReplicationState":
        """Parse a state, accepting the csi-addons role names as aliases."""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        text = ROLE_ALIASES.get(text, text)
        try:
            return cls(text)
        except ValueError:
            raise ConfigurationError(
                f"invalid replication state '{value}'", reason="InvalidIntent"
            )


ROLE_ALIASES = {
    "primary": "source",
    "secondary": "replica",
    "resync": "syncing",
}


class ReplicationMode(str, Enum):
    SYNCHRONOUS = "synchronous"
    ASYNCHRONOUS = "asynchronous"
    CONTINUOUS = "continuous"
    INTERVAL = "interval"
    EVENTUAL = "eventual"

    @classmethod
    def parse(cls, value) -> "ReplicationMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigurationError(
                f"invalid replication mode '{value}'", reason="InvalidIntent"
            )


class BackendIdentity(str, Enum):
    CEPH = "ceph"
    TRIDENT = "trident"
    POWERSTORE = "powerstore"

    @property
    def label(self) -> str:
        return BACKEND_LABELS[self]

    @classmethod
    def parse(cls, value) -> "BackendIdentity":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigurationError(f"unknown backend '{value}'", reason="UnknownBackend")


BACKEND_LABELS = {
    BackendIdentity.CEPH: "Ceph-CSI (native-compatible)",
    BackendIdentity.TRIDENT: "NetApp Trident (state-named)",
    BackendIdentity.POWERSTORE: "Dell PowerStore (action-named)",
}


class Operation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Endpoint:
    cluster: str
    region: str
    storage_class: str


@dataclass
class VolumeMapping:
    source_pvc: str
    source_namespace: Optional[str] = None
    destination_volume_handle: Optional[str] = None
    destination_namespace: Optional[str] = None


@dataclass
class Schedule:
    mode: str = "continuous"
    rpo: Optional[str] = None
    rto: Optional[str] = None


@dataclass
class Extensions:
    """Backend-specific hints attached to an intent."""
    backend: Optional[str] = None
    ceph: Dict[str, Any] = field(default_factory=dict)
    trident: Dict[str, Any] = field(default_factory=dict)
    powerstore: Dict[str, Any] = field(default_factory=dict)

    def explicit_backend(self) -> Optional[BackendIdentity]:
        """Return the backend named explicitly, if any.

        An explicit ``backend`` value wins; otherwise a single populated
        backend block counts as a hint.
        """
        if self.backend:
            return BackendIdentity.parse(self.backend)
        hinted = [b for b in BackendIdentity if getattr(self, b.value)]
        if len(hinted) == 1:
            return hinted[0]
        return None

    def for_backend(self, backend: BackendIdentity) -> Dict[str, Any]:
        return getattr(self, backend.value)


@dataclass
class Condition:
    type: str
    status: bool
    reason: str
    message: str = ""
    observed_generation: int = 0
    last_transition_time: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "status": "True" if self.status else "False",
            "reason": self.reason,
            "message": self.message,
            "observedGeneration": self.observed_generation,
            "lastTransitionTime": self.last_transition_time.isoformat(),
        }


class _ConditionsMixin:
    conditions: List[Condition]

    def get_condition(self, condition_type: str) -> Optional[Condition]:
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None

    def set_condition(self, condition: Condition):
        """Insert or replace a condition, keeping the transition time when unchanged."""
        existing = self.get_condition(condition.type)
        if existing is None:
            self.conditions.append(condition)
            return
        if existing.status == condition.status:
            condition.last_transition_time = existing.last_transition_time
        self.conditions[self.conditions.index(existing)] = condition


@dataclass
class IntentStatus(_ConditionsMixin):
    state: Optional[ReplicationState] = None
    # Last desired state the backend accepted; the observed state may lag behind it.
    requested_state: Optional[ReplicationState] = None
    mode: Optional[ReplicationMode] = None
    backend: Optional[BackendIdentity] = None
    message: str = ""
    last_sync_time: Optional[str] = None
    last_sync_duration: Optional[str] = None
    observed_generation: int = 0
    conditions: List[Condition] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value if self.state else None,
            "requestedState": self.requested_state.value if self.requested_state else None,
            "mode": self.mode.value if self.mode else None,
            "backend": self.backend.value if self.backend else None,
            "message": self.message,
            "lastSyncTime": self.last_sync_time,
            "lastSyncDuration": self.last_sync_duration,
            "observedGeneration": self.observed_generation,
            "conditions": [c.to_dict() for c in self.conditions],
        }


@dataclass
class ReplicationIntent:
    """The unified desired-state object for one volume."""
    name: str
    namespace: str
    replication_state: ReplicationState
    volume_mapping: VolumeMapping
    replication_mode: ReplicationMode = ReplicationMode.ASYNCHRONOUS
    source_endpoint: Optional[Endpoint] = None
    destination_endpoint: Optional[Endpoint] = None
    schedule: Schedule = field(default_factory=Schedule)
    extensions: Extensions = field(default_factory=Extensions)
    replication_class: Optional[str] = None
    auto_resync: bool = False
    uid: str = ""
    generation: int = 1
    labels: Dict[str, str] = field(default_factory=dict)
    finalizers: List[str] = field(default_factory=list)
    deletion_timestamp: Optional[datetime] = None
    status: IntentStatus = field(default_factory=IntentStatus)

    def __post_init__(self):
        self.replication_state = ReplicationState.parse(self.replication_state)
        self.replication_mode = ReplicationMode.parse(self.replication_mode)

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def pvc_name(self) -> str:
        return self.volume_mapping.source_pvc

    @property
    def pvc_namespace(self) -> str:
        return self.volume_mapping.source_namespace or self.namespace

    def owner_reference(self) -> Dict[str, Any]:
        return owner_reference_for(UNIFIED_VOLUME_REPLICATION, self.name, self.uid)

    def validate(self):
        """Validate the intent.

        Raises:
            ConfigurationError: If any field is missing or malformed
        """
        _validate_name("name", self.name)
        _validate_name("namespace", self.namespace)

        if not self.volume_mapping.source_pvc:
            raise _invalid("volume mapping source pvcName cannot be empty")
        _validate_name("volume mapping source pvcName", self.volume_mapping.source_pvc)
        if self.volume_mapping.destination_volume_handle is not None \
                and not self.volume_mapping.destination_volume_handle:
            raise _invalid("volume mapping destination volumeHandle cannot be empty")

        if self.source_endpoint is not None:
            _validate_endpoint("source", self.source_endpoint)
        if self.destination_endpoint is not None:
            _validate_endpoint("destination", self.destination_endpoint)
        if self.source_endpoint is not None and self.destination_endpoint is not None:
            src, dst = self.source_endpoint, self.destination_endpoint
            if src.cluster == dst.cluster and src.storage_class == dst.storage_class:
                raise _invalid(
                    "source and destination endpoints cannot be identical "
                    f"(cluster: {src.cluster}, region: {src.region}, storageClass: {src.storage_class})"
                )

        _validate_schedule(self.schedule)

        mirroring_mode = self.extensions.ceph.get("mirroringMode")
        if mirroring_mode is not None and mirroring_mode not in ("journal", "snapshot"):
            raise _invalid(
                f"invalid mirroring mode '{mirroring_mode}', must be one of: journal, snapshot"
            )


@dataclass
class ReplicationClass:
    name: str
    provisioner: str
    parameters: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> "ReplicationClass":
        spec = obj.get("spec", {})
        return cls(
            name=obj.get("metadata", {}).get("name", ""),
            provisioner=spec.get("provisioner", ""),
            parameters=dict(spec.get("parameters") or {}),
        )


@dataclass
class GroupStatus(_ConditionsMixin):
    state: Optional[ReplicationState] = None
    requested_state: Optional[ReplicationState] = None
    backend: Optional[BackendIdentity] = None
    message: str = ""
    persistent_volume_claims_ref_list: List[str] = field(default_factory=list)
    observed_generation: int = 0
    conditions: List[Condition] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value if self.state else None,
            "requestedState": self.requested_state.value if self.requested_state else None,
            "backend": self.backend.value if self.backend else None,
            "message": self.message,
            "persistentVolumeClaimsRefList": [{"name": n} for n in self.persistent_volume_claims_ref_list],
            "observedGeneration": self.observed_generation,
            "conditions": [c.to_dict() for c in self.conditions],
        }


@dataclass
class ReplicationGroup:
    """A label-selected set of volumes replicated as one consistency unit."""
    name: str
    namespace: str
    selector: Dict[str, str]
    replication_state: ReplicationState
    replication_mode: ReplicationMode = ReplicationMode.ASYNCHRONOUS
    replication_class: Optional[str] = None
    schedule: Schedule = field(default_factory=Schedule)
    extensions: Extensions = field(default_factory=Extensions)
    auto_resync: bool = False
    uid: str = ""
    generation: int = 1
    finalizers: List[str] = field(default_factory=list)
    deletion_timestamp: Optional[datetime] = None
    status: GroupStatus = field(default_factory=GroupStatus)

    def __post_init__(self):
        self.replication_state = ReplicationState.parse(self.replication_state)
        self.replication_mode = ReplicationMode.parse(self.replication_mode)

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    def owner_reference(self) -> Dict[str, Any]:
        return owner_reference_for(UNIFIED_VOLUME_GROUP_REPLICATION, self.name, self.uid)

    def validate(self):
        _validate_name("name", self.name)
        _validate_name("namespace", self.namespace)
        if not self.selector:
            raise _invalid("group selector cannot be empty")
        _validate_schedule(self.schedule)


@dataclass
class BackendResourceDescriptor:
    """What an adapter writes to one backend resource."""
    kind: ResourceKind
    name: str
    namespace: str
    spec: Dict[str, Any]
    labels: Dict[str, str] = field(default_factory=dict)
    owner_references: List[Dict[str, Any]] = field(default_factory=list)

    def to_body(self) -> Dict[str, Any]:
        metadata = {
            "name": self.name,
            "labels": dict(self.labels),
            "ownerReferences": list(self.owner_references),
        }
        if self.kind.namespaced:
            metadata["namespace"] = self.namespace
        return {
            "apiVersion": self.kind.api_version,
            "kind": self.kind.kind,
            "metadata": metadata,
            "spec": self.spec,
        }

    def matches(self, existing: Optional[Dict[str, Any]]) -> bool:
        """Check whether a stored object already carries this descriptor's content."""
        if existing is None:
            return False
        metadata = existing.get("metadata", {})
        stored_labels = metadata.get("labels") or {}
        if any(stored_labels.get(k) != v for k, v in self.labels.items()):
            return False
        stored_owners = {o.get("uid") for o in metadata.get("ownerReferences") or []}
        if any(o.get("uid") not in stored_owners for o in self.owner_references):
            return False
        return existing.get("spec") == self.spec


@dataclass
class UnifiedStatus:
    backend: BackendIdentity
    state: Optional[ReplicationState]
    backend_state: Optional[str] = None
    mode: Optional[ReplicationMode] = None
    message: str = ""
    last_sync_time: Optional[str] = None
    last_sync_duration: Optional[str] = None
    exists: bool = True


@dataclass
class ReconcileResult:
    backend: BackendIdentity
    resources: List[str] = field(default_factory=list)
    writes: int = 0
    message: str = ""

    @property
    def changed(self) -> bool:
        return self.writes > 0


def owner_reference_for(kind: ResourceKind, name: str, uid: str) -> Dict[str, Any]:
    return {
        "apiVersion": kind.api_version,
        "kind": kind.kind,
        "name": name,
        "uid": uid,
        "controller": True,
        "blockOwnerDeletion": True,
    }


def _invalid(message: str) -> ConfigurationError:
    return ConfigurationError(message, reason="InvalidIntent")


def _validate_name(field_name: str, value: str):
    if not value:
        raise _invalid(f"{field_name} cannot be empty")
    if len(value) > 253 or not NAME_PATTERN.match(value):
        raise _invalid(f"{field_name} '{value}' is not a valid resource name")


def _validate_endpoint(role: str, endpoint: Endpoint):
    if not endpoint.cluster:
        raise _invalid(f"{role} endpoint cluster cannot be empty")
    if not endpoint.region:
        raise _invalid(f"{role} endpoint region cannot be empty")
    if not endpoint.storage_class:
        raise _invalid(f"{role} endpoint storageClass cannot be empty")


def _validate_schedule(schedule: Schedule):
    if schedule.mode not in ("continuous", "interval", "manual"):
        raise _invalid(
            f"invalid schedule mode '{schedule.mode}', must be one of: continuous, interval, manual"
        )
    for label, value in (("rpo", schedule.rpo), ("rto", schedule.rto)):
        if value is not None and not DURATION_PATTERN.match(value):
            raise _invalid(f"invalid schedule {label} '{value}', expected a duration such as 15m")
    if schedule.mode == "interval" and not schedule.rpo:
        raise _invalid("schedule mode interval requires an rpo")
