from .base import GROUP_LABEL, GroupReplicationAdapter, ReplicationAdapter
from .ceph import CephAdapter, CephGroupAdapter
from .powerstore import PowerStoreAdapter, PowerStoreGroupAdapter
from .registry import AdapterRegistry, build_default_registry
from .trident import TridentAdapter, TridentGroupAdapter

__all__ = [
    "GROUP_LABEL",
    "AdapterRegistry",
    "CephAdapter",
    "CephGroupAdapter",
    "GroupReplicationAdapter",
    "PowerStoreAdapter",
    "PowerStoreGroupAdapter",
    "ReplicationAdapter",
    "TridentAdapter",
    "TridentGroupAdapter",
    "build_default_registry",
]
