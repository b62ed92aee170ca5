from .capabilities import CapabilityRegistry, static_capabilities
from .engine import DiscoveryEngine
from .types import (
    BackendCapabilities,
    BackendDiscoveryResult,
    BackendStatus,
    Capability,
    CapabilityLevel,
    DiscoveryResult,
    HealthLevel,
)

__all__ = [
    "BackendCapabilities",
    "BackendDiscoveryResult",
    "BackendStatus",
    "Capability",
    "CapabilityLevel",
    "CapabilityRegistry",
    "DiscoveryEngine",
    "DiscoveryResult",
    "HealthLevel",
    "static_capabilities",
]
