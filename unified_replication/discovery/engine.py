"""Backend discovery with a TTL cache.

Discovery asks the object store which replication backends have their
resource kinds registered and established. Results are cached per
environment fingerprint; expiry is checked lazily on the next access.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..config import DEFAULT_BACKEND_PREFERENCE, DiscoveryConfig
from ..errors import DiscoveryError
from ..kube.client import ResourceClient
from ..metrics import DISCOVERY_CACHE_HITS, DISCOVERY_CACHE_MISSES, record_backend_availability
from ..models import BackendIdentity, utcnow
from .capabilities import CapabilityRegistry, static_capabilities
from .crds import BACKEND_CRDS, VERSION_ANNOTATIONS
from .types import (
    BackendCapabilities,
    BackendDiscoveryResult,
    BackendStatus,
    CRDInfo,
    DiscoveryResult,
    HealthLevel,
)

logger = logging.getLogger(__name__)


@dataclass
class _CacheEntry:
    result: DiscoveryResult
    stored_at: float


def _is_established(crd: Optional[Dict[str, Any]]) -> bool:
    if not crd:
        return False
    for condition in (crd.get("status") or {}).get("conditions") or []:
        if condition.get("type") == "Established":
            return str(condition.get("status")) == "True"
    return False


def _storage_version(crd: Dict[str, Any]) -> Optional[str]:
    for version in (crd.get("spec") or {}).get("versions") or []:
        if version.get("storage"):
            return version.get("name")
    return None


class DiscoveryEngine:
    def __init__(self, client: ResourceClient, config: Optional[DiscoveryConfig] = None,
                 capability_registry: Optional[CapabilityRegistry] = None,
                 preference: Optional[List[str]] = None,
                 clock: Callable[[], float] = time.monotonic):
        """Initialize the discovery engine.

        Args:
            client: Object store client used for CRD lookups
            config: Discovery settings; None means defaults
            capability_registry: Registry refreshed with detected capabilities
            preference: Backend preference order for availability listings
            clock: Monotonic clock used for TTL checks
        """
        self.client = client
        self.config = config
        self.capabilities = capability_registry or CapabilityRegistry()
        self.preference = [BackendIdentity.parse(b) for b in (preference or DEFAULT_BACKEND_PREFERENCE)]
        self._clock = clock
        self._cache: Dict[str, _CacheEntry] = {}
        self._bucket_locks: Dict[str, asyncio.Lock] = {}
        self._lock = threading.RLock()
        self.cache_hits = 0
        self.cache_misses = 0
        self.discovery_runs = 0
        self.last_discovery: Optional[datetime] = None

    def _settings(self) -> DiscoveryConfig:
        """Return the active configuration, substituting defaults where missing."""
        if self.config is None:
            logger.warning("Discovery configuration missing, using defaults")
            self.config = DiscoveryConfig()
        defaults = DiscoveryConfig()
        if self.config.cache_ttl_seconds is None:
            self.config.cache_ttl_seconds = defaults.cache_ttl_seconds
        if not self.config.timeout_per_backend:
            self.config.timeout_per_backend = defaults.timeout_per_backend
        if self.config.enable_caching is None:
            self.config.enable_caching = defaults.enable_caching
        return self.config

    async def discover_backends(self) -> DiscoveryResult:
        """Discover every backend, serving from cache while the entry is fresh.

        Returns:
            DiscoveryResult: Per-backend availability; partial on soft errors
        """
        settings = self._settings()
        if not settings.enable_caching:
            self._count_miss()
            return await self._run_discovery()

        key = self.client.fingerprint
        cached = self._lookup(key, settings)
        if cached is not None:
            return cached

        with self._lock:
            bucket_lock = self._bucket_locks.setdefault(key, asyncio.Lock())

        async with bucket_lock:
            cached = self._lookup(key, settings)
            if cached is not None:
                return cached
            self._count_miss()
            result = await self._run_discovery()
            with self._lock:
                self._cache[key] = _CacheEntry(result=result, stored_at=self._clock())
            return result

    def _lookup(self, key: str, settings: DiscoveryConfig) -> Optional[DiscoveryResult]:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            if self._clock() - entry.stored_at >= settings.cache_ttl_seconds:
                del self._cache[key]
                return None
            self.cache_hits += 1
        DISCOVERY_CACHE_HITS.inc()
        logger.debug(f"Discovery cache hit for {key}")
        return entry.result

    def _count_miss(self):
        with self._lock:
            self.cache_misses += 1
        DISCOVERY_CACHE_MISSES.inc()

    async def _run_discovery(self) -> DiscoveryResult:
        with self._lock:
            self.discovery_runs += 1
        result = DiscoveryResult(fingerprint=self.client.fingerprint)
        backends = list(BACKEND_CRDS)
        outcomes = await asyncio.gather(
            *(self._discover_bounded(backend) for backend in backends)
        )
        for backend, outcome in zip(backends, outcomes):
            result.backends[backend] = outcome
            if outcome.error:
                result.errors.append(outcome.error)
            record_backend_availability(backend.value, outcome.available)
            if outcome.capabilities is not None:
                self.capabilities.register(outcome.capabilities)

        with self._lock:
            self.last_discovery = result.timestamp
        available = [b.value for b in result.available_backends(self.preference)]
        logger.info(f"Discovery complete: available backends {available}")
        return result

    async def _discover_bounded(self, backend: BackendIdentity) -> BackendDiscoveryResult:
        timeout = self._settings().timeout_per_backend
        try:
            return await asyncio.wait_for(self.discover_backend(backend), timeout=timeout)
        except asyncio.TimeoutError:
            error = DiscoveryError(DiscoveryError.TIMEOUT, backend.value,
                                   f"no answer within {timeout}s")
        except Exception as e:
            kind = DiscoveryError.PERMISSION_DENIED if getattr(e, "status", None) in (401, 403) \
                else DiscoveryError.UNKNOWN
            error = DiscoveryError(kind, backend.value, str(e))
        logger.warning(str(error))
        return BackendDiscoveryResult(backend=backend, status=BackendStatus.UNKNOWN,
                                      health=HealthLevel.UNKNOWN, message=error.message,
                                      error=error.message)

    async def discover_backend(self, backend: BackendIdentity) -> BackendDiscoveryResult:
        """Inspect a single backend without touching the cache."""
        crds = [await self.get_crd_info(req.name, req.required) for req in BACKEND_CRDS[backend]]
        required = [crd for crd in crds if crd.required]

        missing = [crd.name for crd in required if not crd.exists]
        pending = [crd.name for crd in required if crd.exists and not crd.established]
        if missing:
            status, health = BackendStatus.UNAVAILABLE, HealthLevel.UNHEALTHY
            message = f"missing resource kinds: {', '.join(missing)}"
        elif pending:
            status, health = BackendStatus.PARTIAL, HealthLevel.DEGRADED
            message = f"resource kinds not established: {', '.join(pending)}"
        else:
            status, health = BackendStatus.AVAILABLE, HealthLevel.HEALTHY
            message = "all required resource kinds established"

        version = self._version(crds)
        capabilities = None
        if status != BackendStatus.UNAVAILABLE:
            capabilities = static_capabilities(backend, version=version, health=health)

        logger.debug(f"Backend {backend.value}: {status.value} ({message})")
        return BackendDiscoveryResult(backend=backend, status=status, health=health, crds=crds,
                                      version=version, message=message, capabilities=capabilities,
                                      last_checked=utcnow())

    def _version(self, crds: List[CRDInfo]) -> Optional[str]:
        for crd in crds:
            for annotation in VERSION_ANNOTATIONS:
                if crd.annotations.get(annotation):
                    return crd.annotations[annotation]
        for crd in crds:
            if crd.version:
                return crd.version
        return None

    async def get_crd_info(self, name: str, required: bool = True) -> CRDInfo:
        crd = await self.client.get_crd(name)
        if crd is None:
            return CRDInfo(name=name, required=required)
        return CRDInfo(
            name=name,
            required=required,
            exists=True,
            established=_is_established(crd),
            version=_storage_version(crd),
            annotations=dict((crd.get("metadata") or {}).get("annotations") or {}),
        )

    async def check_crd_ready(self, name: str) -> bool:
        """Check whether a resource kind is registered and established.

        Returns False without error when the kind is not registered; transport
        failures propagate.
        """
        info = await self.get_crd_info(name)
        return info.exists and info.established

    async def check_crd_exists(self, name: str) -> bool:
        return await self.client.exists(name)

    async def is_backend_available(self, backend: BackendIdentity) -> bool:
        result = await self.discover_backends()
        return result.is_available(BackendIdentity.parse(backend))

    async def get_available_backends(self) -> List[BackendIdentity]:
        result = await self.discover_backends()
        return result.available_backends(self.preference)

    async def detect_capabilities(self, backend: BackendIdentity) -> BackendCapabilities:
        """Inspect a backend and refresh its entry in the capability registry."""
        backend = BackendIdentity.parse(backend)
        result = await self.discover_backend(backend)
        capabilities = result.capabilities or static_capabilities(
            backend, version=result.version, health=result.health)
        self.capabilities.register(capabilities)
        return capabilities

    def get_cached_result(self) -> Optional[DiscoveryResult]:
        with self._lock:
            entry = self._cache.get(self.client.fingerprint)
            return entry.result if entry else None

    def invalidate_cache(self):
        with self._lock:
            self._cache.clear()
        logger.info("Discovery cache invalidated")

    def cache_entries(self) -> int:
        with self._lock:
            return len(self._cache)
