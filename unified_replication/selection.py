"""Backend selection.

Selection is a pure function of the request and a discovery snapshot, so the
same inputs always pick the same backend.
"""

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from .discovery.types import DiscoveryResult
from .errors import BackendUnavailableError, ConfigurationError
from .models import BackendIdentity, Endpoint, Extensions

logger = logging.getLogger(__name__)

# Ordered: the first matching pattern wins.
PROVISIONER_PATTERNS: Sequence[Tuple[Tuple[str, ...], BackendIdentity]] = (
    (("rbd.csi.ceph.com", "cephfs", "ceph"), BackendIdentity.CEPH),
    (("trident", "netapp"), BackendIdentity.TRIDENT),
    (("powerstore", "dellemc"), BackendIdentity.POWERSTORE),
)

STORAGE_CLASS_PATTERNS: Sequence[Tuple[Tuple[str, ...], BackendIdentity]] = (
    (("ceph", "rbd"), BackendIdentity.CEPH),
    (("trident", "netapp", "ontap"), BackendIdentity.TRIDENT),
    (("powerstore", "dell"), BackendIdentity.POWERSTORE),
)


def _match(value: str, patterns) -> Optional[BackendIdentity]:
    text = (value or "").lower()
    for needles, backend in patterns:
        if any(needle in text for needle in needles):
            return backend
    return None


def detect_backend_from_provisioner(provisioner: str) -> BackendIdentity:
    """Map a CSI provisioner name to a backend.

    Raises:
        ConfigurationError: If the provisioner is empty or unrecognised
    """
    if not provisioner:
        raise ConfigurationError("replication class has no provisioner", reason="ConfigurationError")
    backend = _match(provisioner, PROVISIONER_PATTERNS)
    if backend is None:
        raise ConfigurationError(f"unable to detect backend from provisioner: {provisioner}",
                                 reason="UnknownProvisioner")
    return backend


def infer_backend_from_endpoints(endpoints: Iterable[Optional[Endpoint]]) -> Optional[BackendIdentity]:
    for endpoint in endpoints:
        if endpoint is None:
            continue
        backend = _match(endpoint.storage_class, STORAGE_CLASS_PATTERNS)
        if backend is not None:
            return backend
    return None


def select_backend(extensions: Optional[Extensions],
                   provisioner: Optional[str],
                   endpoints: Iterable[Optional[Endpoint]],
                   discovery: DiscoveryResult,
                   preference: List[BackendIdentity]) -> BackendIdentity:
    """Pick the backend for a request.

    Order: explicit extension hint, replication class provisioner, endpoint
    storage class naming, then the first available backend in preference order.

    Raises:
        BackendUnavailableError: If the chosen backend is not available
        ConfigurationError: If the provisioner cannot be mapped
    """
    chosen = extensions.explicit_backend() if extensions is not None else None
    source = "extension hint"
    if chosen is None and provisioner is not None:
        chosen = detect_backend_from_provisioner(provisioner)
        source = "class provisioner"
    if chosen is None:
        chosen = infer_backend_from_endpoints(endpoints)
        source = "endpoint storage class"

    if chosen is not None:
        if not discovery.is_available(chosen):
            raise BackendUnavailableError(chosen.value, indeterminate=discovery.is_unknown(chosen))
        logger.debug(f"Selected backend {chosen.value} from {source}")
        return chosen

    for backend in preference:
        if discovery.is_available(backend):
            logger.debug(f"Selected backend {backend.value} as first available")
            return backend
    raise BackendUnavailableError(None, "no replication backend available in cluster",
                                  indeterminate=any(discovery.is_unknown(b) for b in preference))
