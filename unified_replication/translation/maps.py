"""Static translation tables between unified and backend vocabularies."""

from typing import Dict, FrozenSet

from ..models import BackendIdentity, ReplicationMode, ReplicationState

B = BackendIdentity
S = ReplicationState
M = ReplicationMode


# Unified state -> backend value. Every unified state has exactly one entry.
STATE_TO_BACKEND: Dict[BackendIdentity, Dict[ReplicationState, str]] = {
    B.CEPH: {
        S.SOURCE: "primary",
        S.REPLICA: "secondary",
        S.SYNCING: "resync",
        S.PROMOTING: "primary",
        S.DEMOTING: "secondary",
        S.FAILED: "secondary",
    },
    B.TRIDENT: {
        S.SOURCE: "established",
        S.REPLICA: "reestablished",
        S.PROMOTING: "promoted",
        S.DEMOTING: "reestablished",
        S.SYNCING: "reestablished",
        S.FAILED: "reestablished",
    },
    B.POWERSTORE: {
        S.SOURCE: "Failover",
        S.REPLICA: "Sync",
        S.SYNCING: "Reprotect",
        S.PROMOTING: "Failover",
        S.DEMOTING: "Sync",
        S.FAILED: "Sync",
    },
}

# Backend value -> unified state. Covers every value each backend is known to
# write or report, including backend-only transitional values.
STATE_FROM_BACKEND: Dict[BackendIdentity, Dict[str, ReplicationState]] = {
    B.CEPH: {
        "primary": S.SOURCE,
        "secondary": S.REPLICA,
        "resync": S.SYNCING,
        "resync-promote": S.PROMOTING,
        "resync-demote": S.DEMOTING,
        "error": S.FAILED,
    },
    B.TRIDENT: {
        "established": S.SOURCE,
        "reestablished": S.REPLICA,
        "promoted": S.SOURCE,
        "established-replica": S.REPLICA,
        "established-syncing": S.SYNCING,
        "established-failed": S.FAILED,
    },
    B.POWERSTORE: {
        "Failover": S.SOURCE,
        "Sync": S.REPLICA,
        "Reprotect": S.SYNCING,
        "FailedOver": S.SOURCE,
        "Synchronized": S.REPLICA,
        "Syncing": S.SYNCING,
        "source": S.SOURCE,
        "destination": S.REPLICA,
        "promoting": S.PROMOTING,
        "demoting": S.DEMOTING,
        "syncing": S.SYNCING,
        "failed": S.FAILED,
    },
}

# Unified states that share a backend value with another state and therefore
# do not survive a round trip.
BACKEND_ALIASES: Dict[BackendIdentity, FrozenSet[ReplicationState]] = {
    B.CEPH: frozenset({S.PROMOTING, S.DEMOTING, S.FAILED}),
    B.TRIDENT: frozenset({S.PROMOTING, S.DEMOTING, S.SYNCING, S.FAILED}),
    B.POWERSTORE: frozenset({S.PROMOTING, S.DEMOTING, S.FAILED}),
}

# Used when a forward lookup misses.
SAFE_DEFAULT_STATE: Dict[BackendIdentity, str] = {
    B.CEPH: "secondary",
    B.TRIDENT: "reestablished",
    B.POWERSTORE: "Sync",
}


MODE_TO_BACKEND: Dict[BackendIdentity, Dict[ReplicationMode, str]] = {
    B.CEPH: {
        M.SYNCHRONOUS: "sync",
        M.ASYNCHRONOUS: "async",
        M.CONTINUOUS: "async",
        M.INTERVAL: "async",
        M.EVENTUAL: "async",
    },
    B.TRIDENT: {
        M.SYNCHRONOUS: "Sync",
        M.ASYNCHRONOUS: "Async",
        M.CONTINUOUS: "Async",
        M.INTERVAL: "Async",
        M.EVENTUAL: "Async",
    },
    B.POWERSTORE: {
        M.SYNCHRONOUS: "SYNC",
        M.ASYNCHRONOUS: "ASYNC",
        M.CONTINUOUS: "ASYNC",
        M.INTERVAL: "ASYNC",
        M.EVENTUAL: "ASYNC",
    },
}

MODE_FROM_BACKEND: Dict[BackendIdentity, Dict[str, ReplicationMode]] = {
    B.CEPH: {"sync": M.SYNCHRONOUS, "async": M.ASYNCHRONOUS},
    B.TRIDENT: {"Sync": M.SYNCHRONOUS, "Async": M.ASYNCHRONOUS},
    B.POWERSTORE: {"SYNC": M.SYNCHRONOUS, "ASYNC": M.ASYNCHRONOUS},
}

MODE_ALIASES: FrozenSet[ReplicationMode] = frozenset({M.CONTINUOUS, M.INTERVAL, M.EVENTUAL})
