"""Unified volume replication control plane."""

from .engine import ControllerEngine
from .errors import ReplicationError
from .models import (
    BackendIdentity,
    Operation,
    ReplicationGroup,
    ReplicationIntent,
    ReplicationMode,
    ReplicationState,
)

__version__ = "0.1.0"

__all__ = [
    "BackendIdentity",
    "ControllerEngine",
    "Operation",
    "ReplicationError",
    "ReplicationGroup",
    "ReplicationIntent",
    "ReplicationMode",
    "ReplicationState",
]
