"""Translation between unified replication vocabulary and backend vocabularies."""

import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from ..errors import ConfigurationError, TranslationError
from ..models import BackendIdentity, ReplicationMode, ReplicationState
from . import maps

logger = logging.getLogger(__name__)

DURATION_PATTERN = re.compile(r'^[0-9]+(s|m|h|d)$')

CEPH_MIRRORING_MODES = ("journal", "snapshot")

# Parameter keys whose value is a duration such as "15m".
DURATION_KEYS = {
    BackendIdentity.CEPH: ("schedulingInterval",),
    BackendIdentity.TRIDENT: ("replicationSchedule", "groupReplicationSchedule"),
    BackendIdentity.POWERSTORE: ("rpo",),
}

# Parameter keys that must not be blank when present.
NON_EMPTY_KEYS = {
    BackendIdentity.CEPH: (),
    BackendIdentity.TRIDENT: ("replicationPolicy", "remoteVolume"),
    BackendIdentity.POWERSTORE: ("protectionPolicy", "remoteSystem"),
}


class TranslationEngine:
    """Bidirectional state and mode translation for every backend."""

    def __init__(self):
        self.state_to_backend = maps.STATE_TO_BACKEND
        self.state_from_backend = maps.STATE_FROM_BACKEND
        self.mode_to_backend = maps.MODE_TO_BACKEND
        self.mode_from_backend = maps.MODE_FROM_BACKEND

    def to_backend(self, state: Union[ReplicationState, str], mode: Union[ReplicationMode, str],
                   backend: BackendIdentity) -> Tuple[str, str]:
        """Translate a unified state and mode for a backend.

        Args:
            state: Unified state (csi-addons role names are accepted)
            mode: Unified replication mode
            backend: Target backend

        Returns:
            Tuple[str, str]: Backend state value and backend mode value

        Raises:
            TranslationError: If the mode has no mapping for the backend
        """
        return (self.translate_state_to_backend(backend, state),
                self.translate_mode_to_backend(backend, mode))

    def from_backend(self, backend_state: str, backend: BackendIdentity) -> ReplicationState:
        """Translate a backend-reported state value back to a unified state."""
        return self.translate_state_from_backend(backend, backend_state)

    def translate_state_to_backend(self, backend: BackendIdentity,
                                   state: Union[ReplicationState, str]) -> str:
        backend = BackendIdentity.parse(backend)
        table = self.state_to_backend[backend]
        try:
            unified = ReplicationState.parse(state)
        except ConfigurationError:
            unified = None
        if unified is None or unified not in table:
            default = maps.SAFE_DEFAULT_STATE[backend]
            logger.warning(f"No {backend.value} mapping for state '{state}', using safe default '{default}'")
            return default
        return table[unified]

    def translate_state_from_backend(self, backend: BackendIdentity, value: str) -> ReplicationState:
        backend = BackendIdentity.parse(backend)
        try:
            return self.state_from_backend[backend][value]
        except KeyError:
            raise TranslationError(TranslationError.UNSUPPORTED_MAPPING, backend.value, "state",
                                   str(value), "backend state has no unified equivalent")

    def translate_mode_to_backend(self, backend: BackendIdentity,
                                  mode: Union[ReplicationMode, str]) -> str:
        backend = BackendIdentity.parse(backend)
        try:
            unified = mode if isinstance(mode, ReplicationMode) else ReplicationMode(str(mode).lower())
        except ValueError:
            raise TranslationError(TranslationError.INVALID_VALUE, backend.value, "mode",
                                   str(mode), "unknown replication mode")
        try:
            return self.mode_to_backend[backend][unified]
        except KeyError:
            raise TranslationError(TranslationError.MISSING_MAPPING, backend.value, "mode",
                                   unified.value, "mode has no backend equivalent")

    def translate_mode_from_backend(self, backend: BackendIdentity, value: str) -> ReplicationMode:
        backend = BackendIdentity.parse(backend)
        try:
            return self.mode_from_backend[backend][value]
        except KeyError:
            raise TranslationError(TranslationError.UNSUPPORTED_MAPPING, backend.value, "mode",
                                   str(value), "backend mode has no unified equivalent")

    def is_alias(self, backend: BackendIdentity, state: ReplicationState) -> bool:
        """True for unified states that share a backend value with another state."""
        return state in maps.BACKEND_ALIASES[BackendIdentity.parse(backend)]

    def supported_backend_states(self, backend: BackendIdentity) -> List[str]:
        return sorted(self.state_from_backend[BackendIdentity.parse(backend)])

    def supported_backend_modes(self, backend: BackendIdentity) -> List[str]:
        return sorted(self.mode_from_backend[BackendIdentity.parse(backend)])

    def validate_parameters(self, backend: BackendIdentity, parameters: Optional[Mapping[str, Any]]):
        """Validate a free-form configuration map for a backend.

        Unknown keys are passed through untouched; known keys must carry a
        well-formed value.

        Raises:
            TranslationError: Naming the offending key and value
        """
        backend = BackendIdentity.parse(backend)
        for key, value in (parameters or {}).items():
            if backend == BackendIdentity.CEPH and key == "mirroringMode":
                if value not in CEPH_MIRRORING_MODES:
                    raise TranslationError(
                        TranslationError.INVALID_VALUE, backend.value, key, str(value),
                        f"must be one of: {', '.join(CEPH_MIRRORING_MODES)}")
            elif key in DURATION_KEYS[backend]:
                if not isinstance(value, str) or not DURATION_PATTERN.match(value):
                    raise TranslationError(
                        TranslationError.INVALID_VALUE, backend.value, key, str(value),
                        "expected a duration such as 15m")
            elif key in NON_EMPTY_KEYS[backend] or key.startswith("remoteVolume-"):
                if not isinstance(value, str) or not value.strip():
                    raise TranslationError(
                        TranslationError.INVALID_VALUE, backend.value, key, str(value),
                        "value cannot be empty")
            elif key in ("replicationMode", "mode"):
                self.translate_mode_to_backend(backend, value)

    def validate_extensions(self, backend: BackendIdentity, extensions: Dict[str, Any]):
        """Validate the backend block of an intent's extensions."""
        self.validate_parameters(backend, {k: v for k, v in (extensions or {}).items()
                                           if isinstance(v, str)})
