"""Consistency checks over the translation tables."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..errors import TranslationError
from ..models import BackendIdentity, ReplicationMode, ReplicationState
from . import maps
from .engine import TranslationEngine


@dataclass
class MappingStatistics:
    backend: BackendIdentity
    forward_states: int
    reverse_states: int
    forward_modes: int
    reverse_modes: int
    aliases: List[str] = field(default_factory=list)
    backend_only_values: List[str] = field(default_factory=list)


class TranslationValidator:
    def __init__(self, engine: Optional[TranslationEngine] = None):
        self.engine = engine or TranslationEngine()

    def validate_backend(self, backend: BackendIdentity) -> List[TranslationError]:
        """Check one backend's tables and return every problem found."""
        errors = []
        forward = self.engine.state_to_backend.get(backend, {})
        reverse = self.engine.state_from_backend.get(backend, {})

        for state in ReplicationState:
            if state not in forward:
                errors.append(TranslationError(TranslationError.MISSING_MAPPING, backend.value,
                                               "state", state.value, "unified state has no backend value"))
                continue
            value = forward[state]
            if value not in reverse:
                errors.append(TranslationError(TranslationError.MISSING_MAPPING, backend.value,
                                               "state", value, "backend value has no reverse mapping"))
                continue
            if reverse[value] != state and not self.engine.is_alias(backend, state):
                errors.append(TranslationError(
                    TranslationError.INCONSISTENT_MAPPING, backend.value, "state", state.value,
                    f"round trip yields '{reverse[value].value}'"))

        modes_forward = self.engine.mode_to_backend.get(backend, {})
        modes_reverse = self.engine.mode_from_backend.get(backend, {})
        for mode in ReplicationMode:
            value = modes_forward.get(mode)
            if value is None:
                errors.append(TranslationError(TranslationError.MISSING_MAPPING, backend.value,
                                               "mode", mode.value, "unified mode has no backend value"))
            elif value not in modes_reverse:
                errors.append(TranslationError(TranslationError.MISSING_MAPPING, backend.value,
                                               "mode", value, "backend mode has no reverse mapping"))
            elif modes_reverse[value] != mode and mode not in maps.MODE_ALIASES:
                errors.append(TranslationError(
                    TranslationError.INCONSISTENT_MAPPING, backend.value, "mode", mode.value,
                    f"round trip yields '{modes_reverse[value].value}'"))
        return errors

    def validate_all(self) -> Dict[BackendIdentity, List[TranslationError]]:
        return {backend: self.validate_backend(backend) for backend in BackendIdentity}

    def statistics(self, backend: BackendIdentity) -> MappingStatistics:
        forward = self.engine.state_to_backend[backend]
        reverse = self.engine.state_from_backend[backend]
        written = set(forward.values())
        return MappingStatistics(
            backend=backend,
            forward_states=len(forward),
            reverse_states=len(reverse),
            forward_modes=len(self.engine.mode_to_backend[backend]),
            reverse_modes=len(self.engine.mode_from_backend[backend]),
            aliases=sorted(s.value for s in maps.BACKEND_ALIASES[backend]),
            backend_only_values=sorted(v for v in reverse if v not in written),
        )
