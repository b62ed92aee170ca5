"""Replication state machine.

Transition legality is table driven. Every decision comes back as a
``TransitionVerdict`` carrying a reason string: legal transitions say what
they accomplish, illegal ones say why they are disallowed.
"""

import logging
import threading
from collections import defaultdict, deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Dict, List, Optional, Tuple

from .errors import InvalidTransitionError
from .models import ReplicationState, utcnow

logger = logging.getLogger(__name__)

S = ReplicationState

MAX_HISTORY = 100


class TransitionOperation(str, Enum):
    CREATE = "create"
    NOOP = "noop"
    PROMOTE = "promote"
    DEMOTE = "demote"
    RESYNC = "resync"
    COMPLETE = "complete"
    RECOVER = "recover"
    FAIL = "fail"


@dataclass(frozen=True)
class TransitionVerdict:
    from_state: Optional[ReplicationState]
    to_state: ReplicationState
    allowed: bool
    reason: str
    operation: Optional[TransitionOperation] = None

    @property
    def code(self) -> str:
        return "TransitionAllowed" if self.allowed else "InvalidStateTransition"


@dataclass
class TransitionRecord:
    from_state: Optional[ReplicationState]
    to_state: ReplicationState
    operation: TransitionOperation
    timestamp: object = field(default_factory=utcnow)


# (from, to) -> (operation, reason)
TRANSITIONS: Dict[Tuple[ReplicationState, ReplicationState], Tuple[TransitionOperation, str]] = {
    (S.REPLICA, S.PROMOTING): (
        TransitionOperation.PROMOTE,
        "replica can start promotion to source (failover)",
    ),
    (S.REPLICA, S.SYNCING): (
        TransitionOperation.RESYNC,
        "replica can start resynchronization with its source",
    ),
    (S.PROMOTING, S.SOURCE): (
        TransitionOperation.COMPLETE,
        "promotion completes and the volume becomes source",
    ),
    (S.SOURCE, S.DEMOTING): (
        TransitionOperation.DEMOTE,
        "source can start demotion to replica (failback)",
    ),
    (S.DEMOTING, S.REPLICA): (
        TransitionOperation.COMPLETE,
        "demotion completes and the volume becomes replica",
    ),
    (S.SYNCING, S.REPLICA): (
        TransitionOperation.COMPLETE,
        "resynchronization completes and the volume returns to replica",
    ),
    (S.FAILED, S.SYNCING): (
        TransitionOperation.RECOVER,
        "failed volume can recover by resynchronizing",
    ),
    (S.FAILED, S.REPLICA): (
        TransitionOperation.RECOVER,
        "failed volume can recover directly to replica",
    ),
}

# Illegal pairs whose explanation is more specific than the generic one.
DISALLOWED_REASONS: Dict[Tuple[ReplicationState, ReplicationState], str] = {
    (S.SOURCE, S.REPLICA): "source cannot become replica directly; demote it first",
    (S.REPLICA, S.SOURCE): "replica cannot become source directly; promote it first",
    (S.PROMOTING, S.REPLICA): (
        "promoting cannot return to replica directly; the promotion must complete to source "
        "and then be demoted"
    ),
    (S.FAILED, S.PROMOTING): "failed cannot be promoted directly; resynchronize it first",
    (S.FAILED, S.SOURCE): "failed cannot become source directly; resynchronize it first",
}

INITIAL_STATES = (S.SOURCE, S.REPLICA)


def check_transition(from_state: Optional[ReplicationState], to_state: ReplicationState) -> TransitionVerdict:
    """Decide whether ``from_state -> to_state`` is legal.

    ``from_state`` of None means the volume has no observed state yet.
    """
    to_state = ReplicationState.parse(to_state)

    if from_state is None:
        if to_state in INITIAL_STATES:
            return TransitionVerdict(None, to_state, True,
                                     f"new volume can be created as {to_state.value}",
                                     TransitionOperation.CREATE)
        return TransitionVerdict(None, to_state, False,
                                 f"new volume cannot be created in state {to_state.value}; "
                                 "start as source or replica")

    from_state = ReplicationState.parse(from_state)

    if from_state == to_state:
        return TransitionVerdict(from_state, to_state, True,
                                 f"{from_state.value} can remain {to_state.value} (no change)",
                                 TransitionOperation.NOOP)

    if to_state == S.FAILED:
        return TransitionVerdict(from_state, to_state, True,
                                 f"{from_state.value} can fail at any time; failure interrupts any operation",
                                 TransitionOperation.FAIL)

    entry = TRANSITIONS.get((from_state, to_state))
    if entry is not None:
        operation, reason = entry
        return TransitionVerdict(from_state, to_state, True, reason, operation)

    reason = DISALLOWED_REASONS.get(
        (from_state, to_state),
        f"{from_state.value} cannot transition to {to_state.value}",
    )
    return TransitionVerdict(from_state, to_state, False, reason)


class StateMachine:
    """Validates transitions and keeps a bounded per-volume history."""

    def __init__(self, max_history: int = MAX_HISTORY):
        self.max_history = max_history
        self._history: Dict[str, Deque[TransitionRecord]] = defaultdict(
            lambda: deque(maxlen=self.max_history)
        )
        self._lock = threading.Lock()

    def check(self, from_state: Optional[ReplicationState], to_state: ReplicationState) -> TransitionVerdict:
        return check_transition(from_state, to_state)

    def validate(self, from_state: Optional[ReplicationState], to_state: ReplicationState) -> TransitionVerdict:
        """Validate a transition.

        Returns:
            TransitionVerdict: The verdict for a legal transition

        Raises:
            InvalidTransitionError: If the transition is illegal
        """
        verdict = check_transition(from_state, to_state)
        if not verdict.allowed:
            raise InvalidTransitionError(verdict.reason, from_state=from_state, to_state=to_state)
        return verdict

    def valid_targets(self, from_state: ReplicationState) -> List[ReplicationState]:
        return [s for s in ReplicationState if check_transition(from_state, s).allowed]

    def record(self, key: str, verdict: TransitionVerdict):
        if not verdict.allowed or verdict.operation == TransitionOperation.NOOP:
            return
        with self._lock:
            self._history[key].append(
                TransitionRecord(verdict.from_state, verdict.to_state, verdict.operation)
            )
        logger.debug(f"Recorded transition for {key}: {verdict.from_state} -> {verdict.to_state.value}")

    def history(self, key: str) -> List[TransitionRecord]:
        with self._lock:
            return list(self._history.get(key, ()))

    def forget(self, key: str):
        with self._lock:
            self._history.pop(key, None)
