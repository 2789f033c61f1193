"""
Job state transition rules.

Job lifecycle:
    CREATED -> REQUESTING -> UPLOADING -> PROCESSING -> COMPLETE | ERROR
    CREATED -> PROCESSING                  (nothing to upload)
    REQUESTING/UPLOADING -> PROCESSING     (uploads finished, seen by the update sweep)
    any non-terminal -> STALLED

COMPLETE, ERROR and STALLED are terminal. A terminal job never changes state
again, and a STALLED job is never submitted to the transcoder.
"""

from typing import FrozenSet, Set, Tuple

from .models import Job

State = Job.State

TERMINAL_STATES: FrozenSet[str] = frozenset({
    State.COMPLETE,
    State.ERROR,
    State.STALLED,
})

# States that count as "waiting on gateways" for the stall threshold.
UPLOAD_STATES: FrozenSet[str] = frozenset({
    State.REQUESTING,
    State.UPLOADING,
})

# States in which the transcoder has not been observed running yet.
PRE_PROCESSING_STATES: FrozenSet[str] = frozenset({
    State.CREATED,
    State.REQUESTING,
    State.UPLOADING,
})

_TRANSITIONS: Set[Tuple[str, str]] = {
    (State.CREATED, State.REQUESTING),
    (State.REQUESTING, State.UPLOADING),
    (State.CREATED, State.PROCESSING),
    (State.REQUESTING, State.PROCESSING),
    (State.UPLOADING, State.PROCESSING),
    (State.PROCESSING, State.COMPLETE),
    (State.PROCESSING, State.ERROR),
}


def is_terminal(state: str) -> bool:
    return state in TERMINAL_STATES


def can_transition(from_state: str, to_state: str) -> bool:
    """
    Check whether a job may move from ``from_state`` to ``to_state``.

    Staying in the same state is not a transition and returns False, so
    callers never re-emit an event for a no-op.
    """
    if from_state == to_state or is_terminal(from_state):
        return False
    if to_state == State.STALLED:
        return True
    return (from_state, to_state) in _TRANSITIONS


def sources_for(to_state: str) -> Set[str]:
    """All states from which ``to_state`` can be reached in one step."""
    return {s for s in State.values if can_transition(s, to_state)}
