"""
Job lifecycle state machine.

Defines the forward-only order of job states and the transition rules the
pipeline driver and job store enforce.

Dependencies: None (pure domain layer)
System role: Single source of truth for allowed state transitions
"""

import enum


class JobState(str, enum.Enum):
    """
    Generation job lifecycle states.

    PENDING: Row created, waiting for a driver to claim it
    PROCESSING: Claimed by a driver, phase 1 not submitted yet
    PHASE1_CREATED: Content batch submitted to the gateway
    PHASE1_COMPLETE: Content batch finished successfully
    PHASE2_CREATED: Metadata batch submitted to the gateway
    PHASE2_COMPLETE: Metadata batch finished successfully
    COMPLETED: Merged rows inserted into the content store
    FAILED: Absorbing error state, reachable from any non-terminal state
    """

    PENDING = "pending"
    PROCESSING = "processing"
    PHASE1_CREATED = "phase1_created"
    PHASE1_COMPLETE = "phase1_complete"
    PHASE2_CREATED = "phase2_created"
    PHASE2_COMPLETE = "phase2_complete"
    COMPLETED = "completed"
    FAILED = "failed"


FORWARD_ORDER: tuple[JobState, ...] = (
    JobState.PENDING,
    JobState.PROCESSING,
    JobState.PHASE1_CREATED,
    JobState.PHASE1_COMPLETE,
    JobState.PHASE2_CREATED,
    JobState.PHASE2_COMPLETE,
    JobState.COMPLETED,
)

TERMINAL_STATES: frozenset[JobState] = frozenset({JobState.COMPLETED, JobState.FAILED})

ACTIVE_STATES: tuple[JobState, ...] = tuple(
    state for state in FORWARD_ORDER if state not in TERMINAL_STATES
)

# States where the driver is waiting on the gateway for a phase batch
WAITING_STATES: dict[JobState, int] = {
    JobState.PHASE1_CREATED: 1,
    JobState.PHASE2_CREATED: 2,
}


def is_terminal(state: JobState) -> bool:
    """Return True when no further transitions can occur."""
    return state in TERMINAL_STATES


def next_state(state: JobState) -> JobState | None:
    """
    Return the single forward successor of a state.

    Args:
        state: Current state

    Returns:
        JobState | None: Successor, or None for terminal states
    """
    if is_terminal(state):
        return None
    return FORWARD_ORDER[FORWARD_ORDER.index(state) + 1]


def can_transition(current: JobState, target: JobState) -> bool:
    """
    Check whether current -> target is allowed.

    Only the immediate forward successor is reachable (no skipping), and
    FAILED is reachable from every non-terminal state.

    Args:
        current: State read from the store
        target: Desired state

    Returns:
        bool: True if the transition is legal
    """
    if is_terminal(current):
        return False
    if target is JobState.FAILED:
        return True
    return next_state(current) is target


def is_forward_subsequence(states: list[JobState]) -> bool:
    """
    Check that an observed state log never regresses.

    Consecutive duplicates are allowed (repeated observations of the same
    state). FAILED may only appear as the final distinct state.

    Args:
        states: States in observation order

    Returns:
        bool: True if the log is consistent with the forward order
    """
    last_index = -1
    failed_seen = False
    for state in states:
        if failed_seen and state is not JobState.FAILED:
            return False
        if state is JobState.FAILED:
            failed_seen = True
            continue
        index = FORWARD_ORDER.index(state)
        if index < last_index:
            return False
        last_index = index
    return True
