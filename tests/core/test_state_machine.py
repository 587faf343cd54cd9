"""
Test suite for the job lifecycle state machine.

System role: Verification of forward-only transitions and terminal states
"""

import pytest

from batchgen.core.state_machine import (
    ACTIVE_STATES,
    FORWARD_ORDER,
    JobState,
    can_transition,
    is_forward_subsequence,
    is_terminal,
    next_state,
)


class TestTransitions:
    """Test suite for next_state() and can_transition()."""

    def test_next_state_should_follow_forward_order(self) -> None:
        # Act
        successors = [next_state(state) for state in FORWARD_ORDER[:-1]]

        # Assert
        assert successors == list(FORWARD_ORDER[1:])

    @pytest.mark.parametrize("state", [JobState.COMPLETED, JobState.FAILED])
    def test_terminal_states_should_have_no_successor(self, state: JobState) -> None:
        assert is_terminal(state)
        assert next_state(state) is None
        assert not can_transition(state, JobState.FAILED)

    def test_should_reject_skipping_a_state(self) -> None:
        assert not can_transition(JobState.PROCESSING, JobState.PHASE1_COMPLETE)
        assert not can_transition(JobState.PENDING, JobState.COMPLETED)

    def test_should_reject_going_backwards(self) -> None:
        assert not can_transition(JobState.PHASE2_CREATED, JobState.PHASE1_CREATED)

    @pytest.mark.parametrize("state", ACTIVE_STATES)
    def test_failed_should_be_reachable_from_every_active_state(self, state: JobState) -> None:
        assert can_transition(state, JobState.FAILED)


class TestForwardSubsequence:
    """Test suite for is_forward_subsequence()."""

    def test_should_accept_repeated_observations(self) -> None:
        states = [
            JobState.PENDING,
            JobState.PHASE1_CREATED,
            JobState.PHASE1_CREATED,
            JobState.PHASE2_CREATED,
            JobState.COMPLETED,
        ]
        assert is_forward_subsequence(states)

    def test_should_accept_failed_as_last_state(self) -> None:
        assert is_forward_subsequence([JobState.PROCESSING, JobState.FAILED, JobState.FAILED])

    def test_should_reject_regression(self) -> None:
        assert not is_forward_subsequence([JobState.PHASE1_COMPLETE, JobState.PROCESSING])

    def test_should_reject_state_after_failed(self) -> None:
        assert not is_forward_subsequence([JobState.FAILED, JobState.COMPLETED])
