"""
gate_engines.round_tracker -- Pure per-gate state machine.

Responsibility:
    Open gates on submission and apply round evaluations to a gate's
    ``GateRuntimeState``: stay pending, advance to the next round, approve
    the gate, or close it as returned/rejected.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Timestamps and the next
    round's configuration are passed in by the caller.

Invariants enforced:
    - Every status change is checked against ``GATE_TRANSITIONS``.
    - ``round_index`` only increases while the gate stays pending; it goes
      back to 0 only when the gate is (re-)opened.
    - Opening a gate always allocates the caller-supplied new execution id,
      so decisions of earlier executions never count again.
    - A closed round's outcome is ``rejected`` if any counted decision was a
      reject, otherwise ``returned``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from gate_engines.rules import RoundEvaluation
from gate_engines.tracer import traced_engine
from gate_kernel.domain.approval import ApprovalRound, Decision, RoundOutcome, SnapshotOutcome
from gate_kernel.domain.gates import (
    GATE_TRANSITIONS,
    SUBMITTABLE_GATE_STATUSES,
    GateRuntimeState,
    GateStatus,
)
from gate_kernel.exceptions import InvalidGateStateError


@dataclass(frozen=True)
class TrackerStep:
    """Outcome of applying one evaluation to a gate."""

    state: GateRuntimeState
    closed_outcome: SnapshotOutcome | None = None
    gate_approved: bool = False
    round_advanced: bool = False

    @property
    def round_closed(self) -> bool:
        return self.closed_outcome is not None


def can_transition(from_status: GateStatus, to_status: GateStatus) -> bool:
    return to_status in GATE_TRANSITIONS.get(from_status, frozenset())


def _require_transition(state: GateRuntimeState, to_status: GateStatus, operation: str) -> None:
    if not can_transition(state.status, to_status):
        raise InvalidGateStateError(None, state.gate_key, state.status.value, operation)


def open_gate(
    state: GateRuntimeState,
    *,
    execution_id: UUID,
    first_round: ApprovalRound,
    round_count: int,
    opened_at: datetime,
) -> GateRuntimeState:
    """
    Move a draft/returned/rejected gate to pending at round 0.

    The comment left by a previous return or reject is cleared.
    """
    if state.status not in SUBMITTABLE_GATE_STATUSES:
        raise InvalidGateStateError(None, state.gate_key, state.status.value, "submit")
    _require_transition(state, GateStatus.PENDING, "submit")
    return state.evolve(
        status=GateStatus.PENDING,
        round_index=0,
        comment=None,
        execution_id=execution_id,
        round_config=first_round,
        round_count=round_count,
        opened_at=opened_at,
    )


def restart_gate(state: GateRuntimeState) -> GateRuntimeState:
    """
    Fresh draft instance of a gate, discarding its execution.

    Used when a gate is run again from scratch (a new interview round);
    this starts a new gate instance rather than transitioning the old one.
    """
    return GateRuntimeState.initial(state.gate_key)


@traced_engine("round_tracker", "1.0", fingerprint_fields=("state", "evaluation"))
def apply_round_evaluation(
    state: GateRuntimeState,
    evaluation: RoundEvaluation,
    *,
    closing_decision: Decision | None = None,
    next_round: ApprovalRound | None = None,
    round_count: int | None = None,
    opened_at: datetime | None = None,
) -> TrackerStep:
    """
    Apply ``evaluation`` of the current round to a pending gate.

    Args:
        state: The gate's current (pending) state.
        evaluation: Result of ``evaluate_round`` for the current round.
        closing_decision: The decision just recorded; its comment is kept
            when the round closes as returned/rejected.
        next_round: Configuration for round ``round_index + 1`` if the
            gate has one, else None (a satisfied round then approves the gate).
        round_count: Number of rounds the gate currently resolves to.
        opened_at: Timestamp for the next round opening.
    """
    if state.status != GateStatus.PENDING:
        raise InvalidGateStateError(None, state.gate_key, state.status.value, "decide")

    if evaluation.outcome == RoundOutcome.PENDING:
        _require_transition(state, GateStatus.PENDING, "decide")
        return TrackerStep(state=state)

    if evaluation.outcome == RoundOutcome.SATISFIED:
        if next_round is not None:
            _require_transition(state, GateStatus.PENDING, "advance")
            advanced = state.evolve(
                round_index=state.round_index + 1,
                round_config=next_round,
                round_count=round_count if round_count is not None else state.round_count,
                opened_at=opened_at,
            )
            return TrackerStep(
                state=advanced,
                closed_outcome=SnapshotOutcome.APPROVED,
                round_advanced=True,
            )

        _require_transition(state, GateStatus.APPROVED, "approve")
        return TrackerStep(
            state=state.evolve(status=GateStatus.APPROVED, comment=None),
            closed_outcome=SnapshotOutcome.APPROVED,
            gate_approved=True,
        )

    if evaluation.has_reject:
        target, closed = GateStatus.REJECTED, SnapshotOutcome.REJECTED
    else:
        target, closed = GateStatus.RETURNED, SnapshotOutcome.RETURNED
    _require_transition(state, target, "close")
    comment = closing_decision.comment if closing_decision is not None else None
    return TrackerStep(
        state=state.evolve(status=target, comment=comment),
        closed_outcome=closed,
    )
