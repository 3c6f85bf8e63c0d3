"""
Governed entity value objects (``gate_kernel.domain.entities``).

Initiatives and evaluations are both "versioned entities moving through an
ordered gate sequence".  ``GovernedEntity`` is the immutable snapshot the
engines and orchestrator work on; every successful mutation produces a
new snapshot at ``version + 1``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from gate_kernel.domain.approval import ApprovalRound, GateConfiguration
from gate_kernel.domain.gates import (
    EVALUATION_GATE_SEQUENCE,
    INITIATIVE_GATE_SEQUENCE,
    GateRuntimeState,
)
from gate_kernel.exceptions import GateNotFoundError


class EntityType(str, Enum):
    INITIATIVE = "initiative"
    EVALUATION = "evaluation"


GATE_SEQUENCES: dict[EntityType, tuple[str, ...]] = {
    EntityType.INITIATIVE: INITIATIVE_GATE_SEQUENCE,
    EntityType.EVALUATION: EVALUATION_GATE_SEQUENCE,
}


class ProcessStatus(str, Enum):
    DRAFT = "draft"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class HireDecision(str, Enum):
    OFFER = "offer"
    REJECT = "reject"
    PROGRESS = "progress"


class OfferStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    ACCEPTED_CO = "accepted-co"
    DECLINED = "declined"
    DECLINED_CO = "declined-co"


class InvitationStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"
    UNASSIGNED = "unassigned"


@dataclass(frozen=True)
class GovernedEntity:
    """
    Versioned entity governed by a gate sequence.

    Evaluation-only fields (``candidate_id``, ``round_number``,
    ``hire_decision``, ``offer_status``) are ``None`` on initiatives.
    """

    entity_id: UUID
    entity_type: EntityType
    name: str
    active_gate: str
    process_status: ProcessStatus
    version: int
    gate_states: tuple[GateRuntimeState, ...]
    workstream_id: UUID | None = None
    owner_account_id: UUID | None = None
    description: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    candidate_id: str | None = None
    round_number: int | None = None
    hire_decision: HireDecision | None = None
    offer_status: OfferStatus | None = None

    @property
    def gate_sequence(self) -> tuple[str, ...]:
        return GATE_SEQUENCES[self.entity_type]

    def gate_state(self, gate_key: str) -> GateRuntimeState:
        for state in self.gate_states:
            if state.gate_key == gate_key:
                return state
        raise GateNotFoundError(str(self.entity_id), str(gate_key))

    def with_gate_state(self, state: GateRuntimeState) -> GovernedEntity:
        """Return a copy with ``state`` replacing the gate of the same key."""
        self.gate_state(state.gate_key)
        states = tuple(
            state if s.gate_key == state.gate_key else s for s in self.gate_states
        )
        return replace(self, gate_states=states)

    def evolve(self, **changes: Any) -> GovernedEntity:
        return replace(self, **changes)


@dataclass(frozen=True)
class InterviewSlot:
    """One interviewer seat on an evaluation's current roster."""

    slot_id: UUID
    interviewer_account_id: UUID | None = None
    position: int = 0
    invitation_status: InvitationStatus = InvitationStatus.UNASSIGNED
    invitation_sent_at: datetime | None = None
    invitation_error_code: str | None = None
    invitation_error_message: str | None = None
    form_submitted: bool = False


@dataclass(frozen=True)
class InterviewForm:
    """Scores submitted by one interviewer for one round."""

    form_id: UUID
    evaluation_id: UUID
    slot_id: UUID
    round_number: int
    submitted_by: UUID
    fit_scores: dict[str, int | None] = field(default_factory=dict)
    case_scores: dict[str, int | None] = field(default_factory=dict)
    fit_average: float | None = None
    case_average: float | None = None
    notes: str = ""
    offer_recommendation: bool | None = None
    submitted_at: datetime | None = None


@dataclass(frozen=True)
class InvitationState:
    """Aggregate invitation view of an evaluation."""

    has_invitations: bool
    has_pending_changes: bool
    last_sent_at: datetime | None
    slots: tuple[InterviewSlot, ...]


@dataclass(frozen=True)
class InvitationDeliveryReport:
    """Outcome of one invitation send, by slot id."""

    sent: tuple[UUID, ...]
    failed: tuple[UUID, ...]
    skipped: tuple[UUID, ...]
    state: InvitationState


@dataclass(frozen=True)
class Workstream:
    """Owner of a gate configuration; its version guards configuration edits."""

    workstream_id: UUID
    name: str
    gates: GateConfiguration
    version: int
    description: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def rounds_for(self, gate_key: str) -> tuple[ApprovalRound, ...]:
        return self.gates.get(str(gate_key), ())
