"""
Pure domain layer.

Value objects and enumerations with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Wall-clock time

All domain objects are immutable.
"""

from gate_kernel.domain.approval import (
    ApprovalRound,
    ApprovalRule,
    ApprovalTask,
    ApproverRequirement,
    Decision,
    DecisionOutcome,
    GateConfiguration,
    RequirementMode,
    RoundOutcome,
    RoundSnapshot,
    SnapshotOutcome,
    TaskStatus,
    VotingSlot,
)
from gate_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from gate_kernel.domain.entities import (
    EntityType,
    GovernedEntity,
    HireDecision,
    InterviewSlot,
    InvitationStatus,
    OfferStatus,
    ProcessStatus,
)
from gate_kernel.domain.gates import (
    EVALUATION_GATE_SEQUENCE,
    GATE_TRANSITIONS,
    INITIATIVE_GATE_SEQUENCE,
    EvaluationGate,
    GateRuntimeState,
    GateStatus,
    InitiativeGate,
    next_gate,
)
from gate_kernel.domain.ports import (
    ApproverDirectory,
    DecisionNotifier,
    DeliveryResult,
    InvitationSender,
)

__all__ = [
    "ApprovalRound",
    "ApprovalRule",
    "ApprovalTask",
    "ApproverDirectory",
    "ApproverRequirement",
    "Clock",
    "Decision",
    "DecisionNotifier",
    "DecisionOutcome",
    "DeliveryResult",
    "DeterministicClock",
    "EVALUATION_GATE_SEQUENCE",
    "EntityType",
    "EvaluationGate",
    "GATE_TRANSITIONS",
    "GateConfiguration",
    "GateRuntimeState",
    "GateStatus",
    "GovernedEntity",
    "HireDecision",
    "INITIATIVE_GATE_SEQUENCE",
    "InitiativeGate",
    "InterviewSlot",
    "InvitationSender",
    "InvitationStatus",
    "OfferStatus",
    "ProcessStatus",
    "RequirementMode",
    "RoundOutcome",
    "RoundSnapshot",
    "SnapshotOutcome",
    "SystemClock",
    "TaskStatus",
    "VotingSlot",
    "next_gate",
]
