"""
Module: gate_kernel.models.decision
Responsibility: ORM persistence for cast decisions and closed-round
    snapshots.  Both tables are append-only audit logs.

Architecture position: Kernel > Models.  May import from db/base.py,
    domain/ and exceptions only.

Invariants enforced:
    - An actor decides at most once per (execution, round):
      UNIQUE(execution_id, round_index, actor_id).
    - A voting slot is filled at most once per (execution, round):
      UNIQUE(execution_id, round_index, slot_key).
    - One snapshot per closed round:
      UNIQUE(entity_id, gate_key, execution_id, round_index).
    - Snapshot ``sequence`` is unique per entity.
    - Rows are never updated or deleted (ORM listeners below).  Neither
      table has a foreign key to governed_entities, so removing an entity
      leaves its audit trail intact.

Failure modes:
    - IntegrityError on a duplicate decision or snapshot.
    - ImmutabilityViolationError on UPDATE/DELETE through the ORM.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Index,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from gate_kernel.db.base import Base, UTCDateTime, UUIDString
from gate_kernel.domain.approval import (
    ApprovalRule,
    ApproverRequirement,
    Decision,
    DecisionOutcome,
    RequirementMode,
    RoundSnapshot,
    SnapshotOutcome,
)
from gate_kernel.exceptions import ImmutabilityViolationError


class GateDecisionModel(Base):
    """A single cast vote. Append-only."""

    __tablename__ = "gate_decisions"

    __table_args__ = (
        UniqueConstraint(
            "execution_id", "round_index", "actor_id",
            name="uq_gate_decisions_actor",
        ),
        UniqueConstraint(
            "execution_id", "round_index", "slot_key",
            name="uq_gate_decisions_slot",
        ),
        UniqueConstraint(
            "execution_id", "round_index", "ordinal",
            name="uq_gate_decisions_ordinal",
        ),
        CheckConstraint(
            "outcome IN ('approve', 'return', 'reject')",
            name="ck_gate_decisions_outcome",
        ),
        Index("ix_gate_decisions_round", "execution_id", "round_index"),
        Index("ix_gate_decisions_actor", "actor_id"),
    )

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    gate_key: Mapped[str] = mapped_column(String(50), nullable=False)
    execution_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    round_index: Mapped[int] = mapped_column(nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    slot_key: Mapped[str] = mapped_column(String(200), nullable=False)
    outcome: Mapped[str] = mapped_column(String(20), nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    ordinal: Mapped[int] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<GateDecision {self.actor_id} {self.outcome} "
            f"{self.gate_key}#{self.round_index}>"
        )

    def to_dto(self) -> Decision:
        return Decision(
            actor_id=self.actor_id,
            outcome=DecisionOutcome(self.outcome),
            comment=self.comment,
            decided_at=self.decided_at,
            slot_key=self.slot_key,
        )


class RoundSnapshotModel(Base):
    """Immutable record of a closed round. Append-only."""

    __tablename__ = "round_snapshots"

    __table_args__ = (
        UniqueConstraint(
            "entity_id", "gate_key", "execution_id", "round_index",
            name="uq_round_snapshots_round",
        ),
        UniqueConstraint("entity_id", "sequence", name="uq_round_snapshots_sequence"),
        CheckConstraint(
            "outcome IN ('approved', 'returned', 'rejected')",
            name="ck_round_snapshots_outcome",
        ),
        Index("ix_round_snapshots_entity_gate", "entity_id", "gate_key"),
    )

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    gate_key: Mapped[str] = mapped_column(String(50), nullable=False)
    execution_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    round_index: Mapped[int] = mapped_column(nullable=False)
    round_id: Mapped[str] = mapped_column(String(200), nullable=False)
    rule: Mapped[str] = mapped_column(String(20), nullable=False)
    per_requirement: Mapped[str] = mapped_column(String(20), nullable=False)
    approvers: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    decisions: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    outcome: Mapped[str] = mapped_column(String(20), nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    opened_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    closed_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    sequence: Mapped[int] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<RoundSnapshot {self.entity_id} {self.gate_key}#{self.round_index} "
            f"{self.outcome}>"
        )

    def to_dto(self) -> RoundSnapshot:
        return RoundSnapshot(
            entity_id=self.entity_id,
            gate_key=self.gate_key,
            execution_id=self.execution_id,
            round_index=self.round_index,
            round_id=self.round_id,
            rule=ApprovalRule(self.rule),
            per_requirement=RequirementMode(self.per_requirement),
            approvers=tuple(ApproverRequirement.from_dict(a) for a in self.approvers),
            decisions=tuple(Decision.from_dict(d) for d in self.decisions),
            outcome=SnapshotOutcome(self.outcome),
            opened_at=self.opened_at,
            closed_at=self.closed_at,
            comment=self.comment,
            sequence=self.sequence,
        )

    @classmethod
    def from_dto(cls, dto: RoundSnapshot) -> RoundSnapshotModel:
        payload = dto.to_dict()
        return cls(
            entity_id=dto.entity_id,
            gate_key=dto.gate_key,
            execution_id=dto.execution_id,
            round_index=dto.round_index,
            round_id=dto.round_id,
            rule=dto.rule.value,
            per_requirement=dto.per_requirement.value,
            approvers=payload["approvers"],
            decisions=payload["decisions"],
            outcome=dto.outcome.value,
            comment=dto.comment,
            opened_at=dto.opened_at,
            closed_at=dto.closed_at,
            sequence=dto.sequence,
        )


@event.listens_for(GateDecisionModel, "before_update")
def prevent_decision_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="GateDecision",
        entity_id=str(target.id),
        reason="Gate decisions are immutable -- cannot modify",
    )


@event.listens_for(GateDecisionModel, "before_delete")
def prevent_decision_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="GateDecision",
        entity_id=str(target.id),
        reason="Gate decisions are immutable -- cannot delete",
    )


@event.listens_for(RoundSnapshotModel, "before_update")
def prevent_snapshot_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="RoundSnapshot",
        entity_id=str(target.id),
        reason="Round snapshots are immutable -- cannot modify",
    )


@event.listens_for(RoundSnapshotModel, "before_delete")
def prevent_snapshot_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="RoundSnapshot",
        entity_id=str(target.id),
        reason="Round snapshots are immutable -- cannot delete",
    )
