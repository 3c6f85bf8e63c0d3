"""
Module: gate_kernel.models.governed_entity
Responsibility: ORM persistence for versioned governed entities
    (initiatives and evaluations) and their per-gate runtime state.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - One gate state row per (entity, gate key).
    - Gate status limited to the GateStatus values (check constraint).
    - round_index is never negative (check constraint).
    - ``version`` is only ever written through the compare-and-swap in
      EntityStore.save().

Failure modes:
    - IntegrityError on a duplicate (entity_id, gate_key).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from gate_kernel.db.base import Base, UTCDateTime, UUIDString
from gate_kernel.domain.approval import ApprovalRound
from gate_kernel.domain.entities import (
    EntityType,
    GovernedEntity,
    HireDecision,
    OfferStatus,
    ProcessStatus,
)
from gate_kernel.domain.gates import GateRuntimeState, GateStatus


class GovernedEntityModel(Base):
    """Persistent versioned entity."""

    __tablename__ = "governed_entities"

    __table_args__ = (
        CheckConstraint(
            "entity_type IN ('initiative', 'evaluation')",
            name="ck_governed_entities_type",
        ),
        CheckConstraint("version >= 1", name="ck_governed_entities_version"),
        Index("ix_governed_entities_workstream", "workstream_id"),
    )

    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    workstream_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("workstreams.id"),
        nullable=True,
    )
    owner_account_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    active_gate: Mapped[str] = mapped_column(String(50), nullable=False)
    process_status: Mapped[str] = mapped_column(String(20), nullable=False)
    version: Mapped[int] = mapped_column(default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    # Evaluation-only columns
    candidate_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    round_number: Mapped[int | None] = mapped_column(nullable=True)
    hire_decision: Mapped[str | None] = mapped_column(String(20), nullable=True)
    offer_status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<GovernedEntity {self.id} {self.entity_type} "
            f"gate={self.active_gate} v{self.version}>"
        )

    def to_dto(self, gate_states: tuple[GateRuntimeState, ...]) -> GovernedEntity:
        return GovernedEntity(
            entity_id=self.id,
            entity_type=EntityType(self.entity_type),
            name=self.name,
            description=self.description,
            workstream_id=self.workstream_id,
            owner_account_id=self.owner_account_id,
            active_gate=self.active_gate,
            process_status=ProcessStatus(self.process_status),
            version=self.version,
            gate_states=gate_states,
            created_at=self.created_at,
            updated_at=self.updated_at,
            candidate_id=self.candidate_id,
            round_number=self.round_number,
            hire_decision=HireDecision(self.hire_decision) if self.hire_decision else None,
            offer_status=OfferStatus(self.offer_status) if self.offer_status else None,
        )

    @classmethod
    def from_dto(cls, dto: GovernedEntity) -> GovernedEntityModel:
        return cls(
            id=dto.entity_id,
            entity_type=dto.entity_type.value,
            name=dto.name,
            description=dto.description,
            workstream_id=dto.workstream_id,
            owner_account_id=dto.owner_account_id,
            active_gate=dto.active_gate,
            process_status=dto.process_status.value,
            version=dto.version,
            created_at=dto.created_at,
            updated_at=dto.updated_at,
            candidate_id=dto.candidate_id,
            round_number=dto.round_number,
            hire_decision=dto.hire_decision.value if dto.hire_decision else None,
            offer_status=dto.offer_status.value if dto.offer_status else None,
        )


class GateStateModel(Base):
    """Runtime state of one gate on one entity."""

    __tablename__ = "gate_states"

    __table_args__ = (
        UniqueConstraint("entity_id", "gate_key", name="uq_gate_states_entity_gate"),
        CheckConstraint(
            "status IN ('draft', 'pending', 'approved', 'returned', 'rejected')",
            name="ck_gate_states_status",
        ),
        CheckConstraint("round_index >= 0", name="ck_gate_states_round_index"),
        Index("ix_gate_states_status", "status"),
    )

    entity_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("governed_entities.id", ondelete="CASCADE"),
        nullable=False,
    )
    gate_key: Mapped[str] = mapped_column(String(50), nullable=False)
    position: Mapped[int] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    round_index: Mapped[int] = mapped_column(default=0, nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    execution_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    round_config: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    round_count: Mapped[int] = mapped_column(default=0, nullable=False)
    opened_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def __repr__(self) -> str:
        return f"<GateState {self.entity_id}:{self.gate_key} {self.status}#{self.round_index}>"

    def to_dto(self) -> GateRuntimeState:
        return GateRuntimeState(
            gate_key=self.gate_key,
            status=GateStatus(self.status),
            round_index=self.round_index,
            comment=self.comment,
            execution_id=self.execution_id,
            round_config=(
                ApprovalRound.from_dict(self.round_config) if self.round_config else None
            ),
            round_count=self.round_count,
            opened_at=self.opened_at,
        )

    @staticmethod
    def column_values(state: GateRuntimeState) -> dict[str, Any]:
        """Mutable column values for ``state``, for inserts and guarded updates."""
        return {
            "status": state.status.value,
            "round_index": state.round_index,
            "comment": state.comment,
            "execution_id": state.execution_id,
            "round_config": state.round_config.to_dict() if state.round_config else None,
            "round_count": state.round_count,
            "opened_at": state.opened_at,
        }
