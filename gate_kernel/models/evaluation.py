"""
Module: gate_kernel.models.evaluation
Responsibility: ORM persistence for the interview roster of an evaluation
    and the interview forms interviewers submit.

Architecture position: Kernel > Models.

Invariants enforced:
    - One form per (evaluation, round number, slot).
    - Submitted forms are immutable; later rounds add new forms.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from gate_kernel.db.base import Base, UTCDateTime, UUIDString
from gate_kernel.domain.entities import InterviewForm, InterviewSlot, InvitationStatus
from gate_kernel.exceptions import ImmutabilityViolationError


class InterviewSlotModel(Base):
    """One interviewer seat on the current roster."""

    __tablename__ = "interview_slots"

    __table_args__ = (
        CheckConstraint(
            "invitation_status IN ('pending', 'delivered', 'failed', 'unassigned')",
            name="ck_interview_slots_invitation_status",
        ),
        Index("ix_interview_slots_evaluation", "evaluation_id"),
    )

    evaluation_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("governed_entities.id", ondelete="CASCADE"),
        nullable=False,
    )
    interviewer_account_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    position: Mapped[int] = mapped_column(default=0, nullable=False)
    invitation_status: Mapped[str] = mapped_column(String(20), nullable=False)
    invitation_sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    invitation_error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    invitation_error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    form_submitted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<InterviewSlot {self.id} {self.interviewer_account_id} {self.invitation_status}>"

    def to_dto(self) -> InterviewSlot:
        return InterviewSlot(
            slot_id=self.id,
            interviewer_account_id=self.interviewer_account_id,
            position=self.position,
            invitation_status=InvitationStatus(self.invitation_status),
            invitation_sent_at=self.invitation_sent_at,
            invitation_error_code=self.invitation_error_code,
            invitation_error_message=self.invitation_error_message,
            form_submitted=self.form_submitted,
        )


class InterviewFormModel(Base):
    """Submitted interview scores. Append-only."""

    __tablename__ = "interview_forms"

    __table_args__ = (
        UniqueConstraint(
            "evaluation_id", "round_number", "slot_id",
            name="uq_interview_forms_slot_round",
        ),
        Index("ix_interview_forms_evaluation", "evaluation_id"),
    )

    evaluation_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    slot_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    round_number: Mapped[int] = mapped_column(nullable=False)
    submitted_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    fit_scores: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    case_scores: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    fit_average: Mapped[float | None] = mapped_column(Float, nullable=True)
    case_average: Mapped[float | None] = mapped_column(Float, nullable=True)
    notes: Mapped[str] = mapped_column(Text, default="", nullable=False)
    offer_recommendation: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<InterviewForm {self.evaluation_id} r{self.round_number} slot={self.slot_id}>"

    def to_dto(self) -> InterviewForm:
        return InterviewForm(
            form_id=self.id,
            evaluation_id=self.evaluation_id,
            slot_id=self.slot_id,
            round_number=self.round_number,
            submitted_by=self.submitted_by,
            fit_scores=dict(self.fit_scores),
            case_scores=dict(self.case_scores),
            fit_average=self.fit_average,
            case_average=self.case_average,
            notes=self.notes,
            offer_recommendation=self.offer_recommendation,
            submitted_at=self.submitted_at,
        )


@event.listens_for(InterviewFormModel, "before_update")
def prevent_form_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="InterviewForm",
        entity_id=str(target.id),
        reason="Submitted interview forms are immutable -- cannot modify",
    )
