"""
gate_services.config_resolver -- Gate configuration resolution.

Responsibility:
    For an entity and gate key, resolve the ordered approval rounds and,
    for a given round, the concrete accounts behind each approver
    requirement.

    * Initiatives: rounds come from the owning workstream's gate
      configuration.
    * Evaluations: the interview gate is a single ``all`` round with one
      direct-account requirement per assigned interview slot.

Architecture position:
    Services layer.  May import from gate_engines/ and gate_kernel/.

Invariants enforced:
    - A requirement's direct ``account_id`` takes precedence over its role.
    - Role lookups are scoped to the entity's workstream.
    - This resolver is consulted only when a round opens; open rounds keep
      the configuration captured on their gate state.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from gate_engines.rules import build_voting_slots
from gate_kernel.domain.approval import (
    ApprovalRound,
    ApprovalRule,
    ApproverRequirement,
    SlotBuild,
)
from gate_kernel.domain.entities import EntityType, GovernedEntity
from gate_kernel.domain.ports import ApproverDirectory
from gate_kernel.exceptions import WorkstreamNotFoundError
from gate_kernel.logging_config import get_logger
from gate_kernel.models.evaluation import InterviewSlotModel
from gate_kernel.services.workstream_service import WorkstreamService

logger = get_logger("services.config_resolver")


def interview_round_id(round_number: int | None) -> str:
    return f"interview-{round_number or 1}"


class GateConfigResolver:
    """Resolves rounds and approver accounts for governed entities."""

    def __init__(self, session: Session, directory: ApproverDirectory) -> None:
        self._session = session
        self._directory = directory
        self._workstreams = WorkstreamService(session)

    def resolve_rounds(self, entity: GovernedEntity, gate_key: str) -> tuple[ApprovalRound, ...]:
        """All rounds currently configured for ``gate_key``, in order."""
        entity.gate_state(gate_key)
        if entity.entity_type == EntityType.EVALUATION:
            return (self._interview_round(entity),)

        if entity.workstream_id is None:
            raise WorkstreamNotFoundError("<none>")
        workstream = self._workstreams.get_workstream(entity.workstream_id)
        return workstream.rounds_for(gate_key)

    def resolve_accounts(
        self, entity: GovernedEntity, approval_round: ApprovalRound
    ) -> dict[str, tuple[UUID, ...]]:
        """Requirement id -> resolved accounts.  Unresolvable requirements map to ``()``."""
        resolved: dict[str, tuple[UUID, ...]] = {}
        for requirement in approval_round.approvers:
            if requirement.account_id is not None:
                resolved[requirement.id] = (requirement.account_id,)
            elif requirement.role:
                resolved[requirement.id] = tuple(
                    self._directory.resolve_approvers(requirement.role, entity.workstream_id)
                )
            else:
                resolved[requirement.id] = ()
        return resolved

    def build_slots(self, entity: GovernedEntity, approval_round: ApprovalRound) -> SlotBuild:
        slots = build_voting_slots(approval_round, self.resolve_accounts(entity, approval_round))
        if slots.unresolved_requirements:
            logger.debug(
                "requirements_unresolved",
                extra={
                    "entity_id": str(entity.entity_id),
                    "round_id": approval_round.id,
                    "unresolved": list(slots.unresolved_requirements),
                },
            )
        return slots

    def _interview_round(self, entity: GovernedEntity) -> ApprovalRound:
        rows = self._session.execute(
            select(InterviewSlotModel)
            .where(InterviewSlotModel.evaluation_id == entity.entity_id)
            .order_by(InterviewSlotModel.position)
        ).scalars().all()
        return ApprovalRound(
            id=interview_round_id(entity.round_number),
            rule=ApprovalRule.ALL,
            approvers=tuple(
                ApproverRequirement(id=str(row.id), account_id=row.interviewer_account_id)
                for row in rows
                if row.interviewer_account_id is not None
            ),
        )
