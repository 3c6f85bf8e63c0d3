"""
Module: gate_kernel.selectors.entity_selector
Responsibility: Read-side queries over governed entities and their gates,
    used to build approval queues and listings.
Architecture position: Kernel > Selectors.
"""

from __future__ import annotations

from collections import defaultdict
from uuid import UUID

from sqlalchemy import select

from gate_kernel.domain.entities import EntityType, GovernedEntity
from gate_kernel.domain.gates import GateRuntimeState, GateStatus
from gate_kernel.models.governed_entity import GateStateModel, GovernedEntityModel
from gate_kernel.selectors.base import BaseSelector


class EntitySelector(BaseSelector[GovernedEntityModel]):
    """Queries over governed entities."""

    def _hydrate(self, models: list[GovernedEntityModel]) -> list[GovernedEntity]:
        if not models:
            return []
        ids = [m.id for m in models]
        rows = self.session.execute(
            select(GateStateModel)
            .where(GateStateModel.entity_id.in_(ids))
            .order_by(GateStateModel.entity_id, GateStateModel.position)
            .execution_options(populate_existing=True)
        ).scalars().all()
        states: dict[UUID, list[GateRuntimeState]] = defaultdict(list)
        for row in rows:
            states[row.entity_id].append(row.to_dto())
        return [m.to_dto(tuple(states[m.id])) for m in models]

    def list_entities(self, entity_type: EntityType | None = None) -> list[GovernedEntity]:
        """All entities (optionally of one type), oldest first."""
        stmt = select(GovernedEntityModel).execution_options(populate_existing=True)
        if entity_type is not None:
            stmt = stmt.where(GovernedEntityModel.entity_type == entity_type.value)
        models = self.session.execute(
            stmt.order_by(GovernedEntityModel.created_at, GovernedEntityModel.id)
        ).scalars().all()
        return self._hydrate(list(models))

    def with_pending_gates(self) -> list[GovernedEntity]:
        """Entities having at least one gate in ``pending`` status."""
        pending_ids = (
            select(GateStateModel.entity_id)
            .where(GateStateModel.status == GateStatus.PENDING.value)
            .distinct()
        )
        models = self.session.execute(
            select(GovernedEntityModel)
            .where(GovernedEntityModel.id.in_(pending_ids))
            .order_by(GovernedEntityModel.created_at, GovernedEntityModel.id)
            .execution_options(populate_existing=True)
        ).scalars().all()
        return self._hydrate(list(models))
