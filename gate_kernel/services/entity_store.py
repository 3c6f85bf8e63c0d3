"""
gate_kernel.services.entity_store -- Versioned persistence for governed entities.

Responsibility:
    Loads and saves ``GovernedEntity`` snapshots together with their gate
    runtime states.  Every save is a compare-and-swap on ``version``.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Version monotonicity: a successful save writes exactly
      ``expected_version + 1``.
    - Stale writes never mutate state: the guarded UPDATE runs before any
      gate-state write, and a zero-row result raises before anything else
      is touched.
    - Deleting an entity leaves its decisions and round snapshots in place.

Failure modes:
    - EntityNotFoundError if the entity row does not exist.
    - VersionConflictError if the stored version differs from the expected one.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from gate_kernel.domain.clock import Clock, SystemClock
from gate_kernel.domain.entities import GovernedEntity
from gate_kernel.domain.gates import GateRuntimeState
from gate_kernel.exceptions import EntityNotFoundError, VersionConflictError
from gate_kernel.logging_config import get_logger
from gate_kernel.models.evaluation import InterviewSlotModel
from gate_kernel.models.governed_entity import GateStateModel, GovernedEntityModel

logger = get_logger("services.entity_store")


class EntityStore:
    """Compare-and-swap persistence for governed entities."""

    def __init__(self, session: Session, clock: Clock | None = None) -> None:
        self._session = session
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find(self, entity_id: UUID) -> GovernedEntity | None:
        model = self._session.execute(
            select(GovernedEntityModel)
            .where(GovernedEntityModel.id == entity_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            return None
        return model.to_dto(self._load_gate_states(entity_id))

    def load(self, entity_id: UUID) -> GovernedEntity:
        """Load an entity or raise EntityNotFoundError."""
        entity = self.find(entity_id)
        if entity is None:
            raise EntityNotFoundError(str(entity_id))
        return entity

    def current_version(self, entity_id: UUID) -> int | None:
        return self._session.execute(
            select(GovernedEntityModel.version).where(GovernedEntityModel.id == entity_id)
        ).scalar_one_or_none()

    def _load_gate_states(self, entity_id: UUID) -> tuple[GateRuntimeState, ...]:
        rows = self._session.execute(
            select(GateStateModel)
            .where(GateStateModel.entity_id == entity_id)
            .order_by(GateStateModel.position)
            .execution_options(populate_existing=True)
        ).scalars().all()
        return tuple(row.to_dto() for row in rows)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, entity: GovernedEntity) -> GovernedEntity:
        """Persist a brand-new entity at version 1."""
        now = self._clock.now()
        entity = entity.evolve(version=1, created_at=now, updated_at=now)
        self._session.add(GovernedEntityModel.from_dto(entity))
        for position, state in enumerate(entity.gate_states):
            self._session.add(
                GateStateModel(
                    entity_id=entity.entity_id,
                    gate_key=state.gate_key,
                    position=position,
                    **GateStateModel.column_values(state),
                )
            )
        self._session.flush()

        logger.info(
            "entity_created",
            extra={
                "entity_id": str(entity.entity_id),
                "entity_type": entity.entity_type.value,
                "gate_count": len(entity.gate_states),
            },
        )
        return self.load(entity.entity_id)

    def save(self, entity: GovernedEntity, expected_version: int) -> GovernedEntity:
        """
        Write ``entity`` if the stored version still equals ``expected_version``.

        Returns the reloaded entity at ``expected_version + 1``.
        """
        now = self._clock.now()
        result = self._session.execute(
            update(GovernedEntityModel)
            .where(
                GovernedEntityModel.id == entity.entity_id,
                GovernedEntityModel.version == expected_version,
            )
            .values(
                version=expected_version + 1,
                name=entity.name,
                description=entity.description,
                owner_account_id=entity.owner_account_id,
                active_gate=entity.active_gate,
                process_status=entity.process_status.value,
                updated_at=now,
                round_number=entity.round_number,
                hire_decision=entity.hire_decision.value if entity.hire_decision else None,
                offer_status=entity.offer_status.value if entity.offer_status else None,
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            actual = self.current_version(entity.entity_id)
            if actual is None:
                raise EntityNotFoundError(str(entity.entity_id))
            logger.warning(
                "version_conflict",
                extra={
                    "entity_id": str(entity.entity_id),
                    "expected_version": expected_version,
                    "actual_version": actual,
                },
            )
            raise VersionConflictError(
                entity.entity_type.value,
                str(entity.entity_id),
                expected_version,
                actual,
            )

        for state in entity.gate_states:
            self._session.execute(
                update(GateStateModel)
                .where(
                    GateStateModel.entity_id == entity.entity_id,
                    GateStateModel.gate_key == state.gate_key,
                )
                .values(**GateStateModel.column_values(state))
                .execution_options(synchronize_session=False)
            )

        logger.debug(
            "entity_saved",
            extra={
                "entity_id": str(entity.entity_id),
                "version": expected_version + 1,
            },
        )
        return self.load(entity.entity_id)

    def delete(self, entity_id: UUID) -> None:
        """Remove an entity with its gate states and roster."""
        if self.current_version(entity_id) is None:
            raise EntityNotFoundError(str(entity_id))

        self._session.execute(
            delete(GateStateModel).where(GateStateModel.entity_id == entity_id)
        )
        self._session.execute(
            delete(InterviewSlotModel).where(InterviewSlotModel.evaluation_id == entity_id)
        )
        self._session.execute(
            delete(GovernedEntityModel).where(GovernedEntityModel.id == entity_id)
        )
        self._session.flush()
        logger.info("entity_removed", extra={"entity_id": str(entity_id)})
