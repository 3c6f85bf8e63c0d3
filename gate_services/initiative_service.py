"""
gate_services.initiative_service -- Initiative lifecycle.

Creates initiatives against a workstream (every gate draft, ``l0``
active), edits their name, description and owner under the version guard,
and removes them.  Gate progress itself goes through
``StageGateOrchestrator``.
"""

from __future__ import annotations

from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from gate_kernel.domain.clock import Clock, SystemClock
from gate_kernel.domain.entities import EntityType, GovernedEntity, ProcessStatus
from gate_kernel.domain.gates import INITIATIVE_GATE_SEQUENCE, GateRuntimeState
from gate_kernel.exceptions import EntityNotFoundError, InvalidInputError, VersionConflictError
from gate_kernel.logging_config import get_logger
from gate_kernel.selectors.entity_selector import EntitySelector
from gate_kernel.services.entity_store import EntityStore
from gate_kernel.services.workstream_service import WorkstreamService

logger = get_logger("services.initiative")


class InitiativeService:
    def __init__(self, session: Session, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._store = EntityStore(session, self._clock)
        self._workstreams = WorkstreamService(session, self._clock)
        self._selector = EntitySelector(session)

    def create_initiative(
        self,
        workstream_id: UUID,
        name: str,
        owner_account_id: UUID | None = None,
        description: str = "",
    ) -> GovernedEntity:
        if not name or not name.strip():
            raise InvalidInputError("Initiative name must not be empty")
        workstream = self._workstreams.get_workstream(workstream_id)

        entity = GovernedEntity(
            entity_id=uuid4(),
            entity_type=EntityType.INITIATIVE,
            name=name.strip(),
            active_gate=INITIATIVE_GATE_SEQUENCE[0],
            process_status=ProcessStatus.DRAFT,
            version=1,
            gate_states=tuple(GateRuntimeState.initial(k) for k in INITIATIVE_GATE_SEQUENCE),
            workstream_id=workstream.workstream_id,
            owner_account_id=owner_account_id,
            description=description,
        )
        created = self._store.insert(entity)
        logger.info(
            "initiative_created",
            extra={
                "entity_id": str(created.entity_id),
                "workstream": workstream.name,
            },
        )
        return created

    def update_initiative(
        self,
        entity_id: UUID,
        expected_version: int,
        *,
        name: str | None = None,
        description: str | None = None,
        owner_account_id: UUID | None = None,
    ) -> GovernedEntity:
        """
        Edit an initiative's descriptive fields; gate state is untouched.

        Fields left as None keep their current value.

        Raises:
            EntityNotFoundError: No initiative with this id.
            VersionConflictError: The initiative is no longer at expected_version.
            InvalidInputError: ``name`` is blank.
        """
        entity = self.get_initiative(entity_id)
        if entity.version != expected_version:
            logger.warning(
                "version_conflict",
                extra={
                    "expected_version": expected_version,
                    "actual_version": entity.version,
                },
            )
            raise VersionConflictError(
                entity.entity_type.value, str(entity_id), expected_version, entity.version
            )

        changes: dict = {}
        if name is not None:
            if not name.strip():
                raise InvalidInputError("Initiative name must not be empty")
            changes["name"] = name.strip()
        if description is not None:
            changes["description"] = description
        if owner_account_id is not None:
            changes["owner_account_id"] = owner_account_id

        saved = self._store.save(entity.evolve(**changes), expected_version)
        logger.info(
            "initiative_updated",
            extra={
                "entity_id": str(entity_id),
                "fields": sorted(changes),
                "version": saved.version,
            },
        )
        return saved

    def get_initiative(self, entity_id: UUID) -> GovernedEntity:
        entity = self._store.load(entity_id)
        if entity.entity_type != EntityType.INITIATIVE:
            raise EntityNotFoundError(str(entity_id))
        return entity

    def list_initiatives(self) -> list[GovernedEntity]:
        return self._selector.list_entities(EntityType.INITIATIVE)

    def remove_initiative(self, entity_id: UUID) -> None:
        """Delete the initiative; its decision log and round history remain."""
        self.get_initiative(entity_id)
        self._store.delete(entity_id)
