"""
gate_kernel.services.round_history -- Append-only decision and round logs.

Responsibility:
    ``DecisionLog`` records cast votes for the round currently open on a
    gate; ``RoundHistoryStore`` appends immutable snapshots of closed rounds
    and replays them in close order.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Append-only: neither class exposes update or delete; the ORM
      listeners in models/decision.py reject both.
    - Snapshot ``sequence`` is strictly increasing per entity, so replay
      order is deterministic.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from gate_kernel.domain.approval import Decision, RoundSnapshot
from gate_kernel.logging_config import get_logger
from gate_kernel.models.decision import GateDecisionModel, RoundSnapshotModel

logger = get_logger("services.round_history")


class DecisionLog:
    """Append-only store of cast decisions, keyed by gate execution and round."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def record(
        self,
        entity_id: UUID,
        gate_key: str,
        execution_id: UUID,
        round_index: int,
        decision: Decision,
    ) -> Decision:
        model = GateDecisionModel(
            entity_id=entity_id,
            gate_key=gate_key,
            execution_id=execution_id,
            round_index=round_index,
            actor_id=decision.actor_id,
            slot_key=decision.slot_key,
            outcome=decision.outcome.value,
            comment=decision.comment,
            decided_at=decision.decided_at,
            ordinal=self._next_ordinal(execution_id, round_index),
        )
        self._session.add(model)
        self._session.flush()
        return model.to_dto()

    def _next_ordinal(self, execution_id: UUID, round_index: int) -> int:
        current = self._session.execute(
            select(func.max(GateDecisionModel.ordinal)).where(
                GateDecisionModel.execution_id == execution_id,
                GateDecisionModel.round_index == round_index,
            )
        ).scalar_one()
        return (current or 0) + 1

    def for_round(self, execution_id: UUID, round_index: int) -> tuple[Decision, ...]:
        """Decisions cast in one round of one gate execution, in cast order."""
        rows = self._session.execute(
            select(GateDecisionModel)
            .where(
                GateDecisionModel.execution_id == execution_id,
                GateDecisionModel.round_index == round_index,
            )
            .order_by(GateDecisionModel.ordinal)
        ).scalars().all()
        return tuple(row.to_dto() for row in rows)


class RoundHistoryStore:
    """Append-only log of closed-round snapshots."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def _next_sequence(self, entity_id: UUID) -> int:
        current = self._session.execute(
            select(func.max(RoundSnapshotModel.sequence)).where(
                RoundSnapshotModel.entity_id == entity_id
            )
        ).scalar_one()
        return (current or 0) + 1

    def append(self, snapshot: RoundSnapshot) -> RoundSnapshot:
        """
        Append ``snapshot``, assigning the next per-entity sequence number.

        Any sequence already set on the argument is ignored.
        """
        sequence = self._next_sequence(snapshot.entity_id)
        model = RoundSnapshotModel.from_dto(snapshot)
        model.sequence = sequence
        self._session.add(model)
        self._session.flush()

        logger.info(
            "round_snapshot_appended",
            extra={
                "entity_id": str(snapshot.entity_id),
                "gate_key": snapshot.gate_key,
                "round_index": snapshot.round_index,
                "outcome": snapshot.outcome.value,
                "sequence": sequence,
            },
        )
        return model.to_dto()

    def history(self, entity_id: UUID, gate_key: str | None = None) -> list[RoundSnapshot]:
        """Snapshots for an entity (optionally one gate), in close order."""
        stmt = select(RoundSnapshotModel).where(RoundSnapshotModel.entity_id == entity_id)
        if gate_key is not None:
            stmt = stmt.where(RoundSnapshotModel.gate_key == str(gate_key))
        rows = self._session.execute(
            stmt.order_by(RoundSnapshotModel.sequence)
        ).scalars().all()
        return [row.to_dto() for row in rows]
