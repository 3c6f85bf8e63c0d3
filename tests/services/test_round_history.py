"""
Tests for the append-only decision log and round history store.
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

from gate_kernel.domain.approval import (
    ApprovalRule,
    Decision,
    DecisionOutcome,
    RequirementMode,
    RoundSnapshot,
    SnapshotOutcome,
)
from gate_kernel.services.round_history import DecisionLog, RoundHistoryStore

NOW = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def _snapshot(entity_id, gate_key, round_index=0, outcome=SnapshotOutcome.APPROVED, sequence=0):
    return RoundSnapshot(
        entity_id=entity_id,
        gate_key=gate_key,
        execution_id=uuid4(),
        round_index=round_index,
        round_id=f"{gate_key}-r{round_index}",
        rule=ApprovalRule.ANY,
        per_requirement=RequirementMode.ANY_OF,
        approvers=(),
        decisions=(),
        outcome=outcome,
        opened_at=NOW,
        closed_at=NOW + timedelta(hours=round_index),
        sequence=sequence,
    )


class TestDecisionLog:
    def test_decisions_replay_in_cast_order(self, session):
        log = DecisionLog(session)
        entity_id, execution = uuid4(), uuid4()
        first, second = uuid4(), uuid4()

        log.record(entity_id, "l1", execution, 0,
                   Decision(actor_id=first, outcome=DecisionOutcome.APPROVE, decided_at=NOW, slot_key="a"))
        log.record(entity_id, "l1", execution, 0,
                   Decision(actor_id=second, outcome=DecisionOutcome.RETURN, decided_at=NOW,
                            comment="incomplete", slot_key="b"))

        decisions = log.for_round(execution, 0)
        assert [d.actor_id for d in decisions] == [first, second]
        assert decisions[1].comment == "incomplete"
        assert log.for_round(execution, 1) == ()
        assert log.for_round(uuid4(), 0) == ()


class TestRoundHistoryStore:
    def test_sequence_assigned_per_entity(self, session):
        store = RoundHistoryStore(session)
        entity_a, entity_b = uuid4(), uuid4()

        first = store.append(_snapshot(entity_a, "l0", sequence=99))
        other = store.append(_snapshot(entity_b, "l0"))
        second = store.append(_snapshot(entity_a, "l1"))

        assert (first.sequence, second.sequence) == (1, 2)
        assert other.sequence == 1

    def test_history_in_close_order_and_filtered(self, session):
        store = RoundHistoryStore(session)
        entity_id = uuid4()
        store.append(_snapshot(entity_id, "l0"))
        store.append(_snapshot(entity_id, "l1", outcome=SnapshotOutcome.RETURNED))
        store.append(_snapshot(entity_id, "l1", round_index=0))

        history = store.history(entity_id)
        assert [(s.gate_key, s.outcome) for s in history] == [
            ("l0", SnapshotOutcome.APPROVED),
            ("l1", SnapshotOutcome.RETURNED),
            ("l1", SnapshotOutcome.APPROVED),
        ]
        assert [s.sequence for s in store.history(entity_id, "l1")] == [2, 3]
        assert store.history(uuid4()) == []
