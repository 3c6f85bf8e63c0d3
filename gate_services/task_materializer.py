"""
gate_services.task_materializer -- Approval queue projection.

Responsibility:
    Project the current round of every pending gate into per-account
    ``ApprovalTask`` records.  Tasks are derived on demand from gate state,
    the round configuration captured on it, and the decisions cast so far;
    they are never stored.

Architecture position:
    Services layer.  Read-only: never adds, flushes or commits.

Invariants enforced:
    - Only gates with status ``pending`` produce tasks, and only for the
      round at ``round_index``.
    - A role requirement resolving to several accounts yields one task per
      account.  Under ``any-of`` they share one slot; once it is filled every
      one of those tasks is ``decided``.
    - Decided tasks are flagged, not dropped (unless the caller asks).
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from gate_engines.rules import counted_decisions, evaluate_round
from gate_kernel.domain.approval import ApprovalTask, TaskStatus
from gate_kernel.domain.entities import GovernedEntity
from gate_kernel.domain.gates import GateStatus
from gate_kernel.logging_config import get_logger
from gate_kernel.selectors.entity_selector import EntitySelector
from gate_kernel.services.round_history import DecisionLog
from gate_services.config_resolver import GateConfigResolver

logger = get_logger("services.task_materializer")


class TaskMaterializer:
    """Builds approval tasks from live gate state."""

    def __init__(self, session: Session, resolver: GateConfigResolver) -> None:
        self._selector = EntitySelector(session)
        self._decisions = DecisionLog(session)
        self._resolver = resolver

    def tasks_for_entity(self, entity: GovernedEntity) -> list[ApprovalTask]:
        """Every task (pending and decided) for the entity's pending gates."""
        tasks: list[ApprovalTask] = []
        for state in entity.gate_states:
            if state.status != GateStatus.PENDING or state.round_config is None:
                continue
            if state.execution_id is None:
                continue

            approval_round = state.round_config
            build = self._resolver.build_slots(entity, approval_round)
            decisions = self._decisions.for_round(state.execution_id, state.round_index)
            filled = counted_decisions(build.slots, decisions)
            evaluation = evaluate_round(approval_round, build.slots, decisions)

            for slot in build.slots:
                status = TaskStatus.DECIDED if slot.slot_key in filled else TaskStatus.PENDING
                for account_id in slot.account_ids:
                    tasks.append(
                        ApprovalTask(
                            entity_id=entity.entity_id,
                            entity_type=entity.entity_type.value,
                            entity_name=entity.name,
                            gate_key=state.gate_key,
                            round_index=state.round_index,
                            rule=approval_round.rule,
                            account_id=account_id,
                            requirement_id=slot.requirement_id,
                            status=status,
                            round_total=evaluation.total_slots,
                            round_approved=evaluation.approve_count,
                            round_pending=evaluation.undecided_count,
                            version=entity.version,
                        )
                    )
        return tasks

    def pending_tasks(self, account_id: UUID, include_decided: bool = False) -> list[ApprovalTask]:
        """The approval queue of ``account_id`` across all entities."""
        tasks: list[ApprovalTask] = []
        for entity in self._selector.with_pending_gates():
            for task in self.tasks_for_entity(entity):
                if task.account_id != account_id:
                    continue
                if task.status == TaskStatus.DECIDED and not include_decided:
                    continue
                tasks.append(task)

        logger.debug(
            "tasks_materialized",
            extra={"account_id": str(account_id), "task_count": len(tasks)},
        )
        return tasks
