"""
gate_services.transition_orchestrator -- Stage-gate transition coordination.

Responsibility:
    The single write path for gate progress.  ``submit`` opens the active
    gate; ``decide`` validates and records one approver decision, drives
    the rule evaluator and round tracker, appends the round snapshot when
    a round closes, advances the entity to its next gate when a gate is
    approved, and persists everything with a compare-and-swap on version.

Architecture position:
    Services layer.  Thin coordinator: rule semantics live in
    ``gate_engines.rules``, state-machine semantics in
    ``gate_engines.round_tracker``, persistence in ``gate_kernel.services``.

Invariants enforced:
    - ``decide`` preconditions run in a fixed order: entity exists, version
      matches, gate is pending, actor is an eligible approver with an open
      slot, and the payload is well formed (return/reject carry a comment).
      Nothing is written unless all of them pass.
    - Every successful mutation writes exactly ``expected_version + 1``; the
      version guard runs before the decision row and the snapshot are
      inserted.
    - Open rounds use the configuration captured when they opened.
    - A round with no resolvable approvers is a configuration error, never
      an automatic approval.
    - Notification failures are logged and never undo a decision.

Failure modes:
    - EntityNotFoundError / GateNotFoundError
    - VersionConflictError
    - InvalidGateStateError
    - ForbiddenApproverError / DuplicateDecisionError
    - MissingDecisionCommentError / InvalidDecisionPayloadError
    - MissingApproversError / EmptyGateConfigurationError (logged at ERROR)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from gate_engines.round_tracker import TrackerStep, apply_round_evaluation, open_gate
from gate_engines.rules import RoundEvaluation, evaluate_round, open_slots_for
from gate_kernel.domain.approval import (
    ApprovalRound,
    ApprovalRule,
    ApprovalTask,
    Decision,
    DecisionOutcome,
    RoundOutcome,
    RoundSnapshot,
    require_comment,
)
from gate_kernel.domain.clock import Clock, SystemClock
from gate_kernel.domain.entities import GovernedEntity, ProcessStatus
from gate_kernel.domain.gates import (
    SUBMITTABLE_GATE_STATUSES,
    GateRuntimeState,
    GateStatus,
    next_gate,
)
from gate_kernel.domain.ports import ApproverDirectory, DecisionNotifier
from gate_kernel.exceptions import (
    ConfigurationError,
    DuplicateDecisionError,
    EmptyGateConfigurationError,
    ForbiddenApproverError,
    GateKernelError,
    InvalidDecisionPayloadError,
    InvalidGateStateError,
    MissingApproversError,
    VersionConflictError,
)
from gate_kernel.logging_config import LogContext, get_logger
from gate_kernel.services.entity_store import EntityStore
from gate_kernel.services.round_history import DecisionLog, RoundHistoryStore
from gate_kernel.services.workstream_service import SqlApproverDirectory
from gate_services.config_resolver import GateConfigResolver
from gate_services.notifications import LoggingNotifier
from gate_services.task_materializer import TaskMaterializer

logger = get_logger("services.transition_orchestrator")


@dataclass(frozen=True)
class DecisionResult:
    """Outcome of a successful ``decide`` call."""

    entity: GovernedEntity
    decision: Decision
    evaluation: RoundEvaluation
    snapshot: RoundSnapshot | None = None

    @property
    def is_deadlocked(self) -> bool:
        return self.evaluation.is_deadlocked


class StageGateOrchestrator:
    """Coordinates submissions and decisions across an entity's gates."""

    def __init__(
        self,
        session: Session,
        resolver: GateConfigResolver | None = None,
        directory: ApproverDirectory | None = None,
        notifier: DecisionNotifier | None = None,
        clock: Clock | None = None,
        auto_approve_empty_gates: bool = False,
    ) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self._directory = directory or SqlApproverDirectory(session)
        self._resolver = resolver or GateConfigResolver(session, self._directory)
        self._notifier = notifier or LoggingNotifier()
        self._auto_approve_empty_gates = auto_approve_empty_gates
        self._store = EntityStore(session, self._clock)
        self._decisions = DecisionLog(session)
        self._history = RoundHistoryStore(session)
        self._tasks = TaskMaterializer(session, self._resolver)

    # ------------------------------------------------------------------
    # Shared checks
    # ------------------------------------------------------------------

    def _load_at_version(self, entity_id: UUID, expected_version: int) -> GovernedEntity:
        entity = self._store.load(entity_id)
        if entity.version != expected_version:
            logger.warning(
                "version_conflict",
                extra={
                    "expected_version": expected_version,
                    "actual_version": entity.version,
                },
            )
            raise VersionConflictError(
                entity.entity_type.value,
                str(entity_id),
                expected_version,
                entity.version,
            )
        return entity

    def _log_failure(self, operation: str, exc: GateKernelError) -> None:
        if isinstance(exc, ConfigurationError):
            logger.error(f"{operation}_configuration_error", exc_info=True)
        elif isinstance(exc, VersionConflictError):
            return  # already logged as version_conflict
        else:
            logger.info(
                f"{operation}_refused",
                extra={"error_code": exc.code, "reason": str(exc)},
            )

    # ------------------------------------------------------------------
    # Gate opening / stage advance
    # ------------------------------------------------------------------

    def _opened_state(
        self,
        entity: GovernedEntity,
        state: GateRuntimeState,
        now: datetime,
    ) -> GateRuntimeState:
        """
        Open ``state`` as pending at round 0 with a fresh execution.

        Auto-approves a gate with no rounds when the policy flag is on.
        """
        rounds = self._resolver.resolve_rounds(entity, state.gate_key)
        if not rounds:
            if not self._auto_approve_empty_gates:
                raise EmptyGateConfigurationError(str(entity.entity_id), state.gate_key)
            empty_round = ApprovalRound(id=f"{state.gate_key}-auto", rule=ApprovalRule.ANY)
            opened = open_gate(
                state,
                execution_id=uuid4(),
                first_round=empty_round,
                round_count=0,
                opened_at=now,
            )
            logger.warning(
                "gate_auto_approved",
                extra={"gate": state.gate_key, "reason": "no configured rounds"},
            )
            return opened.evolve(status=GateStatus.APPROVED, round_config=None)

        first = rounds[0]
        build = self._resolver.build_slots(entity, first)
        if not build.is_complete:
            raise MissingApproversError(
                str(entity.entity_id), state.gate_key, 0, build.unresolved_requirements
            )
        return open_gate(
            state,
            execution_id=uuid4(),
            first_round=first,
            round_count=len(rounds),
            opened_at=now,
        )

    def _advance_stage(self, entity: GovernedEntity, now: datetime) -> GovernedEntity:
        """
        Move past the (approved) active gate.

        The next gate opens pending when it can; if its configuration is
        missing or broken it stays draft and the problem is logged at ERROR.
        The approval of the previous gate stands either way.
        """
        while True:
            following = next_gate(entity.gate_sequence, entity.active_gate)
            if following is None:
                logger.info("entity_completed", extra={"final_gate": entity.active_gate})
                return entity.evolve(process_status=ProcessStatus.COMPLETED)

            entity = entity.evolve(active_gate=following)
            state = entity.gate_state(following)
            try:
                opened = self._opened_state(entity, state, now)
            except ConfigurationError as exc:
                logger.error(
                    "gate_configuration_missing",
                    extra={
                        "gate": following,
                        "error_code": exc.code,
                        "reason": str(exc),
                    },
                )
                return entity

            entity = entity.with_gate_state(opened)
            logger.info(
                "gate_opened",
                extra={"gate": following, "execution": str(opened.execution_id)},
            )
            if opened.status != GateStatus.APPROVED:
                return entity

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def submit(
        self,
        entity_id: UUID,
        expected_version: int,
        gate_key: str | None = None,
        actor_id: UUID | None = None,
    ) -> GovernedEntity:
        """
        Open the entity's active gate for approval.

        Valid from draft, returned and rejected.  Always starts at round 0
        under a new execution id; decisions of earlier executions stay in
        the audit log but never count again.
        """
        with LogContext.bind(
            entity_id=str(entity_id),
            actor_id=str(actor_id) if actor_id else None,
        ):
            try:
                return self._submit(entity_id, expected_version, gate_key)
            except GateKernelError as exc:
                self._log_failure("submit", exc)
                raise

    def _submit(
        self,
        entity_id: UUID,
        expected_version: int,
        gate_key: str | None,
    ) -> GovernedEntity:
        entity = self._load_at_version(entity_id, expected_version)
        key = str(gate_key) if gate_key is not None else entity.active_gate
        state = entity.gate_state(key)

        if key != entity.active_gate or state.status not in SUBMITTABLE_GATE_STATUSES:
            raise InvalidGateStateError(str(entity_id), key, state.status.value, "submit")

        now = self._clock.now()
        opened = self._opened_state(entity, state, now)
        updated = entity.with_gate_state(opened).evolve(
            process_status=ProcessStatus.IN_PROGRESS
        )
        if opened.status == GateStatus.APPROVED:
            updated = self._advance_stage(updated, now)

        saved = self._store.save(updated, expected_version)
        logger.info(
            "gate_submitted",
            extra={
                "gate": key,
                "execution": str(opened.execution_id),
                "round_count": opened.round_count,
                "version": saved.version,
            },
        )
        return saved

    def decide(
        self,
        entity_id: UUID,
        expected_version: int,
        gate_key: str,
        actor_id: UUID,
        outcome: DecisionOutcome | str,
        comment: str | None = None,
        *,
        requirement_id: str | None = None,
    ) -> DecisionResult:
        """
        Record one approver decision on the current round of ``gate_key``.

        ``requirement_id`` pins the decision to one requirement when the
        actor is eligible through several; otherwise the first open slot
        the actor may fill is used.
        """
        with LogContext.bind(
            entity_id=str(entity_id),
            actor_id=str(actor_id),
            gate_key=str(gate_key),
        ):
            try:
                return self._decide(
                    entity_id,
                    expected_version,
                    str(gate_key),
                    actor_id,
                    outcome,
                    comment,
                    requirement_id,
                )
            except GateKernelError as exc:
                self._log_failure("decision", exc)
                raise

    def _decide(
        self,
        entity_id: UUID,
        expected_version: int,
        gate_key: str,
        actor_id: UUID,
        raw_outcome: DecisionOutcome | str,
        comment: str | None,
        requirement_id: str | None,
    ) -> DecisionResult:
        # (1) exists, (2) version
        entity = self._load_at_version(entity_id, expected_version)

        # (3) gate pending
        state = entity.gate_state(gate_key)
        if state.status != GateStatus.PENDING:
            raise InvalidGateStateError(str(entity_id), gate_key, state.status.value, "decide")
        approval_round = state.round_config
        if approval_round is None or state.execution_id is None:
            raise MissingApproversError(str(entity_id), gate_key, state.round_index)

        # (4) eligible approver with an open slot
        build = self._resolver.build_slots(entity, approval_round)
        if not build.is_complete:
            raise MissingApproversError(
                str(entity_id), gate_key, state.round_index, build.unresolved_requirements
            )
        prior = self._decisions.for_round(state.execution_id, state.round_index)
        eligible = [
            s for s in build.slots
            if s.accepts(actor_id)
            and (requirement_id is None or s.requirement_id == requirement_id)
        ]
        if not eligible:
            raise ForbiddenApproverError(str(entity_id), gate_key, state.round_index, str(actor_id))
        if any(d.actor_id == actor_id for d in prior):
            raise DuplicateDecisionError(str(entity_id), gate_key, state.round_index, str(actor_id))
        open_slots = [s for s in open_slots_for(actor_id, build.slots, prior) if s in eligible]
        if not open_slots:
            raise DuplicateDecisionError(str(entity_id), gate_key, state.round_index, str(actor_id))

        # (5) payload
        try:
            outcome = DecisionOutcome(raw_outcome)
        except ValueError:
            raise InvalidDecisionPayloadError("outcome", f"unknown outcome {raw_outcome!r}") from None
        require_comment(outcome, comment)

        now = self._clock.now()
        decision = Decision(
            actor_id=actor_id,
            outcome=outcome,
            decided_at=now,
            comment=comment.strip() if comment else None,
            slot_key=open_slots[0].slot_key,
        )
        cast = prior + (decision,)
        evaluation = evaluate_round(approval_round, build.slots, cast)
        if evaluation.is_deadlocked:
            logger.warning(
                "round_deadlocked",
                extra={
                    "round_index": state.round_index,
                    "approve_count": evaluation.approve_count,
                    "non_approve_count": evaluation.non_approve_count,
                },
            )

        step = self._track(entity, state, evaluation, decision, now)
        updated = entity.with_gate_state(step.state)
        if step.gate_approved:
            updated = self._advance_stage(updated, now)

        # Version guard first; nothing below runs on a stale write.
        saved = self._store.save(updated, expected_version)
        recorded = self._decisions.record(
            entity_id, gate_key, state.execution_id, state.round_index, decision
        )

        snapshot = None
        if step.round_closed:
            snapshot = self._history.append(
                RoundSnapshot(
                    entity_id=entity_id,
                    gate_key=gate_key,
                    execution_id=state.execution_id,
                    round_index=state.round_index,
                    round_id=approval_round.id,
                    rule=approval_round.rule,
                    per_requirement=approval_round.per_requirement,
                    approvers=approval_round.approvers,
                    decisions=cast,
                    outcome=step.closed_outcome,
                    opened_at=state.opened_at,
                    closed_at=now,
                    comment=step.state.comment,
                )
            )

        self._log_step(step, evaluation, recorded, saved)
        self._notify(entity_id, gate_key, outcome)
        return DecisionResult(
            entity=saved,
            decision=recorded,
            evaluation=evaluation,
            snapshot=snapshot,
        )

    def _track(
        self,
        entity: GovernedEntity,
        state: GateRuntimeState,
        evaluation: RoundEvaluation,
        decision: Decision,
        now: datetime,
    ) -> TrackerStep:
        next_round = None
        round_count = state.round_count
        if evaluation.outcome == RoundOutcome.SATISFIED:
            # Rounds not yet started pick up the current configuration.
            rounds = self._resolver.resolve_rounds(entity, state.gate_key)
            round_count = max(len(rounds), state.round_index + 1)
            if state.round_index + 1 < len(rounds):
                next_round = rounds[state.round_index + 1]
                build = self._resolver.build_slots(entity, next_round)
                if not build.is_complete:
                    logger.error(
                        "round_configuration_incomplete",
                        extra={
                            "round_index": state.round_index + 1,
                            "unresolved": list(build.unresolved_requirements),
                        },
                    )
        return apply_round_evaluation(
            state,
            evaluation,
            closing_decision=decision,
            next_round=next_round,
            round_count=round_count,
            opened_at=now,
        )

    def _log_step(
        self,
        step: TrackerStep,
        evaluation: RoundEvaluation,
        decision: Decision,
        entity: GovernedEntity,
    ) -> None:
        logger.info(
            "decision_recorded",
            extra={
                "outcome": decision.outcome.value,
                "slot_key": decision.slot_key,
                "round_outcome": evaluation.outcome.value,
                "approve_count": evaluation.approve_count,
                "non_approve_count": evaluation.non_approve_count,
                "undecided_count": evaluation.undecided_count,
                "version": entity.version,
            },
        )
        if step.round_advanced:
            logger.info("round_advanced", extra={"round_index": step.state.round_index})
        if step.gate_approved:
            logger.info(
                "gate_approved",
                extra={"active_gate": entity.active_gate, "process_status": entity.process_status.value},
            )
        elif step.round_closed and not step.round_advanced:
            logger.info(
                "gate_closed",
                extra={
                    "closed_outcome": step.closed_outcome.value,
                    "comment": step.state.comment,
                },
            )

    def _notify(self, entity_id: UUID, gate_key: str, outcome: DecisionOutcome) -> None:
        try:
            result = self._notifier.notify_decision_recorded(entity_id, gate_key, outcome)
        except Exception:
            logger.warning("decision_notification_failed", exc_info=True)
            return
        if result is not None and not result.delivered:
            logger.warning(
                "decision_notification_failed",
                extra={
                    "error_code": result.error_code,
                    "reason": result.error_message,
                },
            )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_pending_tasks(self, account_id: UUID, include_decided: bool = False) -> list[ApprovalTask]:
        return self._tasks.pending_tasks(account_id, include_decided=include_decided)

    def get_round_history(self, entity_id: UUID, gate_key: str | None = None) -> list[RoundSnapshot]:
        """Closed rounds in close order.  Survives removal of the entity."""
        return self._history.history(entity_id, gate_key)
