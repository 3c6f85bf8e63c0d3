"""
gate_services.evaluation_workflow -- Interview evaluation lifecycle.

Responsibility:
    Candidate evaluations run a single ``interview`` gate whose round is
    an ``all`` round with one slot per assigned interviewer.  This service
    manages the interviewer roster and invitations, records interview
    forms (each form is that interviewer's ``approve`` decision), and
    applies the hire decision once every form is in.

Architecture position:
    Services layer.  All gate progress goes through
    ``StageGateOrchestrator``; this module never writes gate state itself.

Invariants enforced:
    - The roster can only change while the interview gate is not pending.
    - One form per slot per interview round; forms are never edited.
    - A hire decision requires the interview gate to be approved.
    - ``progress`` opens a new interview round under a new gate execution;
      earlier forms and round snapshots are kept.
    - Invitation delivery failures are recorded on the slot and never undo
      the submission that triggered them.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from uuid import UUID, uuid4

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from gate_engines.round_tracker import restart_gate
from gate_engines.scoring import score_form
from gate_kernel.domain.approval import DecisionOutcome
from gate_kernel.domain.clock import Clock, SystemClock
from gate_kernel.domain.entities import (
    EntityType,
    GovernedEntity,
    HireDecision,
    InterviewForm,
    InterviewSlot,
    InvitationDeliveryReport,
    InvitationState,
    InvitationStatus,
    OfferStatus,
    ProcessStatus,
)
from gate_kernel.domain.gates import (
    EVALUATION_GATE_SEQUENCE,
    SUBMITTABLE_GATE_STATUSES,
    EvaluationGate,
    GateRuntimeState,
    GateStatus,
)
from gate_kernel.domain.ports import InvitationSender
from gate_kernel.exceptions import (
    EntityNotFoundError,
    ForbiddenApproverError,
    ForbiddenError,
    FormAlreadySubmittedError,
    FormsPendingError,
    InvalidDecisionPayloadError,
    InvalidGateStateError,
    InvalidInputError,
    SlotNotFoundError,
    VersionConflictError,
)
from gate_kernel.logging_config import LogContext, get_logger
from gate_kernel.models.evaluation import InterviewFormModel, InterviewSlotModel
from gate_kernel.selectors.entity_selector import EntitySelector
from gate_kernel.services.entity_store import EntityStore
from gate_services.notifications import LoggingNotifier
from gate_services.transition_orchestrator import DecisionResult, StageGateOrchestrator

logger = get_logger("services.evaluation_workflow")

INTERVIEW_GATE = EvaluationGate.INTERVIEW.value


def _slot_status(interviewer_account_id: UUID | None) -> str:
    if interviewer_account_id is None:
        return InvitationStatus.UNASSIGNED.value
    return InvitationStatus.PENDING.value


class EvaluationWorkflow:
    """Roster, invitation, form and hire-decision operations on evaluations."""

    def __init__(
        self,
        session: Session,
        orchestrator: StageGateOrchestrator | None = None,
        invitation_sender: InvitationSender | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self._orchestrator = orchestrator or StageGateOrchestrator(session, clock=self._clock)
        self._sender = invitation_sender or LoggingNotifier()
        self._store = EntityStore(session, self._clock)
        self._selector = EntitySelector(session)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_evaluation(self, evaluation_id: UUID) -> GovernedEntity:
        entity = self._store.load(evaluation_id)
        if entity.entity_type != EntityType.EVALUATION:
            raise EntityNotFoundError(str(evaluation_id))
        return entity

    def list_evaluations(self) -> list[GovernedEntity]:
        return self._selector.list_entities(EntityType.EVALUATION)

    def _slot_models(self, evaluation_id: UUID) -> list[InterviewSlotModel]:
        return list(
            self._session.execute(
                select(InterviewSlotModel)
                .where(InterviewSlotModel.evaluation_id == evaluation_id)
                .order_by(InterviewSlotModel.position)
            ).scalars().all()
        )

    def list_slots(self, evaluation_id: UUID) -> list[InterviewSlot]:
        return [m.to_dto() for m in self._slot_models(evaluation_id)]

    def forms_for(self, evaluation_id: UUID, round_number: int | None = None) -> list[InterviewForm]:
        """Submitted forms, all rounds unless ``round_number`` is given."""
        stmt = select(InterviewFormModel).where(InterviewFormModel.evaluation_id == evaluation_id)
        if round_number is not None:
            stmt = stmt.where(InterviewFormModel.round_number == round_number)
        rows = self._session.execute(
            stmt.order_by(InterviewFormModel.round_number, InterviewFormModel.submitted_at)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def _load_at_version(self, evaluation_id: UUID, expected_version: int) -> GovernedEntity:
        entity = self.get_evaluation(evaluation_id)
        if entity.version != expected_version:
            raise VersionConflictError(
                EntityType.EVALUATION.value,
                str(evaluation_id),
                expected_version,
                entity.version,
            )
        return entity

    def _add_slots(self, evaluation_id: UUID, interviewers: Sequence[UUID | None], start: int = 0) -> None:
        for offset, account_id in enumerate(interviewers):
            self._session.add(
                InterviewSlotModel(
                    evaluation_id=evaluation_id,
                    interviewer_account_id=account_id,
                    position=start + offset,
                    invitation_status=_slot_status(account_id),
                    form_submitted=False,
                )
            )

    # ------------------------------------------------------------------
    # Roster
    # ------------------------------------------------------------------

    def create_evaluation(
        self,
        candidate_id: str,
        interviewers: Sequence[UUID | None] = (),
        name: str | None = None,
    ) -> GovernedEntity:
        """
        Create a draft evaluation for ``candidate_id`` at interview round 1.

        An empty roster gets a single unassigned slot.
        """
        if not candidate_id or not str(candidate_id).strip():
            raise InvalidInputError("Evaluation requires a candidate id")
        candidate_id = str(candidate_id).strip()

        entity = GovernedEntity(
            entity_id=uuid4(),
            entity_type=EntityType.EVALUATION,
            name=name or f"Evaluation {candidate_id}",
            active_gate=INTERVIEW_GATE,
            process_status=ProcessStatus.DRAFT,
            version=1,
            gate_states=tuple(GateRuntimeState.initial(k) for k in EVALUATION_GATE_SEQUENCE),
            candidate_id=candidate_id,
            round_number=1,
        )
        created = self._store.insert(entity)
        self._add_slots(created.entity_id, list(interviewers) or [None])
        self._session.flush()

        logger.info(
            "evaluation_created",
            extra={
                "entity_id": str(created.entity_id),
                "candidate_id": candidate_id,
                "slot_count": max(len(interviewers), 1),
            },
        )
        return created

    def update_roster(
        self,
        evaluation_id: UUID,
        expected_version: int,
        interviewers: Sequence[UUID | None],
    ) -> GovernedEntity:
        """
        Replace the interviewer roster.

        Slots keep their id and invitation state where the interviewer at
        that position is unchanged; a changed interviewer resets the slot's
        invitation to pending.
        """
        entity = self._load_at_version(evaluation_id, expected_version)
        state = entity.gate_state(INTERVIEW_GATE)
        if state.status not in SUBMITTABLE_GATE_STATUSES:
            raise InvalidGateStateError(
                str(evaluation_id), INTERVIEW_GATE, state.status.value, "update_roster"
            )
        if not interviewers:
            interviewers = [None]

        saved = self._store.save(entity, expected_version)

        existing = self._slot_models(evaluation_id)
        for position, model in enumerate(existing[: len(interviewers)]):
            account_id = interviewers[position]
            model.position = position
            if model.interviewer_account_id == account_id:
                continue
            model.interviewer_account_id = account_id
            model.invitation_status = _slot_status(account_id)
            model.invitation_sent_at = None
            model.invitation_error_code = None
            model.invitation_error_message = None
            model.form_submitted = False

        for model in existing[len(interviewers):]:
            self._session.delete(model)
        self._add_slots(evaluation_id, interviewers[len(existing):], start=len(existing))
        self._session.flush()

        logger.info(
            "roster_updated",
            extra={"entity_id": str(evaluation_id), "slot_count": len(interviewers)},
        )
        return saved

    # ------------------------------------------------------------------
    # Process start / invitations
    # ------------------------------------------------------------------

    def start_process(
        self,
        evaluation_id: UUID,
        expected_version: int,
        actor_id: UUID | None = None,
    ) -> GovernedEntity:
        """Submit the interview gate, then invite every assigned interviewer."""
        self.get_evaluation(evaluation_id)
        entity = self._orchestrator.submit(
            evaluation_id, expected_version, INTERVIEW_GATE, actor_id=actor_id
        )
        self.send_invitations(evaluation_id)
        return entity

    def send_invitations(
        self,
        evaluation_id: UUID,
        slot_ids: Sequence[UUID] | None = None,
    ) -> InvitationDeliveryReport:
        """
        Send invitations and report what happened to each slot.

        Without ``slot_ids`` every assigned slot that is not yet delivered is
        invited.  With ``slot_ids`` exactly those slots are invited, including
        a re-send to slots already delivered.  Unassigned slots and slots
        whose form is in are always skipped.

        Raises:
            SlotNotFoundError: A selected slot is not on the current roster.
        """
        models = self._slot_models(evaluation_id)
        selected: set[UUID] | None = None
        if slot_ids:
            selected = set(slot_ids)
            known = {m.id for m in models}
            for slot_id in slot_ids:
                if slot_id not in known:
                    raise SlotNotFoundError(str(evaluation_id), str(slot_id))

        sent: list[UUID] = []
        failed: list[UUID] = []
        skipped: list[UUID] = []
        with LogContext.bind(entity_id=str(evaluation_id)):
            for model in models:
                if model.interviewer_account_id is None or model.form_submitted:
                    skipped.append(model.id)
                    continue
                if selected is None:
                    if model.invitation_status == InvitationStatus.DELIVERED.value:
                        skipped.append(model.id)
                        continue
                elif model.id not in selected:
                    skipped.append(model.id)
                    continue
                if self._deliver(evaluation_id, model):
                    sent.append(model.id)
                else:
                    failed.append(model.id)
            self._session.flush()

        logger.info(
            "invitations_sent",
            extra={
                "entity_id": str(evaluation_id),
                "sent": len(sent),
                "failed": len(failed),
                "skipped": len(skipped),
            },
        )
        return InvitationDeliveryReport(
            sent=tuple(sent),
            failed=tuple(failed),
            skipped=tuple(skipped),
            state=self.invitation_state(evaluation_id),
        )

    def _deliver(self, evaluation_id: UUID, model: InterviewSlotModel) -> bool:
        try:
            result = self._sender.send_invitation(evaluation_id, model.to_dto())
        except Exception as exc:
            logger.warning(
                "invitation_failed",
                extra={"slot_id": str(model.id)},
                exc_info=True,
            )
            model.invitation_status = InvitationStatus.FAILED.value
            model.invitation_error_code = "delivery_error"
            model.invitation_error_message = str(exc)
            return False

        if result.delivered:
            model.invitation_status = InvitationStatus.DELIVERED.value
            model.invitation_sent_at = self._clock.now()
            model.invitation_error_code = None
            model.invitation_error_message = None
            return True

        logger.warning(
            "invitation_failed",
            extra={
                "slot_id": str(model.id),
                "error_code": result.error_code,
                "reason": result.error_message,
            },
        )
        model.invitation_status = InvitationStatus.FAILED.value
        model.invitation_error_code = result.error_code
        model.invitation_error_message = result.error_message
        return False

    def invitation_state(self, evaluation_id: UUID) -> InvitationState:
        slots = tuple(self.list_slots(evaluation_id))
        sent = [s.invitation_sent_at for s in slots if s.invitation_sent_at is not None]
        return InvitationState(
            has_invitations=bool(sent),
            has_pending_changes=any(
                s.invitation_status in (InvitationStatus.PENDING, InvitationStatus.FAILED)
                and not s.form_submitted
                for s in slots
            ),
            last_sent_at=max(sent) if sent else None,
            slots=slots,
        )

    # ------------------------------------------------------------------
    # Interview forms
    # ------------------------------------------------------------------

    def submit_interview_form(
        self,
        evaluation_id: UUID,
        expected_version: int,
        slot_id: UUID,
        actor_id: UUID,
        fit_criteria: Mapping[str, object],
        case_criteria: Mapping[str, object],
        notes: str = "",
        offer_recommendation: bool | None = None,
    ) -> tuple[DecisionResult, InterviewForm]:
        """
        Store an interviewer's form and record it as their approve decision.

        Raises:
            SlotNotFoundError: ``slot_id`` is not on the current roster.
            ForbiddenApproverError: ``actor_id`` is not the slot's interviewer.
            FormAlreadySubmittedError: The slot already has a form this round.
            InvalidScoreError: A criterion score is outside 1..5.
        """
        entity = self._load_at_version(evaluation_id, expected_version)
        slot = self._session.get(InterviewSlotModel, slot_id)
        if slot is None or slot.evaluation_id != evaluation_id:
            raise SlotNotFoundError(str(evaluation_id), str(slot_id))

        state = entity.gate_state(INTERVIEW_GATE)
        if slot.interviewer_account_id != actor_id:
            raise ForbiddenApproverError(
                str(evaluation_id), INTERVIEW_GATE, state.round_index, str(actor_id)
            )
        if slot.form_submitted:
            raise FormAlreadySubmittedError(str(evaluation_id), str(slot_id))

        scores = score_form(fit_criteria, case_criteria)
        result = self._orchestrator.decide(
            evaluation_id,
            expected_version,
            INTERVIEW_GATE,
            actor_id,
            DecisionOutcome.APPROVE,
            requirement_id=str(slot_id),
        )

        now = self._clock.now()
        form = InterviewFormModel(
            evaluation_id=evaluation_id,
            slot_id=slot_id,
            round_number=entity.round_number or 1,
            submitted_by=actor_id,
            fit_scores=scores.fit_scores,
            case_scores=scores.case_scores,
            fit_average=scores.fit_average,
            case_average=scores.case_average,
            notes=notes,
            offer_recommendation=offer_recommendation,
            submitted_at=now,
        )
        self._session.add(form)
        slot.form_submitted = True
        self._session.flush()

        logger.info(
            "interview_form_submitted",
            extra={
                "entity_id": str(evaluation_id),
                "slot_id": str(slot_id),
                "round_number": form.round_number,
                "fit_average": scores.fit_average,
                "case_average": scores.case_average,
            },
        )
        return result, form.to_dto()

    # ------------------------------------------------------------------
    # Hire decision / offer
    # ------------------------------------------------------------------

    def _require_forms_complete(self, entity: GovernedEntity) -> None:
        if entity.gate_state(INTERVIEW_GATE).status != GateStatus.APPROVED:
            pending = sum(1 for s in self.list_slots(entity.entity_id) if not s.form_submitted)
            raise FormsPendingError(str(entity.entity_id), pending)

    def record_hire_decision(
        self,
        evaluation_id: UUID,
        expected_version: int,
        decision: HireDecision | str,
    ) -> GovernedEntity:
        try:
            decision = HireDecision(decision)
        except ValueError:
            raise InvalidDecisionPayloadError("decision", f"unknown hire decision {decision!r}") from None

        entity = self._load_at_version(evaluation_id, expected_version)
        self._require_forms_complete(entity)

        if decision == HireDecision.PROGRESS:
            updated = self._next_round(entity)
        elif decision == HireDecision.OFFER:
            updated = entity.evolve(
                hire_decision=HireDecision.OFFER,
                offer_status=entity.offer_status or OfferStatus.PENDING,
            )
        else:
            updated = entity.evolve(hire_decision=HireDecision.REJECT, offer_status=None)

        saved = self._store.save(updated, expected_version)
        if decision == HireDecision.PROGRESS:
            self._reset_roster(evaluation_id)
        logger.info(
            "hire_decision_recorded",
            extra={
                "entity_id": str(evaluation_id),
                "decision": decision.value,
                "round_number": saved.round_number,
            },
        )
        return saved

    def _next_round(self, entity: GovernedEntity) -> GovernedEntity:
        """Entity at interview round ``round_number + 1`` with a fresh draft gate."""
        state = entity.gate_state(INTERVIEW_GATE)
        return entity.with_gate_state(restart_gate(state)).evolve(
            round_number=(entity.round_number or 1) + 1,
            process_status=ProcessStatus.DRAFT,
            hire_decision=None,
            offer_status=None,
        )

    def _reset_roster(self, evaluation_id: UUID) -> None:
        self._session.execute(
            delete(InterviewSlotModel).where(InterviewSlotModel.evaluation_id == evaluation_id)
        )
        self._add_slots(evaluation_id, [None])
        self._session.flush()

    def update_offer_status(
        self,
        evaluation_id: UUID,
        expected_version: int,
        status: OfferStatus | str,
    ) -> GovernedEntity:
        try:
            status = OfferStatus(status)
        except ValueError:
            raise InvalidDecisionPayloadError("offer_status", f"unknown status {status!r}") from None

        entity = self._load_at_version(evaluation_id, expected_version)
        if entity.hire_decision != HireDecision.OFFER:
            raise ForbiddenError("Offer status can only be set after an offer decision")
        self._require_forms_complete(entity)

        saved = self._store.save(entity.evolve(offer_status=status), expected_version)
        logger.info(
            "offer_status_updated",
            extra={"entity_id": str(evaluation_id), "offer_status": status.value},
        )
        return saved

    def remove_evaluation(self, evaluation_id: UUID) -> None:
        self.get_evaluation(evaluation_id)
        self._store.delete(evaluation_id)
