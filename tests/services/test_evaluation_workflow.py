"""
Tests for the interview evaluation workflow: roster, invitations, forms,
hire decisions and offer status.
"""

from uuid import uuid4

import pytest

from gate_kernel.domain.approval import SnapshotOutcome
from gate_kernel.domain.entities import (
    EntityType,
    HireDecision,
    InvitationStatus,
    OfferStatus,
    ProcessStatus,
)
from gate_kernel.domain.gates import GateStatus
from gate_kernel.exceptions import (
    EntityNotFoundError,
    ForbiddenApproverError,
    ForbiddenError,
    FormAlreadySubmittedError,
    FormsPendingError,
    InvalidDecisionPayloadError,
    InvalidGateStateError,
    InvalidInputError,
    InvalidScoreError,
    MissingApproversError,
    SlotNotFoundError,
    VersionConflictError,
)
from gate_kernel.services.entity_store import EntityStore

FIT = {"motivation": 4, "communication": 5}
CASE = {"structure": 3, "math": "not_applicable"}


def _lose_next_save(workflow, monkeypatch, session, clock):
    """Make the workflow's next save race a concurrent writer and lose."""
    original = workflow._store.save

    def save(entity, expected_version):
        other = EntityStore(session, clock)
        other.save(other.load(entity.entity_id), expected_version)
        return original(entity, expected_version)

    monkeypatch.setattr(workflow._store, "save", save)


def _slot_for(workflow, evaluation_id, account_id):
    return next(
        s for s in workflow.list_slots(evaluation_id) if s.interviewer_account_id == account_id
    )


def _submit_form(workflow, evaluation, account_id, fit=FIT, case=CASE, **kw):
    slot = _slot_for(workflow, evaluation.entity_id, account_id)
    return workflow.submit_interview_form(
        evaluation.entity_id, evaluation.version, slot.slot_id, account_id, fit, case, **kw
    )


@pytest.fixture
def started(evaluation_workflow, accounts):
    """Evaluation with interviewers a and b, interview gate pending."""
    evaluation = evaluation_workflow.create_evaluation("cand-42", [accounts.a, accounts.b])
    return evaluation_workflow.start_process(evaluation.entity_id, evaluation.version)


@pytest.fixture
def interviewed(evaluation_workflow, started, accounts):
    """Both forms in; interview gate approved."""
    result, _ = _submit_form(evaluation_workflow, started, accounts.a)
    result, _ = _submit_form(evaluation_workflow, result.entity, accounts.b)
    return result.entity


# =============================================================================
# Creation and roster
# =============================================================================


class TestRoster:
    def test_create_evaluation(self, evaluation_workflow, accounts):
        evaluation = evaluation_workflow.create_evaluation("cand-42", [accounts.a, None])

        assert evaluation.entity_type == EntityType.EVALUATION
        assert evaluation.candidate_id == "cand-42"
        assert evaluation.round_number == 1
        assert evaluation.active_gate == "interview"
        assert evaluation.gate_state("interview").status == GateStatus.DRAFT

        slots = evaluation_workflow.list_slots(evaluation.entity_id)
        assert [s.invitation_status for s in slots] == [
            InvitationStatus.PENDING,
            InvitationStatus.UNASSIGNED,
        ]

    def test_empty_roster_gets_one_unassigned_slot(self, evaluation_workflow):
        evaluation = evaluation_workflow.create_evaluation("cand-1")
        slots = evaluation_workflow.list_slots(evaluation.entity_id)
        assert len(slots) == 1
        assert slots[0].interviewer_account_id is None

    def test_candidate_required(self, evaluation_workflow):
        with pytest.raises(InvalidInputError):
            evaluation_workflow.create_evaluation("  ")

    def test_update_roster_keeps_unchanged_slots(self, evaluation_workflow, accounts):
        evaluation = evaluation_workflow.create_evaluation("cand-42", [accounts.a, accounts.b])
        before = evaluation_workflow.list_slots(evaluation.entity_id)

        saved = evaluation_workflow.update_roster(
            evaluation.entity_id, evaluation.version, [accounts.a, accounts.c, accounts.d]
        )

        after = evaluation_workflow.list_slots(evaluation.entity_id)
        assert saved.version == evaluation.version + 1
        assert [s.interviewer_account_id for s in after] == [accounts.a, accounts.c, accounts.d]
        assert after[0].slot_id == before[0].slot_id
        assert after[1].invitation_status == InvitationStatus.PENDING

    def test_update_roster_shrinks(self, evaluation_workflow, accounts):
        evaluation = evaluation_workflow.create_evaluation("cand-42", [accounts.a, accounts.b])
        evaluation_workflow.update_roster(evaluation.entity_id, evaluation.version, [accounts.b])

        slots = evaluation_workflow.list_slots(evaluation.entity_id)
        assert [s.interviewer_account_id for s in slots] == [accounts.b]

    def test_roster_frozen_while_pending(self, evaluation_workflow, started, accounts):
        with pytest.raises(InvalidGateStateError):
            evaluation_workflow.update_roster(started.entity_id, started.version, [accounts.c])

    def test_roster_stale_version(self, evaluation_workflow, accounts):
        evaluation = evaluation_workflow.create_evaluation("cand-42", [accounts.a])
        with pytest.raises(VersionConflictError):
            evaluation_workflow.update_roster(evaluation.entity_id, 9, [accounts.b])

    def test_lost_roster_race_leaves_slots_untouched(
        self, evaluation_workflow, accounts, monkeypatch, session, deterministic_clock
    ):
        evaluation = evaluation_workflow.create_evaluation("cand-42", [accounts.a, accounts.b])
        _lose_next_save(evaluation_workflow, monkeypatch, session, deterministic_clock)

        with pytest.raises(VersionConflictError):
            evaluation_workflow.update_roster(
                evaluation.entity_id, evaluation.version, [accounts.c]
            )

        slots = evaluation_workflow.list_slots(evaluation.entity_id)
        assert [s.interviewer_account_id for s in slots] == [accounts.a, accounts.b]


# =============================================================================
# Start and invitations
# =============================================================================


class TestInvitations:
    def test_start_opens_gate_and_invites(self, evaluation_workflow, started, invitation_sender, accounts, deterministic_clock):
        assert started.gate_state("interview").status == GateStatus.PENDING
        assert started.process_status == ProcessStatus.IN_PROGRESS
        assert {slot.interviewer_account_id for _, slot in invitation_sender.sent} == {
            accounts.a, accounts.b
        }

        state = evaluation_workflow.invitation_state(started.entity_id)
        assert state.has_invitations
        assert not state.has_pending_changes
        assert state.last_sent_at == deterministic_clock.now()
        assert all(s.invitation_status == InvitationStatus.DELIVERED for s in state.slots)

    def test_failed_delivery_recorded_not_raised(self, evaluation_workflow, invitation_sender, accounts, captured_logs):
        invitation_sender.failing.add(accounts.b)
        invitation_sender.raising.add(accounts.c)
        evaluation = evaluation_workflow.create_evaluation(
            "cand-42", [accounts.a, accounts.b, accounts.c]
        )

        started = evaluation_workflow.start_process(evaluation.entity_id, evaluation.version)

        assert started.gate_state("interview").status == GateStatus.PENDING
        slots = evaluation_workflow.list_slots(evaluation.entity_id)
        assert [s.invitation_status for s in slots] == [
            InvitationStatus.DELIVERED,
            InvitationStatus.FAILED,
            InvitationStatus.FAILED,
        ]
        assert slots[1].invitation_error_code == "mailbox_unavailable"
        assert slots[1].invitation_error_message == "550 no such user"
        assert slots[2].invitation_error_code == "delivery_error"
        assert evaluation_workflow.invitation_state(evaluation.entity_id).has_pending_changes
        assert len([r for r in captured_logs() if r["message"] == "invitation_failed"]) == 2

    def test_resend_retries_only_undelivered(self, evaluation_workflow, invitation_sender, accounts):
        invitation_sender.failing.add(accounts.b)
        evaluation = evaluation_workflow.create_evaluation("cand-42", [accounts.a, accounts.b])
        evaluation_workflow.start_process(evaluation.entity_id, evaluation.version)
        invitation_sender.failing.clear()
        invitation_sender.sent.clear()

        report = evaluation_workflow.send_invitations(evaluation.entity_id)

        assert [slot.interviewer_account_id for _, slot in invitation_sender.sent] == [accounts.b]
        slots = evaluation_workflow.list_slots(evaluation.entity_id)
        assert report.sent == (slots[1].slot_id,)
        assert report.skipped == (slots[0].slot_id,)
        assert report.failed == ()
        assert not report.state.has_pending_changes

    def test_selected_slots_resent(self, evaluation_workflow, invitation_sender, accounts):
        evaluation = evaluation_workflow.create_evaluation("cand-42", [accounts.a, accounts.b, None])
        evaluation_workflow.start_process(evaluation.entity_id, evaluation.version)
        invitation_sender.sent.clear()
        invitation_sender.failing.add(accounts.b)
        first, second, unassigned = evaluation_workflow.list_slots(evaluation.entity_id)

        report = evaluation_workflow.send_invitations(
            evaluation.entity_id, slot_ids=[first.slot_id, second.slot_id]
        )

        assert [slot.interviewer_account_id for _, slot in invitation_sender.sent] == [
            accounts.a,
            accounts.b,
        ]
        assert report.sent == (first.slot_id,)
        assert report.failed == (second.slot_id,)
        assert report.skipped == (unassigned.slot_id,)

    def test_selection_limits_delivery(self, evaluation_workflow, invitation_sender, accounts):
        evaluation = evaluation_workflow.create_evaluation("cand-42", [accounts.a, accounts.b])
        first, second = evaluation_workflow.list_slots(evaluation.entity_id)

        report = evaluation_workflow.send_invitations(evaluation.entity_id, slot_ids=[second.slot_id])

        assert report.sent == (second.slot_id,)
        assert report.skipped == (first.slot_id,)
        slots = evaluation_workflow.list_slots(evaluation.entity_id)
        assert slots[0].invitation_status == InvitationStatus.PENDING
        assert report.state.has_pending_changes

    def test_unknown_selected_slot(self, evaluation_workflow, invitation_sender, accounts):
        evaluation = evaluation_workflow.create_evaluation("cand-42", [accounts.a])
        with pytest.raises(SlotNotFoundError):
            evaluation_workflow.send_invitations(evaluation.entity_id, slot_ids=[uuid4()])
        assert invitation_sender.sent == []

    def test_start_without_interviewers(self, evaluation_workflow):
        evaluation = evaluation_workflow.create_evaluation("cand-1")
        with pytest.raises(MissingApproversError):
            evaluation_workflow.start_process(evaluation.entity_id, evaluation.version)


# =============================================================================
# Interview forms
# =============================================================================


class TestForms:
    def test_form_scored_and_counted(self, evaluation_workflow, started, accounts):
        result, form = _submit_form(evaluation_workflow, started, accounts.a, notes="strong")

        assert form.fit_average == 4.5
        assert form.case_average == 3.0
        assert form.case_scores == {"structure": 3, "math": None}
        assert form.round_number == 1
        assert form.notes == "strong"
        assert result.entity.gate_state("interview").status == GateStatus.PENDING
        assert result.evaluation.approve_count == 1
        assert _slot_for(evaluation_workflow, started.entity_id, accounts.a).form_submitted

    def test_all_forms_approve_gate(self, evaluation_workflow, interviewed, orchestrator):
        assert interviewed.gate_state("interview").status == GateStatus.APPROVED
        assert interviewed.process_status == ProcessStatus.COMPLETED
        history = orchestrator.get_round_history(interviewed.entity_id)
        assert [s.outcome for s in history] == [SnapshotOutcome.APPROVED]
        assert len(evaluation_workflow.forms_for(interviewed.entity_id, 1)) == 2

    def test_unknown_slot(self, evaluation_workflow, started, accounts):
        other = evaluation_workflow.create_evaluation("cand-7", [accounts.a])
        foreign_slot = evaluation_workflow.list_slots(other.entity_id)[0]
        with pytest.raises(SlotNotFoundError):
            evaluation_workflow.submit_interview_form(
                started.entity_id, started.version, foreign_slot.slot_id, accounts.a, FIT, CASE
            )

    def test_only_slot_interviewer_may_submit(self, evaluation_workflow, started, accounts):
        slot = _slot_for(evaluation_workflow, started.entity_id, accounts.a)
        with pytest.raises(ForbiddenApproverError):
            evaluation_workflow.submit_interview_form(
                started.entity_id, started.version, slot.slot_id, accounts.b, FIT, CASE
            )

    def test_second_form_for_slot(self, evaluation_workflow, started, accounts):
        result, _ = _submit_form(evaluation_workflow, started, accounts.a)
        with pytest.raises(FormAlreadySubmittedError):
            _submit_form(evaluation_workflow, result.entity, accounts.a)

    def test_invalid_score_records_nothing(self, evaluation_workflow, started, accounts):
        with pytest.raises(InvalidScoreError):
            _submit_form(evaluation_workflow, started, accounts.a, fit={"motivation": 7})

        assert evaluation_workflow.get_evaluation(started.entity_id).version == started.version
        assert evaluation_workflow.forms_for(started.entity_id) == []

    def test_form_before_start_refused(self, evaluation_workflow, accounts):
        evaluation = evaluation_workflow.create_evaluation("cand-42", [accounts.a])
        with pytest.raises(InvalidGateStateError):
            _submit_form(evaluation_workflow, evaluation, accounts.a)


# =============================================================================
# Hire decision and offer
# =============================================================================


class TestHireDecision:
    def test_requires_all_forms(self, evaluation_workflow, started, accounts):
        result, _ = _submit_form(evaluation_workflow, started, accounts.a)
        with pytest.raises(FormsPendingError) as exc_info:
            evaluation_workflow.record_hire_decision(
                started.entity_id, result.entity.version, HireDecision.OFFER
            )
        assert exc_info.value.pending_slots == 1

    def test_offer_then_status(self, evaluation_workflow, interviewed):
        offered = evaluation_workflow.record_hire_decision(
            interviewed.entity_id, interviewed.version, "offer"
        )
        assert offered.hire_decision == HireDecision.OFFER
        assert offered.offer_status == OfferStatus.PENDING

        accepted = evaluation_workflow.update_offer_status(
            offered.entity_id, offered.version, "accepted-co"
        )
        assert accepted.offer_status == OfferStatus.ACCEPTED_CO

    def test_reject_clears_offer(self, evaluation_workflow, interviewed):
        rejected = evaluation_workflow.record_hire_decision(
            interviewed.entity_id, interviewed.version, HireDecision.REJECT
        )
        assert rejected.hire_decision == HireDecision.REJECT
        assert rejected.offer_status is None

        with pytest.raises(ForbiddenError):
            evaluation_workflow.update_offer_status(rejected.entity_id, rejected.version, "accepted")

    def test_unknown_values(self, evaluation_workflow, interviewed):
        with pytest.raises(InvalidDecisionPayloadError):
            evaluation_workflow.record_hire_decision(interviewed.entity_id, interviewed.version, "hold")
        with pytest.raises(InvalidDecisionPayloadError):
            evaluation_workflow.update_offer_status(interviewed.entity_id, interviewed.version, "maybe")

    def test_progress_opens_next_round(self, evaluation_workflow, interviewed, orchestrator, accounts):
        progressed = evaluation_workflow.record_hire_decision(
            interviewed.entity_id, interviewed.version, HireDecision.PROGRESS
        )

        assert progressed.round_number == 2
        assert progressed.process_status == ProcessStatus.DRAFT
        assert progressed.hire_decision is None
        assert progressed.gate_state("interview").status == GateStatus.DRAFT
        assert progressed.gate_state("interview").execution_id is None
        slots = evaluation_workflow.list_slots(progressed.entity_id)
        assert [s.invitation_status for s in slots] == [InvitationStatus.UNASSIGNED]

        roster = evaluation_workflow.update_roster(progressed.entity_id, progressed.version, [accounts.c])
        restarted = evaluation_workflow.start_process(roster.entity_id, roster.version)
        result, form = _submit_form(evaluation_workflow, restarted, accounts.c)

        assert form.round_number == 2
        assert result.entity.gate_state("interview").status == GateStatus.APPROVED
        assert len(evaluation_workflow.forms_for(progressed.entity_id)) == 3
        assert len(evaluation_workflow.forms_for(progressed.entity_id, 2)) == 1
        history = orchestrator.get_round_history(progressed.entity_id)
        assert [s.round_id for s in history] == ["interview-1", "interview-2"]
        assert history[0].execution_id != history[1].execution_id


    def test_lost_progress_race_keeps_roster(
        self, evaluation_workflow, interviewed, accounts, monkeypatch, session, deterministic_clock
    ):
        _lose_next_save(evaluation_workflow, monkeypatch, session, deterministic_clock)

        with pytest.raises(VersionConflictError):
            evaluation_workflow.record_hire_decision(
                interviewed.entity_id, interviewed.version, HireDecision.PROGRESS
            )

        slots = evaluation_workflow.list_slots(interviewed.entity_id)
        assert [s.interviewer_account_id for s in slots] == [accounts.a, accounts.b]
        assert all(s.form_submitted for s in slots)


def test_remove_evaluation(evaluation_workflow, started):
    evaluation_workflow.remove_evaluation(started.entity_id)
    with pytest.raises(EntityNotFoundError):
        evaluation_workflow.get_evaluation(started.entity_id)
    assert evaluation_workflow.list_evaluations() == []
