"""
Tests for the round rule evaluator.

Covers:
- Voting slot construction (direct accounts, any-of / all-of roles)
- any / all / majority semantics
- Majority tie deadlock
- First decision per slot counts
- Misconfigured (empty) rounds
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from gate_engines.rules import (
    build_voting_slots,
    counted_decisions,
    evaluate_round,
    open_slots_for,
)
from gate_kernel.domain.approval import (
    ApprovalRound,
    ApprovalRule,
    ApproverRequirement,
    Decision,
    DecisionOutcome,
    RequirementMode,
    RoundOutcome,
)

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _round(rule, n, mode=RequirementMode.ANY_OF):
    accounts = [uuid4() for _ in range(n)]
    rnd = ApprovalRound(
        id="r",
        rule=rule,
        per_requirement=mode,
        approvers=tuple(
            ApproverRequirement(id=f"req-{i}", account_id=a) for i, a in enumerate(accounts)
        ),
    )
    slots = build_voting_slots(rnd, {f"req-{i}": (a,) for i, a in enumerate(accounts)}).slots
    return rnd, slots, accounts


def _vote(slot, outcome, actor=None):
    comment = None if outcome == DecisionOutcome.APPROVE else "needs rework"
    return Decision(
        actor_id=actor or slot.account_ids[0],
        outcome=outcome,
        decided_at=NOW,
        comment=comment,
        slot_key=slot.slot_key,
    )


APPROVE = DecisionOutcome.APPROVE
RETURN = DecisionOutcome.RETURN
REJECT = DecisionOutcome.REJECT


class TestBuildVotingSlots:
    def test_direct_accounts_one_slot_each(self):
        rnd, slots, accounts = _round(ApprovalRule.ALL, 3)
        assert [s.account_ids for s in slots] == [(a,) for a in accounts]
        assert [s.slot_key for s in slots] == ["req-0", "req-1", "req-2"]

    def test_any_of_role_is_one_shared_slot(self):
        x, y = uuid4(), uuid4()
        rnd = ApprovalRound(
            id="r", rule=ApprovalRule.ALL,
            approvers=(ApproverRequirement(id="finance", role="finance"),),
        )
        build = build_voting_slots(rnd, {"finance": (x, y)})
        assert len(build.slots) == 1
        assert build.slots[0].account_ids == (x, y)
        assert build.is_complete

    def test_all_of_role_is_one_slot_per_account(self):
        x, y = uuid4(), uuid4()
        rnd = ApprovalRound(
            id="r", rule=ApprovalRule.ALL, per_requirement=RequirementMode.ALL_OF,
            approvers=(ApproverRequirement(id="finance", role="finance"),),
        )
        build = build_voting_slots(rnd, {"finance": (x, y)})
        assert [s.slot_key for s in build.slots] == [f"finance:{x}", f"finance:{y}"]

    def test_duplicate_accounts_collapse(self):
        x = uuid4()
        rnd = ApprovalRound(
            id="r", rule=ApprovalRule.ALL, per_requirement=RequirementMode.ALL_OF,
            approvers=(ApproverRequirement(id="finance", role="finance"),),
        )
        build = build_voting_slots(rnd, {"finance": (x, x)})
        assert len(build.slots) == 1

    def test_unresolved_requirement_reported(self):
        rnd = ApprovalRound(
            id="r", rule=ApprovalRule.ANY,
            approvers=(
                ApproverRequirement(id="sponsor", role="sponsor"),
                ApproverRequirement(id="finance", role="finance"),
            ),
        )
        build = build_voting_slots(rnd, {"sponsor": (uuid4(),), "finance": ()})
        assert build.unresolved_requirements == ("finance",)
        assert not build.is_complete


class TestAnyRule:
    def test_first_approve_satisfies(self):
        rnd, slots, _ = _round(ApprovalRule.ANY, 3)
        result = evaluate_round(rnd, slots, (_vote(slots[1], APPROVE),))
        assert result.outcome == RoundOutcome.SATISFIED

    def test_single_reject_keeps_round_open(self):
        rnd, slots, _ = _round(ApprovalRule.ANY, 3)
        result = evaluate_round(rnd, slots, (_vote(slots[0], REJECT),))
        assert result.outcome == RoundOutcome.PENDING

    def test_all_non_approve_rejects(self):
        rnd, slots, _ = _round(ApprovalRule.ANY, 2)
        result = evaluate_round(
            rnd, slots, (_vote(slots[0], REJECT), _vote(slots[1], RETURN))
        )
        assert result.outcome == RoundOutcome.REJECTED
        assert result.has_reject


class TestAllRule:
    def test_every_approve_satisfies(self):
        rnd, slots, _ = _round(ApprovalRule.ALL, 3)
        result = evaluate_round(rnd, slots, tuple(_vote(s, APPROVE) for s in slots))
        assert result.outcome == RoundOutcome.SATISFIED
        assert result.approve_count == 3

    def test_partial_approvals_pending(self):
        rnd, slots, _ = _round(ApprovalRule.ALL, 3)
        result = evaluate_round(rnd, slots, (_vote(slots[0], APPROVE),))
        assert result.outcome == RoundOutcome.PENDING
        assert result.undecided_count == 2

    def test_single_return_rejects_round(self):
        rnd, slots, _ = _round(ApprovalRule.ALL, 3)
        result = evaluate_round(
            rnd, slots, (_vote(slots[0], APPROVE), _vote(slots[1], RETURN))
        )
        assert result.outcome == RoundOutcome.REJECTED
        assert not result.has_reject


class TestMajorityRule:
    def test_two_of_three_satisfies(self):
        rnd, slots, _ = _round(ApprovalRule.MAJORITY, 3)
        one = evaluate_round(rnd, slots, (_vote(slots[0], APPROVE),))
        two = evaluate_round(
            rnd, slots, (_vote(slots[0], APPROVE), _vote(slots[1], APPROVE))
        )
        assert one.outcome == RoundOutcome.PENDING
        assert two.outcome == RoundOutcome.SATISFIED

    def test_two_rejects_of_three_rejects(self):
        rnd, slots, _ = _round(ApprovalRule.MAJORITY, 3)
        result = evaluate_round(
            rnd, slots, (_vote(slots[0], REJECT), _vote(slots[1], REJECT))
        )
        assert result.outcome == RoundOutcome.REJECTED

    def test_even_split_fully_decided_is_deadlocked(self):
        rnd, slots, _ = _round(ApprovalRule.MAJORITY, 4)
        votes = (
            _vote(slots[0], APPROVE),
            _vote(slots[1], APPROVE),
            _vote(slots[2], REJECT),
            _vote(slots[3], RETURN),
        )
        result = evaluate_round(rnd, slots, votes)
        assert result.outcome == RoundOutcome.PENDING
        assert result.is_deadlocked
        assert result.undecided_count == 0

    def test_half_rejected_with_votes_outstanding_is_rejected(self):
        rnd, slots, _ = _round(ApprovalRule.MAJORITY, 4)
        result = evaluate_round(
            rnd, slots, (_vote(slots[0], REJECT), _vote(slots[1], REJECT))
        )
        assert result.outcome == RoundOutcome.REJECTED
        assert not result.is_deadlocked

    def test_single_approver_majority(self):
        rnd, slots, _ = _round(ApprovalRule.MAJORITY, 1)
        assert evaluate_round(rnd, slots, (_vote(slots[0], APPROVE),)).outcome == RoundOutcome.SATISFIED


class TestSlotCounting:
    def test_only_first_decision_per_slot_counts(self):
        x, y = uuid4(), uuid4()
        rnd = ApprovalRound(
            id="r", rule=ApprovalRule.ALL,
            approvers=(ApproverRequirement(id="finance", role="finance"),),
        )
        slots = build_voting_slots(rnd, {"finance": (x, y)}).slots
        first = _vote(slots[0], APPROVE, actor=x)
        second = _vote(slots[0], REJECT, actor=y)

        counted = counted_decisions(slots, (first, second))
        result = evaluate_round(rnd, slots, (first, second))

        assert counted == {"finance": first}
        assert result.outcome == RoundOutcome.SATISFIED

    def test_decisions_for_unknown_slots_ignored(self):
        rnd, slots, _ = _round(ApprovalRule.ALL, 1)
        stray = Decision(
            actor_id=uuid4(), outcome=REJECT, decided_at=NOW, comment="x", slot_key="elsewhere"
        )
        result = evaluate_round(rnd, slots, (stray,))
        assert result.outcome == RoundOutcome.PENDING
        assert result.non_approve_count == 0

    def test_open_slots_for_excludes_filled(self):
        rnd, slots, accounts = _round(ApprovalRule.ALL, 2)
        filled = (_vote(slots[0], APPROVE),)
        assert open_slots_for(accounts[0], slots, filled) == []
        assert open_slots_for(accounts[1], slots, filled) == [slots[1]]


class TestMisconfiguredRound:
    @pytest.mark.parametrize("rule", list(ApprovalRule))
    def test_zero_slots_never_satisfied(self, rule):
        rnd = ApprovalRound(id="empty", rule=rule)
        result = evaluate_round(rnd, (), ())
        assert result.outcome == RoundOutcome.PENDING
        assert result.is_misconfigured
