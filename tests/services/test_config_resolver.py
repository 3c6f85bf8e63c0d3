"""
Tests for round and approver resolution.
"""

import pytest

from gate_kernel.domain.approval import ApprovalRound, ApprovalRule, ApproverRequirement
from gate_services.config_resolver import GateConfigResolver
from tests.conftest import direct_round, role_round


@pytest.fixture
def resolver(session, directory):
    return GateConfigResolver(session, directory)


class TestInitiativeRounds:
    def test_rounds_come_from_workstream(self, resolver, make_initiative, accounts):
        entity = make_initiative(
            {
                "l1": [
                    direct_round("l1-a", ApprovalRule.ANY, accounts.a),
                    direct_round("l1-b", ApprovalRule.ALL, accounts.b),
                ]
            }
        )
        assert [r.id for r in resolver.resolve_rounds(entity, "l1")] == ["l1-a", "l1-b"]
        assert resolver.resolve_rounds(entity, "l2") == ()


class TestAccountResolution:
    def test_direct_account_wins_over_role(self, resolver, make_initiative, directory, accounts):
        directory.roles["finance"] = [accounts.b]
        entity = make_initiative()
        rnd = ApprovalRound(
            id="r",
            rule=ApprovalRule.ALL,
            approvers=(ApproverRequirement(id="cfo", account_id=accounts.a, role="finance"),),
        )
        assert resolver.resolve_accounts(entity, rnd) == {"cfo": (accounts.a,)}
        assert directory.calls == []

    def test_role_lookup_scoped_to_workstream(self, resolver, make_initiative, directory, accounts):
        directory.roles["finance"] = [accounts.a, accounts.b]
        entity = make_initiative()

        resolved = resolver.resolve_accounts(entity, role_round("r", ApprovalRule.ANY, "finance"))

        assert resolved == {"finance": (accounts.a, accounts.b)}
        assert directory.calls == [("finance", entity.workstream_id)]

    def test_unresolved_role_reported(self, resolver, make_initiative):
        entity = make_initiative()
        build = resolver.build_slots(entity, role_round("r", ApprovalRule.ANY, "legal"))

        assert not build.is_complete
        assert build.unresolved_requirements == ("legal",)


class TestInterviewRound:
    def test_one_requirement_per_assigned_slot(self, resolver, evaluation_workflow, accounts):
        evaluation = evaluation_workflow.create_evaluation(
            "cand-1", [accounts.a, None, accounts.b]
        )
        rounds = resolver.resolve_rounds(evaluation, "interview")

        assert len(rounds) == 1
        rnd = rounds[0]
        assert rnd.id == "interview-1"
        assert rnd.rule == ApprovalRule.ALL
        assert [a.account_id for a in rnd.approvers] == [accounts.a, accounts.b]
        slot_ids = [str(s.slot_id) for s in evaluation_workflow.list_slots(evaluation.entity_id)]
        assert [a.id for a in rnd.approvers] == [slot_ids[0], slot_ids[2]]
