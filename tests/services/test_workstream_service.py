"""
Tests for workstreams, gate configuration normalization and role
assignments.
"""

from uuid import uuid4

import pytest

from gate_kernel.domain.approval import ApprovalRule, RequirementMode
from gate_kernel.exceptions import VersionConflictError, WorkstreamNotFoundError
from gate_kernel.services.workstream_service import (
    SqlApproverDirectory,
    normalize_gates,
    normalize_requirement,
)
from tests.conftest import direct_round


class TestNormalization:
    def test_requirement_without_account_or_role_dropped(self):
        assert normalize_requirement({"id": "x", "role": "  "}) is None
        assert normalize_requirement("finance") is None

    def test_requirement_strings_coerced(self):
        account = uuid4()
        req = normalize_requirement({"id": " cfo ", "account_id": str(account), "role": " finance "})
        assert req.id == "cfo"
        assert req.account_id == account
        assert req.role == "finance"

    def test_unknown_rule_and_mode_fall_back(self):
        gates = normalize_gates(
            {"l1": [{"id": "r", "rule": "unanimous", "per_requirement": "most-of",
                     "approvers": [{"id": "a", "role": "sponsor"}]}]}
        )
        rnd = gates["l1"][0]
        assert rnd.rule == ApprovalRule.ANY
        assert rnd.per_requirement == RequirementMode.ANY_OF

    def test_missing_ids_are_generated(self):
        rnd = normalize_gates({"l0": [{"rule": "all", "approvers": [{"role": "x"}]}]})["l0"][0]
        assert rnd.id
        assert rnd.approvers[0].id

    def test_empty_gate_list(self):
        assert normalize_gates({"l3": None}) == {"l3": ()}
        assert normalize_gates(None) == {}


class TestWorkstreamLifecycle:
    def test_create_and_get(self, workstream_service, accounts):
        created = workstream_service.create_workstream(
            "  Capital projects ",
            "capex",
            {"l0": [direct_round("l0-r", ApprovalRule.ANY, accounts.a)]},
        )
        loaded = workstream_service.get_workstream(created.workstream_id)

        assert loaded.name == "Capital projects"
        assert loaded.version == 1
        assert loaded.rounds_for("l0")[0].approvers[0].account_id == accounts.a
        assert loaded.rounds_for("l4") == ()

    def test_find_by_name(self, workstream_service, make_workstream):
        created = make_workstream(name="Ops")
        assert workstream_service.find_by_name("Ops").workstream_id == created.workstream_id
        assert workstream_service.find_by_name("Nope") is None

    def test_get_unknown(self, workstream_service):
        with pytest.raises(WorkstreamNotFoundError):
            workstream_service.get_workstream(uuid4())

    def test_update_gates_bumps_version(self, workstream_service, make_workstream, accounts):
        ws = make_workstream()
        updated = workstream_service.update_gates(
            ws.workstream_id,
            {"l2": [direct_round("l2-r", ApprovalRule.MAJORITY, accounts.a, accounts.b)]},
            expected_version=1,
        )
        assert updated.version == 2
        assert updated.rounds_for("l2")[0].rule == ApprovalRule.MAJORITY

    def test_stale_update_conflicts(self, workstream_service, make_workstream):
        ws = make_workstream()
        workstream_service.update_gates(ws.workstream_id, {}, expected_version=1)

        with pytest.raises(VersionConflictError) as exc_info:
            workstream_service.update_gates(ws.workstream_id, {}, expected_version=1)
        assert exc_info.value.entity_type == "workstream"
        assert exc_info.value.actual_version == 2

    def test_update_unknown(self, workstream_service):
        with pytest.raises(WorkstreamNotFoundError):
            workstream_service.update_gates(uuid4(), {}, expected_version=1)


class TestRoleAssignments:
    def test_assign_and_resolve(self, session, workstream_service, make_workstream, accounts, deterministic_clock):
        ws = make_workstream()
        workstream_service.assign_role(ws.workstream_id, accounts.a, "sponsor")
        deterministic_clock.advance(5)
        workstream_service.assign_role(ws.workstream_id, accounts.b, " sponsor ")

        directory = SqlApproverDirectory(session)
        assert directory.resolve_approvers("sponsor", ws.workstream_id) == (accounts.a, accounts.b)
        assert directory.resolve_approvers("legal", ws.workstream_id) == ()
        assert directory.resolve_approvers("sponsor", None) == ()

    def test_roles_scoped_to_workstream(self, session, workstream_service, make_workstream, accounts):
        first, second = make_workstream(), make_workstream()
        workstream_service.assign_role(first.workstream_id, accounts.a, "sponsor")

        directory = SqlApproverDirectory(session)
        assert directory.resolve_approvers("sponsor", second.workstream_id) == ()

    def test_assign_is_idempotent(self, session, workstream_service, make_workstream, accounts):
        ws = make_workstream()
        workstream_service.assign_role(ws.workstream_id, accounts.a, "sponsor")
        workstream_service.assign_role(ws.workstream_id, accounts.a, "sponsor")

        directory = SqlApproverDirectory(session)
        assert directory.resolve_approvers("sponsor", ws.workstream_id) == (accounts.a,)

    def test_revoke(self, session, workstream_service, make_workstream, accounts):
        ws = make_workstream()
        workstream_service.assign_role(ws.workstream_id, accounts.a, "sponsor")

        assert workstream_service.revoke_role(ws.workstream_id, accounts.a, "sponsor") is True
        assert workstream_service.revoke_role(ws.workstream_id, accounts.a, "sponsor") is False
        assert SqlApproverDirectory(session).resolve_approvers("sponsor", ws.workstream_id) == ()

    def test_assign_to_unknown_workstream(self, workstream_service, accounts):
        with pytest.raises(WorkstreamNotFoundError):
            workstream_service.assign_role(uuid4(), accounts.a, "sponsor")
