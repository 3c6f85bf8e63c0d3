"""
gate_kernel.services.workstream_service -- Workstreams, gate configuration
and approver role assignments.

Responsibility:
    Creates and versions workstreams, normalizes the gate configuration
    they own, and maintains the role assignments used to resolve
    role-based approver requirements.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Gate configuration edits are compare-and-swap on the workstream
      version.  Rounds already open keep the configuration captured on the
      gate state, so edits only reach rounds that have not started.
    - Normalized configuration never contains an approver requirement
      with neither an account nor a role.

Failure modes:
    - WorkstreamNotFoundError for an unknown workstream id.
    - VersionConflictError on a stale gate configuration update.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from gate_kernel.domain.approval import (
    ApprovalRound,
    ApprovalRule,
    ApproverRequirement,
    GateConfiguration,
    RequirementMode,
    gates_to_dict,
)
from gate_kernel.domain.clock import Clock, SystemClock
from gate_kernel.domain.entities import Workstream
from gate_kernel.exceptions import VersionConflictError, WorkstreamNotFoundError
from gate_kernel.logging_config import get_logger
from gate_kernel.models.workstream import WorkstreamModel, WorkstreamRoleAssignmentModel

logger = get_logger("services.workstream")


# ---------------------------------------------------------------------------
# Normalization of loosely-typed gate payloads
# ---------------------------------------------------------------------------


def _clean_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _clean_uuid(value: Any) -> UUID | None:
    if isinstance(value, UUID):
        return value
    text = _clean_str(value)
    return UUID(text) if text else None


def normalize_requirement(value: ApproverRequirement | Mapping[str, Any]) -> ApproverRequirement | None:
    """Coerce one approver entry; returns None when it names no account and no role."""
    if isinstance(value, ApproverRequirement):
        return value if value.is_addressable else None
    if not isinstance(value, Mapping):
        return None
    account_id = _clean_uuid(value.get("account_id"))
    role = _clean_str(value.get("role"))
    if account_id is None and role is None:
        return None
    return ApproverRequirement(
        id=_clean_str(value.get("id")) or str(uuid4()),
        account_id=account_id,
        role=role,
    )


def normalize_round(value: ApprovalRound | Mapping[str, Any]) -> ApprovalRound:
    """Coerce one round; unknown rules fall back to ``any``."""
    if isinstance(value, ApprovalRound):
        approvers = tuple(
            a for a in (normalize_requirement(r) for r in value.approvers) if a is not None
        )
        return ApprovalRound(
            id=value.id,
            rule=value.rule,
            approvers=approvers,
            per_requirement=value.per_requirement,
        )

    rule_value = value.get("rule")
    try:
        rule = ApprovalRule(rule_value)
    except ValueError:
        rule = ApprovalRule.ANY
    try:
        mode = RequirementMode(value.get("per_requirement", RequirementMode.ANY_OF.value))
    except ValueError:
        mode = RequirementMode.ANY_OF

    raw_approvers = value.get("approvers") or ()
    approvers = tuple(
        a for a in (normalize_requirement(r) for r in raw_approvers) if a is not None
    )
    return ApprovalRound(
        id=_clean_str(value.get("id")) or str(uuid4()),
        rule=rule,
        approvers=approvers,
        per_requirement=mode,
    )


def normalize_gates(
    gates: Mapping[str, Iterable[ApprovalRound | Mapping[str, Any]]] | None,
) -> GateConfiguration:
    """Normalize a whole gate configuration, keyed by gate key."""
    return {
        str(key): tuple(normalize_round(r) for r in rounds or ())
        for key, rounds in (gates or {}).items()
    }


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class WorkstreamService:
    """Workstream lifecycle and role assignments."""

    def __init__(self, session: Session, clock: Clock | None = None) -> None:
        self._session = session
        self._clock = clock or SystemClock()

    def _load_model(self, workstream_id: UUID) -> WorkstreamModel:
        model = self._session.execute(
            select(WorkstreamModel)
            .where(WorkstreamModel.id == workstream_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise WorkstreamNotFoundError(str(workstream_id))
        return model

    def get_workstream(self, workstream_id: UUID) -> Workstream:
        return self._load_model(workstream_id).to_dto()

    def find_by_name(self, name: str) -> Workstream | None:
        model = self._session.execute(
            select(WorkstreamModel).where(WorkstreamModel.name == name)
        ).scalar_one_or_none()
        return model.to_dto() if model else None

    def create_workstream(
        self,
        name: str,
        description: str = "",
        gates: Mapping[str, Iterable[ApprovalRound | Mapping[str, Any]]] | None = None,
    ) -> Workstream:
        now = self._clock.now()
        normalized = normalize_gates(gates)
        model = WorkstreamModel(
            name=name.strip(),
            description=description,
            gates=gates_to_dict(normalized),
            version=1,
            created_at=now,
            updated_at=now,
        )
        self._session.add(model)
        self._session.flush()

        logger.info(
            "workstream_created",
            extra={
                "workstream_id": str(model.id),
                "workstream_name": model.name,
                "gate_keys": sorted(normalized),
            },
        )
        return model.to_dto()

    def update_gates(
        self,
        workstream_id: UUID,
        gates: Mapping[str, Iterable[ApprovalRound | Mapping[str, Any]]],
        expected_version: int,
    ) -> Workstream:
        """Replace the gate configuration if the workstream is still at ``expected_version``."""
        normalized = normalize_gates(gates)
        result = self._session.execute(
            update(WorkstreamModel)
            .where(
                WorkstreamModel.id == workstream_id,
                WorkstreamModel.version == expected_version,
            )
            .values(
                gates=gates_to_dict(normalized),
                version=expected_version + 1,
                updated_at=self._clock.now(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            actual = self._session.execute(
                select(WorkstreamModel.version).where(WorkstreamModel.id == workstream_id)
            ).scalar_one_or_none()
            if actual is None:
                raise WorkstreamNotFoundError(str(workstream_id))
            raise VersionConflictError(
                "workstream", str(workstream_id), expected_version, actual
            )

        logger.info(
            "workstream_gates_updated",
            extra={
                "workstream_id": str(workstream_id),
                "version": expected_version + 1,
            },
        )
        return self.get_workstream(workstream_id)

    def assign_role(self, workstream_id: UUID, account_id: UUID, role: str) -> None:
        """Grant ``role`` to ``account_id``.  Assigning an existing role is a no-op."""
        self._load_model(workstream_id)
        role = role.strip()
        existing = self._session.execute(
            select(WorkstreamRoleAssignmentModel).where(
                WorkstreamRoleAssignmentModel.workstream_id == workstream_id,
                WorkstreamRoleAssignmentModel.account_id == account_id,
                WorkstreamRoleAssignmentModel.role == role,
            )
        ).scalar_one_or_none()
        if existing is not None:
            return

        self._session.add(
            WorkstreamRoleAssignmentModel(
                workstream_id=workstream_id,
                account_id=account_id,
                role=role,
                assigned_at=self._clock.now(),
            )
        )
        self._session.flush()
        logger.info(
            "role_assigned",
            extra={
                "workstream_id": str(workstream_id),
                "account_id": str(account_id),
                "role": role,
            },
        )

    def revoke_role(self, workstream_id: UUID, account_id: UUID, role: str) -> bool:
        """Remove a role assignment.  Returns False if there was none."""
        result = self._session.execute(
            delete(WorkstreamRoleAssignmentModel).where(
                WorkstreamRoleAssignmentModel.workstream_id == workstream_id,
                WorkstreamRoleAssignmentModel.account_id == account_id,
                WorkstreamRoleAssignmentModel.role == role.strip(),
            )
        )
        revoked = result.rowcount > 0
        if revoked:
            logger.info(
                "role_revoked",
                extra={
                    "workstream_id": str(workstream_id),
                    "account_id": str(account_id),
                    "role": role,
                },
            )
        return revoked


class SqlApproverDirectory:
    """``ApproverDirectory`` backed by workstream role assignments."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def resolve_approvers(self, role: str, workstream_id: UUID | None) -> tuple[UUID, ...]:
        if workstream_id is None:
            return ()
        rows = self._session.execute(
            select(WorkstreamRoleAssignmentModel.account_id)
            .where(
                WorkstreamRoleAssignmentModel.workstream_id == workstream_id,
                WorkstreamRoleAssignmentModel.role == role,
            )
            .order_by(
                WorkstreamRoleAssignmentModel.assigned_at,
                WorkstreamRoleAssignmentModel.account_id,
            )
        ).scalars().all()
        return tuple(rows)
