"""
Approval round domain types (``gate_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for round-based approval: voting rules, approver
requirements, rounds, cast decisions, voting slots, derived approval
tasks and immutable round snapshots.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/`` or outer layers.

Invariants enforced
-------------------
* A ``return`` or ``reject`` decision always carries a non-empty comment
  (``Decision.__post_init__`` fails closed).
* ``RoundSnapshot`` is frozen and serializes losslessly: every field is
  present in ``to_dict()``, ``None`` for absent optional values.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from gate_kernel.exceptions import InvalidDecisionPayloadError, MissingDecisionCommentError


class ApprovalRule(str, Enum):
    """Vote-counting policy that decides when a round closes."""

    ANY = "any"
    ALL = "all"
    MAJORITY = "majority"


class RequirementMode(str, Enum):
    """
    How a role requirement that resolves to several accounts is counted.

    ``any-of``: the requirement is one slot; whoever from the role decides
    first fills it.  ``all-of``: every resolved account is its own slot.
    """

    ANY_OF = "any-of"
    ALL_OF = "all-of"


class DecisionOutcome(str, Enum):
    APPROVE = "approve"
    RETURN = "return"
    REJECT = "reject"


COMMENT_REQUIRED_OUTCOMES: frozenset[DecisionOutcome] = frozenset({
    DecisionOutcome.RETURN,
    DecisionOutcome.REJECT,
})


class RoundOutcome(str, Enum):
    SATISFIED = "satisfied"
    REJECTED = "rejected"
    PENDING = "pending"


class SnapshotOutcome(str, Enum):
    """Outcome recorded on a closed round."""

    APPROVED = "approved"
    RETURNED = "returned"
    REJECTED = "rejected"


class TaskStatus(str, Enum):
    PENDING = "pending"
    DECIDED = "decided"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _uuid_or_none(value: Any) -> UUID | None:
    if value is None or value == "":
        return None
    return value if isinstance(value, UUID) else UUID(str(value))


# =========================================================================
# Configuration value objects
# =========================================================================


@dataclass(frozen=True)
class ApproverRequirement:
    """One approver requirement: a fixed account, a role, or both."""

    id: str
    account_id: UUID | None = None
    role: str | None = None

    @property
    def is_addressable(self) -> bool:
        return self.account_id is not None or bool(self.role)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "account_id": str(self.account_id) if self.account_id else None,
            "role": self.role,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ApproverRequirement:
        return cls(
            id=str(data["id"]),
            account_id=_uuid_or_none(data.get("account_id")),
            role=data.get("role") or None,
        )


@dataclass(frozen=True)
class ApprovalRound:
    """One voting cycle within a gate."""

    id: str
    rule: ApprovalRule
    approvers: tuple[ApproverRequirement, ...] = ()
    per_requirement: RequirementMode = RequirementMode.ANY_OF

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "rule": self.rule.value,
            "per_requirement": self.per_requirement.value,
            "approvers": [a.to_dict() for a in self.approvers],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ApprovalRound:
        return cls(
            id=str(data["id"]),
            rule=ApprovalRule(data["rule"]),
            per_requirement=RequirementMode(
                data.get("per_requirement", RequirementMode.ANY_OF.value)
            ),
            approvers=tuple(
                ApproverRequirement.from_dict(a) for a in data.get("approvers", ())
            ),
        )


GateConfiguration = dict[str, tuple[ApprovalRound, ...]]


def gates_to_dict(gates: GateConfiguration) -> dict[str, list[dict[str, Any]]]:
    """Serialize a gate configuration for JSON storage."""
    return {
        str(key): [r.to_dict() for r in rounds]
        for key, rounds in gates.items()
    }


def gates_from_dict(data: dict[str, Any] | None) -> GateConfiguration:
    """Inverse of ``gates_to_dict``."""
    return {
        str(key): tuple(ApprovalRound.from_dict(r) for r in rounds or ())
        for key, rounds in (data or {}).items()
    }


# =========================================================================
# Votes
# =========================================================================


@dataclass(frozen=True)
class Decision:
    """A single approver's vote within one round."""

    actor_id: UUID
    outcome: DecisionOutcome
    decided_at: datetime
    comment: str | None = None
    slot_key: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.outcome, DecisionOutcome):
            raise InvalidDecisionPayloadError("outcome", f"unknown outcome {self.outcome!r}")
        require_comment(self.outcome, self.comment)

    def to_dict(self) -> dict[str, Any]:
        return {
            "actor_id": str(self.actor_id),
            "outcome": self.outcome.value,
            "comment": self.comment,
            "decided_at": _iso(self.decided_at),
            "slot_key": self.slot_key,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Decision:
        return cls(
            actor_id=UUID(str(data["actor_id"])),
            outcome=DecisionOutcome(data["outcome"]),
            comment=data.get("comment"),
            decided_at=datetime.fromisoformat(data["decided_at"]),
            slot_key=data.get("slot_key"),
        )


def require_comment(outcome: DecisionOutcome, comment: str | None) -> None:
    """Raise MissingDecisionCommentError for a return/reject without a comment."""
    if outcome in COMMENT_REQUIRED_OUTCOMES and not (comment and comment.strip()):
        raise MissingDecisionCommentError(outcome.value)


@dataclass(frozen=True)
class VotingSlot:
    """
    One countable vote in a round.

    ``account_ids`` lists every account allowed to fill the slot; only the
    first decision from any of them counts.
    """

    slot_key: str
    requirement_id: str
    account_ids: tuple[UUID, ...]

    def accepts(self, account_id: UUID) -> bool:
        return account_id in self.account_ids


@dataclass(frozen=True)
class SlotBuild:
    """Result of turning a round's requirements into voting slots."""

    slots: tuple[VotingSlot, ...]
    unresolved_requirements: tuple[str, ...] = ()

    @property
    def is_complete(self) -> bool:
        return bool(self.slots) and not self.unresolved_requirements


# =========================================================================
# Derived / historical records
# =========================================================================


@dataclass(frozen=True)
class ApprovalTask:
    """
    A materialized, per-account item in an approval queue.

    Derived on demand from live gate state; never the source of truth.
    """

    entity_id: UUID
    entity_type: str
    entity_name: str
    gate_key: str
    round_index: int
    rule: ApprovalRule
    account_id: UUID
    requirement_id: str
    status: TaskStatus
    round_total: int
    round_approved: int
    round_pending: int
    version: int


@dataclass(frozen=True)
class RoundSnapshot:
    """
    Immutable audit record of a closed round.

    ``sequence`` is monotonic per entity, so history replays in the exact
    order rounds closed.
    """

    entity_id: UUID
    gate_key: str
    execution_id: UUID
    round_index: int
    round_id: str
    rule: ApprovalRule
    per_requirement: RequirementMode
    approvers: tuple[ApproverRequirement, ...]
    decisions: tuple[Decision, ...]
    outcome: SnapshotOutcome
    opened_at: datetime | None
    closed_at: datetime
    comment: str | None = None
    sequence: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_id": str(self.entity_id),
            "gate_key": self.gate_key,
            "execution_id": str(self.execution_id),
            "round_index": self.round_index,
            "round_id": self.round_id,
            "rule": self.rule.value,
            "per_requirement": self.per_requirement.value,
            "approvers": [a.to_dict() for a in self.approvers],
            "decisions": [d.to_dict() for d in self.decisions],
            "outcome": self.outcome.value,
            "opened_at": _iso(self.opened_at),
            "closed_at": _iso(self.closed_at),
            "comment": self.comment,
            "sequence": self.sequence,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RoundSnapshot:
        return cls(
            entity_id=UUID(str(data["entity_id"])),
            gate_key=data["gate_key"],
            execution_id=UUID(str(data["execution_id"])),
            round_index=int(data["round_index"]),
            round_id=data["round_id"],
            rule=ApprovalRule(data["rule"]),
            per_requirement=RequirementMode(data["per_requirement"]),
            approvers=tuple(ApproverRequirement.from_dict(a) for a in data["approvers"]),
            decisions=tuple(Decision.from_dict(d) for d in data["decisions"]),
            outcome=SnapshotOutcome(data["outcome"]),
            opened_at=_parse_dt(data.get("opened_at")),
            closed_at=datetime.fromisoformat(data["closed_at"]),
            comment=data.get("comment"),
            sequence=int(data.get("sequence", 0)),
        )

