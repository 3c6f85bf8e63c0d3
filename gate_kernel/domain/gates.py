"""
Gate domain types (``gate_kernel.domain.gates``).

Responsibility
--------------
Fixed gate sequences, the per-gate status state machine, and the
``GateRuntimeState`` value object held for every ``(entity, gate)`` pair.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Gate order is total and fixed; ``next_gate`` only ever moves forward
  one position.
* ``GATE_TRANSITIONS`` defines the only valid status changes.  ``approved``
  has no outgoing edges.
* ``round_index`` is never negative.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from gate_kernel.domain.approval import ApprovalRound


class InitiativeGate(str, Enum):
    """The six stage gates an initiative passes through, in order."""

    L0 = "l0"
    L1 = "l1"
    L2 = "l2"
    L3 = "l3"
    L4 = "l4"
    L5 = "l5"


class EvaluationGate(str, Enum):
    """Evaluations run a single implicit interview gate."""

    INTERVIEW = "interview"


INITIATIVE_GATE_SEQUENCE: tuple[str, ...] = tuple(g.value for g in InitiativeGate)
EVALUATION_GATE_SEQUENCE: tuple[str, ...] = (EvaluationGate.INTERVIEW.value,)


def next_gate(sequence: tuple[str, ...], gate_key: str) -> str | None:
    """Return the gate after ``gate_key`` in ``sequence``, or None at the end."""
    position = sequence.index(gate_key)
    if position + 1 < len(sequence):
        return sequence[position + 1]
    return None


# =========================================================================
# Gate status lifecycle
# =========================================================================


class GateStatus(str, Enum):
    """Per-gate lifecycle states."""

    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    RETURNED = "returned"
    REJECTED = "rejected"


GATE_TRANSITIONS: dict[GateStatus, frozenset[GateStatus]] = {
    GateStatus.DRAFT: frozenset({GateStatus.PENDING}),
    GateStatus.PENDING: frozenset({
        GateStatus.PENDING,
        GateStatus.APPROVED,
        GateStatus.RETURNED,
        GateStatus.REJECTED,
    }),
    GateStatus.RETURNED: frozenset({GateStatus.PENDING}),
    GateStatus.REJECTED: frozenset({GateStatus.PENDING}),
    GateStatus.APPROVED: frozenset(),
}

TERMINAL_GATE_STATUSES: frozenset[GateStatus] = frozenset({GateStatus.APPROVED})

SUBMITTABLE_GATE_STATUSES: frozenset[GateStatus] = frozenset({
    GateStatus.DRAFT,
    GateStatus.RETURNED,
    GateStatus.REJECTED,
})


@dataclass(frozen=True)
class GateRuntimeState:
    """
    Live state of one gate on one entity.

    ``round_config`` is the round configuration captured when the current
    round opened; in-flight rounds never re-read workstream configuration.
    ``round_count`` is the number of rounds the gate resolved to at that
    moment.  ``execution_id`` changes on every (re-)submission so decisions
    from earlier executions never count toward the current one.
    """

    gate_key: str
    status: GateStatus = GateStatus.DRAFT
    round_index: int = 0
    comment: str | None = None
    execution_id: UUID | None = None
    round_config: ApprovalRound | None = None
    round_count: int = 0
    opened_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.round_index < 0:
            raise ValueError("round_index must be non-negative")

    @classmethod
    def initial(cls, gate_key: str) -> GateRuntimeState:
        return cls(gate_key=str(gate_key))

    @property
    def is_pending(self) -> bool:
        return self.status == GateStatus.PENDING

    @property
    def is_last_round(self) -> bool:
        return self.round_index + 1 >= self.round_count

    def evolve(self, **changes: Any) -> GateRuntimeState:
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "gate_key": self.gate_key,
            "status": self.status.value,
            "round_index": self.round_index,
            "comment": self.comment,
            "execution_id": str(self.execution_id) if self.execution_id else None,
            "round_config": self.round_config.to_dict() if self.round_config else None,
            "round_count": self.round_count,
            "opened_at": self.opened_at.isoformat() if self.opened_at else None,
        }
