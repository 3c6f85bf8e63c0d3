"""
Collaborator protocols consumed by the gate engine.

Identity, notification and invitation delivery are external systems.  The
kernel depends only on these structural interfaces; concrete adapters
live in ``gate_kernel.services`` (SQL-backed directory) and
``gate_services.notifications``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from gate_kernel.domain.approval import DecisionOutcome
from gate_kernel.domain.entities import InterviewSlot


@dataclass(frozen=True)
class DeliveryResult:
    delivered: bool
    error_code: str | None = None
    error_message: str | None = None


class ApproverDirectory(Protocol):
    """Resolves a role to concrete account ids within a workstream."""

    def resolve_approvers(
        self, role: str, workstream_id: UUID | None
    ) -> tuple[UUID, ...]:
        ...


class DecisionNotifier(Protocol):
    """Fire-and-forget notification that a decision was recorded."""

    def notify_decision_recorded(
        self, entity_id: UUID, gate_key: str, outcome: DecisionOutcome
    ) -> DeliveryResult:
        ...


class InvitationSender(Protocol):
    """Delivers interview invitations; only the delivery status is kept."""

    def send_invitation(
        self, evaluation_id: UUID, slot: InterviewSlot
    ) -> DeliveryResult:
        ...
