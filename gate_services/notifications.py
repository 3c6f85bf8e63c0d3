"""
gate_services.notifications -- Default notification adapters.

Delivery transport is an external collaborator.  These adapters satisfy
the ``DecisionNotifier`` and ``InvitationSender`` protocols by emitting a
structured log record and reporting the message as delivered; deployments
plug in a real transport with the same interface.
"""

from __future__ import annotations

from uuid import UUID

from gate_kernel.domain.approval import DecisionOutcome
from gate_kernel.domain.entities import InterviewSlot
from gate_kernel.domain.ports import DeliveryResult
from gate_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


class LoggingNotifier:
    """Log-only notifier and invitation sender."""

    def notify_decision_recorded(
        self, entity_id: UUID, gate_key: str, outcome: DecisionOutcome
    ) -> DeliveryResult:
        logger.info(
            "decision_notification_sent",
            extra={
                "entity_id": str(entity_id),
                "gate_key": gate_key,
                "outcome": outcome.value,
            },
        )
        return DeliveryResult(delivered=True)

    def send_invitation(self, evaluation_id: UUID, slot: InterviewSlot) -> DeliveryResult:
        logger.info(
            "interview_invitation_sent",
            extra={
                "evaluation_id": str(evaluation_id),
                "slot_id": str(slot.slot_id),
                "interviewer_account_id": str(slot.interviewer_account_id),
            },
        )
        return DeliveryResult(delivered=True)
