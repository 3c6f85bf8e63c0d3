"""ORM models for the gate kernel."""

from gate_kernel.models.decision import GateDecisionModel, RoundSnapshotModel
from gate_kernel.models.evaluation import InterviewFormModel, InterviewSlotModel
from gate_kernel.models.governed_entity import GateStateModel, GovernedEntityModel
from gate_kernel.models.workstream import WorkstreamModel, WorkstreamRoleAssignmentModel

__all__ = [
    "GateDecisionModel",
    "GateStateModel",
    "GovernedEntityModel",
    "InterviewFormModel",
    "InterviewSlotModel",
    "RoundSnapshotModel",
    "WorkstreamModel",
    "WorkstreamRoleAssignmentModel",
]
