"""
gate_services -- Stateful coordination on top of the gate kernel and engines.

Entry points:
    StageGateOrchestrator   submit / decide / pending tasks / round history
    InitiativeService       initiative creation and removal
    EvaluationWorkflow      interview rosters, forms and hire decisions
    GateConfigResolver      rounds and approver accounts for an entity gate

Services flush but never commit; callers own the transaction
(see ``gate_kernel.db.session_scope``).
"""

from gate_services.config_resolver import GateConfigResolver
from gate_services.evaluation_workflow import EvaluationWorkflow
from gate_services.initiative_service import InitiativeService
from gate_services.notifications import LoggingNotifier
from gate_services.task_materializer import TaskMaterializer
from gate_services.transition_orchestrator import DecisionResult, StageGateOrchestrator

__all__ = [
    "DecisionResult",
    "EvaluationWorkflow",
    "GateConfigResolver",
    "InitiativeService",
    "LoggingNotifier",
    "StageGateOrchestrator",
    "TaskMaterializer",
]
