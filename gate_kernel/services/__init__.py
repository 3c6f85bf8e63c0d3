"""Services for the gate kernel (write side)."""

from gate_kernel.services.entity_store import EntityStore
from gate_kernel.services.round_history import DecisionLog, RoundHistoryStore
from gate_kernel.services.workstream_service import (
    SqlApproverDirectory,
    WorkstreamService,
    normalize_gates,
)

__all__ = [
    "DecisionLog",
    "EntityStore",
    "RoundHistoryStore",
    "SqlApproverDirectory",
    "WorkstreamService",
    "normalize_gates",
]
