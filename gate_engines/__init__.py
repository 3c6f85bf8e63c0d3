"""
Module: gate_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines: round rule
    evaluation, the per-gate round tracker and interview scoring.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import gate_kernel domain types, exceptions and logging.
    MUST NOT import gate_services.

Invariants enforced:
    - Purity: engines never read the clock.  Timestamps are passed in.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Every engine invocation is traced via ``@traced_engine``, emitting a
    GATE_ENGINE_TRACE log record with engine name, version, input
    fingerprint and duration.
"""

from gate_engines.round_tracker import (
    TrackerStep,
    apply_round_evaluation,
    can_transition,
    open_gate,
    restart_gate,
)
from gate_engines.rules import (
    RoundEvaluation,
    build_voting_slots,
    counted_decisions,
    evaluate_round,
    open_slots_for,
)
from gate_engines.scoring import FormScore, average_score, score_form

__all__ = [
    "FormScore",
    "RoundEvaluation",
    "TrackerStep",
    "apply_round_evaluation",
    "average_score",
    "build_voting_slots",
    "can_transition",
    "counted_decisions",
    "evaluate_round",
    "open_gate",
    "open_slots_for",
    "restart_gate",
    "score_form",
]
