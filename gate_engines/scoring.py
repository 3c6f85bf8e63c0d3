"""
gate_engines.scoring -- Interview form scoring.

Validates per-criterion interview scores and computes the fit and case
averages.  Scores are integers 1..5 or ``not_applicable``; averages are
the mean of the numeric scores rounded half-up to one decimal place, and
``None`` when no criterion was scored.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from gate_engines.tracer import traced_engine
from gate_kernel.exceptions import InvalidScoreError

NOT_APPLICABLE = "not_applicable"
MIN_SCORE = 1
MAX_SCORE = 5


@dataclass(frozen=True)
class FormScore:
    fit_scores: dict[str, int | None] = field(default_factory=dict)
    case_scores: dict[str, int | None] = field(default_factory=dict)
    fit_average: float | None = None
    case_average: float | None = None


def normalize_score(criterion_id: str, value: object) -> int | None:
    """Return the integer score, or None for ``not_applicable``."""
    if value is None or value == NOT_APPLICABLE:
        return None
    # bool is an int subclass; True is not a score
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidScoreError(criterion_id, value)
    if not MIN_SCORE <= value <= MAX_SCORE:
        raise InvalidScoreError(criterion_id, value)
    return value


def average_score(scores: Mapping[str, int | None]) -> float | None:
    numeric = [s for s in scores.values() if s is not None]
    if not numeric:
        return None
    mean = Decimal(sum(numeric)) / Decimal(len(numeric))
    return float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


@traced_engine("scoring", "1.0", fingerprint_fields=("fit_criteria", "case_criteria"))
def score_form(
    fit_criteria: Mapping[str, object],
    case_criteria: Mapping[str, object],
) -> FormScore:
    fit = {str(k): normalize_score(str(k), v) for k, v in fit_criteria.items()}
    case = {str(k): normalize_score(str(k), v) for k, v in case_criteria.items()}
    return FormScore(
        fit_scores=fit,
        case_scores=case,
        fit_average=average_score(fit),
        case_average=average_score(case),
    )
