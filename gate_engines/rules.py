"""
gate_engines.rules -- Pure round rule evaluation engine.

Responsibility:
    Turn a round's approver requirements into countable voting slots, and
    decide whether a round is satisfied, rejected or still pending under
    its rule (``any`` / ``all`` / ``majority``).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import gate_kernel/domain types.

Invariants enforced:
    - Closed rule set: ``_RULE_EVALUATORS`` has exactly one evaluator per
      ``ApprovalRule`` member; an unknown rule is a KeyError, not a silent
      default.
    - A round with zero slots is never satisfied; it is reported as
      misconfigured.
    - Only the first decision per slot counts.
    - ``any``: satisfied at the first approve; rejected only once every
      slot decided and none approved.
    - ``all``: satisfied iff every slot approved; rejected at the first
      non-approve.
    - ``majority``: satisfied once approvals > N/2; rejected once the
      remaining possible approvals can no longer exceed N/2.  An exact
      half/half split with every slot decided stays pending and is
      flagged as deadlocked.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from uuid import UUID

from gate_engines.tracer import traced_engine
from gate_kernel.domain.approval import (
    ApprovalRound,
    ApprovalRule,
    Decision,
    DecisionOutcome,
    RequirementMode,
    RoundOutcome,
    SlotBuild,
    VotingSlot,
)


@dataclass(frozen=True)
class RoundEvaluation:
    """Result of evaluating one round against the decisions cast so far."""

    outcome: RoundOutcome
    total_slots: int
    approve_count: int
    non_approve_count: int
    undecided_count: int
    is_misconfigured: bool = False
    is_deadlocked: bool = False
    reason: str = ""
    counted_decisions: tuple[Decision, ...] = ()

    @property
    def has_reject(self) -> bool:
        """True if any counted decision is an outright reject (not a return)."""
        return any(d.outcome == DecisionOutcome.REJECT for d in self.counted_decisions)


# ---------------------------------------------------------------------------
# Slots
# ---------------------------------------------------------------------------


def build_voting_slots(
    approval_round: ApprovalRound,
    resolved_accounts: Mapping[str, Iterable[UUID]],
) -> SlotBuild:
    """
    Expand a round's requirements into voting slots.

    ``resolved_accounts`` maps requirement id to the accounts it resolved
    to.  Under ``any-of`` a requirement is one slot shared by all of its
    accounts; under ``all-of`` every account is its own slot.  Requirements
    that resolved to nothing are listed in ``unresolved_requirements``.
    """
    slots: list[VotingSlot] = []
    unresolved: list[str] = []

    for requirement in approval_round.approvers:
        accounts = tuple(dict.fromkeys(resolved_accounts.get(requirement.id, ())))
        if not accounts:
            unresolved.append(requirement.id)
            continue

        if approval_round.per_requirement == RequirementMode.ALL_OF:
            for account_id in accounts:
                slots.append(
                    VotingSlot(
                        slot_key=f"{requirement.id}:{account_id}",
                        requirement_id=requirement.id,
                        account_ids=(account_id,),
                    )
                )
        else:
            slots.append(
                VotingSlot(
                    slot_key=requirement.id,
                    requirement_id=requirement.id,
                    account_ids=accounts,
                )
            )

    return SlotBuild(slots=tuple(slots), unresolved_requirements=tuple(unresolved))


def counted_decisions(
    slots: Iterable[VotingSlot],
    decisions: Iterable[Decision],
) -> dict[str, Decision]:
    """First decision per slot, keyed by slot key.  Unknown slot keys are ignored."""
    slot_keys = {slot.slot_key for slot in slots}
    counted: dict[str, Decision] = {}
    for decision in decisions:
        key = decision.slot_key
        if key in slot_keys and key not in counted:
            counted[key] = decision
    return counted


def open_slots_for(
    account_id: UUID,
    slots: Iterable[VotingSlot],
    decisions: Iterable[Decision],
) -> list[VotingSlot]:
    """Slots ``account_id`` may still fill, in round order."""
    slots = list(slots)
    filled = counted_decisions(slots, decisions)
    return [s for s in slots if s.accepts(account_id) and s.slot_key not in filled]


# ---------------------------------------------------------------------------
# Rule evaluators
# ---------------------------------------------------------------------------

_Verdict = tuple[RoundOutcome, str, bool]


def _evaluate_any(total: int, approved: int, non_approved: int) -> _Verdict:
    if approved >= 1:
        return RoundOutcome.SATISFIED, "At least one approver approved", False
    if approved + non_approved == total:
        return RoundOutcome.REJECTED, "Every approver decided and none approved", False
    return RoundOutcome.PENDING, f"Awaiting {total - non_approved} approver(s)", False


def _evaluate_all(total: int, approved: int, non_approved: int) -> _Verdict:
    if non_approved > 0:
        return RoundOutcome.REJECTED, "An approver did not approve", False
    if approved == total:
        return RoundOutcome.SATISFIED, "Every approver approved", False
    return RoundOutcome.PENDING, f"{approved}/{total} approved", False


def _evaluate_majority(total: int, approved: int, non_approved: int) -> _Verdict:
    if 2 * approved > total:
        return RoundOutcome.SATISFIED, f"Majority reached ({approved}/{total})", False
    if total % 2 == 0 and 2 * approved == total and 2 * non_approved == total:
        return (
            RoundOutcome.PENDING,
            f"Tied {approved}-{non_approved}; needs a deciding vote",
            True,
        )
    if 2 * (total - non_approved) <= total:
        return (
            RoundOutcome.REJECTED,
            f"Majority no longer reachable ({non_approved}/{total} did not approve)",
            False,
        )
    return RoundOutcome.PENDING, f"{approved}/{total} approved", False


_RULE_EVALUATORS: dict[ApprovalRule, Callable[[int, int, int], _Verdict]] = {
    ApprovalRule.ANY: _evaluate_any,
    ApprovalRule.ALL: _evaluate_all,
    ApprovalRule.MAJORITY: _evaluate_majority,
}


@traced_engine("rules", "1.0", fingerprint_fields=("approval_round", "slots", "decisions"))
def evaluate_round(
    approval_round: ApprovalRound,
    slots: tuple[VotingSlot, ...],
    decisions: tuple[Decision, ...],
) -> RoundEvaluation:
    """Evaluate ``approval_round`` given its voting slots and the decisions cast."""
    total = len(slots)
    if total == 0:
        return RoundEvaluation(
            outcome=RoundOutcome.PENDING,
            total_slots=0,
            approve_count=0,
            non_approve_count=0,
            undecided_count=0,
            is_misconfigured=True,
            reason="Round has no resolvable approvers",
        )

    counted = counted_decisions(slots, decisions)
    approved = sum(1 for d in counted.values() if d.outcome == DecisionOutcome.APPROVE)
    non_approved = len(counted) - approved

    outcome, reason, deadlocked = _RULE_EVALUATORS[approval_round.rule](
        total, approved, non_approved
    )
    return RoundEvaluation(
        outcome=outcome,
        total_slots=total,
        approve_count=approved,
        non_approve_count=non_approved,
        undecided_count=total - len(counted),
        is_deadlocked=deadlocked,
        reason=reason,
        counted_decisions=tuple(counted.values()),
    )
