"""
Configuration Validator (``gate_config.validator``).

Responsibility
--------------
Checks a raw ``gates`` mapping (as read from YAML) before it is parsed,
so every problem in a file is reported at once instead of failing on the
first bad field.

Invariants enforced
-------------------
* Gate keys belong to the entity type's fixed gate sequence.
* Every round has an id, a known rule, a known requirement mode and at
  least one approver.
* Every approver names an account (a UUID) or a role.
* Round ids are unique within a gate; requirement ids are unique within
  a round.

Failure modes
-------------
Returns a list of human-readable errors; an empty list means valid.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from uuid import UUID

from gate_kernel.domain.approval import ApprovalRule, RequirementMode

_RULES = frozenset(r.value for r in ApprovalRule)
_MODES = frozenset(m.value for m in RequirementMode)


def _validate_approver(where: str, index: int, approver: Any, seen: set[str]) -> list[str]:
    if not isinstance(approver, Mapping):
        return [f"{where}: approver #{index} must be a mapping"]

    errors: list[str] = []
    req_id = approver.get("id")
    if not req_id:
        errors.append(f"{where}: approver #{index} has no id")
    elif str(req_id) in seen:
        errors.append(f"{where}: duplicate approver id {req_id!r}")
    else:
        seen.add(str(req_id))

    account = approver.get("account_id")
    role = approver.get("role")
    if not account and not role:
        errors.append(f"{where}: approver {req_id or index!r} needs an account_id or a role")
    if account:
        try:
            UUID(str(account))
        except ValueError:
            errors.append(f"{where}: approver {req_id!r} account_id {account!r} is not a UUID")
    return errors


def _validate_round(gate_key: str, index: int, rnd: Any, seen_rounds: set[str]) -> list[str]:
    where = f"gate {gate_key} round #{index}"
    if not isinstance(rnd, Mapping):
        return [f"{where}: round must be a mapping"]

    errors: list[str] = []
    round_id = rnd.get("id")
    if not round_id:
        errors.append(f"{where}: missing id")
    elif str(round_id) in seen_rounds:
        errors.append(f"{where}: duplicate round id {round_id!r}")
    else:
        seen_rounds.add(str(round_id))

    if rnd.get("rule") not in _RULES:
        errors.append(f"{where}: unknown rule {rnd.get('rule')!r}")
    mode = rnd.get("per_requirement", RequirementMode.ANY_OF.value)
    if mode not in _MODES:
        errors.append(f"{where}: unknown per_requirement {mode!r}")

    approvers = rnd.get("approvers") or []
    if not approvers:
        errors.append(f"{where}: has no approvers")
    seen_reqs: set[str] = set()
    for a_index, approver in enumerate(approvers):
        errors.extend(_validate_approver(where, a_index, approver, seen_reqs))
    return errors


def validate_gate_configuration(
    gates: Mapping[str, Any] | None,
    sequence: tuple[str, ...],
) -> list[str]:
    """Validate a raw gates mapping against ``sequence``.  Returns all errors found."""
    errors: list[str] = []
    for gate_key, rounds in (gates or {}).items():
        if str(gate_key) not in sequence:
            errors.append(f"unknown gate key {gate_key!r}")
            continue
        if rounds is None:
            continue
        if not isinstance(rounds, list):
            errors.append(f"gate {gate_key}: rounds must be a list")
            continue
        seen_rounds: set[str] = set()
        for index, rnd in enumerate(rounds):
            errors.extend(_validate_round(str(gate_key), index, rnd, seen_rounds))
    return errors
