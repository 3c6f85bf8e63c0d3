"""
Typed Exception Hierarchy for the Gate Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Approval workflows fail for very different reasons: a stale write, an actor
who is not on the current round, a broken workstream setup.  Callers must be
able to tell these apart without parsing message strings:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        orchestrator.decide(...)
    except Exception as e:
        if "version" in str(e):  # FRAGILE - message might change
            reload_and_retry()

Example - RIGHT way (what this module enables):
    try:
        orchestrator.decide(...)
    except VersionConflictError as e:
        log.info("stale write", extra={"expected": e.expected_version})
        api_response(code=e.code, actual_version=e.actual_version)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from GateKernelError:

    GateKernelError (base)
    |
    +-- NotFoundError
    |   +-- EntityNotFoundError
    |   +-- GateNotFoundError
    |   +-- WorkstreamNotFoundError
    |   +-- SlotNotFoundError
    |
    +-- ConcurrencyError
    |   +-- VersionConflictError
    |
    +-- InvalidStateError
    |   +-- InvalidGateStateError
    |   +-- FormsPendingError
    |   +-- FormAlreadySubmittedError
    |
    +-- ForbiddenError
    |   +-- ForbiddenApproverError
    |   +-- DuplicateDecisionError
    |
    +-- InvalidInputError
    |   +-- MissingDecisionCommentError
    |   +-- InvalidDecisionPayloadError
    |   +-- InvalidScoreError
    |
    +-- ConfigurationError
    |   +-- MissingApproversError
    |   +-- EmptyGateConfigurationError
    |   +-- InvalidGateConfigurationError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Not found       | ENTITY_NOT_FOUND            | Entity ID doesn't exist
                | GATE_NOT_FOUND              | Gate key not in the entity's sequence
                | WORKSTREAM_NOT_FOUND        | Owning workstream missing
                | SLOT_NOT_FOUND              | Interview slot not on the roster
----------------|-----------------------------|-----------------------------------------
Concurrency     | VERSION_CONFLICT            | expected_version != stored version
----------------|-----------------------------|-----------------------------------------
State           | INVALID_GATE_STATE          | Gate not pending (or already terminal)
                | INVALID_TRANSITION          | Status change not in GATE_TRANSITIONS
                | FORMS_PENDING               | Interview round not yet complete
                | FORM_ALREADY_SUBMITTED      | Slot already submitted its form
----------------|-----------------------------|-----------------------------------------
Forbidden       | FORBIDDEN_APPROVER          | Actor not on the current round
                | DUPLICATE_DECISION          | Actor/slot already decided this round
----------------|-----------------------------|-----------------------------------------
Input           | MISSING_DECISION_COMMENT    | return/reject without a comment
                | INVALID_DECISION_PAYLOAD    | Malformed decision / payload
                | INVALID_SCORE               | Criterion score out of range
----------------|-----------------------------|-----------------------------------------
Configuration   | MISSING_APPROVERS           | Round has unresolvable approvers
                | EMPTY_GATE_CONFIGURATION    | Gate has zero configured rounds
                | INVALID_GATE_CONFIGURATION  | Workstream config fails validation
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying a decision or round snapshot

===============================================================================
HANDLING PATTERNS
===============================================================================

1. VersionConflictError -> reload the entity and retry with fresh data.
   Retrying is a caller concern; the kernel never retries.

2. ForbiddenError / InvalidStateError -> hard stop.  A correctly filtered
   UI never reaches these; they indicate a race or tampering.

3. ConfigurationError -> alert operators.  It is a broken setup, not a
   normal business outcome, and must not be shown as a validation error.
"""


class GateKernelError(Exception):
    """
    Base exception for all gate kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "GATE_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(GateKernelError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class EntityNotFoundError(NotFoundError):
    """Governed entity (initiative or evaluation) does not exist."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"Entity not found: {entity_id}")


class GateNotFoundError(NotFoundError):
    """Gate key is not part of the entity's gate sequence."""

    code: str = "GATE_NOT_FOUND"

    def __init__(self, entity_id: str, gate_key: str):
        self.entity_id = entity_id
        self.gate_key = gate_key
        super().__init__(f"Gate {gate_key} not found on entity {entity_id}")


class WorkstreamNotFoundError(NotFoundError):
    """Workstream owning the gate configuration does not exist."""

    code: str = "WORKSTREAM_NOT_FOUND"

    def __init__(self, workstream_id: str):
        self.workstream_id = workstream_id
        super().__init__(f"Workstream not found: {workstream_id}")


class SlotNotFoundError(NotFoundError):
    """Interview slot is not on the evaluation's current roster."""

    code: str = "SLOT_NOT_FOUND"

    def __init__(self, evaluation_id: str, slot_id: str):
        self.evaluation_id = evaluation_id
        self.slot_id = slot_id
        super().__init__(f"Slot {slot_id} not found on evaluation {evaluation_id}")


# Concurrency exceptions


class ConcurrencyError(GateKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class VersionConflictError(ConcurrencyError):
    """Optimistic concurrency conflict: the entity moved past expected_version."""

    code: str = "VERSION_CONFLICT"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int,
        actual_version: int | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Version conflict on {entity_type} {entity_id}: "
            f"expected {expected_version}, found {actual_version}"
        )


# State exceptions


class InvalidStateError(GateKernelError):
    """Base exception for operations not allowed in the current state."""

    code: str = "INVALID_STATE"


class InvalidGateStateError(InvalidStateError):
    """Gate is not in a status that allows the requested operation."""

    code: str = "INVALID_GATE_STATE"

    def __init__(
        self, entity_id: str | None, gate_key: str, status: str, operation: str
    ):
        self.entity_id = entity_id
        self.gate_key = gate_key
        self.status = status
        self.operation = operation
        where = f" on entity {entity_id}" if entity_id else ""
        super().__init__(
            f"Cannot {operation} gate {gate_key}{where}: status is {status}"
        )


class FormsPendingError(InvalidStateError):
    """Interview round still has unsubmitted forms."""

    code: str = "FORMS_PENDING"

    def __init__(self, evaluation_id: str, pending_slots: int):
        self.evaluation_id = evaluation_id
        self.pending_slots = pending_slots
        super().__init__(
            f"Evaluation {evaluation_id} has {pending_slots} pending interview form(s)"
        )


class FormAlreadySubmittedError(InvalidStateError):
    """Interview form for this slot was already submitted."""

    code: str = "FORM_ALREADY_SUBMITTED"

    def __init__(self, evaluation_id: str, slot_id: str):
        self.evaluation_id = evaluation_id
        self.slot_id = slot_id
        super().__init__(f"Form for slot {slot_id} on {evaluation_id} already submitted")


# Authorization exceptions


class ForbiddenError(GateKernelError):
    """Base exception for actors acting outside their authority."""

    code: str = "FORBIDDEN"


class ForbiddenApproverError(ForbiddenError):
    """Actor is not an eligible approver for the current round."""

    code: str = "FORBIDDEN_APPROVER"

    def __init__(self, entity_id: str, gate_key: str, round_index: int, actor_id: str):
        self.entity_id = entity_id
        self.gate_key = gate_key
        self.round_index = round_index
        self.actor_id = actor_id
        super().__init__(
            f"Actor {actor_id} is not an approver for round {round_index} "
            f"of gate {gate_key} on entity {entity_id}"
        )


class DuplicateDecisionError(ForbiddenApproverError):
    """Actor already decided, or every slot they could fill is decided."""

    code: str = "DUPLICATE_DECISION"


# Input exceptions


class InvalidInputError(GateKernelError):
    """Base exception for malformed caller input."""

    code: str = "INVALID_INPUT"


class MissingDecisionCommentError(InvalidInputError):
    """A return or reject decision arrived without a comment."""

    code: str = "MISSING_DECISION_COMMENT"

    def __init__(self, outcome: str):
        self.outcome = outcome
        super().__init__(f"A {outcome} decision requires a non-empty comment")


class InvalidDecisionPayloadError(InvalidInputError):
    """Decision or workflow payload is malformed."""

    code: str = "INVALID_DECISION_PAYLOAD"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class InvalidScoreError(InvalidInputError):
    """Interview criterion score is outside the accepted range."""

    code: str = "INVALID_SCORE"

    def __init__(self, criterion_id: str, score: object):
        self.criterion_id = criterion_id
        self.score = score
        super().__init__(f"Invalid score {score!r} for criterion {criterion_id}")


# Configuration exceptions


class ConfigurationError(GateKernelError):
    """
    Base exception for broken gate setup.

    Operators must be alerted; these are never ordinary business outcomes.
    """

    code: str = "CONFIGURATION_ERROR"


class MissingApproversError(ConfigurationError):
    """Current round has no resolvable approvers, or a requirement is unresolvable."""

    code: str = "MISSING_APPROVERS"

    def __init__(
        self,
        entity_id: str,
        gate_key: str,
        round_index: int,
        unresolved_requirements: tuple[str, ...] = (),
    ):
        self.entity_id = entity_id
        self.gate_key = gate_key
        self.round_index = round_index
        self.unresolved_requirements = unresolved_requirements
        detail = (
            f"unresolved requirements: {', '.join(unresolved_requirements)}"
            if unresolved_requirements
            else "no resolvable approvers"
        )
        super().__init__(
            f"Round {round_index} of gate {gate_key} on entity {entity_id}: {detail}"
        )


class EmptyGateConfigurationError(ConfigurationError):
    """Gate has zero configured rounds and auto-approve is disabled."""

    code: str = "EMPTY_GATE_CONFIGURATION"

    def __init__(self, entity_id: str, gate_key: str):
        self.entity_id = entity_id
        self.gate_key = gate_key
        super().__init__(
            f"Gate {gate_key} on entity {entity_id} has no configured approval rounds"
        )


class InvalidGateConfigurationError(ConfigurationError):
    """Workstream gate configuration failed validation."""

    code: str = "INVALID_GATE_CONFIGURATION"

    def __init__(self, source: str, errors: list[str]):
        self.source = source
        self.errors = errors
        super().__init__(
            f"Invalid gate configuration in {source}: " + "; ".join(errors)
        )


# Immutability exceptions


class ImmutabilityError(GateKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an append-only record.

    Gate decisions and round snapshots are immutable after creation.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
