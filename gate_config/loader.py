"""
Configuration Loader (``gate_config.loader``).

Responsibility
--------------
Loads workstream YAML files and parses them into typed frozen dataclasses
(``WorkstreamDefinition``, ``ApprovalRound``, ``ApproverRequirement``).
Callers should go through ``gate_config.load_workstream_config()``, which
also validates.

Architecture position
---------------------
**Config layer** -- sits above ``gate_kernel.domain`` and below
``gate_services``.  The kernel never imports from here.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; there are no silent defaults for required fields.
* ``compute_checksum`` is a deterministic SHA-256 over canonical JSON, so
  two files declaring the same configuration share a checksum.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Unknown rule / requirement mode  -> ``ValueError`` from the enum.

Expected layout::

    workstream:
      name: Operational Excellence
      description: Cost-out initiatives
    gates:
      l0:
        - id: l0-review
          rule: any
          per_requirement: any-of
          approvers:
            - id: sponsor
              role: sponsor
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml

from gate_config.schema import WorkstreamDefinition
from gate_kernel.domain.approval import (
    ApprovalRound,
    ApprovalRule,
    ApproverRequirement,
    GateConfiguration,
    RequirementMode,
    gates_to_dict,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_approver(data: dict[str, Any]) -> ApproverRequirement:
    """Parse one approver requirement.  ``id`` is required."""
    account = data.get("account_id")
    return ApproverRequirement(
        id=str(data["id"]),
        account_id=UUID(str(account)) if account else None,
        role=data.get("role") or None,
    )


def parse_round(data: dict[str, Any]) -> ApprovalRound:
    """Parse one approval round.  ``id`` and ``rule`` are required."""
    return ApprovalRound(
        id=str(data["id"]),
        rule=ApprovalRule(data["rule"]),
        per_requirement=RequirementMode(
            data.get("per_requirement", RequirementMode.ANY_OF.value)
        ),
        approvers=tuple(parse_approver(a) for a in data.get("approvers") or ()),
    )


def parse_gates(data: dict[str, Any]) -> GateConfiguration:
    """Parse the ``gates`` mapping: gate key -> list of rounds."""
    return {
        str(key): tuple(parse_round(r) for r in rounds or ())
        for key, rounds in (data or {}).items()
    }


def parse_workstream_definition(data: dict[str, Any]) -> WorkstreamDefinition:
    """Parse a whole workstream document."""
    header = data["workstream"]
    gates = parse_gates(data.get("gates") or {})
    return WorkstreamDefinition(
        name=str(header["name"]),
        description=str(header.get("description", "")),
        gates=gates,
        checksum=compute_checksum({"name": header["name"], "gates": gates_to_dict(gates)}),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
