"""
Configuration schema (``gate_config.schema``).

Frozen dataclasses produced by the loader.  Approval rounds and approver
requirements reuse the kernel domain value objects so a loaded definition
can be handed straight to ``WorkstreamService.create_workstream``.
"""

from __future__ import annotations

from dataclasses import dataclass

from gate_kernel.domain.approval import GateConfiguration


@dataclass(frozen=True)
class WorkstreamDefinition:
    """A workstream and its gate configuration as declared in YAML."""

    name: str
    description: str
    gates: GateConfiguration
    checksum: str

    @property
    def gate_keys(self) -> tuple[str, ...]:
        return tuple(self.gates)
