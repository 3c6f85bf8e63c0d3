"""
Module: gate_kernel.models.workstream
Responsibility: ORM persistence for workstreams (owners of gate
    configuration) and their role assignments.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - Workstream names are unique.
    - An account holds a given role in a workstream at most once.
    - ``version`` increments on every gate configuration change; edits
      never reach rounds that are already open (those keep the snapshot
      stored on the gate state).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from gate_kernel.db.base import Base, UTCDateTime, UUIDString
from gate_kernel.domain.approval import gates_from_dict
from gate_kernel.domain.entities import Workstream


class WorkstreamModel(Base):
    """Persistent workstream with its gate configuration as JSON."""

    __tablename__ = "workstreams"

    __table_args__ = (
        UniqueConstraint("name", name="uq_workstreams_name"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    gates: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    version: Mapped[int] = mapped_column(default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<Workstream {self.name} v{self.version}>"

    def to_dto(self) -> Workstream:
        return Workstream(
            workstream_id=self.id,
            name=self.name,
            description=self.description,
            gates=gates_from_dict(self.gates),
            version=self.version,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class WorkstreamRoleAssignmentModel(Base):
    """An account holding a named approver role within a workstream."""

    __tablename__ = "workstream_role_assignments"

    __table_args__ = (
        UniqueConstraint(
            "workstream_id", "account_id", "role",
            name="uq_role_assignment",
        ),
        Index("ix_role_assignment_lookup", "workstream_id", "role"),
    )

    workstream_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workstreams.id", ondelete="CASCADE"),
        nullable=False,
    )
    account_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    role: Mapped[str] = mapped_column(String(100), nullable=False)
    assigned_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<RoleAssignment {self.role} -> {self.account_id}>"
