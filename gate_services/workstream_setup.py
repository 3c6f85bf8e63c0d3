"""
gate_services.workstream_setup -- Install YAML workstream definitions.

Bridges ``gate_config`` (file -> WorkstreamDefinition) and
``WorkstreamService`` (persistence): creates the workstream on first
install, and replaces its gate configuration under the version guard on
later installs.  Rounds already open keep the configuration captured when
they opened.
"""

from __future__ import annotations

from pathlib import Path

from sqlalchemy.orm import Session

from gate_config import load_workstream_config
from gate_config.schema import WorkstreamDefinition
from gate_kernel.domain.clock import Clock
from gate_kernel.domain.entities import Workstream
from gate_kernel.logging_config import get_logger
from gate_kernel.services.workstream_service import WorkstreamService

logger = get_logger("services.workstream_setup")


def install_workstream(
    session: Session,
    definition: WorkstreamDefinition,
    clock: Clock | None = None,
) -> Workstream:
    service = WorkstreamService(session, clock)
    existing = service.find_by_name(definition.name)
    if existing is None:
        workstream = service.create_workstream(
            definition.name, definition.description, definition.gates
        )
        action = "created"
    else:
        workstream = service.update_gates(
            existing.workstream_id, definition.gates, existing.version
        )
        action = "updated"

    logger.info(
        "workstream_installed",
        extra={
            "workstream": definition.name,
            "action": action,
            "checksum": definition.checksum,
            "version": workstream.version,
        },
    )
    return workstream


def install_workstream_file(
    session: Session,
    path: Path | str,
    clock: Clock | None = None,
) -> Workstream:
    return install_workstream(session, load_workstream_config(path), clock)
