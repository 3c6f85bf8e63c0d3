"""
gate_config -- YAML workstream configuration.

Responsibility:
    ``load_workstream_config()`` is the single entry point: it loads a
    workstream YAML file, validates the raw gate configuration, parses it
    into frozen dataclasses and stamps a checksum.

Architecture position:
    Configuration -- sits above ``gate_kernel`` and below ``gate_services``.
    The kernel MUST NEVER import from ``gate_config``.

Failure modes:
    - ``FileNotFoundError`` -- no such file.
    - ``InvalidGateConfigurationError`` -- validation found errors (all of
      them are listed on the exception).

Audit relevance:
    Every successful load emits a ``GATE_CONFIG_TRACE`` log record with
    the workstream name, gate keys and checksum.
"""

from __future__ import annotations

from pathlib import Path

from gate_config.loader import load_yaml_file, parse_workstream_definition
from gate_config.schema import WorkstreamDefinition
from gate_config.validator import validate_gate_configuration
from gate_kernel.domain.gates import INITIATIVE_GATE_SEQUENCE
from gate_kernel.exceptions import InvalidGateConfigurationError
from gate_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


def default_config_path(name: str = "standard_initiative") -> Path:
    """Path of a workstream definition shipped with the package."""
    return _DEFAULT_CONFIG_DIR / f"{name}.yaml"


def load_workstream_config(
    path: Path | str,
    sequence: tuple[str, ...] = INITIATIVE_GATE_SEQUENCE,
) -> WorkstreamDefinition:
    """Load, validate and parse a workstream YAML file."""
    path = Path(path)
    data = load_yaml_file(path)

    errors: list[str] = []
    if not isinstance(data.get("workstream"), dict) or not data["workstream"].get("name"):
        errors.append("missing workstream.name")
    errors.extend(validate_gate_configuration(data.get("gates"), sequence))
    if errors:
        _logger.error(
            "gate_config_invalid",
            extra={"source": str(path), "errors": errors},
        )
        raise InvalidGateConfigurationError(str(path), errors)

    definition = parse_workstream_definition(data)
    _logger.info(
        "GATE_CONFIG_TRACE",
        extra={
            "trace_type": "GATE_CONFIG_TRACE",
            "source": str(path),
            "workstream_name": definition.name,
            "gate_keys": list(definition.gate_keys),
            "checksum": definition.checksum,
        },
    )
    return definition


__all__ = [
    "WorkstreamDefinition",
    "default_config_path",
    "load_workstream_config",
    "validate_gate_configuration",
]
