"""Database layer - engine, declarative base and portable column types."""

from gate_kernel.db.base import UUID, Base, UTCDateTime, UUIDString
from gate_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)

__all__ = [
    "Base",
    "UTCDateTime",
    "UUID",
    "UUIDString",
    "create_tables",
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
]
