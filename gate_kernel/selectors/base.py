"""
Module: gate_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/.  Selectors NEVER create, modify, or delete data.

Invariants enforced:
    - Read-only access: no session.add(), delete(), commit() or flush().
    - DTO return convention: selectors return frozen dataclasses, not ORM
      instances.
    - The caller owns the session and its transaction scope.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from gate_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Base class for selectors; stores the caller's session."""

    def __init__(self, session: Session):
        self.session = session
