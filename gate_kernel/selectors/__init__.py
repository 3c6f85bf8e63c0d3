"""Read-only selectors for the gate kernel."""

from gate_kernel.selectors.base import BaseSelector
from gate_kernel.selectors.entity_selector import EntitySelector

__all__ = ["BaseSelector", "EntitySelector"]
