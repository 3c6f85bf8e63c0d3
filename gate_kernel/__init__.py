"""
Gate Kernel

Versioned entities advancing through an ordered sequence of approval
gates, each gate satisfied by one or more rounds of designated approvers:
- Closed set of voting rules (any / all / majority)
- Optimistic concurrency via a version counter (compare-and-swap writes)
- Append-only decisions and round history
"""

__version__ = "0.1.0"
