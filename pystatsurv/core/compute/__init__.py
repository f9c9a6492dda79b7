"""
Shared compute infrastructure for PyStatSurv.

Submodules:
    timing: Execution timing and deadline utilities
"""

from pystatsurv.core.compute.timing import Timer, deadline_passed

__all__ = [
    "Timer",
    "deadline_passed",
]
