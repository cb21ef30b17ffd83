"""
Retention module: deletes archives past the retention window.
"""

from .sweeper import RetentionSweeper, SweepResult

__all__ = ["RetentionSweeper", "SweepResult"]
