"""
Reconciliation engine: the per-tick decision procedure of each role.
"""

from .engine import ReconciliationEngine, TickOutcome, TickResult

__all__ = ["ReconciliationEngine", "TickOutcome", "TickResult"]
