"""
Balance Module
==============

Exports:
- BalanceProjector: cached/fold balance reads, apply, reconciliation
- BalanceReadMode
- ReconciliationReport
"""

from .projector import BalanceProjector, BalanceReadMode, ReconciliationReport

__all__ = ["BalanceProjector", "BalanceReadMode", "ReconciliationReport"]
