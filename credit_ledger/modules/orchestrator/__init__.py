"""
Orchestrator Module
===================

Exports:
- CreditOrchestrator: façade for every credit operation
- PurchaseResult, DailyBonusClaim, ReferralResult, TransactionHistory
- UserLockRegistry: per-user asyncio lock registry
"""

from .dto import DailyBonusClaim, PurchaseResult, ReferralResult, TransactionHistory
from .locks import UserLockRegistry
from .service import CreditOrchestrator

__all__ = [
    "CreditOrchestrator",
    "DailyBonusClaim",
    "PurchaseResult",
    "ReferralResult",
    "TransactionHistory",
    "UserLockRegistry",
]
