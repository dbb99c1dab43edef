"""
Credit Ledger

Append-only credit ledger with idempotent purchases, daily streak bonuses,
atomic referral payouts, and reconciliation analytics.

Entry point: `credit_ledger.container.build_orchestrator`.
"""

__version__ = "0.1.0"
