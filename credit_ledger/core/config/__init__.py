"""
Configuration for the credit ledger.

- `Config`: static infrastructure settings from the environment (.env aware).
- `LedgerSettings`: YAML-backed balance tunables (bonus formula, referral
  payouts, product catalog).
"""

from credit_ledger.core.config.config import Config, Environment
from credit_ledger.core.config.settings import DEFAULT_SETTINGS, LedgerSettings

__all__ = ["Config", "Environment", "LedgerSettings", "DEFAULT_SETTINGS"]
