"""
Credit Ledger Domain Constants

Purpose
-------
Domain-level limits and key formats for the credit ledger. Tunable balance
values (bonus formula, referral amounts, products) live in `LedgerSettings`;
infrastructure limits (timeouts, page sizes) live in `Config`.

Design Notes
------------
- Values are annotated with typing.Final to signal immutability
- No side effects at import time
"""

from __future__ import annotations

from typing import Final

# ============================================================================
# INPUT LIMITS
# ============================================================================

MAX_USER_ID_LENGTH: Final[int] = 128
MAX_DESCRIPTION_LENGTH: Final[int] = 500
MAX_TOKEN_LENGTH: Final[int] = 4096
MAX_CREDIT_AMOUNT: Final[int] = 1_000_000_000

# ============================================================================
# IDEMPOTENCY KEYS
# ============================================================================

PURCHASE_KEY_FORMAT: Final[str] = "purchase:{transaction_id}"
DAILY_BONUS_KEY_FORMAT: Final[str] = "daily-bonus:{user_id}:{claim_date}"
REFERRAL_KEY_FORMAT: Final[str] = "referral:{referee_user_id}:{role}"

REFERRAL_ROLE_REFEREE: Final[str] = "referee"
REFERRAL_ROLE_REFERRER: Final[str] = "referrer"

# ============================================================================
# OPERATION NAMES (idempotency records, logs)
# ============================================================================

OPERATION_PURCHASE: Final[str] = "purchase"
OPERATION_DAILY_BONUS: Final[str] = "daily_bonus"
OPERATION_REFERRAL: Final[str] = "referral"


def purchase_key(transaction_id: str) -> str:
    return PURCHASE_KEY_FORMAT.format(transaction_id=transaction_id)


def daily_bonus_key(user_id: str, claim_date: str) -> str:
    return DAILY_BONUS_KEY_FORMAT.format(user_id=user_id, claim_date=claim_date)


def referral_key(referee_user_id: str, role: str) -> str:
    return REFERRAL_KEY_FORMAT.format(referee_user_id=referee_user_id, role=role)
